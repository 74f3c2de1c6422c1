import argparse
import json

import pytest

from conftest import BOB

from cpp_bridge_generator.config import BridgeConfig, UnsafePolicy
from cpp_bridge_generator.generate_bindings import discover_header_files, main, merge_config, parse_args
from cpp_bridge_generator.manifest import MANIFEST_NAME

DESCRIPTION = {
    "config": {"allowlist": ["ns::.*"]},
    "types": ["ns::Bob"],
    "functions": [
        {"ident": "Bob", "namespace": "ns", "self_type": "ns::Bob",
         "params": [{"name": "this", "type": "ns::Bob*"}, {"name": "value", "type": "uint32_t"}]},
        {"ident": "get", "namespace": "ns", "self_type": "ns::Bob",
         "params": [{"name": "this", "type": "const ns::Bob*"}], "return_type": "uint32_t"},
        {"ident": "take", "namespace": "ns", "params": [{"name": "b", "type": "ns::Bob&&"}]},
    ],
}


@pytest.fixture
def description(tmp_path):
    path = tmp_path / "bob.json"
    path.write_text(json.dumps(DESCRIPTION), encoding="utf-8")
    return path


def test_generates_all_outputs(description, tmp_path) -> None:
    out = tmp_path / "out"
    assert main(["--input", str(description), "--output-dir", str(out), "-q"]) == 0
    for name in ("bridge_wrappers.h", "bridge_wrappers.cc", "bridge.rs", MANIFEST_NAME):
        assert (out / name).is_file(), name

    manifest = json.loads((out / MANIFEST_NAME).read_text())
    assert manifest["outputs"] == ["bridge_wrappers.h", "bridge_wrappers.cc", "bridge.rs"]
    assert manifest["config"]["allowlist"] == ["ns::.*"]
    assert manifest["invocation"]["argv"][0] == "cpp-bridge-generator"
    ignored = [f for f in manifest["analysis"]["functions"] if f["ignore_reason"]]
    assert [f["rust_name"] for f in ignored] == ["take"]

    assert "pub struct take;" in (out / "bridge.rs").read_text()


def test_no_manifest(description, tmp_path) -> None:
    out = tmp_path / "out"
    assert main(["--input", str(description), "--output-dir", str(out), "--no-manifest", "-q"]) == 0
    assert not (out / MANIFEST_NAME).exists()


def test_dry_run_writes_nothing(description, tmp_path) -> None:
    out = tmp_path / "out"
    assert main(["--input", str(description), "--output-dir", str(out), "--dry-run", "-q"]) == 0
    assert not out.exists()


def test_nothing_to_do(tmp_path) -> None:
    assert main(["--output-dir", str(tmp_path / "out"), "-q"]) == 2


def test_malformed_description(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"functions": [{"namespace": "ns"}]}), encoding="utf-8")
    assert main(["--input", str(path), "--output-dir", str(tmp_path / "out"), "-qq"]) == 3


def test_malformed_subclass_option(description, tmp_path) -> None:
    argv = ["--input", str(description), "--output-dir", str(tmp_path / "out"), "--subclass", "MyBob", "-qq"]
    assert main(argv) == 3


def test_merge_config() -> None:
    ns = parse_args(
        ["--allowlist", "ns::Fred", "--blocklist", "ns::Bad", "--unsafe-policy", "all-safe", "--subclass", "MyBob:ns::Bob"]
    )
    merged = merge_config(BridgeConfig(allowlist=["ns::Bob"], exclude_utilities=True), ns)
    assert merged.allowlist == ["ns::Bob", "ns::Fred"]
    assert merged.blocklist == ["ns::Bad"]
    assert merged.unsafe_policy is UnsafePolicy.ALL_FUNCTIONS_SAFE
    assert merged.exclude_utilities
    assert [(s.subclass, s.superclass) for s in merged.subclasses] == [("MyBob", BOB)]
    assert merged.is_on_allowlist("ns::Fred")


def test_merge_config_keeps_description_policy() -> None:
    base = BridgeConfig(unsafe_policy=UnsafePolicy.ALL_FUNCTIONS_SAFE)
    merged = merge_config(base, argparse.Namespace(
        allowlist=[], blocklist=[], unsafe_policy=None, exclude_utilities=False, subclass=[]
    ))
    assert merged.unsafe_policy is UnsafePolicy.ALL_FUNCTIONS_SAFE


def test_discover_header_files(tmp_path) -> None:
    (tmp_path / "inc" / "sub").mkdir(parents=True)
    a = tmp_path / "inc" / "a.h"
    b = tmp_path / "inc" / "sub" / "b.hpp"
    a.write_text("")
    b.write_text("")
    (tmp_path / "inc" / "notes.txt").write_text("")
    found = discover_header_files([str(tmp_path / "inc"), str(a), str(tmp_path / "missing")])
    assert found == [a.resolve(), b.resolve()]
