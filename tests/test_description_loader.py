import json

import pytest

from conftest import BOB

from cpp_bridge_generator.config import BridgeConfig, UnsafePolicy
from cpp_bridge_generator.errors import DescriptionError
from cpp_bridge_generator.models import SpecialMemberKind, Virtualness, Visibility
from cpp_bridge_generator.parsing.description_loader import description_from_mapping, load_description

DESCRIPTION = {
    "config": {"allowlist": ["ns::.*"], "unsafe_policy": "all-safe", "pod_types": ["ns::Point"]},
    "types": [
        "ns::Point",
        {
            "name": "ns::Bob",
            "bases": ["ns::Base", {"name": "ns::Mixin", "access": "private", "virtual": True}],
            "fields": [{"name": "a", "type": "int"}],
        },
    ],
    "functions": [
        {
            "ident": "get",
            "namespace": "ns",
            "self_type": "ns::Bob",
            "params": [{"name": "this", "type": "const ns::Bob*"}],
            "return_type": "int",
            "virtualness": "PURE_VIRTUAL",
            "visibility": "Protected",
        },
        {"ident": "Bob", "namespace": ["ns"], "self_type": "ns::Bob", "params": ["ns::Bob*", "const ns::Bob&"],
         "special_member": "copy_constructor"},
    ],
}


def test_full_description() -> None:
    desc = description_from_mapping(DESCRIPTION)
    get, copy = desc.callables

    assert get.namespace == ("ns",)
    assert get.self_type == BOB
    assert get.params[0].name == "this"
    assert get.return_type.spelling == "int"
    assert get.virtualness is Virtualness.PURE_VIRTUAL
    assert get.visibility is Visibility.PROTECTED

    assert copy.special_member is SpecialMemberKind.COPY_CONSTRUCTOR
    assert [p.name for p in copy.params] == ["arg0", "arg1"]
    assert copy.return_type is None
    assert copy.visibility is Visibility.PUBLIC

    point, bob = desc.types
    assert point.name.to_cpp_name() == "ns::Point"
    assert [b.name.to_cpp_name() for b in bob.bases] == ["ns::Base", "ns::Mixin"]
    assert bob.bases[1].access is Visibility.PRIVATE and bob.bases[1].is_virtual
    assert bob.fields[0].cpp_type.spelling == "int"

    assert desc.config.unsafe_policy is UnsafePolicy.ALL_FUNCTIONS_SAFE
    assert desc.config.is_on_allowlist(BOB)
    assert desc.config.is_pod(point.name)


def test_empty_description() -> None:
    desc = description_from_mapping({})
    assert desc.callables == [] and desc.types == []
    assert desc.config.unsafe_policy is UnsafePolicy.ALL_FUNCTIONS_UNSAFE


def test_generic_names_are_marked() -> None:
    (ty,) = description_from_mapping({"types": ["ns::Box<int>"]}).types
    assert ty.is_generic


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"classes": []},
        {"functions": [{"namespace": "ns"}]},
        {"functions": [{"ident": "f", "inline": True}]},
        {"functions": [{"ident": "f", "visibility": "friendly"}]},
        {"functions": [{"ident": "f", "params": [{"name": "a"}]}]},
        {"types": [{"name": ""}]},
        {"types": [{"name": "ns::A", "fields": [{"name": "x"}]}]},
        {"config": {"unsafe_policy": "sometimes"}},
        {"config": {"allow": []}},
        {"config": {"subclasses": [{"subclass": "B"}]}},
    ],
)
def test_malformed_descriptions(data) -> None:
    with pytest.raises(DescriptionError):
        description_from_mapping(data)


def test_load_description(tmp_path) -> None:
    path = tmp_path / "desc.json"
    path.write_text(json.dumps(DESCRIPTION), encoding="utf-8")
    assert len(load_description(path).callables) == 2

    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(DescriptionError):
        load_description(path)


def test_config_lists() -> None:
    config = BridgeConfig(allowlist=["ns::Bob", "ns::detail::.*"], blocklist=["ns::Bob"])
    assert config.is_on_allowlist("ns::Bob")
    assert config.is_on_allowlist("::ns::detail::Impl")
    assert not config.is_on_allowlist("ns::Fred")
    assert config.is_on_blocklist(BOB)
    assert not BridgeConfig().is_on_blocklist(BOB)


def test_invalid_patterns_are_taken_literally() -> None:
    config = BridgeConfig(allowlist=["ns::Vec<int>(", "ns::Bob"])
    assert config.is_on_allowlist("ns::Vec<int>(")


def test_config_round_trips_through_dict() -> None:
    config = BridgeConfig(allowlist=["ns::Bob"]).with_subclass("MyBob", "ns::Bob")
    again = BridgeConfig.from_mapping(config.to_dict())
    assert again.to_dict() == config.to_dict()
    assert again.subclasses[0].superclass == BOB
