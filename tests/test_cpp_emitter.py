import pytest

from conftest import BOB, analyze, qn, virtual

from cpp_bridge_generator.analysis.conversion import CallDirection
from cpp_bridge_generator.config import BridgeConfig
from cpp_bridge_generator.emitters.cpp_emitter import CppWrapperEmitter, render_entry_declaration
from cpp_bridge_generator.errors import InvariantViolation
from cpp_bridge_generator.models import Provenance, TypeDecl
from cpp_bridge_generator.utils import TemplateRenderer


@pytest.fixture
def result(bob_callables):
    return analyze(bob_callables)


def render(fa):
    return CppWrapperEmitter().render(fa.cpp_wrapper)


def test_constructor_uses_placement_new(result) -> None:
    snippet = render(result.find(BOB, "Bob"))
    assert snippet.declaration == "void new_bridge_bridge_wrapper(ns::Bob* arg0, uint32_t arg1);"
    assert snippet.definition == (
        "void new_bridge_bridge_wrapper(ns::Bob* arg0, uint32_t arg1) {\n  new (arg0) ns::Bob(arg1);\n}"
    )
    assert "<new>" in snippet.headers


def test_method_unboxes_its_string(result) -> None:
    snippet = render(result.find(BOB, "set_name"))
    assert snippet.declaration == (
        "void set_name_bridge_wrapper(ns::Bob& bridge_gen_this, std::unique_ptr<std::string> arg1);"
    )
    assert "bridge_gen_this.set_name(std::move(*arg1));" in snippet.definition
    assert {"<memory>", "<string>", "<utility>"} <= snippet.headers


def test_value_return_is_constructed_in_place(result) -> None:
    snippet = render(result.find(None, "make_bob"))
    assert snippet.declaration == "void make_bob_bridge_wrapper(ns::Bob* placement_return_type);"
    assert "new (placement_return_type) ns::Bob(ns::make_bob());" in snippet.definition


def test_destructor(result) -> None:
    snippet = render(result.find(BOB, "~Bob"))
    assert snippet.declaration.startswith("void Bob_destructor")
    assert "arg0->~Bob();" in snippet.definition


def test_storage_hooks_need_the_prelude(result) -> None:
    alloc = render(result.find(BOB, "Bob_alloc"))
    assert "return new_appropriately<ns::Bob>();" in alloc.definition
    assert alloc.needs_new_delete_prelude
    free = render(result.find(BOB, "Bob_free"))
    assert "delete_appropriately<ns::Bob>(arg0);" in free.definition


def test_heap_owned_helper(result) -> None:
    helper = next(fa for fa in result.records() if fa.provenance is Provenance.SYNTHESIZED_MAKE_UNIQUE)
    snippet = render(helper)
    assert snippet.declaration == "std::unique_ptr<ns::Bob> make_unique_bridge_wrapper(uint32_t arg0);"
    assert "return std::make_unique<ns::Bob>(arg0);" in snippet.definition


def test_simple_methods_need_no_wrapper(result) -> None:
    assert result.find(BOB, "get").cpp_wrapper is None


def test_build_unit_collects_everything(result) -> None:
    unit = CppWrapperEmitter().build_unit(result)
    assert unit.includes[0] == '"rust/cxx.h"'
    assert len(unit.includes) == len(set(unit.includes))
    assert unit.needs_new_delete_prelude
    assert len(unit.declarations) == len(unit.definitions)
    assert len(unit.declarations) == sum(1 for fa in result.accepted() if fa.cpp_wrapper is not None)


def test_emit_writes_header_and_source(result, gen_ctx) -> None:
    outputs = CppWrapperEmitter(gen_ctx, TemplateRenderer()).emit(result)
    assert set(outputs) == {"bridge_wrappers.h", "bridge_wrappers.cc"}
    header = (gen_ctx.output_dir / "bridge_wrappers.h").read_text()
    source = (gen_ctx.output_dir / "bridge_wrappers.cc").read_text()
    assert header == outputs["bridge_wrappers.h"]
    assert '#include "rust/cxx.h"' in header
    assert "new_appropriately" in header
    assert "void new_bridge_bridge_wrapper(ns::Bob* arg0, uint32_t arg1);" in header
    assert source.startswith("// Generated by cpp-bridge-generator")
    assert '#include "bridge_wrappers.h"' in source
    assert "new (arg0) ns::Bob(arg1);" in source


def test_emit_requires_context(result) -> None:
    with pytest.raises(InvariantViolation):
        CppWrapperEmitter().emit(result)


def test_dry_run_writes_nothing(result, gen_ctx) -> None:
    gen_ctx.dry_run = True
    CppWrapperEmitter(gen_ctx, TemplateRenderer()).emit(result)
    assert not (gen_ctx.output_dir / "bridge_wrappers.h").exists()


def test_subclass_class() -> None:
    a = qn("ns::A")
    result = analyze([virtual(a, "foo", [("x", "int")], ret="int", const=True)], config=BridgeConfig().with_subclass("B", "ns::A"))
    emitter = CppWrapperEmitter()
    unit = emitter.build_unit(result)
    assert unit.holders == ["BHolder"]
    assert unit.entry_declarations == ["int B_foo(const BHolder& me, int x);"]

    cls = unit.classes[0]
    assert (cls["name"], cls["superclass"]) == ("BCpp", "ns::A")
    assert "BCpp(rust::Box<BHolder> arg0);" in cls["declarations"]
    assert "int foo(int arg0) const override;" in cls["declarations"]
    assert "BCpp::BCpp(rust::Box<BHolder> arg0) : ns::A(), obs(std::move(arg0)) {}" in cls["definitions"]
    assert any("return B_foo(*obs, arg0);" in d for d in cls["definitions"])

    entry = result.subclasses.entries[0]
    assert render_entry_declaration(entry) == "int B_foo(const BHolder& me, int x);"
    with pytest.raises(InvariantViolation):
        emitter.render(entry.cpp_impl, CallDirection.SAFE_CALLS_NATIVE)


def test_trampoline_bypasses_virtual_dispatch() -> None:
    a = qn("ns::A")
    result = analyze([virtual(a, "foo", ret="int", const=True)], config=BridgeConfig().with_subclass("B", "ns::A"))
    trampoline = result.find(qn("BCpp"), "B_foo_super")
    snippet = render(trampoline)
    assert "return bridge_gen_this.ns::A::foo();" in snippet.definition
    assert "const BCpp& bridge_gen_this" in snippet.declaration


def test_override_moves_value_arguments_into_the_box() -> None:
    a = qn("ns::A")
    result = analyze(
        [virtual(a, "take", [("b", "ns::Bob")], const=True)],
        [TypeDecl(BOB)],
        BridgeConfig().with_subclass("B", "ns::A"),
    )
    (cls,) = CppWrapperEmitter().build_unit(result).classes
    assert any("std::make_unique<ns::Bob>(std::move(arg0))" in d for d in cls["definitions"])
