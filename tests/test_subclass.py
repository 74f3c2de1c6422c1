from conftest import analyze, constructor, method, qn, virtual

from cpp_bridge_generator.analysis.fn_analysis import MethodKindTag, ReceiverMutability
from cpp_bridge_generator.analysis.subclass import make_unique_name
from cpp_bridge_generator.config import BridgeConfig
from cpp_bridge_generator.errors import IgnoreReason
from cpp_bridge_generator.models import CppBodyShape, Provenance, QualifiedName, Virtualness

A = qn("ns::A")
B_CPP = QualifiedName((), "BCpp")


def with_subclass(sub: str = "B", sup: str = "ns::A") -> BridgeConfig:
    return BridgeConfig().with_subclass(sub, sup)


def test_make_unique_names_follow_constructor_names() -> None:
    assert make_unique_name("new") == "make_unique"
    assert make_unique_name("new2") == "make_unique2"


def test_pure_virtual_method() -> None:
    result = analyze([virtual(A, "foo", pure=True, const=True)], config=with_subclass())
    work = result.subclasses

    assert A in result.abstract_types
    assert len(work.entries) == 1
    entry = work.entries[0]
    assert entry.entry_name == "B_foo"
    assert entry.is_pure
    assert entry.super_fn is None
    assert entry.mutability is ReceiverMutability.CONST

    traits = work.traits[A]
    assert traits.methods_trait == "A_methods"
    assert [(m.name, m.default_call) for m in traits.methods] == [("foo", None)]
    assert traits.supers == []

    assert not [raw for raw in work.callables if raw.provenance is Provenance.SYNTHESIZED_SUBCLASS_TRAMPOLINE]


def test_abstract_superclass_constructor_is_still_usable() -> None:
    result = analyze([virtual(A, "foo", pure=True)], config=with_subclass())
    default_ctor = result.find(A, "A")
    assert default_ctor.ignore_reason.reason is IgnoreReason.ABSTRACT_TYPE

    ctors = result.subclasses.constructors
    assert len(ctors) == 1
    assert ctors[0].cpp_impl.body.shape is CppBodyShape.CONSTRUCT_SUPERCLASS

    sub_ctor = result.find(B_CPP, "BCpp")
    assert sub_ctor is not None and not sub_ctor.is_ignored
    assert sub_ctor.kind.kind.tag is MethodKindTag.CONSTRUCTOR
    assert [p.name for p in sub_ctor.raw.params] == ["this", "peer"]


def test_non_pure_virtual_gets_a_trampoline() -> None:
    callables = [
        constructor(A, [("x", "int")]),
        virtual(A, "foo", [("a", "int")], ret="int", const=True),
    ]
    result = analyze(callables, config=with_subclass())
    work = result.subclasses

    entry = work.entries[0]
    assert entry.super_fn == "B_foo_super"
    trampoline = result.find(B_CPP, "B_foo_super")
    assert trampoline is not None and not trampoline.is_ignored
    assert trampoline.provenance is Provenance.SYNTHESIZED_SUBCLASS_TRAMPOLINE
    assert trampoline.cpp_wrapper.body.qualifier == "ns::A"

    traits = work.traits[A]
    assert [s.name for s in traits.supers] == ["foo_super"]
    assert [(m.name, m.default_call) for m in traits.methods] == [("foo", "foo_super")]

    # one subclass constructor per superclass constructor, carrying its parameters
    sub_ctor = result.find(B_CPP, "BCpp")
    assert [p.name for p in sub_ctor.raw.params] == ["this", "peer", "x"]


def test_traits_are_built_once_per_superclass() -> None:
    config = with_subclass("B").with_subclass("C", "ns::A")
    result = analyze([virtual(A, "foo", const=True)], config=config)
    work = result.subclasses
    assert {e.entry_name for e in work.entries} == {"B_foo", "C_foo"}
    assert len(work.traits[A].methods) == 1
    assert len(work.classes) == 2


def test_overrides_are_rendered_as_qualified_members() -> None:
    result = analyze([virtual(A, "foo", const=True)], config=with_subclass())
    cls = result.subclasses.classes[0]
    assert len(cls.overrides) == 1
    override = cls.overrides[0]
    assert override.pass_obs_field
    assert override.qualification == B_CPP
    assert override.wrapper_name == "foo"
    assert override.original_cpp_name == "B_foo"


def test_subclass_classes_always_get_heap_helpers() -> None:
    result = analyze([virtual(A, "foo", pure=True)], config=with_subclass())
    make_unique = [fa for fa in result.records() if fa.provenance is Provenance.SYNTHESIZED_MAKE_UNIQUE]
    assert [fa.owner for fa in make_unique] == [B_CPP]
    assert result.find(B_CPP, "BCpp_alloc") is not None


def test_ignored_virtuals_are_not_overridden() -> None:
    callables = [
        virtual(A, "foo", const=True),
        method(A, "bar", [("b", "ns::A&&")], virtualness=Virtualness.VIRTUAL),
    ]
    result = analyze(callables, config=with_subclass())
    assert [e.method_name for e in result.subclasses.entries] == ["foo"]
