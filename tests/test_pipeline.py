import pytest

from conftest import BOB, analyze, constructor, destructor, function, method, qn, records_named, type_decl

from cpp_bridge_generator.analysis.fn_analysis import MethodKindTag, TraitMethodKind
from cpp_bridge_generator.analysis.pipeline import AnalysisResult, find_abstract_types
from cpp_bridge_generator.config import BridgeConfig, UnsafePolicy
from cpp_bridge_generator.errors import InvariantViolation
from cpp_bridge_generator.models import (
    CppBodyShape,
    Provenance,
    QualifiedName,
    SpecialMemberKind,
    TypeDecl,
    UnsafetyNeeded,
    Virtualness,
    Visibility,
)


def make_unique_records(result: AnalysisResult):
    return [fa for fa in result.records() if fa.provenance is Provenance.SYNTHESIZED_MAKE_UNIQUE]


def test_constructor_gets_a_heap_owned_helper() -> None:
    result = analyze([constructor(BOB, [("value", "uint32_t")])])
    helpers = make_unique_records(result)
    assert len(helpers) == 1
    helper = helpers[0]
    assert helper.rust_name == "make_unique"
    assert helper.kind.kind.tag is MethodKindTag.MAKE_VALUE
    # the output pointer is gone; the value parameter stays
    assert [p.name for p in helper.params] == ["value"]
    assert helper.ret_conversion.bridge_return_safe_type() == "UniquePtr<ns::Bob>"
    assert helper.cpp_wrapper.body.shape is CppBodyShape.MAKE_UNIQUE
    assert not helper.is_ignored


def test_one_helper_per_constructor() -> None:
    result = analyze([constructor(BOB, [("a", "int")]), constructor(BOB, [("a", "int"), ("b", "int")])])
    assert [fa.rust_name for fa in make_unique_records(result)] == ["make_unique", "make_unique1"]


def test_no_helper_without_a_public_destructor() -> None:
    result = analyze([constructor(BOB, [("a", "int")]), destructor(BOB, visibility=Visibility.PRIVATE)])
    assert make_unique_records(result) == []
    assert not result.public_constructors[BOB].destructor


def test_public_constructors() -> None:
    result = analyze([method(BOB, "get", ret="int", const=True)])
    ctors = result.public_constructors[BOB]
    assert ctors.move_constructor and ctors.destructor


def test_storage_hooks_skip_pod_types() -> None:
    point = qn("ns::Point")
    result = analyze(
        [method(BOB, "get", ret="int", const=True), method(point, "x", ret="int", const=True)],
        [TypeDecl(point, is_pod=True)],
    )
    alloc = result.find(BOB, "Bob_alloc")
    assert alloc.kind.kind is TraitMethodKind.ALLOCATE
    assert alloc.requires_unsafe is UnsafetyNeeded.ALWAYS
    assert result.find(BOB, "Bob_free").kind.kind is TraitMethodKind.DEALLOCATE
    assert result.find(point, "Point_alloc") is None


def test_casts_to_allowlisted_bases() -> None:
    base, derived = qn("ns::Base"), qn("ns::Derived")
    result = analyze([], [TypeDecl(base), type_decl(derived, [base])])
    cast = result.find(derived, "cast_Derived_to_Base")
    assert cast.kind.kind is TraitMethodKind.CAST
    assert cast.kind.details.trait == "AsRef<ns::Base>"
    assert cast.cpp_wrapper.body.shape is CppBodyShape.CAST

    limited = analyze([], [TypeDecl(base), type_decl(derived, [base])], BridgeConfig(allowlist=["ns::Derived"]))
    assert limited.find(derived, "cast_Derived_to_Base") is None


def test_abstract_types() -> None:
    base, mid, leaf = qn("ns::Base"), qn("ns::Mid"), qn("ns::Leaf")
    callables = [
        method(base, "f", virtualness=Virtualness.PURE_VIRTUAL),
        method(leaf, "f", virtualness=Virtualness.VIRTUAL),
    ]
    types = {t.name: t for t in (TypeDecl(base), type_decl(mid, [base]), type_decl(leaf, [mid]))}
    assert find_abstract_types(callables, types) == {base, mid}

    result = analyze(callables, types.values())
    assert result.find(base, "Base_alloc") is None
    assert result.find(leaf, "Leaf_alloc") is not None
    assert records_named(result, "Base")[0].ignore_reason is not None


def test_generic_and_forward_declared_types_get_nothing_synthesized() -> None:
    opaque, boxed = qn("ns::Opaque"), qn("ns::Box<int>")
    result = analyze([], [TypeDecl(opaque, is_forward_declaration=True), TypeDecl(boxed, is_generic=True)])
    assert result.records() == []


def test_boundary_names_are_unique_within_a_run(bob_callables) -> None:
    result = analyze(bob_callables + [function("get", ret="int"), method(qn("ns::Fred"), "get", ret="int", const=True)])
    names = [fa.bridge_name for fa in result.records()]
    assert len(names) == len(set(names))


def test_classification_is_deterministic(bob_callables) -> None:
    first = analyze(bob_callables)
    second = analyze(bob_callables)
    assert [(fa.rust_name, fa.bridge_name) for fa in first.records()] == [
        (fa.rust_name, fa.bridge_name) for fa in second.records()
    ]


def test_every_record_is_accepted_or_explained(bob_callables) -> None:
    result = analyze(bob_callables + [function("take", [("b", "ns::Bob&&")])])
    for fa in result.records():
        assert fa.is_ignored == (fa.ignore_reason is not None)
    assert [fa.raw.ident for fa in result.ignored()] == ["take"]


def test_special_members_are_never_less_unsafe_than_plain_functions() -> None:
    config = BridgeConfig(unsafe_policy=UnsafePolicy.ALL_FUNCTIONS_SAFE)
    result = analyze([function("add", [("a", "int")], ret="int")], [TypeDecl(BOB)], config)
    copy = next(fa for fa in result.records() if fa.raw.special_member is SpecialMemberKind.COPY_CONSTRUCTOR)
    plain = records_named(result, "add")[0]
    assert copy.requires_unsafe.value >= plain.requires_unsafe.value
    assert copy.requires_unsafe is UnsafetyNeeded.ALWAYS


def test_all_unsafe_policy_reaches_destructors_and_casts() -> None:
    base, derived = qn("ns::Base"), qn("ns::Derived")
    result = analyze(
        [method(derived, "get", ret="int", const=True)], [TypeDecl(base), type_decl(derived, [base])], BridgeConfig()
    )
    plain = records_named(result, "get")[0]
    dtor = next(fa for fa in result.records() if fa.raw.special_member is SpecialMemberKind.DESTRUCTOR)
    cast = result.find(derived, "cast_Derived_to_Base")
    assert plain.requires_unsafe is UnsafetyNeeded.ALWAYS
    assert dtor.requires_unsafe.value >= plain.requires_unsafe.value
    assert cast.requires_unsafe.value >= plain.requires_unsafe.value


def test_wrapper_names_do_not_collide() -> None:
    result = analyze([function("foo", [("s", "std::string")]), function("foo_", [("s", "std::string")])])
    names = sorted(fa.bridge_name for fa in result.records())
    assert names == ["foo_bridge_wrapper", "foo_bridge_wrapper1"]


def test_stats_and_serialization(bob_callables) -> None:
    result = analyze(bob_callables)
    stats = result.stats()
    assert stats["analyzed"] == len(result.records())
    assert stats["synthesized"] == stats["analyzed"] - len(bob_callables)
    assert stats["subclass_entries"] == 0
    data = result.to_dict()
    assert len(data["functions"]) == stats["analyzed"]
    assert {"cpp_name", "rust_name", "bridge_name", "ignore_reason"} <= set(data["functions"][0])


def test_duplicate_boundary_keys_are_rejected() -> None:
    result = analyze([function("add", ret="int")])
    fa = result.records()[0]
    with pytest.raises(InvariantViolation):
        result.add(QualifiedName(("ns",), fa.bridge_name), fa)
