import pytest

from conftest import (
    BOB,
    constructor,
    copy_constructor,
    destructor,
    function,
    make_analyzer,
    method,
    param,
    qn,
    type_decl,
    virtual,
)

from cpp_bridge_generator.analysis.classifier import CheckOutcome, first_failure, ideal_rust_name, wrapper_name_for
from cpp_bridge_generator.analysis.conversion import CppConversion, SafeConversion
from cpp_bridge_generator.analysis.fn_analysis import (
    ClassificationTag,
    MethodKindTag,
    ReceiverMutability,
    RenameStrategyKind,
    TraitMethodKind,
)
from cpp_bridge_generator.config import BridgeConfig, UnsafePolicy
from cpp_bridge_generator.errors import IgnoreReason, InvariantViolation
from cpp_bridge_generator.models import (
    CppBodyShape,
    QualifiedName,
    RawCallable,
    SpecialMemberKind,
    UnsafetyNeeded,
    Visibility,
)


def classify(raw: RawCallable, analyzer=None):
    analysis, _ = (analyzer or make_analyzer()).classify(raw)
    return analysis


def reason(analysis):
    return analysis.ignore_reason.reason if analysis.ignore_reason else None


# --------------------------
# Names
# --------------------------

def test_ideal_name_handles_keywords_and_overloads() -> None:
    assert ideal_rust_name(function("type_", original_name="type")) == "type_"
    assert ideal_rust_name(function("get1", original_name="get")) == "get"
    assert ideal_rust_name(function("get")) == "get"
    assert wrapper_name_for("get") == "get_bridge_wrapper"
    assert wrapper_name_for("type_") == "type_bridge_wrapper"


def test_overloaded_functions_get_numbered_names() -> None:
    analyzer = make_analyzer()
    first = classify(function("daft", [("a", "std::string")]), analyzer)
    second = classify(function("daft1", [("a", "ns::Bob")], original_name="daft"), analyzer)
    assert (first.rust_name, second.rust_name) == ("daft", "daft1")
    assert first.bridge_name == "daft_bridge_wrapper"
    assert second.bridge_name == "daft1_bridge_wrapper"
    assert reason(first) is None and reason(second) is None


def test_plain_function_needs_no_wrapper() -> None:
    fa = classify(function("add", [("a", "int"), ("b", "int")], ret="int"))
    assert fa.kind.tag is ClassificationTag.FUNCTION
    assert fa.cpp_wrapper is None
    assert fa.bridge_name == "add"
    assert fa.rename_strategy.kind is RenameStrategyKind.NONE
    assert fa.requires_unsafe is UnsafetyNeeded.NONE
    assert not fa.is_ignored


def test_unsafe_policy() -> None:
    raw = function("add", [("a", "int")], ret="int")
    unsafe = classify(raw, make_analyzer(config=BridgeConfig()))
    assert unsafe.requires_unsafe is UnsafetyNeeded.ALWAYS
    pointer = classify(function("poke", [("p", "int*")]))
    assert pointer.requires_unsafe is UnsafetyNeeded.ALWAYS


def test_bridge_names_are_returned_as_qualified_keys() -> None:
    _, key = make_analyzer().classify(function("add", [("a", "int")]))
    assert key == QualifiedName(("ns",), "add")


# --------------------------
# Methods
# --------------------------

def test_const_method() -> None:
    fa = classify(method(BOB, "get", ret="uint32_t", const=True))
    assert fa.kind.tag is ClassificationTag.METHOD
    assert fa.kind.kind.tag is MethodKindTag.NORMAL
    assert fa.kind.kind.mutability is ReceiverMutability.CONST
    assert fa.owner == BOB
    assert fa.receiver.conversion.safe_type == "&ns::Bob"
    assert fa.cpp_wrapper is None
    assert not fa.rust_wrapper_needed


def test_mutable_method_taking_a_string() -> None:
    fa = classify(method(BOB, "set_name", [("name", "std::string")]))
    assert fa.kind.kind.mutability is ReceiverMutability.MUTABLE
    assert fa.receiver.conversion.safe_type == "Pin<&mut ns::Bob>"
    assert fa.cpp_wrapper is not None
    assert fa.cpp_wrapper.has_receiver
    assert fa.bridge_name == "set_name_bridge_wrapper"
    assert fa.rust_wrapper_needed
    assert fa.rename_strategy.kind is RenameStrategyKind.WRAPPER_FUNCTION


def test_static_method() -> None:
    fa = classify(method(BOB, "create", ret="int", static=True))
    assert fa.kind.kind.tag is MethodKindTag.STATIC
    assert fa.cpp_wrapper.body.shape is CppBodyShape.STATIC_METHOD_CALL
    assert fa.cpp_wrapper.body.qualified_type == "ns::Bob"


def test_virtual_methods_get_wrappers() -> None:
    fa = classify(virtual(BOB, "foo", const=True))
    assert fa.kind.kind.tag is MethodKindTag.VIRTUAL
    assert fa.cpp_wrapper is not None
    pure = classify(virtual(BOB, "bar", pure=True))
    assert pure.kind.kind.tag is MethodKindTag.PURE_VIRTUAL
    assert pure.kind.kind.mutability is ReceiverMutability.MUTABLE


def test_value_return_is_placed() -> None:
    fa = classify(function("make_bob", ret="ns::Bob"))
    last = fa.param_details[-1]
    assert last.is_placement_return_destination
    assert last.name == "placement_return_type"
    assert fa.params[-1].cpp_type.spelling == "ns::Bob*"
    assert fa.ret_conversion.cpp_conversion is CppConversion.FROM_RETURN_VALUE_TO_PLACEMENT_PTR
    assert fa.rust_wrapper_needed


# --------------------------
# Special members
# --------------------------

def test_constructor() -> None:
    fa = classify(constructor(BOB, [("value", "uint32_t")]))
    assert fa.kind.kind.tag is MethodKindTag.CONSTRUCTOR
    assert fa.rust_name == "new"
    assert fa.bridge_name == "new_bridge_bridge_wrapper"
    assert fa.cpp_wrapper.body.shape is CppBodyShape.PLACEMENT_NEW
    assert not fa.cpp_wrapper.has_receiver
    out = fa.param_details[0]
    assert out.conversion.safe_conversion is SafeConversion.FROM_PIN_MAYBE_UNINIT_TO_PTR
    assert fa.requires_unsafe is UnsafetyNeeded.BRIDGE_ONLY


def test_constructor_overloads_per_type() -> None:
    analyzer = make_analyzer()
    names = [classify(constructor(BOB, p), analyzer).rust_name for p in ([], [("a", "int")], [("b", "double")])]
    assert names == ["new", "new1", "new2"]


def test_copy_constructor_is_a_trait_method() -> None:
    fa = classify(copy_constructor(BOB))
    assert fa.kind.tag is ClassificationTag.TRAIT_METHOD
    assert fa.kind.kind is TraitMethodKind.COPY_CONSTRUCTOR
    assert fa.kind.details.trait == "CopyNew"
    assert fa.requires_unsafe is UnsafetyNeeded.ALWAYS
    assert fa.rust_wrapper_needed


def test_move_constructor_accepts_its_rvalue_reference() -> None:
    raw = constructor(BOB, [("other", "ns::Bob&&")], special_member=SpecialMemberKind.MOVE_CONSTRUCTOR)
    fa = classify(raw)
    assert not fa.is_ignored
    assert fa.kind.kind is TraitMethodKind.MOVE_CONSTRUCTOR
    moved = fa.param_details[1]
    assert moved.conversion.safe_conversion is SafeConversion.FROM_PIN_MOVE_REF_TO_PTR
    assert moved.conversion.cpp_conversion is CppConversion.FROM_PTR_TO_MOVE


def test_volatile_copy_constructor_degrades_to_constructor() -> None:
    fa = classify(copy_constructor(BOB, "const volatile ns::Bob&"))
    assert fa.kind.tag is ClassificationTag.METHOD
    assert fa.kind.kind.tag is MethodKindTag.CONSTRUCTOR
    assert reason(fa) is IgnoreReason.UNSUPPORTED_TYPE


def test_destructor() -> None:
    fa = classify(destructor(BOB))
    assert fa.kind.kind is TraitMethodKind.DESTRUCTOR
    assert fa.rust_name == "Bob_destructor"
    assert fa.cpp_wrapper.body.shape is CppBodyShape.DESTRUCTOR
    assert fa.param_details[0].conversion.safe_conversion is SafeConversion.FROM_TYPE_TO_PTR


# --------------------------
# Ignore reasons
# --------------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        (method(BOB, "gone", is_deleted=True), IgnoreReason.DELETED),
        (method(BOB, "hidden", visibility=Visibility.PRIVATE), IgnoreReason.PRIVATE),
        (method(BOB, "guarded", visibility=Visibility.PROTECTED), IgnoreReason.NON_PUBLIC),
        (function("tmpl", unused_template_param=True), IgnoreReason.UNUSED_TEMPLATE_PARAM),
        (
            method(BOB, "operator=", [("o", "const ns::Bob&")], special_member=SpecialMemberKind.ASSIGNMENT_OPERATOR),
            IgnoreReason.ASSIGNMENT_OPERATOR,
        ),
        (function("take", [("b", "ns::Bob&&")]), IgnoreReason.RVALUE_PARAM),
        (function("give", ret="ns::Bob&&"), IgnoreReason.RVALUE_RETURN),
        (constructor(BOB, special_member=SpecialMemberKind.COPY_CONSTRUCTOR), IgnoreReason.MALFORMED_SPECIAL_MEMBER),
        (function("callback", [("f", "void(*)(int)")]), IgnoreReason.UNSUPPORTED_TYPE),
        (function("printf", [("fmt", "const char*")], is_variadic=True), IgnoreReason.UNSUPPORTED_TYPE),
        (function("both", [("a", "const int&"), ("b", "const int&")], ret="const int&"), IgnoreReason.NOT_ONE_INPUT_REFERENCE),
        (function("none", ret="const int&"), IgnoreReason.NOT_ONE_INPUT_REFERENCE),
        (function("operator+", [("a", "int")], ret="int"), IgnoreReason.BRIDGE_IDENTIFIER_INVALID),
    ],
)
def test_ignore_reasons(raw: RawCallable, expected: IgnoreReason) -> None:
    assert reason(classify(raw)) is expected


def test_rvalue_parameter_detail_names_the_parameter() -> None:
    fa = classify(function("take", [("b", "ns::Bob&&")]))
    assert fa.ignore_reason.detail == "b"
    assert "rvalue reference" in fa.ignore_reason.describe()


def test_protected_virtual_methods_are_kept_for_subclasses() -> None:
    fa = classify(virtual(BOB, "hook", visibility=Visibility.PROTECTED))
    assert not fa.is_ignored
    assert not fa.externally_callable


def test_receiver_must_be_a_pointer() -> None:
    raw = RawCallable(ident="get", namespace=("ns",), params=(param("this", "ns::Bob"),), self_type=BOB)
    assert reason(classify(raw)) is IgnoreReason.UNEXPECTED_THIS_TYPE


def test_reference_return_with_one_input_reference() -> None:
    fa = classify(method(BOB, "value", ret="const int&", const=True))
    assert not fa.is_ignored


def test_first_failing_check_wins() -> None:
    raw = method(BOB, "take", [("b", "ns::Bob&&")], is_deleted=True, visibility=Visibility.PRIVATE)
    assert reason(classify(raw)) is IgnoreReason.DELETED


def test_allowlist() -> None:
    config = BridgeConfig(allowlist=["ns::Fred"], unsafe_policy=UnsafePolicy.ALL_FUNCTIONS_SAFE)
    fa = classify(method(BOB, "get", const=True), make_analyzer(config=config))
    assert reason(fa) is IgnoreReason.NOT_ALLOWLISTED
    fred = classify(method(qn("ns::Fred"), "get", const=True), make_analyzer(config=config))
    assert not fred.is_ignored


def test_generic_owner() -> None:
    owner = qn("ns::Box<int>")
    fa = classify(method(owner, "get", const=True))
    assert reason(fa) is IgnoreReason.GENERIC_OWNER


def test_blocklisted_parameter() -> None:
    config = BridgeConfig(blocklist=["ns::Secret"], unsafe_policy=UnsafePolicy.ALL_FUNCTIONS_SAFE)
    fa = classify(function("peek", [("s", "const ns::Secret&")]), make_analyzer(config=config))
    assert reason(fa) is IgnoreReason.UNACCEPTABLE_PARAM


def test_forward_declared_value_parameter() -> None:
    analyzer = make_analyzer(types=[type_decl(qn("ns::Opaque"), is_forward_declaration=True)])
    assert reason(classify(function("take", [("o", "ns::Opaque")]), analyzer)) is IgnoreReason.UNACCEPTABLE_PARAM
    assert not classify(function("peek", [("o", "ns::Opaque*")]), analyzer).is_ignored


def test_checks_must_be_consistent() -> None:
    with pytest.raises(InvariantViolation):
        first_failure([lambda: CheckOutcome(True, CheckOutcome.failed(IgnoreReason.DELETED, "x").problem)])
    with pytest.raises(InvariantViolation):
        first_failure([lambda: CheckOutcome(False)])
    assert first_failure([CheckOutcome.passed]) is None
