import pytest

from cpp_bridge_generator.config import BridgeConfig
from cpp_bridge_generator.errors import IgnoreReason, TypeConversionError
from cpp_bridge_generator.models import CppType, QualifiedName, TypeDecl, UnsafetyNeeded
from cpp_bridge_generator.type_mapping import AnnotatedKind, PointerTreatment, TypeConverter

BOB = QualifiedName(("ns",), "Bob")


def convert(spelling: str, converter: TypeConverter = None, **kwargs):
    return (converter or TypeConverter()).convert(CppType.from_spelling(spelling), **kwargs)


def test_cpp_type_parsing() -> None:
    t = CppType.from_spelling("const ns::Bob&")
    assert t.is_reference and t.is_const and not t.is_pointer
    assert t.value_spelling() == "ns::Bob"
    assert t.as_pointer().spelling == "const ns::Bob*"

    r = CppType.from_spelling("ns::Bob&&")
    assert r.is_rvalue_reference and not r.is_reference
    assert r.pointee().spelling == "ns::Bob"

    p = CppType.from_spelling("const char*")
    assert p.is_pointer and p.is_const
    assert not CppType.from_spelling("char* const").is_const


def test_primitives() -> None:
    assert convert("int").safe_type == "c_int"
    assert convert("uint32_t").safe_type == "u32"
    assert convert("double").safe_type == "f64"
    assert convert("void").kind is AnnotatedKind.VOID


def test_string_and_references() -> None:
    s = convert("const std::string&")
    assert s.safe_type == "&CxxString"
    assert s.kind is AnnotatedKind.REFERENCE

    m = convert("ns::Bob&")
    assert m.safe_type == "Pin<&mut ns::Bob>"
    assert m.kind is AnnotatedKind.MUT_REFERENCE
    assert m.deps == frozenset({BOB})

    # by-value-safe types get plain mutable references
    assert convert("int&").safe_type == "&mut c_int"


def test_pointers_always_need_unsafe() -> None:
    p = convert("int*")
    assert p.safe_type == "*mut c_int"
    assert p.kind is AnnotatedKind.POINTER
    assert p.requires_unsafe is UnsafetyNeeded.ALWAYS
    assert convert("const ns::Bob*").safe_type == "*const ns::Bob"
    assert convert("void*").safe_type == "*mut c_void"


def test_pointer_as_reference_for_receivers() -> None:
    r = convert("const ns::Bob*", pointer_treatment=PointerTreatment.REFERENCE)
    assert r.safe_type == "&ns::Bob"
    assert r.requires_unsafe is UnsafetyNeeded.NONE


def test_rvalue_references() -> None:
    r = convert("ns::Bob&&")
    assert r.kind is AnnotatedKind.RVALUE_REFERENCE
    assert r.safe_type == "*mut ns::Bob"
    assert r.requires_unsafe is UnsafetyNeeded.BRIDGE_ONLY


def test_known_templates() -> None:
    u = convert("std::unique_ptr<ns::Bob>")
    assert u.safe_type == "UniquePtr<ns::Bob>"
    assert u.deps == frozenset({BOB})
    converter = TypeConverter()
    assert converter.is_by_value_safe(u.value_name)
    assert converter.lacks_copy_constructor(u.value_name)
    assert convert("std::vector<int>").safe_type == "CxxVector<c_int>"


@pytest.mark.parametrize("spelling", ["void(*)(int)", "int[4]", "std::map<int, int>", "const volatile ns::Bob&"])
def test_unsupported_types(spelling: str) -> None:
    with pytest.raises(TypeConversionError) as excinfo:
        convert(spelling)
    assert excinfo.value.reason is IgnoreReason.UNSUPPORTED_TYPE


def test_blocklisted_types_are_unacceptable() -> None:
    converter = TypeConverter(BridgeConfig(blocklist=["ns::Secret"]))
    with pytest.raises(TypeConversionError) as excinfo:
        convert("const ns::Secret&", converter)
    assert excinfo.value.reason is IgnoreReason.UNACCEPTABLE_PARAM


def test_forward_declarations_only_behind_pointers() -> None:
    converter = TypeConverter(types=[TypeDecl(BOB, is_forward_declaration=True)])
    assert convert("ns::Bob*", converter).safe_type == "*mut ns::Bob"
    with pytest.raises(TypeConversionError) as excinfo:
        convert("ns::Bob", converter)
    assert excinfo.value.reason is IgnoreReason.UNACCEPTABLE_PARAM


def test_pod_types_are_by_value_safe() -> None:
    converter = TypeConverter(BridgeConfig(pod_types=["ns::Point"]), [TypeDecl(BOB, is_pod=True)])
    assert converter.is_by_value_safe(QualifiedName(("ns",), "Point"))
    assert converter.is_by_value_safe(BOB)
    assert not converter.is_by_value_safe(QualifiedName(("ns",), "Other"))


def test_subclass_holders() -> None:
    converter = TypeConverter(subclass_holders={"MyBobHolder": "MyBob"})
    h = convert("MyBobHolder", converter)
    assert h.kind is AnnotatedKind.SUBCLASS_HOLDER
    assert h.subclass == "MyBob"
