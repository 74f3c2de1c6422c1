#!/usr/bin/env python3
"""
Type-reference conversion for the C++ bridge.

This module maps a C++ type reference (as seen in a parameter or return position)
to its safe-side representation, and records the set of named types it depends on.
It provides:

- A catalog of well-known types (scalars, std::string, std smart pointers/containers)
- Reference/pointer annotation (`AnnotatedKind`) that downstream policy decisions use
- Per-type answers the conversion policy engine asks for: is this type safe to pass
  by value, does it lack a copy constructor, can it be constructed from text
- Conservative rejection (via `TypeConversionError`) of types the boundary cannot
  express: function pointers, arrays, unknown template instantiations, blocklisted
  types, and forward declarations used by value

Typical usage (high level):

    converter = TypeConverter(config, types=type_decls)
    annotated = converter.convert(CppType.from_spelling("const std::string&"))
    annotated.safe_type   # '&CxxString'
    annotated.kind        # AnnotatedKind.REFERENCE

Design notes:
- Safe-side spellings follow the cxx conventions (`UniquePtr<T>`, `Pin<&mut T>`,
  `*mut T`) since the generated boundary module is a cxx bridge.
- Anything not in the catalog and not a known template is treated as an opaque
  named type, referenced by its flattened path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .config import BridgeConfig
from .errors import IgnoreReason, TypeConversionError
from .models import CppType, QualifiedName, TypeDecl, UnsafetyNeeded

logger = logging.getLogger(__name__)


# --------------------------
# Helpers
# --------------------------

def _strip_cv_and_class_kw(spelling: str) -> str:
    """
    Normalize a C++ type spelling to aid mapping heuristics:
    - Remove leading 'const', 'class', 'struct', 'enum'
    - Collapse repeated spaces
    - Keep pointer/reference symbols for higher-level logic.
    """
    s = (spelling or "").strip()
    for kw in ("const ", "volatile ", "class ", "struct ", "enum "):
        if s.startswith(kw):
            s = s[len(kw):].lstrip()
    s = s.replace(" &", "&").replace("& ", "&")
    s = s.replace(" *", "*").replace("* ", "*")
    while "  " in s:
        s = s.replace("  ", " ")
    return s


def _base_identifier(spelling: str) -> str:
    """
    Extract a best-effort "base identifier" for a type spelling, ignoring pointers/references and CV.
    Example:
      'const ns::Bob*&' -> 'ns::Bob'
      'char const*' -> 'char'
      'std::unique_ptr<Bob>' -> 'std::unique_ptr<Bob>'
    """
    s = _strip_cv_and_class_kw(spelling)
    s = s.replace("&", "").replace("*", " ").strip()
    tokens = [tok for tok in s.split() if tok not in ("const", "volatile")]
    return " ".join(tokens).strip()


def _split_template(spelling: str) -> Optional[Tuple[str, List[str]]]:
    """
    'std::unique_ptr<ns::Bob>' -> ('std::unique_ptr', ['ns::Bob']). None if not a template.
    """
    s = spelling.strip()
    if not s.endswith(">") or "<" not in s:
        return None
    head = s[: s.index("<")].strip()
    inner = s[s.index("<") + 1 : -1]
    args: List[str] = []
    depth = 0
    cur = ""
    for ch in inner:
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        if ch == "," and depth == 0:
            args.append(cur.strip())
            cur = ""
            continue
        cur += ch
    if cur.strip():
        args.append(cur.strip())
    return head, args


def _is_std_string(spelling: str) -> bool:
    s = _strip_cv_and_class_kw(spelling)
    return (
        s == "std::string"
        or s.startswith("std::__cxx11::basic_string<char")
        or s.startswith("std::basic_string<char")
    )


# --------------------------
# Catalog
# --------------------------

_PRIMITIVES: Dict[str, str] = {
    "bool": "bool",
    "char": "c_char",
    "signed char": "c_schar",
    "unsigned char": "c_uchar",
    "short": "c_short",
    "short int": "c_short",
    "unsigned short": "c_ushort",
    "unsigned short int": "c_ushort",
    "int": "c_int",
    "unsigned": "c_uint",
    "unsigned int": "c_uint",
    "long": "c_long",
    "long int": "c_long",
    "unsigned long": "c_ulong",
    "unsigned long int": "c_ulong",
    "long long": "c_longlong",
    "long long int": "c_longlong",
    "unsigned long long": "c_ulonglong",
    "unsigned long long int": "c_ulonglong",
    "int8_t": "i8",
    "uint8_t": "u8",
    "int16_t": "i16",
    "uint16_t": "u16",
    "int32_t": "i32",
    "uint32_t": "u32",
    "int64_t": "i64",
    "uint64_t": "u64",
    "size_t": "usize",
    "std::size_t": "usize",
    "ptrdiff_t": "isize",
    "intptr_t": "isize",
    "uintptr_t": "usize",
    "float": "f32",
    "double": "f64",
}

STD_STRING = QualifiedName(("std",), "string")


@dataclass(frozen=True)
class KnownTemplate:
    """
    A std template the boundary understands: `safe_name` wraps the converted argument.
    """
    cpp_name: str
    safe_name: str
    by_value_safe: bool
    lacks_copy_constructor: bool = False


_KNOWN_TEMPLATES: Dict[str, KnownTemplate] = {
    "std::unique_ptr": KnownTemplate("std::unique_ptr", "UniquePtr", by_value_safe=True, lacks_copy_constructor=True),
    "std::shared_ptr": KnownTemplate("std::shared_ptr", "SharedPtr", by_value_safe=True),
    "std::weak_ptr": KnownTemplate("std::weak_ptr", "WeakPtr", by_value_safe=True),
    "std::vector": KnownTemplate("std::vector", "CxxVector", by_value_safe=False),
}


# --------------------------
# Annotated types
# --------------------------

class AnnotatedKind(Enum):
    VOID = auto()
    REGULAR = auto()
    POINTER = auto()
    REFERENCE = auto()
    MUT_REFERENCE = auto()
    RVALUE_REFERENCE = auto()
    SUBCLASS_HOLDER = auto()


class PointerTreatment(Enum):
    POINTER = auto()
    REFERENCE = auto()


@dataclass(frozen=True)
class AnnotatedType:
    """
    Safe-side view of one type occurrence.

    - cpp_type: the native type as written
    - safe_type: safe-side spelling at the boundary
    - value_name: the named value type behind any pointer/reference
    - value_safe_type: safe-side spelling of that value type
    - deps: named types this occurrence depends on
    - requires_unsafe: what using this type at the boundary demands
    """
    cpp_type: CppType
    safe_type: str
    kind: AnnotatedKind
    value_name: Optional[QualifiedName] = None
    deps: FrozenSet[QualifiedName] = frozenset()
    requires_unsafe: UnsafetyNeeded = UnsafetyNeeded.NONE
    subclass: Optional[str] = None
    value_safe_type: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        return self.kind in (AnnotatedKind.REFERENCE, AnnotatedKind.MUT_REFERENCE)

    @property
    def value_safe(self) -> str:
        return self.value_safe_type or self.safe_type


# --------------------------
# Converter
# --------------------------

class TypeConverter:
    """
    Converts native type references for the boundary.

    Build with the configuration and the known type declarations; subclass holders
    are registered as the pipeline discovers declared subclasses.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        types: Iterable[TypeDecl] = (),
        subclass_holders: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self.types: Dict[QualifiedName, TypeDecl] = {t.name: t for t in types}
        # holder type name -> subclass name
        self.subclass_holders: Dict[str, str] = dict(subclass_holders or {})

    def register_type(self, decl: TypeDecl) -> None:
        self.types[decl.name] = decl

    def register_subclass_holder(self, holder: str, subclass: str) -> None:
        self.subclass_holders[holder] = subclass

    # ---- Questions asked by the conversion policy engine ----

    def is_by_value_safe(self, name: QualifiedName) -> bool:
        text = name.to_cpp_name()
        if text in _PRIMITIVES:
            return True
        tmpl = _split_template(text)
        if tmpl and tmpl[0] in _KNOWN_TEMPLATES:
            return _KNOWN_TEMPLATES[tmpl[0]].by_value_safe
        if self.config.is_pod(name):
            return True
        decl = self.types.get(name)
        return bool(decl and decl.is_pod)

    def lacks_copy_constructor(self, name: QualifiedName) -> bool:
        tmpl = _split_template(name.to_cpp_name())
        return bool(tmpl and tmpl[0] in _KNOWN_TEMPLATES and _KNOWN_TEMPLATES[tmpl[0]].lacks_copy_constructor)

    def convertible_from_strs(self, name: QualifiedName) -> bool:
        return name == STD_STRING

    def safe_path(self, name: QualifiedName) -> str:
        return "::".join(name.namespace + (name.name,))

    # ---- Conversion ----

    def convert(
        self,
        cpp_type: CppType,
        *,
        pointer_treatment: PointerTreatment = PointerTreatment.POINTER,
    ) -> AnnotatedType:
        """
        Convert one type occurrence. Raises TypeConversionError for inexpressible types.
        """
        if cpp_type.is_void:
            return AnnotatedType(cpp_type=cpp_type, safe_type="()", kind=AnnotatedKind.VOID)

        if cpp_type.is_rvalue_reference:
            inner = self._convert_value(cpp_type.pointee(), by_value=False)
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type=f"*mut {inner.safe_type}",
                kind=AnnotatedKind.RVALUE_REFERENCE,
                value_name=inner.value_name,
                value_safe_type=inner.value_safe,
                deps=inner.deps,
                requires_unsafe=UnsafetyNeeded.BRIDGE_ONLY,
            )

        if cpp_type.is_reference and "volatile" in cpp_type.spelling.split():
            raise TypeConversionError(IgnoreReason.UNSUPPORTED_TYPE, f"volatile references are not supported ({cpp_type.spelling})")

        if cpp_type.is_reference or (cpp_type.is_pointer and pointer_treatment is PointerTreatment.REFERENCE):
            pointee = cpp_type.pointee()
            if pointee.is_indirect:
                inner = self.convert(pointee)
            else:
                inner = self._convert_value(pointee, by_value=False)
            if cpp_type.is_const:
                safe, kind = f"&{inner.safe_type}", AnnotatedKind.REFERENCE
            elif inner.value_name is not None and self.is_by_value_safe(inner.value_name):
                safe, kind = f"&mut {inner.safe_type}", AnnotatedKind.MUT_REFERENCE
            else:
                safe, kind = f"Pin<&mut {inner.safe_type}>", AnnotatedKind.MUT_REFERENCE
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type=safe,
                kind=kind,
                value_name=inner.value_name,
                value_safe_type=inner.value_safe,
                deps=inner.deps,
                requires_unsafe=inner.requires_unsafe,
            )

        if cpp_type.is_pointer:
            pointee = cpp_type.pointee()
            if pointee.is_void:
                inner_safe, value_name, deps, value_safe = "c_void", None, frozenset(), "c_void"
            elif pointee.is_indirect:
                inner = self.convert(pointee)
                inner_safe, value_name, deps, value_safe = inner.safe_type, inner.value_name, inner.deps, inner.value_safe
            else:
                inner = self._convert_value(pointee, by_value=False)
                inner_safe, value_name, deps, value_safe = inner.safe_type, inner.value_name, inner.deps, inner.value_safe
            mutability = "const" if cpp_type.is_const else "mut"
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type=f"*{mutability} {inner_safe}",
                kind=AnnotatedKind.POINTER,
                value_name=value_name,
                value_safe_type=value_safe,
                deps=deps,
                requires_unsafe=UnsafetyNeeded.ALWAYS,
            )

        return self._convert_value(cpp_type, by_value=True)

    def _convert_value(self, cpp_type: CppType, by_value: bool) -> AnnotatedType:
        spelling = _base_identifier(cpp_type.spelling)
        if "(" in spelling or "[" in spelling:
            raise TypeConversionError(IgnoreReason.UNSUPPORTED_TYPE, f"function pointers and arrays are not supported ({cpp_type.spelling})")
        if spelling in self.subclass_holders:
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type=spelling,
                kind=AnnotatedKind.SUBCLASS_HOLDER,
                subclass=self.subclass_holders[spelling],
            )
        if spelling in _PRIMITIVES:
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type=_PRIMITIVES[spelling],
                kind=AnnotatedKind.REGULAR,
                value_name=QualifiedName.parse(spelling),
            )
        if _is_std_string(spelling):
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type="CxxString",
                kind=AnnotatedKind.REGULAR,
                value_name=STD_STRING,
            )
        tmpl = _split_template(spelling)
        if tmpl is not None:
            head, args = tmpl
            known = _KNOWN_TEMPLATES.get(head)
            if known is None or len(args) != 1:
                raise TypeConversionError(IgnoreReason.UNSUPPORTED_TYPE, f"template instantiation {spelling} is not known")
            inner = self._convert_value(CppType.from_spelling(args[0]), by_value=False)
            return AnnotatedType(
                cpp_type=cpp_type,
                safe_type=f"{known.safe_name}<{inner.safe_type}>",
                kind=AnnotatedKind.REGULAR,
                value_name=QualifiedName.parse(spelling),
                deps=inner.deps,
            )

        name = QualifiedName.parse(spelling)
        if self.config.is_on_blocklist(name):
            raise TypeConversionError(IgnoreReason.UNACCEPTABLE_PARAM, f"{name} is on the blocklist")
        decl = self.types.get(name)
        if by_value and decl is not None and decl.is_forward_declaration:
            raise TypeConversionError(IgnoreReason.UNACCEPTABLE_PARAM, f"{name} is only forward-declared")
        return AnnotatedType(
            cpp_type=cpp_type,
            safe_type=self.safe_path(name),
            kind=AnnotatedKind.REGULAR,
            value_name=name,
            deps=frozenset({name}),
        )


__all__ = [
    "AnnotatedKind",
    "AnnotatedType",
    "KnownTemplate",
    "PointerTreatment",
    "STD_STRING",
    "TypeConverter",
]
