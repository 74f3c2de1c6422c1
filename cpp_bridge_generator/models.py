#!/usr/bin/env python3
"""
Data models for the C++ bridge generator.

This module provides strongly-typed, serializable data structures to describe:
- C++ types (lightweight parsing of pointers/references/const)
- Qualified names (namespace path plus final item)
- Raw callables as discovered upstream or synthesized by the analysis phase
- Type-level declarations (bases, fields) used for special-member bookkeeping
- Safe-side subclass declarations
- Generation context (paths, flags)

The models are designed to be consumed by:
- The front ends (JSON description loader, libclang parser) to populate instances
- The analysis layer (classifier, synthesizers) to decide how to lower each callable
- The emitters/templates (Jinja2) to render native and safe-side glue

Raw callables are immutable once created. Synthesizers derive new ones with
`dataclasses.replace` rather than mutating existing records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple


# --------------------------
# C++ Type model
# --------------------------

def _split_scoped(name: str) -> List[str]:
    """
    Split 'a::b<c::d>::e' on '::' while ignoring separators nested in template brackets.
    """
    parts: List[str] = []
    depth = 0
    cur = ""
    i = 0
    while i < len(name):
        ch = name[i]
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        if depth == 0 and name.startswith("::", i):
            parts.append(cur)
            cur = ""
            i += 2
            continue
        cur += ch
        i += 1
    parts.append(cur)
    return [p.strip() for p in parts if p.strip()]


@dataclass(frozen=True)
class CppType:
    """
    Lightweight representation of a C++ type reference.

    Only the outermost declarator is classified: `const Foo*&` is a reference
    (to a pointer), `Foo&&` is an rvalue reference. `is_const` describes the
    referred-to type for pointers and references, and the value itself otherwise.

    For complex cases (templates, namespaces), the spelling string is kept intact.
    """
    spelling: str
    is_const: bool = False
    is_pointer: bool = False
    is_reference: bool = False
    is_rvalue_reference: bool = False

    @staticmethod
    def from_spelling(spelling: str) -> CppType:
        """
        Parse a C++ type spelling heuristically into a CppType.
        """
        s = " ".join((spelling or "void").split())
        is_rvalue = s.endswith("&&")
        is_reference = s.endswith("&") and not is_rvalue
        core = s
        if core.endswith(" const"):
            core = core[: -len(" const")].rstrip()
        is_pointer = not (is_rvalue or is_reference) and core.endswith("*")
        if is_rvalue or is_reference or is_pointer:
            inner = core.rstrip("&*").rstrip()
            is_const = "const" in inner.replace("*", " ").split()
        else:
            is_const = "const" in s.split()
        return CppType(
            spelling=s,
            is_const=is_const,
            is_pointer=is_pointer,
            is_reference=is_reference,
            is_rvalue_reference=is_rvalue,
        )

    @property
    def is_indirect(self) -> bool:
        return self.is_pointer or self.is_reference or self.is_rvalue_reference

    @property
    def is_void(self) -> bool:
        return self.spelling in ("void", "const void")

    def pointee(self) -> CppType:
        """
        Strip the outermost pointer/reference declarator: `const Foo*` -> `const Foo`.
        Non-indirect types are returned unchanged.
        """
        if not self.is_indirect:
            return self
        s = self.spelling
        if s.endswith(" const"):
            s = s[: -len(" const")].rstrip()
        if self.is_rvalue_reference:
            s = s[:-2]
        else:
            s = s[:-1]
        return CppType.from_spelling(s.rstrip())

    def value_spelling(self) -> str:
        """
        Spelling of the underlying value type, with cv-qualifiers and declarators removed.
        """
        t = self
        while t.is_indirect:
            t = t.pointee()
        tokens = [tok for tok in t.spelling.split() if tok not in ("const", "volatile", "class", "struct", "enum")]
        return " ".join(tokens)

    def as_pointer(self, const: Optional[bool] = None) -> CppType:
        """
        Return a pointer to this type's value: `Foo&` -> `Foo*`, `const Foo&` -> `const Foo*`.
        """
        is_const = self.is_const if const is None else const
        prefix = "const " if is_const else ""
        return CppType.from_spelling(f"{prefix}{self.value_spelling()}*")

    def to_dict(self) -> Dict:
        return {
            "spelling": self.spelling,
            "is_const": self.is_const,
            "is_pointer": self.is_pointer,
            "is_reference": self.is_reference,
            "is_rvalue_reference": self.is_rvalue_reference,
        }


@dataclass(frozen=True, order=True)
class QualifiedName:
    """
    A namespace path plus a final item, e.g. `QualifiedName(("A", "B"), "Bob")` for `A::B::Bob`.
    """
    namespace: Tuple[str, ...]
    name: str

    @staticmethod
    def parse(cpp_name: str) -> QualifiedName:
        parts = _split_scoped(cpp_name.strip().lstrip(":"))
        if not parts:
            raise ValueError(f"Cannot parse an empty qualified name: {cpp_name!r}")
        return QualifiedName(tuple(parts[:-1]), parts[-1])

    @property
    def final_item(self) -> str:
        return self.name

    @property
    def is_generic(self) -> bool:
        return "<" in self.name

    def to_cpp_name(self) -> str:
        return "::".join(self.namespace + (self.name,))

    def __str__(self) -> str:
        return self.to_cpp_name()


# --------------------------
# Callable metadata
# --------------------------

class Visibility(Enum):
    PUBLIC = auto()
    PROTECTED = auto()
    PRIVATE = auto()


class Virtualness(Enum):
    NONE = auto()
    VIRTUAL = auto()
    PURE_VIRTUAL = auto()


class SpecialMemberKind(Enum):
    DEFAULT_CONSTRUCTOR = auto()
    COPY_CONSTRUCTOR = auto()
    MOVE_CONSTRUCTOR = auto()
    DESTRUCTOR = auto()
    ASSIGNMENT_OPERATOR = auto()


class Provenance(Enum):
    """
    Where a raw callable came from. Everything but USER is produced by this package.
    """
    USER = auto()
    SYNTHESIZED_IMPLICIT = auto()
    SYNTHESIZED_MAKE_UNIQUE = auto()
    SYNTHESIZED_SUBCLASS_CONSTRUCTOR = auto()
    SYNTHESIZED_SUBCLASS_TRAMPOLINE = auto()
    SYNTHESIZED_OTHER = auto()


class UnsafetyNeeded(Enum):
    """
    Ordered severity: NONE < BRIDGE_ONLY < ALWAYS.
    BRIDGE_ONLY means the boundary declaration is unsafe but a safe wrapper hides it.
    """
    NONE = 0
    BRIDGE_ONLY = 1
    ALWAYS = 2

    @staticmethod
    def most_severe(values: Sequence[UnsafetyNeeded]) -> UnsafetyNeeded:
        return max(values, key=lambda u: u.value, default=UnsafetyNeeded.NONE)


# --------------------------
# Native glue requests
# --------------------------

class CppBodyShape(Enum):
    PLACEMENT_NEW = auto()
    DESTRUCTOR = auto()
    FUNCTION_CALL = auto()
    STATIC_METHOD_CALL = auto()
    MAKE_UNIQUE = auto()
    CAST = auto()
    ALLOCATE = auto()
    DEALLOCATE = auto()
    CONSTRUCT_SUPERCLASS = auto()


@dataclass(frozen=True)
class CppFunctionBody:
    """
    Shape of the statement a native wrapper executes.

    - namespace/type_name: owning type of placement-new, destructor and static calls;
      the allocated type for ALLOCATE/DEALLOCATE; the superclass for CONSTRUCT_SUPERCLASS.
    - function_name: callee for FUNCTION_CALL and STATIC_METHOD_CALL.
    - qualifier: optional `Base::` qualification for calls bypassing virtual dispatch.
    """
    shape: CppBodyShape
    namespace: Tuple[str, ...] = ()
    type_name: Optional[str] = None
    function_name: Optional[str] = None
    qualifier: Optional[str] = None

    @staticmethod
    def placement_new(ty: QualifiedName) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.PLACEMENT_NEW, ty.namespace, ty.name)

    @staticmethod
    def destructor(ty: QualifiedName) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.DESTRUCTOR, ty.namespace, ty.name)

    @staticmethod
    def function_call(namespace: Tuple[str, ...], name: str, qualifier: Optional[str] = None) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.FUNCTION_CALL, namespace, None, name, qualifier)

    @staticmethod
    def static_method_call(ty: QualifiedName, name: str) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.STATIC_METHOD_CALL, ty.namespace, ty.name, name)

    @staticmethod
    def allocate(ty: QualifiedName) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.ALLOCATE, ty.namespace, ty.name)

    @staticmethod
    def deallocate(ty: QualifiedName) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.DEALLOCATE, ty.namespace, ty.name)

    @staticmethod
    def construct_superclass(superclass: QualifiedName) -> CppFunctionBody:
        return CppFunctionBody(CppBodyShape.CONSTRUCT_SUPERCLASS, superclass.namespace, superclass.name)

    @property
    def qualified_type(self) -> Optional[str]:
        if self.type_name is None:
            return None
        return "::".join(self.namespace + (self.type_name,))

    def to_dict(self) -> Dict:
        return {
            "shape": self.shape.name,
            "namespace": list(self.namespace),
            "type_name": self.type_name,
            "function_name": self.function_name,
            "qualifier": self.qualifier,
        }


class CppFunctionKind(Enum):
    FUNCTION = auto()
    METHOD = auto()
    CONST_METHOD = auto()
    CONSTRUCTOR = auto()
    SYNTHESIZED_CONSTRUCTOR = auto()


@dataclass(frozen=True)
class SyntheticCpp:
    """Extra native glue requested for a synthesized callable."""
    body: CppFunctionBody
    kind: CppFunctionKind


class TraitSynthesisKind(Enum):
    CAST = auto()
    ALLOCATE = auto()
    DEALLOCATE = auto()


@dataclass(frozen=True)
class TraitSynthesis:
    """
    Pre-registered request to implement a safe-side trait with this callable.
    `target` is the cast destination, or the allocated type.
    """
    kind: TraitSynthesisKind
    target: QualifiedName
    mutable: bool = False


# --------------------------
# Raw callables
# --------------------------

@dataclass(frozen=True)
class Parameter:
    name: Optional[str]
    cpp_type: CppType

    @property
    def is_receiver(self) -> bool:
        return self.name == "this"

    def to_dict(self) -> Dict:
        return {"name": self.name, "cpp_type": self.cpp_type.to_dict()}


@dataclass(frozen=True)
class RawCallable:
    """
    A native declaration as discovered upstream, or synthesized by the analysis phase.

    Methods carry an explicit `this` parameter typed as a pointer to the owning type;
    static methods carry `self_type` but no `this` parameter.
    """
    ident: str
    namespace: Tuple[str, ...] = ()
    params: Tuple[Parameter, ...] = ()
    return_type: Optional[CppType] = None
    self_type: Optional[QualifiedName] = None
    original_name: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC
    virtualness: Virtualness = Virtualness.NONE
    special_member: Optional[SpecialMemberKind] = None
    is_deleted: bool = False
    provenance: Provenance = Provenance.USER
    synthetic_cpp: Optional[SyntheticCpp] = None
    add_to_trait: Optional[TraitSynthesis] = None
    unused_template_param: bool = False
    is_variadic: bool = False

    @property
    def cpp_name(self) -> str:
        return self.original_name or self.ident

    @property
    def display_name(self) -> str:
        """
        Name for diagnostics: `ns::Type::method` or `ns::function`.
        """
        if self.self_type is not None:
            return f"{self.self_type.to_cpp_name()}::{self.cpp_name}"
        return "::".join(self.namespace + (self.cpp_name,))

    @property
    def returns_void(self) -> bool:
        return self.return_type is None or self.return_type.is_void

    def to_dict(self) -> Dict:
        return {
            "ident": self.ident,
            "namespace": list(self.namespace),
            "original_name": self.original_name,
            "params": [p.to_dict() for p in self.params],
            "return_type": self.return_type.to_dict() if self.return_type else None,
            "self_type": self.self_type.to_cpp_name() if self.self_type else None,
            "visibility": self.visibility.name,
            "virtualness": self.virtualness.name,
            "special_member": self.special_member.name if self.special_member else None,
            "is_deleted": self.is_deleted,
            "provenance": self.provenance.name,
        }


# --------------------------
# Type-level declarations
# --------------------------

@dataclass(frozen=True)
class BaseClassRef:
    name: QualifiedName
    access: Visibility = Visibility.PUBLIC
    is_virtual: bool = False


@dataclass(frozen=True)
class FieldDecl:
    name: str
    cpp_type: CppType
    visibility: Visibility = Visibility.PUBLIC


@dataclass(frozen=True)
class TypeDecl:
    """
    A class or struct known to the generator.

    - is_pod: safe to hold and pass by value on the safe side
    - is_generic: a template instantiation
    - is_forward_declaration: incomplete; can only be referenced through pointers
    """
    name: QualifiedName
    bases: Tuple[BaseClassRef, ...] = ()
    fields: Tuple[FieldDecl, ...] = ()
    is_pod: bool = False
    is_generic: bool = False
    is_forward_declaration: bool = False

    def to_dict(self) -> Dict:
        return {
            "name": self.name.to_cpp_name(),
            "bases": [b.name.to_cpp_name() for b in self.bases],
            "fields": [{"name": f.name, "cpp_type": f.cpp_type.spelling} for f in self.fields],
            "is_pod": self.is_pod,
            "is_generic": self.is_generic,
            "is_forward_declaration": self.is_forward_declaration,
        }


@dataclass(frozen=True)
class SubclassDecl:
    """
    A safe-side type which subclasses a native type.

    The native half is a generated class `{subclass}Cpp` deriving from the superclass and
    holding the safe-side object in a `rust::Box<{subclass}Holder>` field named `obs`.
    """
    subclass: str
    superclass: QualifiedName

    @property
    def cpp_name(self) -> QualifiedName:
        return QualifiedName((), f"{self.subclass}Cpp")

    @property
    def holder(self) -> str:
        return f"{self.subclass}Holder"

    def to_dict(self) -> Dict:
        return {"subclass": self.subclass, "superclass": self.superclass.to_cpp_name()}


# --------------------------
# Generation context
# --------------------------

@dataclass
class GenerationContext:
    """
    Paths and flags for a generation run.
    """
    output_dir: Path
    templates_dir: Optional[Path] = None
    dry_run: bool = False
    header_name: str = "bridge_wrappers.h"
    extra_includes: List[str] = field(default_factory=list)


__all__ = [
    "CppType",
    "QualifiedName",
    "Visibility",
    "Virtualness",
    "SpecialMemberKind",
    "Provenance",
    "UnsafetyNeeded",
    "CppBodyShape",
    "CppFunctionBody",
    "CppFunctionKind",
    "SyntheticCpp",
    "TraitSynthesisKind",
    "TraitSynthesis",
    "Parameter",
    "RawCallable",
    "BaseClassRef",
    "FieldDecl",
    "TypeDecl",
    "SubclassDecl",
    "GenerationContext",
]
