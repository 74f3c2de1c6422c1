#!/usr/bin/env python3
"""
Analysis records produced by the function classifier.

Every raw callable yields exactly one `FnAnalysis`, even when it cannot be bound; in
that case `ignore_reason` says why, and the record still takes part in type-level
bookkeeping (constructor presence, implicit member synthesis).

The classification is a closed union of three record types:
- `FunctionClassification`: a free function
- `MethodClassification`: a member exposed as an inherent method (or constructor)
- `TraitMethodClassification`: a member exposed as the implementation of a safe-side trait

Consumers dispatch on `Classification.tag` and handle every `ClassificationTag`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, FrozenSet, Optional, Tuple, Union

from ..errors import ConvertProblem
from ..models import (
    CppFunctionBody,
    CppFunctionKind,
    CppType,
    Parameter,
    Provenance,
    QualifiedName,
    RawCallable,
    UnsafetyNeeded,
    Visibility,
)
from .conversion import ConversionPolicy


# --------------------------
# Classification
# --------------------------

class ReceiverMutability(Enum):
    CONST = auto()
    MUTABLE = auto()


class MethodKindTag(Enum):
    NORMAL = auto()
    CONSTRUCTOR = auto()
    MAKE_VALUE = auto()
    STATIC = auto()
    VIRTUAL = auto()
    PURE_VIRTUAL = auto()


@dataclass(frozen=True)
class MethodKind:
    """
    `mutability` applies to NORMAL/VIRTUAL/PURE_VIRTUAL; `is_default` to CONSTRUCTOR.
    """
    tag: MethodKindTag
    mutability: Optional[ReceiverMutability] = None
    is_default: bool = False

    @staticmethod
    def normal(mutability: ReceiverMutability) -> MethodKind:
        return MethodKind(MethodKindTag.NORMAL, mutability)

    @staticmethod
    def constructor(is_default: bool = False) -> MethodKind:
        return MethodKind(MethodKindTag.CONSTRUCTOR, is_default=is_default)

    @staticmethod
    def make_value() -> MethodKind:
        return MethodKind(MethodKindTag.MAKE_VALUE)

    @staticmethod
    def static() -> MethodKind:
        return MethodKind(MethodKindTag.STATIC)

    @staticmethod
    def virtual(mutability: ReceiverMutability) -> MethodKind:
        return MethodKind(MethodKindTag.VIRTUAL, mutability)

    @staticmethod
    def pure_virtual(mutability: ReceiverMutability) -> MethodKind:
        return MethodKind(MethodKindTag.PURE_VIRTUAL, mutability)

    @property
    def is_virtual(self) -> bool:
        return self.tag in (MethodKindTag.VIRTUAL, MethodKindTag.PURE_VIRTUAL)

    def __str__(self) -> str:
        if self.mutability is not None:
            return f"{self.tag.name}({self.mutability.name})"
        if self.tag is MethodKindTag.CONSTRUCTOR:
            return f"CONSTRUCTOR(is_default={self.is_default})"
        return self.tag.name


class TraitMethodKind(Enum):
    COPY_CONSTRUCTOR = auto()
    MOVE_CONSTRUCTOR = auto()
    CAST = auto()
    DESTRUCTOR = auto()
    ALLOCATE = auto()
    DEALLOCATE = auto()

    @property
    def is_memory_management(self) -> bool:
        return self in (
            TraitMethodKind.COPY_CONSTRUCTOR,
            TraitMethodKind.MOVE_CONSTRUCTOR,
            TraitMethodKind.ALLOCATE,
            TraitMethodKind.DEALLOCATE,
        )


@dataclass(frozen=True)
class TraitMethodDetails:
    """
    How a member plugs into a safe-side trait.

    - trait: trait path, e.g. `CopyNew` or `AsRef<ns::Base>`
    - method_name: the trait's method the member implements
    - avoid_self: the trait method has no `self` receiver
    - parameter_reordering: trait parameter order in terms of boundary parameter indices
    - trait_call_is_unsafe: the trait method itself is declared unsafe
    """
    trait: str
    method_name: str
    avoid_self: bool = False
    parameter_reordering: Optional[Tuple[int, ...]] = None
    trait_call_is_unsafe: bool = False


class ClassificationTag(Enum):
    FUNCTION = auto()
    METHOD = auto()
    TRAIT_METHOD = auto()


@dataclass(frozen=True)
class FunctionClassification:
    tag: ClassificationTag = field(default=ClassificationTag.FUNCTION, init=False)

    def __str__(self) -> str:
        return "Function"


@dataclass(frozen=True)
class MethodClassification:
    kind: MethodKind
    owner: QualifiedName
    tag: ClassificationTag = field(default=ClassificationTag.METHOD, init=False)

    def __str__(self) -> str:
        return f"Method({self.kind}, {self.owner})"


@dataclass(frozen=True)
class TraitMethodClassification:
    kind: TraitMethodKind
    owner: QualifiedName
    details: TraitMethodDetails
    tag: ClassificationTag = field(default=ClassificationTag.TRAIT_METHOD, init=False)

    def __str__(self) -> str:
        return f"TraitMethod({self.kind.name}, {self.owner}, {self.details.trait})"


Classification = Union[FunctionClassification, MethodClassification, TraitMethodClassification]


# --------------------------
# Per-parameter analysis
# --------------------------

@dataclass(frozen=True)
class ArgumentAnalysis:
    """
    Analysis of one parameter.

    `name` is the binding pattern used on the safe side (`self` for the receiver).
    `self_type` is set only on the receiver.
    """
    name: str
    conversion: ConversionPolicy
    self_type: Optional[QualifiedName] = None
    receiver_mutability: Optional[ReceiverMutability] = None
    is_reference: bool = False
    deps: FrozenSet[QualifiedName] = frozenset()
    requires_unsafe: UnsafetyNeeded = UnsafetyNeeded.NONE
    is_placement_return_destination: bool = False

    @property
    def is_receiver(self) -> bool:
        return self.self_type is not None

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "conversion": self.conversion.to_dict(),
            "is_receiver": self.is_receiver,
            "requires_unsafe": self.requires_unsafe.name,
        }


# --------------------------
# Native wrapper descriptor
# --------------------------

@dataclass(frozen=True)
class CppFunction:
    """
    A native wrapper the native-side emitter must write.

    - wrapper_name: the boundary identifier the wrapper is declared under
    - original_cpp_name: the native callee
    - qualification: set when the wrapper is a member of a generated class (subclass
      overrides and constructors); declaration and definition are then rendered apart
    - pass_obs_field: the wrapper is a generated override which forwards `*obs` first
    - has_receiver: the first argument is the `this` receiver of a method call
    """
    wrapper_name: str
    original_cpp_name: str
    body: CppFunctionBody
    argument_conversion: Tuple[ConversionPolicy, ...]
    return_conversion: Optional[ConversionPolicy]
    kind: CppFunctionKind
    pass_obs_field: bool = False
    qualification: Optional[QualifiedName] = None
    has_receiver: bool = False

    def to_dict(self) -> Dict:
        return {
            "wrapper_name": self.wrapper_name,
            "original_cpp_name": self.original_cpp_name,
            "body": self.body.to_dict(),
            "kind": self.kind.name,
            "arguments": [a.to_dict() for a in self.argument_conversion],
            "return": self.return_conversion.to_dict() if self.return_conversion else None,
        }


# --------------------------
# Records
# --------------------------

class RenameStrategyKind(Enum):
    NONE = auto()
    ALIAS = auto()
    WRAPPER_FUNCTION = auto()


@dataclass(frozen=True)
class RenameStrategy:
    """
    How the exposed name is connected to the boundary identifier.
    `alias` carries the exposed name for ALIAS.
    """
    kind: RenameStrategyKind
    alias: Optional[str] = None

    @staticmethod
    def none() -> RenameStrategy:
        return RenameStrategy(RenameStrategyKind.NONE)

    @staticmethod
    def wrapper_function() -> RenameStrategy:
        return RenameStrategy(RenameStrategyKind.WRAPPER_FUNCTION)

    @staticmethod
    def use_alias(name: str) -> RenameStrategy:
        return RenameStrategy(RenameStrategyKind.ALIAS, name)


@dataclass(frozen=True)
class FnAnalysis:
    """
    Everything decided about one callable.

    - rust_name: the exposed safe-side name
    - bridge_name: the identifier in the flat boundary module
    - params/param_details: parameters as seen by the boundary declaration, including
      any placement-return destination; params of MakeValue re-entries omit the
      output pointer
    - ret_type/ret_conversion: None for void
    """
    raw: RawCallable
    rust_name: str
    bridge_name: str
    rename_strategy: RenameStrategy
    params: Tuple[Parameter, ...]
    kind: Classification
    param_details: Tuple[ArgumentAnalysis, ...]
    ret_type: Optional[CppType]
    ret_conversion: Optional[ConversionPolicy]
    requires_unsafe: UnsafetyNeeded
    visibility: Visibility
    cpp_wrapper: Optional[CppFunction]
    deps: FrozenSet[QualifiedName]
    externally_callable: bool
    rust_wrapper_needed: bool
    ignore_reason: Optional[ConvertProblem] = None

    @property
    def namespace(self) -> Tuple[str, ...]:
        return self.raw.namespace

    @property
    def provenance(self) -> Provenance:
        return self.raw.provenance

    @property
    def is_ignored(self) -> bool:
        return self.ignore_reason is not None

    @property
    def owner(self) -> Optional[QualifiedName]:
        return getattr(self.kind, "owner", None)

    @property
    def receiver(self) -> Optional[ArgumentAnalysis]:
        return next((pd for pd in self.param_details if pd.is_receiver), None)

    def to_dict(self) -> Dict:
        return {
            "cpp_name": self.raw.display_name,
            "rust_name": self.rust_name,
            "bridge_name": self.bridge_name,
            "classification": str(self.kind),
            "rename_strategy": self.rename_strategy.kind.name,
            "requires_unsafe": self.requires_unsafe.name,
            "provenance": self.provenance.name,
            "externally_callable": self.externally_callable,
            "params": [pd.to_dict() for pd in self.param_details],
            "return": self.ret_conversion.to_dict() if self.ret_conversion else None,
            "cpp_wrapper": self.cpp_wrapper.to_dict() if self.cpp_wrapper else None,
            "deps": sorted(d.to_cpp_name() for d in self.deps),
            "ignore_reason": self.ignore_reason.to_dict() if self.ignore_reason else None,
        }


@dataclass(frozen=True)
class PublicConstructors:
    """
    Whether a type has an externally callable move constructor and destructor.
    """
    move_constructor: bool = False
    destructor: bool = False


__all__ = [
    "ArgumentAnalysis",
    "Classification",
    "ClassificationTag",
    "CppFunction",
    "FnAnalysis",
    "FunctionClassification",
    "MethodClassification",
    "MethodKind",
    "MethodKindTag",
    "PublicConstructors",
    "ReceiverMutability",
    "RenameStrategy",
    "RenameStrategyKind",
    "TraitMethodClassification",
    "TraitMethodDetails",
    "TraitMethodKind",
]
