#!/usr/bin/env python3
"""
Conversion policies for values crossing the boundary.

For each parameter or return type, a `ConversionPolicy` records what has to happen
to the value on each side:

- `CppConversion`: work done by the native wrapper (unbox a `std::unique_ptr`,
  dereference a pointer into a value, move, placement-construct a return value...)
- `SafeConversion`: work done by the safe-side wrapper (build a string from `&str`,
  hand over a value via a pinned stack slot, box a subclass holder...)

`ConversionPolicyEngine` decides which policy applies. The policy objects then answer
every question the two emitters ask: native-facing type strings and call-site
expressions, safe-facing type strings and conversion snippets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Dict, Optional, Tuple

from ..config import BridgeConfig
from ..errors import InvariantViolation
from ..models import CppType, UnsafetyNeeded
from ..type_mapping import AnnotatedKind, AnnotatedType, TypeConverter

logger = logging.getLogger(__name__)


class CppConversion(Enum):
    NONE = auto()
    MOVE = auto()
    FROM_UNIQUE_PTR_TO_VALUE = auto()
    FROM_PTR_TO_VALUE = auto()
    FROM_VALUE_TO_UNIQUE_PTR = auto()
    FROM_PTR_TO_MOVE = auto()
    FROM_RETURN_VALUE_TO_PLACEMENT_PTR = auto()
    IGNORED_PLACEMENT_PTR_PARAMETER = auto()


class SafeConversion(Enum):
    NONE = auto()
    FROM_STR = auto()
    TO_BOXED_UP_HOLDER = auto()
    FROM_PIN_MAYBE_UNINIT_TO_PTR = auto()
    FROM_PIN_MOVE_REF_TO_PTR = auto()
    FROM_TYPE_TO_PTR = auto()
    FROM_VALUE_PARAM_TO_PTR = auto()
    FROM_RVALUE_PARAM_TO_PTR = auto()
    FROM_PLACEMENT_PARAM_TO_NEW_RETURN = auto()


class Sophistication(Enum):
    """
    SIMPLE_FOR_SUBCLASSES is used for callables a subclass may re-enter, where the
    richer safe-side value handling would add a second indirection.
    """
    REGULAR = auto()
    SIMPLE_FOR_SUBCLASSES = auto()


class CallDirection(Enum):
    SAFE_CALLS_NATIVE = auto()
    NATIVE_CALLS_NATIVE = auto()
    NATIVE_CALLS_SAFE = auto()


_INVERSES: Dict[CppConversion, CppConversion] = {
    CppConversion.NONE: CppConversion.NONE,
    CppConversion.MOVE: CppConversion.MOVE,
    CppConversion.FROM_UNIQUE_PTR_TO_VALUE: CppConversion.FROM_VALUE_TO_UNIQUE_PTR,
    CppConversion.FROM_PTR_TO_VALUE: CppConversion.FROM_VALUE_TO_UNIQUE_PTR,
    CppConversion.FROM_VALUE_TO_UNIQUE_PTR: CppConversion.FROM_UNIQUE_PTR_TO_VALUE,
}

# Safe-side conversions that hide a raw pointer on the boundary behind a safe signature.
_POINTER_HIDING = (
    SafeConversion.FROM_VALUE_PARAM_TO_PTR,
    SafeConversion.FROM_PLACEMENT_PARAM_TO_NEW_RETURN,
    SafeConversion.FROM_RVALUE_PARAM_TO_PTR,
    SafeConversion.FROM_PIN_MAYBE_UNINIT_TO_PTR,
    SafeConversion.FROM_PIN_MOVE_REF_TO_PTR,
    SafeConversion.FROM_TYPE_TO_PTR,
)


@dataclass(frozen=True)
class SafeConversionSnippet:
    """
    Statements to run before the call, plus the expression passed to the boundary.
    """
    pre_lines: Tuple[str, ...]
    expr: str
    needs_unsafe: bool = False


@dataclass(frozen=True)
class ConversionPolicy:
    """
    How one type occurrence crosses the boundary.

    - cpp_type: the native type the wrapped callable sees
    - safe_type: the safe-side type at the boundary when no conversion applies
    - safe_value_type: the safe-side spelling of the underlying value type
    - subclass: set for TO_BOXED_UP_HOLDER
    """
    cpp_type: CppType
    safe_type: str
    cpp_conversion: CppConversion = CppConversion.NONE
    safe_conversion: SafeConversion = SafeConversion.NONE
    safe_value_type: Optional[str] = None
    subclass: Optional[str] = None

    # ---- Factories ----

    @staticmethod
    def new_unconverted(annotated: AnnotatedType) -> ConversionPolicy:
        return ConversionPolicy(annotated.cpp_type, annotated.safe_type, safe_value_type=annotated.value_safe)

    @staticmethod
    def new_to_unique_ptr(annotated: AnnotatedType) -> ConversionPolicy:
        return ConversionPolicy(
            annotated.cpp_type,
            annotated.safe_type,
            CppConversion.FROM_VALUE_TO_UNIQUE_PTR,
            safe_value_type=annotated.value_safe,
        )

    def placement_parameter(self) -> ConversionPolicy:
        """
        The extra output parameter a placement-returning function receives. The safe side
        fills it from the storage the `New` closure is handed.
        """
        if self.cpp_conversion is not CppConversion.FROM_RETURN_VALUE_TO_PLACEMENT_PTR:
            raise InvariantViolation(f"{self.cpp_type.spelling} is not returned by placement")
        return replace(
            self,
            safe_type=f"*mut {self.value_safe}",
            safe_value_type=self.value_safe,
            cpp_conversion=CppConversion.IGNORED_PLACEMENT_PTR_PARAMETER,
        )

    # ---- Questions ----

    @property
    def value_safe(self) -> str:
        return self.safe_value_type or self.safe_type

    @property
    def value_cpp(self) -> str:
        return self.cpp_type.value_spelling() if self.cpp_type.is_indirect else self.cpp_type.spelling

    def cpp_work_needed(self) -> bool:
        return self.cpp_conversion is not CppConversion.NONE

    def safe_work_needed(self) -> bool:
        return self.safe_conversion is not SafeConversion.NONE

    def is_placement_parameter(self) -> bool:
        return self.cpp_conversion is CppConversion.IGNORED_PLACEMENT_PTR_PARAMETER

    def populate_return_value(self) -> bool:
        return self.cpp_conversion is not CppConversion.FROM_RETURN_VALUE_TO_PLACEMENT_PTR

    def unsafety(self) -> UnsafetyNeeded:
        """
        What this policy alone demands of the boundary declaration.
        """
        if self.safe_conversion in _POINTER_HIDING:
            return UnsafetyNeeded.BRIDGE_ONLY
        if self.cpp_conversion in (
            CppConversion.FROM_PTR_TO_VALUE,
            CppConversion.FROM_PTR_TO_MOVE,
            CppConversion.IGNORED_PLACEMENT_PTR_PARAMETER,
        ):
            return UnsafetyNeeded.ALWAYS
        return UnsafetyNeeded.NONE

    def inverse(self) -> ConversionPolicy:
        """
        The same policy seen from the other direction, for native code calling the safe side.
        """
        try:
            cpp = _INVERSES[self.cpp_conversion]
        except KeyError:
            raise InvariantViolation(f"Conversion {self.cpp_conversion.name} cannot be inverted") from None
        return replace(self, cpp_conversion=cpp, safe_conversion=SafeConversion.NONE)

    # ---- Native-facing ----

    def unconverted_cpp_type(self) -> str:
        """
        Type of a wrapper parameter as declared to the boundary.
        """
        c = self.cpp_conversion
        if c is CppConversion.FROM_UNIQUE_PTR_TO_VALUE:
            return f"std::unique_ptr<{self.value_cpp}>"
        if c in (
            CppConversion.FROM_PTR_TO_VALUE,
            CppConversion.FROM_PTR_TO_MOVE,
            CppConversion.IGNORED_PLACEMENT_PTR_PARAMETER,
        ):
            return f"{self.value_cpp}*"
        return self.cpp_type.spelling

    def converted_cpp_type(self) -> str:
        """
        Type of a wrapper return value as declared to the boundary.
        """
        if self.cpp_conversion is CppConversion.FROM_VALUE_TO_UNIQUE_PTR:
            return f"std::unique_ptr<{self.value_cpp}>"
        return self.cpp_type.spelling

    def cpp_conversion_expr(self, var: str, is_return: bool = False) -> Optional[str]:
        """
        Expression turning `var` into what the callee (or caller, for returns) expects.
        None means the value takes no part in the call.
        """
        c = self.cpp_conversion
        if c in (CppConversion.NONE, CppConversion.FROM_RETURN_VALUE_TO_PLACEMENT_PTR):
            return var
        if c is CppConversion.MOVE:
            return f"std::move({var})"
        if c in (CppConversion.FROM_UNIQUE_PTR_TO_VALUE, CppConversion.FROM_PTR_TO_MOVE):
            return f"std::move(*{var})"
        if c is CppConversion.FROM_VALUE_TO_UNIQUE_PTR:
            inner = var if is_return else f"std::move({var})"
            return f"std::make_unique<{self.value_cpp}>({inner})"
        if c is CppConversion.FROM_PTR_TO_VALUE:
            return f"*{var}" if is_return else f"std::move(*{var})"
        if c is CppConversion.IGNORED_PLACEMENT_PTR_PARAMETER:
            return None
        raise InvariantViolation(f"Unhandled native conversion {c.name}")

    # ---- Safe-facing ----

    def bridge_safe_type(self) -> str:
        """
        Parameter type in the boundary declaration.
        """
        c = self.cpp_conversion
        if c in (CppConversion.FROM_UNIQUE_PTR_TO_VALUE, CppConversion.FROM_VALUE_TO_UNIQUE_PTR):
            return f"UniquePtr<{self.value_safe}>"
        if c in (
            CppConversion.FROM_PTR_TO_VALUE,
            CppConversion.FROM_PTR_TO_MOVE,
            CppConversion.IGNORED_PLACEMENT_PTR_PARAMETER,
        ):
            return f"*mut {self.value_safe}"
        if self.safe_conversion is SafeConversion.TO_BOXED_UP_HOLDER:
            return f"Box<{self.value_safe}>"
        return self.safe_type

    def bridge_return_safe_type(self) -> str:
        if self.cpp_conversion is CppConversion.FROM_VALUE_TO_UNIQUE_PTR:
            return f"UniquePtr<{self.value_safe}>"
        return self.safe_type

    def wrapper_safe_type(self) -> str:
        """
        Parameter (or, for placement returns, return) type of the safe-side wrapper.
        """
        s = self.safe_conversion
        v = self.value_safe
        if s is SafeConversion.NONE:
            return self.bridge_safe_type()
        if s is SafeConversion.FROM_STR:
            return "impl ToCppString"
        if s is SafeConversion.TO_BOXED_UP_HOLDER:
            return str(self.subclass)
        if s is SafeConversion.FROM_PIN_MAYBE_UNINIT_TO_PTR:
            return f"Pin<&mut MaybeUninit<{v}>>"
        if s is SafeConversion.FROM_PIN_MOVE_REF_TO_PTR:
            return f"Pin<MoveRef<'_, {v}>>"
        if s is SafeConversion.FROM_TYPE_TO_PTR:
            return f"&mut {v}"
        if s is SafeConversion.FROM_VALUE_PARAM_TO_PTR:
            return f"impl ValueParam<{v}>"
        if s is SafeConversion.FROM_RVALUE_PARAM_TO_PTR:
            return f"impl RValueParam<{v}>"
        if s is SafeConversion.FROM_PLACEMENT_PARAM_TO_NEW_RETURN:
            return f"impl New<Output = {v}>"
        raise InvariantViolation(f"Unhandled safe conversion {s.name}")

    def safe_conversion_snippet(self, var: str) -> SafeConversionSnippet:
        """
        Safe-side statements and expression feeding `var` to the boundary declaration.
        """
        s = self.safe_conversion
        v = self.value_safe
        if s is SafeConversion.NONE:
            return SafeConversionSnippet((), var)
        if s is SafeConversion.FROM_STR:
            return SafeConversionSnippet((), f"{var}.into_cpp()")
        if s is SafeConversion.TO_BOXED_UP_HOLDER:
            return SafeConversionSnippet((), f"Box::new({v}({var}))")
        if s is SafeConversion.FROM_PIN_MAYBE_UNINIT_TO_PTR:
            return SafeConversionSnippet((), f"{var}.get_unchecked_mut().as_mut_ptr()", needs_unsafe=True)
        if s is SafeConversion.FROM_PIN_MOVE_REF_TO_PTR:
            return SafeConversionSnippet(
                (),
                f"{{ let r: &mut _ = ::std::pin::Pin::into_inner_unchecked({var}.as_mut()); r }}",
                needs_unsafe=True,
            )
        if s is SafeConversion.FROM_TYPE_TO_PTR:
            return SafeConversionSnippet((), f"{var} as *mut _")
        if s in (SafeConversion.FROM_VALUE_PARAM_TO_PTR, SafeConversion.FROM_RVALUE_PARAM_TO_PTR):
            handler = "ValueParamHandler" if s is SafeConversion.FROM_VALUE_PARAM_TO_PTR else "RValueParamHandler"
            space = f"{var}_space"
            return SafeConversionSnippet(
                (
                    f"let mut {space} = {handler}::default();",
                    f"let mut {space} = ::std::pin::Pin::new_unchecked(&mut {space});",
                    f"{space}.as_mut().populate({var});",
                ),
                f"{space}.get_ptr()",
                needs_unsafe=True,
            )
        if s is SafeConversion.FROM_PLACEMENT_PARAM_TO_NEW_RETURN:
            return SafeConversionSnippet((), f"{var}.get_unchecked_mut().as_mut_ptr()", needs_unsafe=True)
        raise InvariantViolation(f"Conversion {s.name} does not apply to parameters")

    def to_dict(self) -> Dict:
        return {
            "cpp_type": self.cpp_type.spelling,
            "safe_type": self.safe_type,
            "cpp_conversion": self.cpp_conversion.name,
            "safe_conversion": self.safe_conversion.name,
        }


# --------------------------
# Engine
# --------------------------

class ConversionPolicyEngine:
    """
    Chooses conversion policies from annotated types, the configuration, and what the
    type converter knows about each named type.
    """

    def __init__(self, converter: TypeConverter, config: Optional[BridgeConfig] = None) -> None:
        self.converter = converter
        self.config = config or converter.config

    def policy_for(
        self,
        annotated: AnnotatedType,
        is_subclass_holder: bool = False,
        is_rvalue_ref: bool = False,
        forced_conversion: Optional[SafeConversion] = None,
        sophistication: Sophistication = Sophistication.REGULAR,
    ) -> ConversionPolicy:
        """
        Policy for a parameter. Rules, first match wins:

        1. forced conversions (constructor output pointers and the like) keep the raw pointer
        2. subclass holders are boxed and moved across
        3. by-value-safe types pass unconverted, or moved if they cannot be copied
        4. text-constructible types are built from strings, unless utilities are off
        5. in simplified mode other values travel by pointer with no safe-side help
        6. otherwise: pointer-to-value natively, value-to-pointer on the safe side
        Non-path types pass unconverted, except rvalue references, which are moved from.
        """
        if forced_conversion is not None:
            cpp = CppConversion.FROM_PTR_TO_MOVE if is_rvalue_ref else CppConversion.NONE
            return ConversionPolicy(
                annotated.cpp_type,
                annotated.safe_type,
                cpp,
                forced_conversion,
                safe_value_type=annotated.value_safe,
            )
        if is_subclass_holder:
            holder = annotated.value_safe
            return ConversionPolicy(
                CppType.from_spelling(f"rust::Box<{holder}>"),
                f"Box<{holder}>",
                CppConversion.MOVE,
                SafeConversion.TO_BOXED_UP_HOLDER,
                safe_value_type=holder,
                subclass=annotated.subclass,
            )
        if annotated.kind is AnnotatedKind.REGULAR and annotated.value_name is not None:
            name = annotated.value_name
            if self.converter.is_by_value_safe(name):
                if self.converter.lacks_copy_constructor(name):
                    return ConversionPolicy(annotated.cpp_type, annotated.safe_type, CppConversion.MOVE)
                return ConversionPolicy.new_unconverted(annotated)
            if self.converter.convertible_from_strs(name) and not self.config.exclude_utilities:
                return ConversionPolicy(
                    annotated.cpp_type,
                    annotated.safe_type,
                    CppConversion.FROM_UNIQUE_PTR_TO_VALUE,
                    SafeConversion.FROM_STR,
                )
            if sophistication is Sophistication.SIMPLE_FOR_SUBCLASSES:
                return ConversionPolicy(annotated.cpp_type, annotated.safe_type, CppConversion.FROM_PTR_TO_VALUE)
            return ConversionPolicy(
                annotated.cpp_type,
                annotated.safe_type,
                CppConversion.FROM_PTR_TO_VALUE,
                SafeConversion.FROM_VALUE_PARAM_TO_PTR,
            )
        if is_rvalue_ref:
            return ConversionPolicy(
                annotated.cpp_type,
                annotated.safe_type,
                CppConversion.FROM_PTR_TO_MOVE,
                SafeConversion.FROM_RVALUE_PARAM_TO_PTR,
                safe_value_type=annotated.value_safe,
            )
        return ConversionPolicy.new_unconverted(annotated)

    def return_policy_for(
        self,
        annotated: AnnotatedType,
        direction: CallDirection = CallDirection.SAFE_CALLS_NATIVE,
        sophistication: Sophistication = Sophistication.REGULAR,
    ) -> Optional[ConversionPolicy]:
        """
        Policy for a return value; None for void.

        Values which are not by-value-safe are placement-constructed into caller-provided
        storage, or boxed when the safe side is the callee or in simplified mode.
        """
        if annotated.kind is AnnotatedKind.VOID:
            return None
        if annotated.kind is AnnotatedKind.REGULAR and annotated.value_name is not None:
            if self.converter.is_by_value_safe(annotated.value_name):
                return ConversionPolicy.new_unconverted(annotated)
            if direction is CallDirection.NATIVE_CALLS_SAFE or sophistication is Sophistication.SIMPLE_FOR_SUBCLASSES:
                return ConversionPolicy.new_to_unique_ptr(annotated)
            return ConversionPolicy(
                annotated.cpp_type,
                annotated.safe_type,
                CppConversion.FROM_RETURN_VALUE_TO_PLACEMENT_PTR,
                SafeConversion.FROM_PLACEMENT_PARAM_TO_NEW_RETURN,
            )
        return ConversionPolicy.new_unconverted(annotated)


__all__ = [
    "CallDirection",
    "ConversionPolicy",
    "ConversionPolicyEngine",
    "CppConversion",
    "SafeConversion",
    "SafeConversionSnippet",
    "Sophistication",
]
