#!/usr/bin/env python3
"""
Error vocabulary for the bridge generator.

Problems with individual callables are values, not exceptions: the classifier
attaches an `IgnoreReason` to the callable's analysis record and carries on, and the
safe-boundary emitter later renders a documented placeholder explaining why nothing
was generated. Only two situations raise:

- `TypeConversionError`: the type converter cannot express a type; the classifier
  catches it and turns it into an ignore reason.
- `InvariantViolation`: a programming-contract breach inside the analysis itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class IgnoreReason(Enum):
    """
    Why no binding could be generated. Values are message templates taking `{name}`.
    """
    DELETED = "{name} is a deleted function"
    PRIVATE = "{name} is private"
    NON_PUBLIC = "{name} is protected and not virtual, so neither callers nor subclasses can reach it"
    UNUSED_TEMPLATE_PARAM = "{name} has a template parameter which cannot be inferred from its signature"
    ASSIGNMENT_OPERATOR = "{name} is an assignment operator, which cannot be bound"
    RVALUE_PARAM = "{name} takes an rvalue reference parameter but is not a move constructor"
    RVALUE_RETURN = "{name} returns an rvalue reference"
    MALFORMED_SPECIAL_MEMBER = "{name} claims to be a copy or move constructor but does not take exactly one other parameter"
    UNEXPECTED_THIS_TYPE = "the receiver of {name} has a type which cannot cross the boundary"
    NOT_ALLOWLISTED = "{name} belongs to a type or namespace which is not on the allowlist"
    GENERIC_OWNER = "{name} is a member of a template instantiation"
    ABSTRACT_TYPE = "{name} would construct an instance of an abstract type"
    BRIDGE_IDENTIFIER_INVALID = "the boundary identifier chosen for {name} is not a legal identifier"
    NOT_ONE_INPUT_REFERENCE = (
        "{name} returns a reference but has 0 or more than 1 input reference parameters, "
        "so the lifetime of the output reference cannot be deduced"
    )
    UNSUPPORTED_TYPE = "{name} uses a type which cannot yet be expressed at the boundary"
    UNACCEPTABLE_PARAM = "{name} has a parameter or return type which is either on the blocklist or a forward declaration"


@dataclass(frozen=True)
class ConvertProblem:
    """
    An ignore reason bound to the callable it disabled, plus optional detail.
    """
    reason: IgnoreReason
    subject: str
    detail: Optional[str] = None

    def describe(self) -> str:
        msg = self.reason.value.format(name=self.subject)
        if self.detail:
            msg = f"{msg}: {self.detail}"
        return msg

    def to_dict(self) -> Dict:
        return {"reason": self.reason.name, "message": self.describe()}

    def __str__(self) -> str:
        return self.describe()


class TypeConversionError(Exception):
    """
    Raised by the type converter for a type it cannot express at the boundary.
    """

    def __init__(self, reason: IgnoreReason, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason
        self.detail = detail


class InvariantViolation(RuntimeError):
    """
    The analysis reached a state its own contracts rule out.
    """


class DescriptionError(ValueError):
    """
    An input description is malformed.
    """


__all__ = [
    "IgnoreReason",
    "ConvertProblem",
    "TypeConversionError",
    "InvariantViolation",
    "DescriptionError",
]
