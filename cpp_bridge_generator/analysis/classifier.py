#!/usr/bin/env python3
"""
Function classifier.

`FnAnalyzer.classify` turns one `RawCallable` into one `FnAnalysis`:

1. pick the ideal exposed name (respecting keyword escaping, ignoring overload indices)
2. analyze parameters, finding the `this` receiver if any
3. classify: trait member, constructor, destructor, method, static method or function
4. re-analyze the output-pointer parameters of constructors and destructors
5. work out the unsafety requirement
6. choose the boundary identifier and decide which wrappers are needed
7. run the validity checks; the first failing one becomes the ignore reason

The analyzer is stateful only through its name trackers, which are scoped to one run.
Callables must therefore be classified in discovery order for reproducible naming.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from ..config import BridgeConfig, UnsafePolicy
from ..errors import ConvertProblem, IgnoreReason, InvariantViolation, TypeConversionError
from ..models import (
    CppFunctionBody,
    CppFunctionKind,
    CppType,
    Parameter,
    Provenance,
    QualifiedName,
    RawCallable,
    SpecialMemberKind,
    TraitSynthesisKind,
    UnsafetyNeeded,
    Virtualness,
    Visibility,
)
from ..type_mapping import AnnotatedKind, PointerTreatment, TypeConverter
from .conversion import (
    CallDirection,
    ConversionPolicy,
    ConversionPolicyEngine,
    SafeConversion,
    Sophistication,
)
from .fn_analysis import (
    ArgumentAnalysis,
    Classification,
    ClassificationTag,
    CppFunction,
    FnAnalysis,
    FunctionClassification,
    MethodClassification,
    MethodKind,
    MethodKindTag,
    ReceiverMutability,
    RenameStrategy,
    TraitMethodClassification,
    TraitMethodDetails,
    TraitMethodKind,
)
from .names import BridgeNameTracker, OverloadTracker, is_valid_bridge_identifier

logger = logging.getLogger(__name__)

WRAPPER_SUFFIX = "bridge_wrapper"
PLACEMENT_PARAM_NAME = "placement_return_type"


# --------------------------
# Helpers
# --------------------------

def ideal_rust_name(raw: RawCallable) -> str:
    """
    The front end may have mangled the identifier because it is a keyword (then it ends
    in `_` and we keep it) or because it is an overload (then we use the native name
    and let the overload tracker number it).
    """
    if raw.original_name and raw.ident.endswith("_"):
        return raw.ident
    return raw.original_name or raw.ident


def wrapper_name_for(bridge_name: str) -> str:
    joiner = "" if bridge_name.endswith("_") else "_"
    return f"{bridge_name}{joiner}{WRAPPER_SUFFIX}"


def _binding_name(param: Parameter, index: int) -> str:
    name = param.name or f"arg{index}"
    if is_valid_bridge_identifier(name):
        return name
    if is_valid_bridge_identifier(f"{name}_"):
        return f"{name}_"
    return f"arg{index}"


@dataclass(frozen=True)
class CheckOutcome:
    """
    Result of one validity check. A failure must carry a problem; a pass must not.
    """
    ok: bool
    problem: Optional[ConvertProblem] = None

    @staticmethod
    def passed() -> CheckOutcome:
        return CheckOutcome(True)

    @staticmethod
    def failed(reason: IgnoreReason, subject: str, detail: Optional[str] = None) -> CheckOutcome:
        return CheckOutcome(False, ConvertProblem(reason, subject, detail))


def first_failure(checks: Iterable[Callable[[], CheckOutcome]]) -> Optional[ConvertProblem]:
    """
    Run checks in order and return the problem of the first failing one.
    """
    for check in checks:
        outcome = check()
        if outcome.ok:
            if outcome.problem is not None:
                raise InvariantViolation(f"Check passed but reported {outcome.problem}")
            continue
        if outcome.problem is None:
            raise InvariantViolation("Check failed without a reason")
        return outcome.problem
    return None


_TRAIT_DETAILS: Dict[TraitMethodKind, TraitMethodDetails] = {
    TraitMethodKind.COPY_CONSTRUCTOR: TraitMethodDetails(
        "CopyNew", "copy_new", avoid_self=True, parameter_reordering=(1, 0), trait_call_is_unsafe=True
    ),
    TraitMethodKind.MOVE_CONSTRUCTOR: TraitMethodDetails(
        "MoveNew", "move_new", avoid_self=True, parameter_reordering=(1, 0), trait_call_is_unsafe=True
    ),
    TraitMethodKind.DESTRUCTOR: TraitMethodDetails("Drop", "drop"),
    TraitMethodKind.ALLOCATE: TraitMethodDetails(
        "MakeCppStorage", "allocate_uninitialized_cpp_storage", avoid_self=True, trait_call_is_unsafe=True
    ),
    TraitMethodKind.DEALLOCATE: TraitMethodDetails(
        "MakeCppStorage", "free_uninitialized_cpp_storage", avoid_self=True, trait_call_is_unsafe=True
    ),
}


# --------------------------
# Analyzer
# --------------------------

class FnAnalyzer:
    """
    Classifies raw callables. Keep one instance per analysis run.

    `extra_allowed` names types which are always considered allow-listed (the native
    classes generated for safe-side subclasses). Constructors of `abstract_types` are
    analyzed but ignored, since subclasses still need their shape.
    """

    def __init__(
        self,
        config: BridgeConfig,
        converter: TypeConverter,
        bridge_names: Optional[BridgeNameTracker] = None,
        extra_allowed: Iterable[QualifiedName] = (),
        abstract_types: Iterable[QualifiedName] = (),
    ) -> None:
        self.config = config
        self.converter = converter
        self.policies = ConversionPolicyEngine(converter, config)
        self.bridge_names = bridge_names or BridgeNameTracker()
        self.extra_allowed: Set[QualifiedName] = set(extra_allowed)
        self.abstract_types: Set[QualifiedName] = set(abstract_types)
        self._overloads_by_ns: Dict[Tuple[str, ...], OverloadTracker] = {}

    def overload_tracker(self, namespace: Tuple[str, ...]) -> OverloadTracker:
        return self._overloads_by_ns.setdefault(tuple(namespace), OverloadTracker())

    def is_allowlisted_type(self, name: QualifiedName) -> bool:
        return name in self.extra_allowed or self.config.is_on_allowlist(name)

    # ---- Entry point ----

    def classify(self, raw: RawCallable, *, predetermined_name: Optional[str] = None) -> Tuple[FnAnalysis, QualifiedName]:
        """
        Classify `raw`. `predetermined_name` fixes the exposed name of a heap-owned
        instance re-entry, which inherits its constructor's overload suffix.
        """
        sophistication = (
            Sophistication.SIMPLE_FOR_SUBCLASSES
            if raw.provenance is Provenance.SYNTHESIZED_SUBCLASS_TRAMPOLINE
            else Sophistication.REGULAR
        )
        subject = raw.display_name
        ideal = ideal_rust_name(raw)
        type_problems: List[ConvertProblem] = []
        bad_receiver = False

        slots: List[Optional[ArgumentAnalysis]] = []
        for index, param in enumerate(raw.params):
            if param.is_receiver and not param.cpp_type.is_pointer:
                bad_receiver = True
                slots.append(None)
                continue
            try:
                slots.append(self._analyze_param(raw, index, param, sophistication))
            except TypeConversionError as e:
                type_problems.append(ConvertProblem(e.reason, subject, e.detail))
                slots.append(None)
        if raw.is_variadic:
            type_problems.append(ConvertProblem(IgnoreReason.UNSUPPORTED_TYPE, subject, "variadic functions are not supported"))

        receiver = next((pd for pd in slots if pd is not None and pd.is_receiver), None)
        owner = raw.self_type or (receiver.self_type if receiver else None)
        is_static = owner is not None and receiver is None and not bad_receiver
        mutability = receiver.receiver_mutability if receiver else ReceiverMutability.CONST

        ret_type = None if raw.returns_void else raw.return_type
        ret_conversion: Optional[ConversionPolicy] = None
        ret_deps: FrozenSet[QualifiedName] = frozenset()
        ret_is_reference = False
        if ret_type is not None:
            try:
                ret_annotated = self.converter.convert(ret_type)
            except TypeConversionError as e:
                type_problems.append(ConvertProblem(e.reason, subject, e.detail))
            else:
                ret_conversion = self.policies.return_policy_for(ret_annotated, CallDirection.SAFE_CALLS_NATIVE, sophistication)
                ret_deps = ret_annotated.deps
                ret_is_reference = ret_annotated.is_reference

        # ---- Classification and exposed name ----
        kind: Classification
        malformed_special = False
        special = raw.special_member
        if raw.add_to_trait is not None:
            kind = self._trait_request_classification(raw, owner)
            tracker = self.overload_tracker(raw.namespace)
            rust_name = tracker.get_method_real_name(owner.final_item, ideal) if owner else tracker.get_function_real_name(ideal)
        elif owner is not None:
            tracker = self.overload_tracker(raw.namespace)
            type_ident = owner.final_item
            if special in (SpecialMemberKind.COPY_CONSTRUCTOR, SpecialMemberKind.MOVE_CONSTRUCTOR):
                rust_name = tracker.get_method_real_name(type_ident, "new")
                other = slots[1] if len(slots) == 2 else None
                if len(raw.params) != 2:
                    malformed_special = True
                    kind = MethodClassification(MethodKind.constructor(), owner)
                elif special is SpecialMemberKind.MOVE_CONSTRUCTOR:
                    kind = TraitMethodClassification(
                        TraitMethodKind.MOVE_CONSTRUCTOR, owner, _TRAIT_DETAILS[TraitMethodKind.MOVE_CONSTRUCTOR]
                    )
                elif other is not None and other.is_reference:
                    kind = TraitMethodClassification(
                        TraitMethodKind.COPY_CONSTRUCTOR, owner, _TRAIT_DETAILS[TraitMethodKind.COPY_CONSTRUCTOR]
                    )
                else:
                    # e.g. a volatile-qualified copy constructor
                    kind = MethodClassification(MethodKind.constructor(), owner)
            elif special is SpecialMemberKind.DESTRUCTOR:
                rust_name = tracker.get_method_real_name(type_ident, f"{type_ident}_destructor")
                kind = TraitMethodClassification(TraitMethodKind.DESTRUCTOR, owner, _TRAIT_DETAILS[TraitMethodKind.DESTRUCTOR])
            elif raw.provenance is Provenance.SYNTHESIZED_MAKE_UNIQUE:
                rust_name = predetermined_name or "make_unique"
                kind = MethodClassification(MethodKind.make_value(), owner)
                slots = slots[1:]
                ret_type = CppType.from_spelling(owner.to_cpp_name())
                ret_conversion = ConversionPolicy.new_to_unique_ptr(self.converter.convert(ret_type))
                ret_deps = frozenset({owner})
                is_static = False
            elif ideal == type_ident or raw.ident == type_ident or special is SpecialMemberKind.DEFAULT_CONSTRUCTOR:
                rust_name = tracker.get_method_real_name(type_ident, "new")
                kind = MethodClassification(
                    MethodKind.constructor(is_default=special is SpecialMemberKind.DEFAULT_CONSTRUCTOR), owner
                )
            else:
                rust_name = tracker.get_method_real_name(type_ident, ideal)
                if is_static:
                    method_kind = MethodKind.static()
                elif raw.virtualness is Virtualness.PURE_VIRTUAL:
                    method_kind = MethodKind.pure_virtual(mutability)
                elif raw.virtualness is Virtualness.VIRTUAL:
                    method_kind = MethodKind.virtual(mutability)
                else:
                    method_kind = MethodKind.normal(mutability)
                kind = MethodClassification(method_kind, owner)
        else:
            rust_name = self.overload_tracker(raw.namespace).get_function_real_name(ideal)
            kind = FunctionClassification()

        # ---- Output-pointer parameters ----
        is_constructor_like = _is_constructor_like(kind)
        is_destructor = isinstance(kind, TraitMethodClassification) and kind.kind is TraitMethodKind.DESTRUCTOR
        if (is_constructor_like or is_destructor) and raw.params and raw.params[0].cpp_type.is_pointer:
            forced = SafeConversion.FROM_TYPE_TO_PTR if is_destructor else SafeConversion.FROM_PIN_MAYBE_UNINIT_TO_PTR
            slots[0] = self._forced_argument(raw.params[0], 0, forced)
            if (
                isinstance(kind, TraitMethodClassification)
                and kind.kind is TraitMethodKind.MOVE_CONSTRUCTOR
                and len(raw.params) > 1
                and slots[1] is not None
            ):
                slots[1] = self._forced_argument(raw.params[1], 1, SafeConversion.FROM_PIN_MOVE_REF_TO_PTR)

        param_details = [pd for pd in slots if pd is not None]
        params = tuple(raw.params[1:]) if _is_make_value(kind) else tuple(raw.params)

        # ---- Unsafety ----
        requires_unsafe = self._unsafety(kind, param_details)

        # ---- Boundary identifier and native wrapper ----
        bridge_name = self.bridge_names.get_unique_name(owner.final_item if owner else None, rust_name, raw.namespace)
        identifier_for_check = bridge_name
        cpp_work = any(pd.conversion.cpp_work_needed() for pd in param_details) or bool(
            ret_conversion and ret_conversion.cpp_work_needed()
        )
        wrapper_needed = (
            _method_tag(kind) in (MethodKindTag.STATIC, MethodKindTag.CONSTRUCTOR, MethodKindTag.VIRTUAL, MethodKindTag.PURE_VIRTUAL)
            or kind.tag is ClassificationTag.TRAIT_METHOD
            or (kind.tag is ClassificationTag.METHOD and bridge_name != rust_name)
            or cpp_work
            or not is_valid_bridge_identifier(raw.cpp_name)
            or raw.synthetic_cpp is not None
        )
        cpp_wrapper: Optional[CppFunction] = None
        if wrapper_needed:
            bridge_name = self.bridge_names.claim_derived_name(wrapper_name_for(bridge_name))
            if ret_conversion is not None and not ret_conversion.populate_return_value():
                placement = ret_conversion.placement_parameter()
                param_details.append(
                    ArgumentAnalysis(
                        name=PLACEMENT_PARAM_NAME,
                        conversion=placement,
                        deps=ret_deps,
                        requires_unsafe=placement.unsafety(),
                        is_placement_return_destination=True,
                    )
                )
                params = params + (Parameter(PLACEMENT_PARAM_NAME, ret_type.as_pointer(const=False)),)
            body, cpp_kind = self._wrapper_payload(raw, kind, owner, receiver)
            cpp_wrapper = CppFunction(
                wrapper_name=bridge_name,
                original_cpp_name=raw.cpp_name,
                body=body,
                argument_conversion=tuple(pd.conversion for pd in param_details),
                return_conversion=ret_conversion,
                kind=cpp_kind,
                has_receiver=bool(param_details) and param_details[0].is_receiver,
            )

        # ---- Safe-side wrapper ----
        if kind.tag is ClassificationTag.TRAIT_METHOD:
            rust_wrapper_needed = True
        elif kind.tag is ClassificationTag.METHOD:
            rust_wrapper_needed = (
                any(pd.conversion.safe_work_needed() for pd in param_details)
                or bool(ret_conversion and ret_conversion.safe_work_needed())
                or bridge_name != rust_name
            )
        else:
            rust_wrapper_needed = any(pd.conversion.safe_work_needed() for pd in param_details)

        if rust_wrapper_needed:
            rename_strategy = RenameStrategy.wrapper_function()
        elif kind.tag is ClassificationTag.FUNCTION and bridge_name != rust_name:
            rename_strategy = RenameStrategy.use_alias(rust_name)
        else:
            rename_strategy = RenameStrategy.none()

        # ---- Validity ----
        in_move_constructor = isinstance(kind, TraitMethodClassification) and kind.kind is TraitMethodKind.MOVE_CONSTRUCTOR
        checks: List[Callable[[], CheckOutcome]] = [
            lambda: CheckOutcome.failed(IgnoreReason.DELETED, subject) if raw.is_deleted else CheckOutcome.passed(),
            lambda: self._check_visibility(raw, subject),
            lambda: CheckOutcome.failed(IgnoreReason.UNUSED_TEMPLATE_PARAM, subject)
            if raw.unused_template_param
            else CheckOutcome.passed(),
            lambda: CheckOutcome.failed(IgnoreReason.ASSIGNMENT_OPERATOR, subject)
            if special is SpecialMemberKind.ASSIGNMENT_OPERATOR
            else CheckOutcome.passed(),
            lambda: self._check_rvalues(raw, subject, in_move_constructor),
            lambda: CheckOutcome.failed(IgnoreReason.MALFORMED_SPECIAL_MEMBER, subject, f"{len(raw.params)} parameters")
            if malformed_special
            else CheckOutcome.passed(),
            lambda: CheckOutcome.failed(IgnoreReason.UNEXPECTED_THIS_TYPE, subject) if bad_receiver else CheckOutcome.passed(),
            lambda: self._check_allowlist(raw, owner, subject),
            lambda: CheckOutcome.failed(IgnoreReason.GENERIC_OWNER, subject)
            if owner is not None and self._is_generic(owner)
            else CheckOutcome.passed(),
            lambda: CheckOutcome.failed(IgnoreReason.ABSTRACT_TYPE, subject)
            if owner in self.abstract_types and (is_constructor_like or _is_make_value(kind))
            else CheckOutcome.passed(),
            lambda: CheckOutcome(False, type_problems[0]) if type_problems else CheckOutcome.passed(),
            lambda: self._check_reference_return(ret_is_reference, param_details, subject),
            lambda: CheckOutcome.failed(IgnoreReason.BRIDGE_IDENTIFIER_INVALID, subject, identifier_for_check)
            if not is_valid_bridge_identifier(identifier_for_check)
            else CheckOutcome.passed(),
        ]
        ignore_reason = first_failure(checks)
        if ignore_reason is not None:
            logger.debug("Ignoring %s: %s", subject, ignore_reason)

        deps = frozenset().union(ret_deps, *(pd.deps for pd in param_details))
        analysis = FnAnalysis(
            raw=raw,
            rust_name=rust_name,
            bridge_name=bridge_name,
            rename_strategy=rename_strategy,
            params=params,
            kind=kind,
            param_details=tuple(param_details),
            ret_type=ret_type,
            ret_conversion=ret_conversion,
            requires_unsafe=requires_unsafe,
            visibility=raw.visibility,
            cpp_wrapper=cpp_wrapper,
            deps=deps,
            externally_callable=raw.visibility is Visibility.PUBLIC and not raw.is_deleted,
            rust_wrapper_needed=rust_wrapper_needed,
            ignore_reason=ignore_reason,
        )
        return analysis, QualifiedName(tuple(raw.namespace), bridge_name)

    # ---- Parameters ----

    def _analyze_param(self, raw: RawCallable, index: int, param: Parameter, sophistication: Sophistication) -> ArgumentAnalysis:
        if param.is_receiver:
            annotated = self.converter.convert(param.cpp_type, pointer_treatment=PointerTreatment.REFERENCE)
            mutability = ReceiverMutability.CONST if param.cpp_type.is_const else ReceiverMutability.MUTABLE
            return ArgumentAnalysis(
                name="self",
                conversion=ConversionPolicy.new_unconverted(annotated),
                self_type=raw.self_type or annotated.value_name,
                receiver_mutability=mutability,
                is_reference=True,
                deps=annotated.deps,
                requires_unsafe=annotated.requires_unsafe,
            )
        annotated = self.converter.convert(param.cpp_type)
        policy = self.policies.policy_for(
            annotated,
            is_subclass_holder=annotated.kind is AnnotatedKind.SUBCLASS_HOLDER,
            is_rvalue_ref=param.cpp_type.is_rvalue_reference,
            sophistication=sophistication,
        )
        return ArgumentAnalysis(
            name=_binding_name(param, index),
            conversion=policy,
            is_reference=annotated.is_reference,
            deps=annotated.deps,
            requires_unsafe=UnsafetyNeeded.most_severe([annotated.requires_unsafe, policy.unsafety()]),
        )

    def _forced_argument(self, param: Parameter, index: int, forced: SafeConversion) -> ArgumentAnalysis:
        """
        Re-analyze an output pointer (or moved-from reference) of a constructor or
        destructor: whatever the general rules say, it crosses as a pointer.
        """
        annotated = self.converter.convert(param.cpp_type, pointer_treatment=PointerTreatment.POINTER)
        policy = self.policies.policy_for(
            annotated,
            is_rvalue_ref=param.cpp_type.is_rvalue_reference,
            forced_conversion=forced,
        )
        name = "this" if param.is_receiver else _binding_name(param, index)
        return ArgumentAnalysis(name=name, conversion=policy, deps=annotated.deps, requires_unsafe=policy.unsafety())

    # ---- Classification helpers ----

    def _trait_request_classification(self, raw: RawCallable, owner: Optional[QualifiedName]) -> TraitMethodClassification:
        request = raw.add_to_trait
        if owner is None:
            raise InvariantViolation(f"Trait synthesis request on {raw.display_name} without an owning type")
        if request.kind is TraitSynthesisKind.CAST:
            target = self.converter.safe_path(request.target)
            if request.mutable:
                details = TraitMethodDetails(f"PinMut<{target}>", "pin_mut")
            else:
                details = TraitMethodDetails(f"AsRef<{target}>", "as_ref")
            return TraitMethodClassification(TraitMethodKind.CAST, owner, details)
        trait_kind = TraitMethodKind.ALLOCATE if request.kind is TraitSynthesisKind.ALLOCATE else TraitMethodKind.DEALLOCATE
        return TraitMethodClassification(trait_kind, request.target, _TRAIT_DETAILS[trait_kind])

    def _unsafety(self, kind: Classification, param_details: Sequence[ArgumentAnalysis]) -> UnsafetyNeeded:
        if isinstance(kind, TraitMethodClassification):
            if kind.kind.is_memory_management or self.config.unsafe_policy is UnsafePolicy.ALL_FUNCTIONS_UNSAFE:
                return UnsafetyNeeded.ALWAYS
            relevant = param_details[1:] if kind.kind is TraitMethodKind.DESTRUCTOR else param_details
            return UnsafetyNeeded.most_severe(
                [pd.requires_unsafe for pd in relevant if not pd.is_receiver and not pd.is_placement_return_destination]
            )
        if self.config.unsafe_policy is UnsafePolicy.ALL_FUNCTIONS_UNSAFE:
            return UnsafetyNeeded.ALWAYS
        return UnsafetyNeeded.most_severe([pd.requires_unsafe for pd in param_details if not pd.is_receiver])

    def _wrapper_payload(
        self,
        raw: RawCallable,
        kind: Classification,
        owner: Optional[QualifiedName],
        receiver: Optional[ArgumentAnalysis],
    ) -> Tuple[CppFunctionBody, CppFunctionKind]:
        if raw.synthetic_cpp is not None:
            return raw.synthetic_cpp.body, raw.synthetic_cpp.kind
        if _is_constructor_like(kind):
            return CppFunctionBody.placement_new(owner), CppFunctionKind.CONSTRUCTOR
        if isinstance(kind, TraitMethodClassification) and kind.kind is TraitMethodKind.DESTRUCTOR:
            return CppFunctionBody.destructor(owner), CppFunctionKind.FUNCTION
        if _method_tag(kind) is MethodKindTag.STATIC:
            return CppFunctionBody.static_method_call(owner, raw.cpp_name), CppFunctionKind.FUNCTION
        if receiver is not None:
            cpp_kind = CppFunctionKind.CONST_METHOD if receiver.receiver_mutability is ReceiverMutability.CONST else CppFunctionKind.METHOD
            return CppFunctionBody.function_call(tuple(raw.namespace), raw.cpp_name), cpp_kind
        return CppFunctionBody.function_call(tuple(raw.namespace), raw.cpp_name), CppFunctionKind.FUNCTION

    def _is_generic(self, owner: QualifiedName) -> bool:
        decl = self.converter.types.get(owner)
        return owner.is_generic or bool(decl and decl.is_generic)

    # ---- Checks ----

    @staticmethod
    def _check_visibility(raw: RawCallable, subject: str) -> CheckOutcome:
        if raw.visibility is Visibility.PRIVATE:
            return CheckOutcome.failed(IgnoreReason.PRIVATE, subject)
        if raw.visibility is Visibility.PROTECTED and raw.virtualness is Virtualness.NONE:
            return CheckOutcome.failed(IgnoreReason.NON_PUBLIC, subject)
        return CheckOutcome.passed()

    @staticmethod
    def _check_rvalues(raw: RawCallable, subject: str, in_move_constructor: bool) -> CheckOutcome:
        if not in_move_constructor:
            for param in raw.params:
                if param.cpp_type.is_rvalue_reference:
                    return CheckOutcome.failed(IgnoreReason.RVALUE_PARAM, subject, param.name)
        if raw.return_type is not None and raw.return_type.is_rvalue_reference:
            return CheckOutcome.failed(IgnoreReason.RVALUE_RETURN, subject)
        return CheckOutcome.passed()

    def _check_allowlist(self, raw: RawCallable, owner: Optional[QualifiedName], subject: str) -> CheckOutcome:
        if owner is not None:
            if self.is_allowlisted_type(owner):
                return CheckOutcome.passed()
            return CheckOutcome.failed(IgnoreReason.NOT_ALLOWLISTED, subject)
        if self.config.is_on_allowlist(QualifiedName(tuple(raw.namespace), raw.cpp_name)):
            return CheckOutcome.passed()
        return CheckOutcome.failed(IgnoreReason.NOT_ALLOWLISTED, subject)

    @staticmethod
    def _check_reference_return(ret_is_reference: bool, param_details: Sequence[ArgumentAnalysis], subject: str) -> CheckOutcome:
        if not ret_is_reference:
            return CheckOutcome.passed()
        references = sum(1 for pd in param_details if pd.is_reference)
        if references != 1:
            return CheckOutcome.failed(IgnoreReason.NOT_ONE_INPUT_REFERENCE, subject, f"{references} reference parameters")
        return CheckOutcome.passed()


def _method_tag(kind: Classification) -> Optional[MethodKindTag]:
    return kind.kind.tag if isinstance(kind, MethodClassification) else None


def _is_make_value(kind: Classification) -> bool:
    return _method_tag(kind) is MethodKindTag.MAKE_VALUE


def _is_constructor_like(kind: Classification) -> bool:
    if isinstance(kind, TraitMethodClassification):
        return kind.kind in (TraitMethodKind.COPY_CONSTRUCTOR, TraitMethodKind.MOVE_CONSTRUCTOR)
    return _method_tag(kind) is MethodKindTag.CONSTRUCTOR


__all__ = [
    "CheckOutcome",
    "FnAnalyzer",
    "PLACEMENT_PARAM_NAME",
    "WRAPPER_SUFFIX",
    "first_failure",
    "ideal_rust_name",
    "wrapper_name_for",
]
