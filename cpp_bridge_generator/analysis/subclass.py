#!/usr/bin/env python3
"""
Subclass support and heap-owned instance helpers.

For a safe-side type `MyBob` declared as a subclass of native `ns::Bob`, the native
side gets a generated class:

    class MyBobCpp : public ns::Bob {
    public:
      MyBobCpp(rust::Box<MyBobHolder> arg0, ...) : ns::Bob(...), obs(std::move(arg0)) {}
      int foo(int a) const override;     // calls MyBob_foo(*obs, a)
      rust::Box<MyBobHolder> obs;
    };

This module synthesizes, per declared subclass:
- for each non-pure virtual method, a trampoline `MyBob_foo_super` which calls
  `ns::Bob::foo` without virtual dispatch (fed back to the classifier)
- for each virtual method, the safe-declared entry `MyBob_foo` which the override calls
- for each constructor of the superclass, a constructor of `MyBobCpp` (fed back to the
  classifier) and its native definition

and, once per superclass, the capability traits `Bob_supers` and `Bob_methods`.

It also derives the "make heap-owned instance" re-entries for constructors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..errors import IgnoreReason, TypeConversionError
from ..models import (
    CppBodyShape,
    CppFunctionBody,
    CppFunctionKind,
    CppType,
    Parameter,
    Provenance,
    QualifiedName,
    RawCallable,
    SubclassDecl,
    SyntheticCpp,
    Visibility,
)
from .conversion import CallDirection, ConversionPolicy, Sophistication
from .fn_analysis import (
    CppFunction,
    FnAnalysis,
    MethodClassification,
    MethodKindTag,
    PublicConstructors,
    ReceiverMutability,
)

logger = logging.getLogger(__name__)

# Constructor records of a superclass which a subclass may still call.
_SUBCLASS_USABLE_REASONS = (IgnoreReason.ABSTRACT_TYPE, IgnoreReason.NON_PUBLIC)


# --------------------------
# Records
# --------------------------

@dataclass(frozen=True)
class EntryParam:
    name: str
    conversion: ConversionPolicy


@dataclass(frozen=True)
class SubclassMethodEntry:
    """
    A safe-declared function the native override calls into.

    `conversion`s describe the native-calls-safe direction. `super_fn` is the raw
    identifier of the trampoline (None for pure virtual methods); consumers resolve it
    through the analysis arena.
    """
    subclass: str
    superclass: QualifiedName
    method_name: str
    entry_name: str
    params: Tuple[EntryParam, ...]
    ret_conversion: Optional[ConversionPolicy]
    mutability: ReceiverMutability
    is_pure: bool
    super_fn: Optional[str]
    cpp_impl: CppFunction

    @property
    def holder(self) -> str:
        return f"{self.subclass}Holder"


@dataclass(frozen=True)
class SubclassConstructor:
    subclass: str
    superclass: QualifiedName
    cpp_impl: CppFunction


@dataclass(frozen=True)
class TraitSignature:
    """
    One method of a capability trait, with safe-side types.
    `default_call` names the supers-trait method a default body forwards to.
    """
    name: str
    params: Tuple[Tuple[str, str], ...]
    ret: Optional[str]
    mutability: ReceiverMutability
    default_call: Optional[str] = None


@dataclass
class CapabilityTraits:
    superclass: QualifiedName
    supers: List[TraitSignature] = field(default_factory=list)
    methods: List[TraitSignature] = field(default_factory=list)

    @property
    def supers_trait(self) -> str:
        return f"{self.superclass.final_item}_supers"

    @property
    def methods_trait(self) -> str:
        return f"{self.superclass.final_item}_methods"


@dataclass
class SubclassClass:
    """
    Everything needed to declare the native class of one subclass.
    """
    decl: SubclassDecl
    overrides: List[CppFunction] = field(default_factory=list)
    constructors: List[CppFunction] = field(default_factory=list)


@dataclass
class SubclassWork:
    """
    Output of subclass synthesis. `callables` must be fed back to the classifier.
    """
    callables: List[RawCallable] = field(default_factory=list)
    entries: List[SubclassMethodEntry] = field(default_factory=list)
    constructors: List[SubclassConstructor] = field(default_factory=list)
    traits: Dict[QualifiedName, CapabilityTraits] = field(default_factory=dict)
    classes: List[SubclassClass] = field(default_factory=list)


# --------------------------
# Synthesizer
# --------------------------

class SubclassSynthesizer:
    """
    Works from the analyses of the superclasses' members. `analyzer` provides the type
    converter, the conversion policy engine and the boundary name tracker.
    """

    def __init__(self, analyzer) -> None:
        self.analyzer = analyzer
        self.converter = analyzer.converter
        self.policies = analyzer.policies

    def synthesize(self, analyses: Sequence[FnAnalysis], subclasses: Iterable[SubclassDecl]) -> SubclassWork:
        work = SubclassWork()
        for decl in subclasses:
            cls = SubclassClass(decl)
            work.classes.append(cls)
            virtuals = [fa for fa in analyses if _is_virtual_of(fa, decl.superclass) and not fa.is_ignored]
            if not virtuals and not any(_is_constructor_of(fa, decl.superclass) for fa in analyses):
                logger.warning("Subclass %s: superclass %s has no known members", decl.subclass, decl.superclass)
            first_for_superclass = decl.superclass not in work.traits
            traits = work.traits.setdefault(decl.superclass, CapabilityTraits(decl.superclass))
            for fa in virtuals:
                try:
                    entry, trampoline = self._method(decl, fa)
                except TypeConversionError as e:
                    logger.debug("Not overriding %s in %s: %s", fa.raw.display_name, decl.subclass, e.detail)
                    continue
                work.entries.append(entry)
                cls.overrides.append(entry.cpp_impl)
                if trampoline is not None:
                    work.callables.append(trampoline)
                if first_for_superclass:
                    self._add_trait_methods(traits, entry)
            for fa in analyses:
                if not _is_constructor_of(fa, decl.superclass):
                    continue
                if fa.raw.is_deleted or fa.raw.visibility is Visibility.PRIVATE:
                    continue
                if fa.is_ignored and fa.ignore_reason.reason not in _SUBCLASS_USABLE_REASONS:
                    continue
                try:
                    raw, ctor = self._constructor(decl, fa)
                except TypeConversionError as e:
                    logger.debug("No %s constructor from %s: %s", decl.subclass, fa.raw.display_name, e.detail)
                    continue
                work.callables.append(raw)
                work.constructors.append(ctor)
                cls.constructors.append(ctor.cpp_impl)
        return work

    # ---- Virtual methods ----

    def _method(self, decl: SubclassDecl, fa: FnAnalysis) -> Tuple[SubclassMethodEntry, Optional[RawCallable]]:
        kind = fa.kind.kind
        mutability = kind.mutability or ReceiverMutability.CONST
        is_pure = kind.tag is MethodKindTag.PURE_VIRTUAL
        others = [p for p in fa.raw.params if not p.is_receiver]

        params: List[EntryParam] = []
        for index, param in enumerate(others):
            annotated = self.converter.convert(param.cpp_type)
            policy = self.policies.policy_for(
                annotated,
                is_rvalue_ref=param.cpp_type.is_rvalue_reference,
                sophistication=Sophistication.SIMPLE_FOR_SUBCLASSES,
            )
            params.append(EntryParam(param.name or f"arg{index}", policy.inverse()))
        ret_conversion = None
        if not fa.raw.returns_void:
            ret = self.policies.return_policy_for(
                self.converter.convert(fa.raw.return_type),
                CallDirection.NATIVE_CALLS_SAFE,
                Sophistication.SIMPLE_FOR_SUBCLASSES,
            )
            ret_conversion = ret.inverse() if ret is not None else None

        entry_name = self.analyzer.bridge_names.get_unique_name(None, f"{decl.subclass}_{fa.rust_name}", ())
        cpp_kind = CppFunctionKind.CONST_METHOD if mutability is ReceiverMutability.CONST else CppFunctionKind.METHOD
        cpp_impl = CppFunction(
            wrapper_name=fa.raw.cpp_name,
            original_cpp_name=entry_name,
            body=CppFunctionBody.function_call((), entry_name),
            argument_conversion=tuple(p.conversion for p in params),
            return_conversion=ret_conversion,
            kind=cpp_kind,
            pass_obs_field=True,
            qualification=decl.cpp_name,
        )

        trampoline = None
        super_fn = None
        if not is_pure:
            super_fn = f"{decl.subclass}_{fa.rust_name}_super"
            const = "const " if mutability is ReceiverMutability.CONST else ""
            this = Parameter("this", CppType.from_spelling(f"{const}{decl.cpp_name.to_cpp_name()}*"))
            sup = decl.superclass
            trampoline = RawCallable(
                ident=super_fn,
                params=(this,) + tuple(others),
                return_type=fa.raw.return_type,
                self_type=decl.cpp_name,
                provenance=Provenance.SYNTHESIZED_SUBCLASS_TRAMPOLINE,
                synthetic_cpp=SyntheticCpp(
                    CppFunctionBody.function_call(sup.namespace, fa.raw.cpp_name, qualifier=sup.to_cpp_name()),
                    cpp_kind,
                ),
            )

        entry = SubclassMethodEntry(
            subclass=decl.subclass,
            superclass=decl.superclass,
            method_name=fa.rust_name,
            entry_name=entry_name,
            params=tuple(params),
            ret_conversion=ret_conversion,
            mutability=mutability,
            is_pure=is_pure,
            super_fn=super_fn,
            cpp_impl=cpp_impl,
        )
        return entry, trampoline

    @staticmethod
    def _add_trait_methods(traits: CapabilityTraits, entry: SubclassMethodEntry) -> None:
        params = tuple((p.name, p.conversion.bridge_safe_type()) for p in entry.params)
        ret = entry.ret_conversion.bridge_safe_type() if entry.ret_conversion else None
        default_call = None
        if not entry.is_pure:
            default_call = f"{entry.method_name}_super"
            traits.supers.append(TraitSignature(default_call, params, ret, entry.mutability))
        traits.methods.append(TraitSignature(entry.method_name, params, ret, entry.mutability, default_call))

    # ---- Constructors ----

    def _constructor(self, decl: SubclassDecl, fa: FnAnalysis) -> Tuple[RawCallable, SubclassConstructor]:
        cpp = decl.cpp_name
        holder_type = CppType.from_spelling(decl.holder)
        holder_policy = self.policies.policy_for(self.converter.convert(holder_type), is_subclass_holder=True)
        super_params = tuple(fa.raw.params[1:])
        super_policies = tuple(ConversionPolicy.new_unconverted(self.converter.convert(p.cpp_type)) for p in super_params)
        raw = RawCallable(
            ident=cpp.name,
            namespace=cpp.namespace,
            params=(
                Parameter("this", CppType.from_spelling(f"{cpp.to_cpp_name()}*")),
                Parameter("peer", holder_type),
            )
            + super_params,
            self_type=cpp,
            provenance=Provenance.SYNTHESIZED_SUBCLASS_CONSTRUCTOR,
        )
        cpp_impl = CppFunction(
            wrapper_name=cpp.name,
            original_cpp_name=decl.superclass.to_cpp_name(),
            body=CppFunctionBody.construct_superclass(decl.superclass),
            argument_conversion=(holder_policy,) + super_policies,
            return_conversion=None,
            kind=CppFunctionKind.SYNTHESIZED_CONSTRUCTOR,
            qualification=cpp,
        )
        return raw, SubclassConstructor(decl.subclass, decl.superclass, cpp_impl)


# --------------------------
# Heap-owned instance helpers
# --------------------------

def make_unique_name(constructor_name: str) -> str:
    """
    `new` -> `make_unique`, `new2` -> `make_unique2`.
    """
    suffix = constructor_name[len("new"):] if constructor_name.startswith("new") else ""
    return f"make_unique{suffix}"


def make_unique_requests(
    analyses: Iterable[FnAnalysis],
    public_constructors: Mapping[QualifiedName, PublicConstructors],
    always: Set[QualifiedName] = frozenset(),
) -> List[Tuple[RawCallable, str]]:
    """
    Re-entries for every accepted, externally callable constructor of a type with a public
    destructor (or of a type in `always`). Each comes with its predetermined exposed name.
    """
    out: List[Tuple[RawCallable, str]] = []
    for fa in analyses:
        if not isinstance(fa.kind, MethodClassification) or fa.kind.kind.tag is not MethodKindTag.CONSTRUCTOR:
            continue
        if fa.is_ignored or not fa.externally_callable:
            continue
        owner = fa.kind.owner
        ctors = public_constructors.get(owner, PublicConstructors())
        if not ctors.destructor and owner not in always:
            continue
        raw = replace(
            fa.raw,
            provenance=Provenance.SYNTHESIZED_MAKE_UNIQUE,
            special_member=None,
            synthetic_cpp=SyntheticCpp(
                CppFunctionBody(CppBodyShape.MAKE_UNIQUE, owner.namespace, owner.name),
                CppFunctionKind.SYNTHESIZED_CONSTRUCTOR,
            ),
        )
        out.append((raw, make_unique_name(fa.rust_name)))
    return out


def _is_virtual_of(fa: FnAnalysis, superclass: QualifiedName) -> bool:
    return isinstance(fa.kind, MethodClassification) and fa.kind.owner == superclass and fa.kind.kind.is_virtual


def _is_constructor_of(fa: FnAnalysis, superclass: QualifiedName) -> bool:
    return (
        isinstance(fa.kind, MethodClassification)
        and fa.kind.owner == superclass
        and fa.kind.kind.tag is MethodKindTag.CONSTRUCTOR
    )


__all__ = [
    "CapabilityTraits",
    "EntryParam",
    "SubclassClass",
    "SubclassConstructor",
    "SubclassMethodEntry",
    "SubclassSynthesizer",
    "SubclassWork",
    "TraitSignature",
    "make_unique_name",
    "make_unique_requests",
]
