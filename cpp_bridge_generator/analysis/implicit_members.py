#!/usr/bin/env python3
"""
Implicit special-member synthesis.

C++ declares some special members implicitly: a default constructor when no
constructor is declared, copy and move constructors, and a destructor. The front end
only reports what is written in the header, so this module works out which implicit
members exist and manufactures raw callables for them, which are then classified like
any other callable.

Rules (per type, after its bases and by-value fields):
- default constructor: no constructor of any kind is declared
- copy constructor: none declared, and no move constructor or move assignment declared;
  takes `T&` if any base or field lacks a const copy constructor, else `const T&`
- move constructor: none of move/copy constructor, destructor, copy/move assignment declared
- destructor: none declared
- and in every case, each base and field must itself offer that member

Deleted and ignored declarations still count as declared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..models import (
    CppType,
    Parameter,
    Provenance,
    QualifiedName,
    RawCallable,
    SpecialMemberKind,
    TypeDecl,
    Visibility,
)
from .fn_analysis import FnAnalysis, MethodClassification, MethodKindTag, PublicConstructors, TraitMethodClassification, TraitMethodKind

logger = logging.getLogger(__name__)


@dataclass
class ExplicitItemsFound:
    """
    Special members written in the header (deleted or not, bindable or not).
    """
    move_constructor: bool = False
    copy_constructor: bool = False
    any_other_constructor: bool = False
    destructor: bool = False
    copy_assignment_operator: bool = False
    move_assignment_operator: bool = False


@dataclass(frozen=True)
class ImplicitConstructorsNeeded:
    default_constructor: bool = False
    copy_constructor_taking_t: bool = False
    copy_constructor_taking_const_t: bool = False
    move_constructor: bool = False
    destructor: bool = False


@dataclass
class MemberAvailability:
    """
    Which special members a type offers to types that derive from or contain it.
    """
    default_constructor: bool = True
    copy_constructor: bool = True
    const_copy_constructor: bool = True
    move_constructor: bool = True
    destructor: bool = True


def determine_implicit_constructors(
    explicits: ExplicitItemsFound,
    members: Sequence[MemberAvailability] = (),
) -> ImplicitConstructorsNeeded:
    """
    Decide which special members are implicitly declared, given what the type declares
    and what its bases and by-value fields offer.
    """
    any_constructor = explicits.copy_constructor or explicits.move_constructor or explicits.any_other_constructor
    default_constructor = not any_constructor and all(m.default_constructor for m in members)

    copy_possible = (
        not explicits.copy_constructor
        and not explicits.move_constructor
        and not explicits.move_assignment_operator
        and all(m.copy_constructor for m in members)
    )
    all_const = all(m.const_copy_constructor for m in members)

    move_constructor = not (
        explicits.move_constructor
        or explicits.copy_constructor
        or explicits.destructor
        or explicits.copy_assignment_operator
        or explicits.move_assignment_operator
    ) and all(m.move_constructor for m in members)

    destructor = not explicits.destructor and all(m.destructor for m in members)

    return ImplicitConstructorsNeeded(
        default_constructor=default_constructor,
        copy_constructor_taking_t=copy_possible and not all_const,
        copy_constructor_taking_const_t=copy_possible and all_const,
        move_constructor=move_constructor,
        destructor=destructor,
    )


# --------------------------
# Helpers
# --------------------------

def _explicit_items(records: Iterable[FnAnalysis]) -> ExplicitItemsFound:
    found = ExplicitItemsFound()
    for fa in records:
        raw = fa.raw
        special = raw.special_member
        if special is SpecialMemberKind.COPY_CONSTRUCTOR:
            found.copy_constructor = True
        elif special is SpecialMemberKind.MOVE_CONSTRUCTOR:
            found.move_constructor = True
        elif special is SpecialMemberKind.DESTRUCTOR:
            found.destructor = True
        elif special is SpecialMemberKind.ASSIGNMENT_OPERATOR:
            if any(p.cpp_type.is_rvalue_reference for p in raw.params if not p.is_receiver):
                found.move_assignment_operator = True
            else:
                found.copy_assignment_operator = True
        elif isinstance(fa.kind, MethodClassification) and fa.kind.kind.tag is MethodKindTag.CONSTRUCTOR:
            found.any_other_constructor = True
    return found


def _usable_by_derived(raw: RawCallable) -> bool:
    return not raw.is_deleted and raw.visibility is not Visibility.PRIVATE


def _availability(records: Iterable[FnAnalysis], needed: ImplicitConstructorsNeeded) -> MemberAvailability:
    avail = MemberAvailability(
        default_constructor=needed.default_constructor,
        copy_constructor=needed.copy_constructor_taking_t or needed.copy_constructor_taking_const_t,
        const_copy_constructor=not needed.copy_constructor_taking_t,
        move_constructor=needed.move_constructor,
        destructor=needed.destructor,
    )
    for fa in records:
        raw = fa.raw
        usable = _usable_by_derived(raw)
        special = raw.special_member
        if special is SpecialMemberKind.COPY_CONSTRUCTOR:
            avail.copy_constructor = usable
            avail.const_copy_constructor = len(raw.params) > 1 and raw.params[1].cpp_type.is_const
        elif special is SpecialMemberKind.MOVE_CONSTRUCTOR:
            avail.move_constructor = usable
        elif special is SpecialMemberKind.DESTRUCTOR:
            avail.destructor = usable
        elif special is SpecialMemberKind.DEFAULT_CONSTRUCTOR or (
            isinstance(fa.kind, MethodClassification)
            and fa.kind.kind.tag is MethodKindTag.CONSTRUCTOR
            and len(raw.params) == 1
        ):
            avail.default_constructor = usable
    return avail


def _member_types(decl: TypeDecl) -> List[QualifiedName]:
    names = [b.name for b in decl.bases]
    for f in decl.fields:
        if f.cpp_type.is_indirect:
            continue
        names.append(QualifiedName.parse(f.cpp_type.value_spelling()))
    return names


def bases_first(types: Mapping[QualifiedName, TypeDecl]) -> List[TypeDecl]:
    """
    Order types so that every base and by-value field type precedes its user.
    Unknown names are skipped; cycles are broken arbitrarily.
    """
    ordered: List[TypeDecl] = []
    seen: Set[QualifiedName] = set()

    def visit(name: QualifiedName) -> None:
        if name in seen or name not in types:
            return
        seen.add(name)
        for dep in _member_types(types[name]):
            visit(dep)
        ordered.append(types[name])

    for name in types:
        visit(name)
    return ordered


def _this_param(ty: QualifiedName) -> Parameter:
    return Parameter("this", CppType.from_spelling(f"{ty.to_cpp_name()}*"))


# --------------------------
# Synthesizer
# --------------------------

@dataclass
class ImplicitMemberSynthesizer:
    """
    Manufactures raw callables for implicitly declared special members.

    `eligible` decides which types get implicit members at all (allow-listed, complete,
    non-generic types, as decided by the pipeline).
    """
    types: Mapping[QualifiedName, TypeDecl]
    eligible: Optional[Set[QualifiedName]] = None
    needed: Dict[QualifiedName, ImplicitConstructorsNeeded] = field(default_factory=dict)

    def synthesize(self, analyses: Iterable[FnAnalysis]) -> List[RawCallable]:
        by_owner: Dict[QualifiedName, List[FnAnalysis]] = {}
        for fa in analyses:
            owner = fa.owner
            if owner is not None and fa.provenance is not Provenance.SYNTHESIZED_MAKE_UNIQUE:
                by_owner.setdefault(owner, []).append(fa)

        availability: Dict[QualifiedName, MemberAvailability] = {}
        out: List[RawCallable] = []
        for decl in bases_first(self.types):
            name = decl.name
            records = by_owner.get(name, [])
            explicits = _explicit_items(records)
            members = [availability[m] for m in _member_types(decl) if m in availability]
            needed = determine_implicit_constructors(explicits, members)
            availability[name] = _availability(records, needed)
            self.needed[name] = needed
            if self.eligible is not None and name not in self.eligible:
                continue
            if decl.is_forward_declaration or decl.is_generic:
                continue
            synthesized = implicit_member_callables(name, needed)
            if synthesized:
                logger.debug("Synthesized %d implicit members for %s", len(synthesized), name)
            out.extend(synthesized)
        return out


def implicit_member_callables(ty: QualifiedName, needed: ImplicitConstructorsNeeded) -> List[RawCallable]:
    """
    Raw callables for the implicit members in `needed`, in the conventional shapes.
    """
    this = _this_param(ty)
    cpp = ty.to_cpp_name()
    common = dict(namespace=ty.namespace, self_type=ty, provenance=Provenance.SYNTHESIZED_IMPLICIT)
    out: List[RawCallable] = []
    if needed.default_constructor:
        out.append(RawCallable(ident=ty.name, params=(this,), special_member=SpecialMemberKind.DEFAULT_CONSTRUCTOR, **common))
    if needed.copy_constructor_taking_const_t or needed.copy_constructor_taking_t:
        other = f"const {cpp}&" if needed.copy_constructor_taking_const_t else f"{cpp}&"
        out.append(
            RawCallable(
                ident=ty.name,
                params=(this, Parameter("other", CppType.from_spelling(other))),
                special_member=SpecialMemberKind.COPY_CONSTRUCTOR,
                **common,
            )
        )
    if needed.move_constructor:
        out.append(
            RawCallable(
                ident=ty.name,
                params=(this, Parameter("other", CppType.from_spelling(f"{cpp}&&"))),
                special_member=SpecialMemberKind.MOVE_CONSTRUCTOR,
                **common,
            )
        )
    if needed.destructor:
        out.append(RawCallable(ident=f"~{ty.name}", params=(this,), special_member=SpecialMemberKind.DESTRUCTOR, **common))
    return out


def compute_public_constructors(analyses: Iterable[FnAnalysis]) -> Dict[QualifiedName, PublicConstructors]:
    """
    Per owning type, whether an externally callable move constructor and destructor exist.
    """
    moves: Set[QualifiedName] = set()
    dtors: Set[QualifiedName] = set()
    owners: Set[QualifiedName] = set()
    for fa in analyses:
        if not isinstance(fa.kind, TraitMethodClassification) and not isinstance(fa.kind, MethodClassification):
            continue
        owners.add(fa.kind.owner)
        if not fa.externally_callable or fa.is_ignored:
            continue
        if isinstance(fa.kind, TraitMethodClassification):
            if fa.kind.kind is TraitMethodKind.MOVE_CONSTRUCTOR:
                moves.add(fa.kind.owner)
            elif fa.kind.kind is TraitMethodKind.DESTRUCTOR:
                dtors.add(fa.kind.owner)
    return {o: PublicConstructors(move_constructor=o in moves, destructor=o in dtors) for o in owners}


__all__ = [
    "ExplicitItemsFound",
    "ImplicitConstructorsNeeded",
    "ImplicitMemberSynthesizer",
    "MemberAvailability",
    "bases_first",
    "compute_public_constructors",
    "determine_implicit_constructors",
    "implicit_member_callables",
]
