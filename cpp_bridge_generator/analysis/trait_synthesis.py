#!/usr/bin/env python3
"""
Synthetic callables which implement safe-side traits.

- Casts: for each public, allow-listed base of an allow-listed type, a callable
  `cast_{From}_to_{To}` which the safe side exposes as `AsRef<To>`.
- Storage hooks: `{T}_alloc` and `{T}_free` for every allow-listed, non-POD, non-abstract
  type and every generated subclass class, exposed as the `MakeCppStorage` trait.
  Their native bodies go through the type's own `operator new`/`operator delete`
  when it has them.

Each callable carries a trait-synthesis request, which the classifier honors before
any other classification rule.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List

from ..models import (
    CppBodyShape,
    CppFunctionBody,
    CppFunctionKind,
    CppType,
    Parameter,
    Provenance,
    QualifiedName,
    RawCallable,
    SyntheticCpp,
    TraitSynthesis,
    TraitSynthesisKind,
    TypeDecl,
    Visibility,
)

logger = logging.getLogger(__name__)


def cast_name(from_type: QualifiedName, to_type: QualifiedName) -> str:
    return f"cast_{from_type.final_item}_to_{to_type.final_item}"


def create_cast(from_type: QualifiedName, to_type: QualifiedName) -> RawCallable:
    return RawCallable(
        ident=cast_name(from_type, to_type),
        namespace=from_type.namespace,
        params=(Parameter("this", CppType.from_spelling(f"const {from_type.to_cpp_name()}*")),),
        return_type=CppType.from_spelling(f"const {to_type.to_cpp_name()}&"),
        self_type=from_type,
        provenance=Provenance.SYNTHESIZED_OTHER,
        synthetic_cpp=SyntheticCpp(CppFunctionBody(CppBodyShape.CAST), CppFunctionKind.FUNCTION),
        add_to_trait=TraitSynthesis(TraitSynthesisKind.CAST, to_type),
    )


def create_casts(types: Iterable[TypeDecl], is_allowlisted: Callable[[QualifiedName], bool]) -> List[RawCallable]:
    """
    Casts only go to allow-listed bases; for anything else we cannot tell whether the
    base is abstract.
    """
    out: List[RawCallable] = []
    for decl in types:
        if not is_allowlisted(decl.name) or decl.is_generic:
            continue
        for base in decl.bases:
            if base.access is Visibility.PUBLIC and is_allowlisted(base.name):
                out.append(create_cast(decl.name, base.name))
    return out


def create_alloc_and_free(ty: QualifiedName) -> List[RawCallable]:
    pointer = CppType.from_spelling(f"{ty.to_cpp_name()}*")
    common = dict(namespace=ty.namespace, self_type=ty, provenance=Provenance.SYNTHESIZED_OTHER)
    return [
        RawCallable(
            ident=f"{ty.final_item}_alloc",
            return_type=pointer,
            synthetic_cpp=SyntheticCpp(CppFunctionBody.allocate(ty), CppFunctionKind.FUNCTION),
            add_to_trait=TraitSynthesis(TraitSynthesisKind.ALLOCATE, ty),
            **common,
        ),
        RawCallable(
            ident=f"{ty.final_item}_free",
            params=(Parameter("arg0", pointer),),
            synthetic_cpp=SyntheticCpp(CppFunctionBody.deallocate(ty), CppFunctionKind.FUNCTION),
            add_to_trait=TraitSynthesis(TraitSynthesisKind.DEALLOCATE, ty),
            **common,
        ),
    ]


def create_allocs_and_frees(types: Iterable[QualifiedName]) -> List[RawCallable]:
    out: List[RawCallable] = []
    for ty in types:
        out.extend(create_alloc_and_free(ty))
    return out


__all__ = [
    "cast_name",
    "create_alloc_and_free",
    "create_allocs_and_frees",
    "create_cast",
    "create_casts",
]
