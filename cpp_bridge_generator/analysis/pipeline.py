#!/usr/bin/env python3
"""
Two-sweep analysis pipeline.

Sweep 1 classifies every user callable in discovery order. Sweep 2 then synthesizes
new raw callables from what sweep 1 found and feeds them back through the same
classifier:

    2a. implicit special members, casts to bases, allocate/free hooks
        (then: which types have a public move constructor and destructor)
    2b. subclass trampolines and constructors, then heap-owned instance helpers

Everything lands in an `AnalysisResult` arena keyed by qualified boundary name; records
refer to one another by name only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from ..config import BridgeConfig
from ..errors import InvariantViolation
from ..models import BaseClassRef, Provenance, QualifiedName, RawCallable, TypeDecl, Virtualness
from ..type_mapping import TypeConverter
from .classifier import FnAnalyzer
from .fn_analysis import FnAnalysis, PublicConstructors
from .implicit_members import (
    ImplicitConstructorsNeeded,
    ImplicitMemberSynthesizer,
    bases_first,
    compute_public_constructors,
    implicit_member_callables,
)
from .subclass import SubclassSynthesizer, SubclassWork, make_unique_requests
from .trait_synthesis import create_allocs_and_frees, create_casts

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """
    The arena of analysis records, in classification order, plus type-level facts.
    """
    config: BridgeConfig
    types: Dict[QualifiedName, TypeDecl] = field(default_factory=dict)
    analyses: Dict[QualifiedName, FnAnalysis] = field(default_factory=dict)
    public_constructors: Dict[QualifiedName, PublicConstructors] = field(default_factory=dict)
    abstract_types: Set[QualifiedName] = field(default_factory=set)
    subclasses: SubclassWork = field(default_factory=SubclassWork)

    def add(self, key: QualifiedName, analysis: FnAnalysis) -> None:
        if key in self.analyses:
            raise InvariantViolation(f"Two callables were given the boundary name {key}")
        self.analyses[key] = analysis

    def records(self) -> List[FnAnalysis]:
        return list(self.analyses.values())

    def accepted(self) -> List[FnAnalysis]:
        return [fa for fa in self.analyses.values() if not fa.is_ignored]

    def ignored(self) -> List[FnAnalysis]:
        return [fa for fa in self.analyses.values() if fa.is_ignored]

    def find(self, owner: Optional[QualifiedName], ident: str) -> Optional[FnAnalysis]:
        """
        Look up a record by its owning type and raw identifier.
        """
        for fa in self.analyses.values():
            if fa.raw.ident == ident and fa.raw.self_type == owner:
                return fa
        return None

    def stats(self) -> Dict[str, int]:
        synthesized = sum(1 for fa in self.analyses.values() if fa.provenance is not Provenance.USER)
        return {
            "analyzed": len(self.analyses),
            "ignored": len(self.ignored()),
            "synthesized": synthesized,
            "subclass_entries": len(self.subclasses.entries),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats": self.stats(),
            "functions": [fa.to_dict() for fa in self.analyses.values()],
            "types": [t.to_dict() for t in self.types.values()],
            "abstract_types": sorted(t.to_cpp_name() for t in self.abstract_types),
        }


# --------------------------
# Helpers
# --------------------------

def find_abstract_types(callables: Iterable[RawCallable], types: Dict[QualifiedName, TypeDecl]) -> Set[QualifiedName]:
    """
    A type is abstract if it declares a pure virtual method, or inherits one it does not override.
    """
    pure: Dict[QualifiedName, Set[str]] = {}
    overriding: Dict[QualifiedName, Set[str]] = {}
    for raw in callables:
        if raw.self_type is None:
            continue
        if raw.virtualness is Virtualness.PURE_VIRTUAL:
            pure.setdefault(raw.self_type, set()).add(raw.cpp_name)
        else:
            overriding.setdefault(raw.self_type, set()).add(raw.cpp_name)

    outstanding: Dict[QualifiedName, Set[str]] = {}
    for decl in bases_first(types):
        inherited: Set[str] = set()
        for base in decl.bases:
            inherited |= outstanding.get(base.name, set())
        outstanding[decl.name] = (inherited - overriding.get(decl.name, set())) | pure.get(decl.name, set())
    return {name for name, methods in outstanding.items() if methods}


# --------------------------
# Pipeline
# --------------------------

class BindingAnalyzer:
    """
    Runs the whole analysis for one binding unit.
    """

    def __init__(self, config: Optional[BridgeConfig] = None) -> None:
        self.config = config or BridgeConfig()

    def run(self, callables: Sequence[RawCallable], types: Iterable[TypeDecl] = ()) -> AnalysisResult:
        config = self.config
        type_map: Dict[QualifiedName, TypeDecl] = {t.name: t for t in types}
        for raw in callables:
            if raw.self_type is not None and raw.self_type not in type_map:
                type_map[raw.self_type] = TypeDecl(name=raw.self_type, is_generic=raw.self_type.is_generic)

        abstract = find_abstract_types(callables, type_map)
        subclass_types = [s.cpp_name for s in config.subclasses]

        converter = TypeConverter(config, type_map.values())
        for sub in config.subclasses:
            converter.register_subclass_holder(sub.holder, sub.subclass)
            converter.register_type(TypeDecl(name=sub.cpp_name, bases=(BaseClassRef(sub.superclass),)))

        analyzer = FnAnalyzer(config, converter, extra_allowed=subclass_types, abstract_types=abstract)
        result = AnalysisResult(config=config, types=type_map, abstract_types=abstract)

        def feed(raw: RawCallable, predetermined_name: Optional[str] = None) -> FnAnalysis:
            analysis, key = analyzer.classify(raw, predetermined_name=predetermined_name)
            result.add(key, analysis)
            return analysis

        # ---- Sweep 1 ----
        for raw in callables:
            feed(raw)
        logger.info("Classified %d callables", len(callables))

        # ---- Sweep 2a ----
        eligible = {
            name
            for name, decl in type_map.items()
            if analyzer.is_allowlisted_type(name) and not decl.is_generic and not decl.is_forward_declaration
        }
        implicit = ImplicitMemberSynthesizer(type_map, eligible=eligible).synthesize(result.records())
        for name in subclass_types:
            implicit.extend(implicit_member_callables(name, ImplicitConstructorsNeeded(destructor=True)))
        casts = create_casts([type_map[n] for n in type_map if n in eligible], analyzer.is_allowlisted_type)
        storage_types = [
            name
            for name in eligible
            if name not in abstract and not config.is_pod(name) and not type_map[name].is_pod
        ]
        storage_types.sort()
        hooks = create_allocs_and_frees(storage_types + subclass_types)
        for raw in implicit + casts + hooks:
            feed(raw)
        logger.info(
            "Synthesized %d implicit members, %d casts and %d storage hooks", len(implicit), len(casts), len(hooks)
        )

        result.public_constructors = compute_public_constructors(result.records())

        # ---- Sweep 2b ----
        work = SubclassSynthesizer(analyzer).synthesize(result.records(), config.subclasses)
        result.subclasses = work
        for raw in work.callables:
            feed(raw)
        requests = make_unique_requests(result.records(), result.public_constructors, always=set(subclass_types))
        for raw, name in requests:
            feed(raw, name)
        logger.info(
            "Synthesized %d subclass callables and %d heap-owned instance helpers", len(work.callables), len(requests)
        )

        stats = result.stats()
        logger.info("Analysis complete: %d records, %d ignored", stats["analyzed"], stats["ignored"])
        return result


__all__ = ["AnalysisResult", "BindingAnalyzer", "find_abstract_types"]
