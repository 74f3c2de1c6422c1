#!/usr/bin/env python3
"""
Native wrapper emitter.

`CppWrapperEmitter.render` turns one `CppFunction` into native source text: a
declaration and (for everything but trivially inlined members) a definition, plus the
headers the body needs. `emit` collects every wrapper of an analysis run and writes:

- bridge_wrappers.h   (includes, helper prelude, generated subclass classes, declarations)
- bridge_wrappers.cc  (definitions)

Argument naming: the receiver of a method call is `bridge_gen_this`, a placement-return
destination is `placement_return_type`, and everything else is `arg{index}`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Sequence, Set

from ..analysis.classifier import PLACEMENT_PARAM_NAME
from ..analysis.conversion import CallDirection, ConversionPolicy
from ..analysis.fn_analysis import CppFunction, ReceiverMutability
from ..analysis.pipeline import AnalysisResult
from ..analysis.subclass import SubclassClass, SubclassMethodEntry
from ..errors import InvariantViolation
from ..models import CppBodyShape, CppFunctionKind, GenerationContext
from ..utils import TemplateRenderer, dedupe, write_text

logger = logging.getLogger(__name__)

RECEIVER_ARG_NAME = "bridge_gen_this"
OBS_FIELD = "obs"
NEW_DELETE_PRELUDE_GUARD = "BRIDGE_NEW_AND_DELETE_PRELUDE"


# --------------------------
# Configuration
# --------------------------

@dataclass(frozen=True)
class EmitterConfig:
    """
    Template and output file names for the native side.
    """
    header_template: str = "bridge_wrappers.h.j2"
    source_template: str = "bridge_wrappers.cc.j2"
    header_name: str = "bridge_wrappers.h"
    source_name: str = "bridge_wrappers.cc"


@dataclass(frozen=True)
class CppSnippet:
    """
    Rendered text of one wrapper.

    - declaration: goes in the header, or inside the generated class for qualified members
    - definition: goes in the source file
    - headers: `#include` targets the body relies on
    - needs_new_delete_prelude: the body calls `new_appropriately`/`delete_appropriately`
    """
    declaration: str
    definition: Optional[str]
    headers: FrozenSet[str] = frozenset()
    needs_new_delete_prelude: bool = False


@dataclass
class NativeUnit:
    """
    Everything the header and source templates need.
    """
    includes: List[str] = field(default_factory=list)
    needs_new_delete_prelude: bool = False
    holders: List[str] = field(default_factory=list)
    entry_declarations: List[str] = field(default_factory=list)
    classes: List[Dict] = field(default_factory=list)
    declarations: List[str] = field(default_factory=list)
    definitions: List[str] = field(default_factory=list)

    def to_context(self, header_name: str) -> Dict:
        return {
            "header_name": header_name,
            "includes": self.includes,
            "needs_new_delete_prelude": self.needs_new_delete_prelude,
            "prelude_guard": NEW_DELETE_PRELUDE_GUARD,
            "holders": self.holders,
            "entry_declarations": self.entry_declarations,
            "classes": self.classes,
            "declarations": self.declarations,
            "definitions": self.definitions,
        }


# --------------------------
# Single-wrapper rendering
# --------------------------

def _argument_names(fn: CppFunction) -> List[str]:
    names: List[str] = []
    for index, policy in enumerate(fn.argument_conversion):
        if index == 0 and fn.has_receiver:
            names.append(RECEIVER_ARG_NAME)
        elif policy.is_placement_parameter():
            names.append(PLACEMENT_PARAM_NAME)
        else:
            names.append(f"arg{index}")
    return names


def _receiver_declaration(policy: ConversionPolicy) -> str:
    const = "const " if policy.cpp_type.is_const else ""
    return f"{const}{policy.value_cpp}& {RECEIVER_ARG_NAME}"


class CppWrapperEmitter:
    """
    Emit native wrappers from analysis results.

    Usage:
        emitter = CppWrapperEmitter(ctx, renderer)
        snippet = emitter.render(fa.cpp_wrapper)
        emitter.emit(result)
    """

    def __init__(
        self,
        ctx: Optional[GenerationContext] = None,
        renderer: Optional[TemplateRenderer] = None,
        config: Optional[EmitterConfig] = None,
    ) -> None:
        self.ctx = ctx
        self.renderer = renderer
        self.config = config or EmitterConfig()

    # ---- Public API ----

    def render(self, fn: CppFunction, direction: CallDirection = CallDirection.SAFE_CALLS_NATIVE) -> CppSnippet:
        """
        Render one wrapper. NATIVE_CALLS_SAFE is for the overrides of generated subclass
        classes, which call into the safe side and convert in the opposite direction.
        """
        if fn.pass_obs_field and direction is not CallDirection.NATIVE_CALLS_SAFE:
            raise InvariantViolation(f"{fn.wrapper_name} forwards to the safe side but was rendered as {direction.name}")
        shape = fn.body.shape
        names = _argument_names(fn)
        headers: Set[str] = set()

        declared: List[str] = []
        passed: List[str] = []
        for name, policy in zip(names, fn.argument_conversion):
            if name == RECEIVER_ARG_NAME:
                declared.append(_receiver_declaration(policy))
                continue
            if direction is CallDirection.NATIVE_CALLS_SAFE:
                declared.append(f"{policy.cpp_type.spelling} {name}")
            else:
                declared.append(f"{policy.unconverted_cpp_type()} {name}")
            expr = policy.cpp_conversion_expr(name)
            if expr is not None:
                passed.append(expr)
            headers |= _headers_for(policy)
        if fn.pass_obs_field:
            passed.insert(0, f"*{OBS_FIELD}")

        ret = fn.return_conversion
        placement = ret is not None and not ret.populate_return_value()
        if ret is None or placement:
            ret_type = "void"
        elif direction is CallDirection.NATIVE_CALLS_SAFE:
            ret_type = ret.cpp_type.spelling
        else:
            ret_type = ret.converted_cpp_type()
        if ret is not None:
            headers |= _headers_for(ret)

        params = ", ".join(declared)
        if shape is CppBodyShape.CONSTRUCT_SUPERCLASS:
            return self._render_subclass_constructor(fn, params, passed, headers)

        body = self._body(fn, names, passed, placement)
        if placement or shape in (CppBodyShape.PLACEMENT_NEW, CppBodyShape.DESTRUCTOR):
            headers.add("<new>")
        needs_prelude = shape in (CppBodyShape.ALLOCATE, CppBodyShape.DEALLOCATE)
        if needs_prelude:
            headers.add("<cstddef>")

        suffix = " const" if fn.kind is CppFunctionKind.CONST_METHOD and fn.qualification is not None else ""
        if fn.qualification is not None:
            cls = fn.qualification.to_cpp_name()
            override = " override" if fn.pass_obs_field else ""
            declaration = f"{ret_type} {fn.wrapper_name}({params}){suffix}{override};"
            definition = f"{ret_type} {cls}::{fn.wrapper_name}({params}){suffix} {{\n  {body}\n}}"
        else:
            declaration = f"{ret_type} {fn.wrapper_name}({params});"
            definition = f"{ret_type} {fn.wrapper_name}({params}) {{\n  {body}\n}}"
        return CppSnippet(declaration, definition, frozenset(headers), needs_prelude)

    def emit(self, result: AnalysisResult) -> Dict[str, str]:
        """
        Render and write the header and source file. Returns {file name: content}.
        """
        if self.ctx is None or self.renderer is None:
            raise InvariantViolation("CppWrapperEmitter.emit needs a generation context and a renderer")
        unit = self.build_unit(result)
        context = unit.to_context(self.ctx.header_name)
        try:
            header = self.renderer.render(self.config.header_template, context)
            source = self.renderer.render(self.config.source_template, context)
        except Exception:
            logger.exception("Failed to render native wrapper templates")
            raise

        outputs = {self.ctx.header_name: header, self.config.source_name: source}
        for name, content in outputs.items():
            write_text(Path(self.ctx.output_dir) / name, content, dry_run=self.ctx.dry_run)
        logger.info(
            "Native side: %d wrappers, %d generated classes", len(unit.declarations), len(unit.classes)
        )
        return outputs

    def build_unit(self, result: AnalysisResult) -> NativeUnit:
        """
        Collect every snippet of an analysis run, in arena order.
        """
        unit = NativeUnit()
        headers: List[str] = list(self.ctx.extra_includes) if self.ctx else []
        headers.append('"rust/cxx.h"')

        def add(snippet: CppSnippet) -> None:
            headers.extend(sorted(snippet.headers))
            unit.needs_new_delete_prelude |= snippet.needs_new_delete_prelude

        for cls in result.subclasses.classes:
            unit.classes.append(self._class_context(cls, add))
            unit.holders.append(cls.decl.holder)
        for entry in result.subclasses.entries:
            unit.entry_declarations.append(render_entry_declaration(entry))

        for fa in result.accepted():
            if fa.cpp_wrapper is None:
                continue
            snippet = self.render(fa.cpp_wrapper)
            add(snippet)
            unit.declarations.append(snippet.declaration)
            if snippet.definition:
                unit.definitions.append(snippet.definition)

        unit.includes = dedupe(headers)
        return unit

    # ---- Internals ----

    @staticmethod
    def _body(fn: CppFunction, names: Sequence[str], passed: Sequence[str], placement: bool) -> str:
        body = fn.body
        shape = body.shape
        args = ", ".join(passed)
        ret = fn.return_conversion

        if shape is CppBodyShape.PLACEMENT_NEW:
            return f"new ({names[0]}) {body.qualified_type}({', '.join(passed[1:])});"
        if shape is CppBodyShape.DESTRUCTOR:
            return f"{names[0]}->~{body.type_name}();"
        if shape is CppBodyShape.DEALLOCATE:
            return f"delete_appropriately<{body.qualified_type}>({names[0]});"
        if shape is CppBodyShape.CAST:
            return f"return {RECEIVER_ARG_NAME};"

        if shape is CppBodyShape.FUNCTION_CALL:
            callee = body.function_name
            if body.qualifier:
                callee = f"{body.qualifier}::{callee}"
            if fn.has_receiver:
                call = f"{RECEIVER_ARG_NAME}.{callee}({', '.join(passed)})"
            elif body.qualifier or not body.namespace:
                call = f"{callee}({args})"
            else:
                call = f"{'::'.join(body.namespace)}::{callee}({args})"
        elif shape is CppBodyShape.STATIC_METHOD_CALL:
            call = f"{body.qualified_type}::{body.function_name}({args})"
        elif shape is CppBodyShape.MAKE_UNIQUE:
            call = args
        elif shape is CppBodyShape.ALLOCATE:
            call = f"new_appropriately<{body.qualified_type}>()"
        else:
            raise InvariantViolation(f"Body shape {shape.name} is not a call")

        if ret is None:
            return f"{call};"
        if placement:
            return f"new ({PLACEMENT_PARAM_NAME}) {ret.value_cpp}({call});"
        return f"return {ret.cpp_conversion_expr(call, is_return=True)};"

    @staticmethod
    def _render_subclass_constructor(
        fn: CppFunction, params: str, passed: Sequence[str], headers: Set[str]
    ) -> CppSnippet:
        if fn.qualification is None or not passed:
            raise InvariantViolation(f"Subclass constructor {fn.wrapper_name} needs a class and a holder argument")
        cls = fn.qualification.to_cpp_name()
        superclass = fn.body.qualified_type
        init = f"{superclass}({', '.join(passed[1:])}), {OBS_FIELD}({passed[0]})"
        declaration = f"{fn.wrapper_name}({params});"
        definition = f"{cls}::{fn.wrapper_name}({params}) : {init} {{}}"
        return CppSnippet(declaration, definition, frozenset(headers | {"<utility>"}))

    def _class_context(self, cls: SubclassClass, add) -> Dict:
        declarations: List[str] = []
        definitions: List[str] = []
        for ctor in cls.constructors:
            snippet = self.render(ctor)
            add(snippet)
            declarations.append(snippet.declaration)
            definitions.append(snippet.definition)
        for override in cls.overrides:
            snippet = self.render(override, CallDirection.NATIVE_CALLS_SAFE)
            add(snippet)
            declarations.append(snippet.declaration)
            definitions.append(snippet.definition)
        return {
            "name": cls.decl.cpp_name.to_cpp_name(),
            "superclass": cls.decl.superclass.to_cpp_name(),
            "holder": cls.decl.holder,
            "obs_field": OBS_FIELD,
            "declarations": declarations,
            "definitions": definitions,
        }


def render_entry_declaration(entry: SubclassMethodEntry) -> str:
    """
    Native declaration of a safe-declared subclass entry, as the overrides call it.
    """
    const = "const " if entry.mutability is ReceiverMutability.CONST else ""
    params = [f"{const}{entry.holder}& me"]
    for p in entry.params:
        params.append(f"{p.conversion.converted_cpp_type()} {p.name}")
    ret = entry.ret_conversion.unconverted_cpp_type() if entry.ret_conversion else "void"
    return f"{ret} {entry.entry_name}({', '.join(params)});"


def _headers_for(policy: ConversionPolicy) -> Set[str]:
    out: Set[str] = set()
    text = f"{policy.unconverted_cpp_type()} {policy.converted_cpp_type()}"
    if "std::unique_ptr" in text:
        out.add("<memory>")
    if "std::string" in text:
        out.add("<string>")
    if policy.cpp_work_needed():
        out.add("<utility>")
    return out


__all__ = [
    "CppSnippet",
    "CppWrapperEmitter",
    "EmitterConfig",
    "NativeUnit",
    "OBS_FIELD",
    "RECEIVER_ARG_NAME",
    "render_entry_declaration",
]
