#!/usr/bin/env python3
"""
Safe-boundary emitter.

Builds the boundary module description from an analysis run and renders it as a cxx
bridge (`bridge.rs`):

- the native-declared list (`unsafe extern "C++"`): one entry per accepted, externally
  callable record, plus the opaque types those entries mention
- the safe-declared list (`extern "Rust"`): the entries the generated subclass
  overrides call into, and their holder types
- safe-side wrappers: free functions, inherent `impl` blocks and trait impls, each
  performing the safe half of the conversions recorded in the analysis
- capability traits for subclassable types
- a documented placeholder for every ignored record

Types are written unqualified inside the bridge; namespaces travel as attributes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..analysis.fn_analysis import (
    ArgumentAnalysis,
    ClassificationTag,
    FnAnalysis,
    MethodClassification,
    MethodKindTag,
    ReceiverMutability,
    RenameStrategyKind,
    TraitMethodClassification,
    TraitMethodKind,
)
from ..analysis.pipeline import AnalysisResult
from ..analysis.subclass import CapabilityTraits, SubclassMethodEntry, TraitSignature
from ..errors import IgnoreReason
from ..models import GenerationContext, QualifiedName, UnsafetyNeeded
from ..utils import TemplateRenderer, write_text
from .cpp_emitter import RECEIVER_ARG_NAME

logger = logging.getLogger(__name__)

BRIDGE_MOD = "cxxbridge"

_QUALIFIED = re.compile(r"(?<![:\w])(?:[A-Za-z_]\w*::)+([A-Za-z_]\w*)")
_NOT_IDENT = re.compile(r"\W")


def unqualify(type_text: str) -> str:
    """
    `UniquePtr<ns::Bob>` -> `UniquePtr<Bob>`. Paths starting with `::` are left alone.
    """
    return _QUALIFIED.sub(r"\1", type_text)


# --------------------------
# Configuration
# --------------------------

@dataclass(frozen=True)
class EmitterConfig:
    template: str = "bridge.rs.j2"
    output_name: str = "bridge.rs"


# --------------------------
# Module description
# --------------------------

@dataclass
class BridgeFn:
    """
    One declaration in a boundary list.
    """
    name: str
    params: List[Tuple[str, str]]
    ret: Optional[str] = None
    is_unsafe: bool = False
    attrs: List[str] = field(default_factory=list)
    doc: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "params": [list(p) for p in self.params],
            "ret": self.ret,
            "is_unsafe": self.is_unsafe,
            "attrs": list(self.attrs),
            "doc": self.doc,
        }


@dataclass
class SafeFn:
    """
    A safe-side function with a body: `signature` is everything before the brace.
    """
    signature: str
    body: List[str]
    doc: Optional[str] = None


@dataclass
class ImplBlock:
    header: str
    items: List[SafeFn] = field(default_factory=list)


@dataclass
class TraitDef:
    header: str
    methods: List[SafeFn] = field(default_factory=list)
    declarations: List[str] = field(default_factory=list)


@dataclass
class Placeholder:
    name: str
    reason: str


@dataclass
class CppTypeDecl:
    name: str
    namespace: Optional[str] = None


@dataclass
class BridgeModule:
    include: str
    cpp_types: List[CppTypeDecl] = field(default_factory=list)
    native_declared: List[BridgeFn] = field(default_factory=list)
    holders: List[str] = field(default_factory=list)
    safe_declared: List[BridgeFn] = field(default_factory=list)
    uses: List[str] = field(default_factory=list)
    functions: List[SafeFn] = field(default_factory=list)
    impls: List[ImplBlock] = field(default_factory=list)
    traits: List[TraitDef] = field(default_factory=list)
    entries: List[SafeFn] = field(default_factory=list)
    placeholders: List[Placeholder] = field(default_factory=list)

    def to_context(self) -> Dict:
        return {
            "bridge_mod": BRIDGE_MOD,
            "include": self.include,
            "cpp_types": self.cpp_types,
            "native_declared": self.native_declared,
            "holders": self.holders,
            "safe_declared": self.safe_declared,
            "uses": self.uses,
            "functions": self.functions,
            "impls": self.impls,
            "traits": self.traits,
            "entries": self.entries,
            "placeholders": self.placeholders,
        }


# --------------------------
# Helpers
# --------------------------

@dataclass
class _Arg:
    """
    One parameter of a safe-side wrapper: its declaration (None when hidden) and the
    expression fed to the boundary call.
    """
    declaration: Optional[str]
    expr: str
    pre_lines: Tuple[str, ...] = ()
    needs_unsafe: bool = False


def _receiver_declaration(pd: ArgumentAnalysis) -> str:
    if pd.receiver_mutability is ReceiverMutability.MUTABLE:
        return "self: Pin<&mut Self>"
    return "&self"


def _safe_ret(text: Optional[str]) -> str:
    return f" -> {unqualify(text)}" if text else ""


def _wrap_body(lines: List[str], unsafe_block: bool) -> List[str]:
    if not unsafe_block:
        return lines
    return ["unsafe {"] + [f"    {line}" for line in lines] + ["}"]


def _is_constructor(fa: FnAnalysis) -> bool:
    return isinstance(fa.kind, MethodClassification) and fa.kind.kind.tag is MethodKindTag.CONSTRUCTOR


def _method_tag(fa: FnAnalysis) -> Optional[MethodKindTag]:
    return fa.kind.kind.tag if isinstance(fa.kind, MethodClassification) else None


def _identifier(text: str) -> str:
    out = _NOT_IDENT.sub("_", text)
    return out if not out[:1].isdigit() else f"_{out}"


# --------------------------
# Emitter
# --------------------------

class BridgeEmitter:
    """
    Emit the safe-side boundary module.

    Usage:
        emitter = BridgeEmitter(ctx, renderer)
        module = emitter.build_module(result)
        text = emitter.render(module)
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

    def build_module(self, result: AnalysisResult) -> BridgeModule:
        header_name = self.ctx.header_name if self.ctx is not None else "bridge_wrappers.h"
        module = BridgeModule(include=header_name)
        impls: Dict[str, ImplBlock] = {}
        type_names: Dict[QualifiedName, None] = {}

        def impl_for(header: str) -> ImplBlock:
            if header not in impls:
                impls[header] = ImplBlock(header)
            return impls[header]

        for fa in result.records():
            if fa.is_ignored:
                continue
            if not fa.externally_callable:
                logger.debug("Not exposing %s: not externally callable", fa.raw.display_name)
                continue
            for dep in sorted(fa.deps):
                type_names.setdefault(dep, None)
            if fa.owner is not None:
                type_names.setdefault(fa.owner, None)
            module.native_declared.append(self.native_declaration(fa))
            self._expose(fa, module, impl_for)

        for name in type_names:
            if name.is_generic:
                continue
            ns = "::".join(name.namespace) or None
            module.cpp_types.append(CppTypeDecl(name.final_item, ns))

        self._subclasses(result, module, impl_for)
        module.impls = list(impls.values())
        module.placeholders = self._placeholders(result)
        logger.debug(
            "Boundary module: %d native-declared, %d safe-declared, %d placeholders",
            len(module.native_declared),
            len(module.safe_declared),
            len(module.placeholders),
        )
        return module

    def render(self, module: BridgeModule) -> str:
        renderer = self.renderer or TemplateRenderer()
        return renderer.render(self.config.template, module.to_context())

    def emit(self, result: AnalysisResult) -> str:
        module = self.build_module(result)
        try:
            text = self.render(module)
        except Exception:
            logger.exception("Failed to render the boundary module")
            raise
        if self.ctx is not None:
            write_text(Path(self.ctx.output_dir) / self.config.output_name, text, dry_run=self.ctx.dry_run)
        logger.info(
            "Safe side: %d boundary functions, %d placeholders", len(module.native_declared), len(module.placeholders)
        )
        return text

    # ---- Native-declared entries ----

    @staticmethod
    def native_declaration(fa: FnAnalysis) -> BridgeFn:
        has_wrapper = fa.cpp_wrapper is not None
        params: List[Tuple[str, str]] = []
        for pd in fa.param_details:
            if pd.is_receiver:
                name = RECEIVER_ARG_NAME if has_wrapper else "self"
            else:
                name = pd.name
            params.append((name, unqualify(pd.conversion.bridge_safe_type())))
        ret = None
        if fa.ret_conversion is not None and fa.ret_conversion.populate_return_value():
            ret = unqualify(fa.ret_conversion.bridge_return_safe_type())
        attrs: List[str] = []
        if not has_wrapper:
            if fa.namespace:
                attrs.append(f'#[namespace = "{"::".join(fa.namespace)}"]')
            if fa.bridge_name != fa.raw.cpp_name:
                attrs.append(f'#[cxx_name = "{fa.raw.cpp_name}"]')
        return BridgeFn(
            name=fa.bridge_name,
            params=params,
            ret=ret,
            is_unsafe=fa.requires_unsafe is not UnsafetyNeeded.NONE
            or any(pd.conversion.unsafety() is not UnsafetyNeeded.NONE for pd in fa.param_details),
            attrs=attrs,
            doc=fa.raw.display_name,
        )

    # ---- Safe-side exposure ----

    def _expose(self, fa: FnAnalysis, module: BridgeModule, impl_for) -> None:
        tag = fa.kind.tag
        if tag is ClassificationTag.TRAIT_METHOD:
            self._trait_impl(fa, impl_for)
            return
        if tag is ClassificationTag.FUNCTION:
            if fa.rust_wrapper_needed:
                module.functions.append(self._wrapper_fn(fa, fa.rust_name, visibility="pub "))
            elif fa.rename_strategy.kind is RenameStrategyKind.ALIAS:
                module.uses.append(f"{fa.bridge_name} as {fa.rename_strategy.alias}")
            else:
                module.uses.append(fa.bridge_name)
            return
        if tag is ClassificationTag.METHOD:
            if fa.rust_wrapper_needed:
                owner = fa.owner.final_item
                impl_for(f"impl {owner}").items.append(self._wrapper_fn(fa, fa.rust_name, visibility="pub "))
            return
        raise ValueError(f"Unhandled classification {tag}")

    def _args(self, fa: FnAnalysis, avoid_self: bool) -> Tuple[List[_Arg], Optional[str]]:
        """
        Per boundary parameter, the wrapper's view of it. Also returns the variable the
        `New` closure binds, if the wrapper returns an initializer.
        """
        args: List[_Arg] = []
        closure_var: Optional[str] = None
        is_destructor = isinstance(fa.kind, TraitMethodClassification) and fa.kind.kind is TraitMethodKind.DESTRUCTOR
        for index, pd in enumerate(fa.param_details):
            conv = pd.conversion
            if pd.is_placement_return_destination or (index == 0 and _is_constructor(fa)):
                snippet = conv.safe_conversion_snippet(pd.name)
                closure_var = pd.name
                args.append(_Arg(None, snippet.expr, snippet.pre_lines, True))
            elif pd.is_receiver and not avoid_self:
                args.append(_Arg(_receiver_declaration(pd), "self"))
            elif index == 0 and is_destructor:
                snippet = conv.safe_conversion_snippet("self")
                args.append(_Arg("&mut self", snippet.expr, snippet.pre_lines, True))
            else:
                snippet = conv.safe_conversion_snippet(pd.name)
                declaration = f"{pd.name}: {unqualify(conv.wrapper_safe_type())}"
                args.append(_Arg(declaration, snippet.expr, snippet.pre_lines, snippet.needs_unsafe))
        return args, closure_var

    def _body(self, fa: FnAnalysis, args: Sequence[_Arg], closure_var: Optional[str], fn_is_unsafe: bool) -> List[str]:
        pre: List[str] = []
        for a in args:
            pre.extend(a.pre_lines)
        call = f"{BRIDGE_MOD}::{fa.bridge_name}({', '.join(a.expr for a in args)})"
        if closure_var is not None:
            lines = [f"New::by_raw(move |{closure_var}| {{"] + [f"    {line}" for line in pre + [call]] + ["})"]
        else:
            lines = pre + [call]
        needs_unsafe = (
            fa.requires_unsafe is not UnsafetyNeeded.NONE or closure_var is not None or any(a.needs_unsafe for a in args)
        )
        return _wrap_body(lines, needs_unsafe and not fn_is_unsafe)

    def _wrapper_fn(self, fa: FnAnalysis, name: str, visibility: str) -> SafeFn:
        avoid_self = _method_tag(fa) in (MethodKindTag.CONSTRUCTOR, MethodKindTag.MAKE_VALUE)
        args, closure_var = self._args(fa, avoid_self)
        is_unsafe = fa.requires_unsafe is UnsafetyNeeded.ALWAYS
        params = ", ".join(a.declaration for a in args if a.declaration is not None)
        if _is_constructor(fa):
            ret = " -> impl New<Output = Self>"
        elif fa.ret_conversion is not None and not fa.ret_conversion.populate_return_value():
            ret = f" -> {unqualify(fa.ret_conversion.wrapper_safe_type())}"
        elif fa.ret_conversion is not None:
            ret = _safe_ret(fa.ret_conversion.bridge_return_safe_type())
        else:
            ret = ""
        unsafe = "unsafe " if is_unsafe else ""
        return SafeFn(
            signature=f"{visibility}{unsafe}fn {name}({params}){ret}",
            body=self._body(fa, args, closure_var, is_unsafe),
            doc=fa.raw.display_name,
        )

    def _trait_impl(self, fa: FnAnalysis, impl_for) -> None:
        kind: TraitMethodClassification = fa.kind
        details = kind.details
        args, closure_var = self._args(fa, details.avoid_self)
        order = details.parameter_reordering or tuple(range(len(args)))
        declared = [args[i].declaration for i in order if i < len(args) and args[i].declaration is not None]
        ret = ""
        if fa.ret_conversion is not None:
            ret = _safe_ret(fa.ret_conversion.bridge_return_safe_type())
        fn_unsafe = details.trait_call_is_unsafe
        unsafe = "unsafe " if fn_unsafe else ""
        owner = kind.owner.final_item
        block = impl_for(f"{unsafe}impl {unqualify(details.trait)} for {owner}")
        block.items.append(
            SafeFn(
                signature=f"{unsafe}fn {details.method_name}({', '.join(declared)}){ret}",
                body=self._body(fa, args, closure_var, fn_unsafe),
                doc=fa.raw.display_name,
            )
        )

    # ---- Subclasses ----

    def _subclasses(self, result: AnalysisResult, module: BridgeModule, impl_for) -> None:
        work = result.subclasses
        for cls in work.classes:
            module.holders.append(cls.decl.holder)
        for entry in work.entries:
            module.safe_declared.append(self.safe_declaration(entry))
            module.entries.append(self._entry_body(entry))
        for traits in work.traits.values():
            module.traits.extend(self._capability_traits(traits))
        for cls in work.classes:
            traits = work.traits.get(cls.decl.superclass)
            if traits is None or not traits.supers:
                continue
            block = impl_for(f"impl {traits.supers_trait} for {cls.decl.subclass}")
            for entry in work.entries:
                if entry.subclass != cls.decl.subclass or entry.super_fn is None:
                    continue
                item = self._supers_item(result, entry, traits)
                if item is not None:
                    block.items.append(item)

    @staticmethod
    def safe_declaration(entry: SubclassMethodEntry) -> BridgeFn:
        me = "&" if entry.mutability is ReceiverMutability.CONST else "&mut "
        params = [("me", f"{me}{entry.holder}")]
        params.extend((p.name, unqualify(p.conversion.bridge_safe_type())) for p in entry.params)
        ret = unqualify(entry.ret_conversion.bridge_safe_type()) if entry.ret_conversion else None
        return BridgeFn(name=entry.entry_name, params=params, ret=ret, doc=f"{entry.superclass}::{entry.method_name}")

    @staticmethod
    def _entry_body(entry: SubclassMethodEntry) -> SafeFn:
        decl = BridgeEmitter.safe_declaration(entry)
        borrow = "borrow" if entry.mutability is ReceiverMutability.CONST else "borrow_mut"
        names = ", ".join(p.name for p in entry.params)
        return SafeFn(
            signature=f"fn {decl.name}({', '.join(f'{n}: {t}' for n, t in decl.params)}){_safe_ret(decl.ret)}",
            body=[f"me.0.{borrow}().{entry.method_name}({names})"],
        )

    @staticmethod
    def _trait_fn(sig: TraitSignature) -> str:
        receiver = "&self" if sig.mutability is ReceiverMutability.CONST else "&mut self"
        params = ", ".join([receiver] + [f"{n}: {unqualify(t)}" for n, t in sig.params])
        return f"fn {sig.name}({params}){_safe_ret(sig.ret)}"

    def _capability_traits(self, traits: CapabilityTraits) -> List[TraitDef]:
        supers = TraitDef(f"pub trait {traits.supers_trait}")
        supers.declarations = [f"{self._trait_fn(sig)};" for sig in traits.supers]
        methods = TraitDef(f"pub trait {traits.methods_trait}: {traits.supers_trait}")
        for sig in traits.methods:
            if sig.default_call is None:
                methods.declarations.append(f"{self._trait_fn(sig)};")
            else:
                call = f"self.{sig.default_call}({', '.join(n for n, _ in sig.params)})"
                methods.methods.append(SafeFn(self._trait_fn(sig), [call]))
        return [supers, methods]

    def _supers_item(self, result: AnalysisResult, entry: SubclassMethodEntry, traits: CapabilityTraits) -> Optional[SafeFn]:
        sub = next(c.decl for c in result.subclasses.classes if c.decl.subclass == entry.subclass)
        trampoline = result.find(sub.cpp_name, entry.super_fn)
        if trampoline is None or trampoline.is_ignored:
            logger.warning("No usable trampoline %s; %s cannot call its superclass", entry.super_fn, entry.subclass)
            return None
        sig = next(s for s in traits.supers if s.name == f"{entry.method_name}_super")
        pre: List[str] = []
        exprs: List[str] = []
        others = [pd for pd in trampoline.param_details if not pd.is_receiver]
        for pd, (name, trait_type) in zip(others, sig.params):
            bridge_type = unqualify(pd.conversion.bridge_safe_type())
            if trait_type.startswith("UniquePtr<") and bridge_type.startswith("*mut "):
                pre.append(f"let mut {name} = {name};")
                exprs.append(f"{name}.pin_mut().get_unchecked_mut() as *mut _")
            else:
                exprs.append(name)
        peer = "self.peer()" if entry.mutability is ReceiverMutability.CONST else "self.peer_mut()"
        call = f"{BRIDGE_MOD}::{trampoline.bridge_name}({', '.join([peer] + exprs)})"
        unsafe_needed = trampoline.requires_unsafe is not UnsafetyNeeded.NONE or bool(pre)
        return SafeFn(self._trait_fn(sig), pre + _wrap_body([call], unsafe_needed))

    # ---- Placeholders ----

    @staticmethod
    def _placeholders(result: AnalysisResult) -> List[Placeholder]:
        out: List[Placeholder] = []
        seen: Set[str] = set()
        for fa in result.ignored():
            # Items outside the allowlist were never asked for; they get no placeholder.
            if fa.ignore_reason.reason is IgnoreReason.NOT_ALLOWLISTED:
                continue
            base = fa.rust_name if fa.owner is None else f"{fa.owner.final_item}_{fa.rust_name}"
            name = _identifier(base)
            candidate, n = name, 1
            while candidate in seen:
                candidate = f"{name}{n}"
                n += 1
            seen.add(candidate)
            reason = fa.ignore_reason.describe().replace("\\", "\\\\").replace('"', '\\"')
            out.append(Placeholder(candidate, reason))
        return out


__all__ = [
    "BRIDGE_MOD",
    "BridgeEmitter",
    "BridgeFn",
    "BridgeModule",
    "CppTypeDecl",
    "EmitterConfig",
    "ImplBlock",
    "Placeholder",
    "SafeFn",
    "TraitDef",
    "unqualify",
]
