#!/usr/bin/env python3
"""
Clang-based front end.

Traverses C++ headers with libclang and produces the generator's input model:
- one `RawCallable` per free function, method, constructor, destructor and
  assignment operator found in the headers (including deleted and non-public ones,
  which the classifier records as ignored)
- one `TypeDecl` per class or struct, with bases and fields for implicit-member
  bookkeeping; a forward declaration is kept only when no definition is seen

Methods get an explicit `this` parameter (`T*`, or `const T*` for const methods).
Static methods get none. Function and class templates are skipped.

Type spellings come from clang's canonical types, so typedefs are resolved and names
are fully qualified; standard-library inline namespaces and default template
arguments are then folded away.

Requirements:
- the `libclang` distribution (provides `clang.cindex` and a bundled shared library)
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from clang import cindex

from ..models import (
    BaseClassRef,
    CppType,
    FieldDecl,
    Parameter,
    QualifiedName,
    RawCallable,
    SpecialMemberKind,
    TypeDecl,
    Virtualness,
    Visibility,
)

logger = logging.getLogger(__name__)

_CLASS_KINDS = ("CLASS_DECL", "STRUCT_DECL")
_SCOPE_KINDS = ("NAMESPACE", "CLASS_DECL", "STRUCT_DECL", "CLASS_TEMPLATE")
_SYSTEM_DIR_PREFIXES: Tuple[str, ...] = ("/usr/include", "/usr/local/include", "/Library/Developer")

_INLINE_STD = re.compile(r"\bstd::(?:__1|__cxx11|__ndk1)::")
_STD_STRING = re.compile(r"\bstd::basic_string<char(?:, std::char_traits<char>)?(?:, std::allocator<char>)?\s*>")
_DEFAULT_DELETE = re.compile(r"std::unique_ptr<(.+?), std::default_delete<\1\s*>\s*>")
_DEFAULT_ALLOCATOR = re.compile(r"std::vector<(.+?), std::allocator<\1\s*>\s*>")


# --------------------------
# libclang setup
# --------------------------

def parse_translation_unit(header: Path, clang_args: List[str]):
    """
    Parse one header, skipping function bodies and tolerating incomplete code.
    """
    index = cindex.Index.create()
    args = list(clang_args)
    if not any(a.startswith("-x") for a in args):
        args = ["-x", "c++"] + args
    if not any(a.startswith("-W") for a in args):
        args.append("-Wno-everything")
    options = cindex.TranslationUnit.PARSE_SKIP_FUNCTION_BODIES | cindex.TranslationUnit.PARSE_INCOMPLETE
    return index.parse(str(header), args=args, options=options)


# --------------------------
# Helpers
# --------------------------

def _kind(node: Any) -> str:
    return getattr(getattr(node, "kind", None), "name", "")


def _flag(node: Any, method: str) -> bool:
    """
    Call a boolean cursor predicate, treating predicates missing from older libclang
    releases as False.
    """
    fn = getattr(node, method, None)
    return bool(fn()) if callable(fn) else False


def _file_of(node: Any) -> Optional[str]:
    loc = getattr(node, "location", None)
    f = getattr(loc, "file", None) if loc is not None else None
    return str(f.name) if f is not None else None


def _should_consider_location(node: Any, include_filters: Optional[List[str]]) -> bool:
    """
    With filters, accept only declarations in files under one of them. Without,
    reject system headers. Namespaces are always entered.
    """
    if _kind(node) in ("NAMESPACE", "TRANSLATION_UNIT", "LINKAGE_SPEC"):
        return True
    fname = _file_of(node)
    if fname is None:
        return False
    if include_filters:
        resolved = str(Path(fname).resolve())
        return any(resolved.startswith(f) for f in include_filters)
    return not any(fname.startswith(sd) for sd in _SYSTEM_DIR_PREFIXES)


def _collect_namespace(node: Any) -> Tuple[str, ...]:
    ns: List[str] = []
    cur = getattr(node, "semantic_parent", None)
    while cur is not None and _kind(cur) in _SCOPE_KINDS:
        if _kind(cur) == "NAMESPACE" and cur.spelling:
            ns.append(cur.spelling)
        cur = cur.semantic_parent
    ns.reverse()
    return tuple(ns)


def _qualified_name(node: Any) -> QualifiedName:
    """
    Namespaces and enclosing classes all become the path: `ns::Outer::Inner`.
    """
    parts: List[str] = []
    parent = getattr(node, "semantic_parent", None)
    while parent is not None and _kind(parent) in _SCOPE_KINDS:
        if parent.spelling:
            parts.append(parent.spelling)
        parent = parent.semantic_parent
    parts.reverse()
    return QualifiedName(tuple(parts), node.spelling)


def normalize_type_spelling(spelling: str) -> str:
    """
    `std::__1::basic_string<char, std::char_traits<char>, std::allocator<char> >`
    -> `std::string`, and similarly for default deleters and allocators.
    """
    s = _INLINE_STD.sub("std::", spelling)
    s = _STD_STRING.sub("std::string", s)
    s = _DEFAULT_DELETE.sub(r"std::unique_ptr<\1>", s)
    s = _DEFAULT_ALLOCATOR.sub(r"std::vector<\1>", s)
    return s


def _cpp_type(tp: Any) -> CppType:
    canonical = tp.get_canonical() if hasattr(tp, "get_canonical") else tp
    return CppType.from_spelling(normalize_type_spelling(getattr(canonical, "spelling", "") or "void"))


def _visibility(node: Any, default: Visibility) -> Visibility:
    name = getattr(getattr(node, "access_specifier", None), "name", "")
    return {
        "PUBLIC": Visibility.PUBLIC,
        "PROTECTED": Visibility.PROTECTED,
        "PRIVATE": Visibility.PRIVATE,
    }.get(name, default)


def _special_member(node: Any) -> Optional[SpecialMemberKind]:
    kind = _kind(node)
    if kind == "CONSTRUCTOR":
        if _flag(node, "is_copy_constructor"):
            return SpecialMemberKind.COPY_CONSTRUCTOR
        if _flag(node, "is_move_constructor"):
            return SpecialMemberKind.MOVE_CONSTRUCTOR
        if _flag(node, "is_default_constructor"):
            return SpecialMemberKind.DEFAULT_CONSTRUCTOR
        return None
    if kind == "DESTRUCTOR":
        return SpecialMemberKind.DESTRUCTOR
    if kind == "CXX_METHOD" and node.spelling == "operator=":
        return SpecialMemberKind.ASSIGNMENT_OPERATOR
    return None


def _params(node: Any) -> List[Parameter]:
    return [
        Parameter(p.spelling or f"arg{i}", _cpp_type(p.type))
        for i, p in enumerate(node.get_arguments())
    ]


def _is_variadic(node: Any) -> bool:
    tp = getattr(node, "type", None)
    fn = getattr(tp, "is_function_variadic", None)
    return bool(fn()) if callable(fn) else False


def _method(node: Any, owner: QualifiedName, default_access: Visibility) -> RawCallable:
    kind = _kind(node)
    params = _params(node)
    if not _flag(node, "is_static_method"):
        this_type = f"const {owner.to_cpp_name()}*" if _flag(node, "is_const_method") else f"{owner.to_cpp_name()}*"
        params.insert(0, Parameter("this", CppType.from_spelling(this_type)))

    if _flag(node, "is_pure_virtual_method"):
        virtualness = Virtualness.PURE_VIRTUAL
    elif _flag(node, "is_virtual_method"):
        virtualness = Virtualness.VIRTUAL
    else:
        virtualness = Virtualness.NONE

    if kind == "CONSTRUCTOR":
        ident, ret = owner.final_item, None
    elif kind == "DESTRUCTOR":
        ident, ret = f"~{owner.final_item}", None
    else:
        ident, ret = node.spelling, _cpp_type(node.result_type)

    return RawCallable(
        ident=ident,
        namespace=_collect_namespace(node),
        params=tuple(params),
        return_type=ret,
        self_type=owner,
        visibility=_visibility(node, default_access),
        virtualness=virtualness,
        special_member=_special_member(node),
        is_deleted=_flag(node, "is_deleted_method"),
        is_variadic=_is_variadic(node),
    )


def _function(node: Any) -> RawCallable:
    return RawCallable(
        ident=node.spelling,
        namespace=_collect_namespace(node),
        params=tuple(_params(node)),
        return_type=_cpp_type(node.result_type),
        is_variadic=_is_variadic(node),
    )


def _base(node: Any) -> BaseClassRef:
    return BaseClassRef(
        name=QualifiedName.parse(normalize_type_spelling(node.type.get_canonical().spelling)),
        access=_visibility(node, Visibility.PUBLIC),
        is_virtual=_flag(node, "is_virtual_base"),
    )


# --------------------------
# Traversal
# --------------------------

class DeclarationCollector:
    """
    Accumulates callables and types over one or more translation units.
    Classes seen in several headers are merged by qualified name.
    """

    def __init__(self, include_filters: Optional[List[str]] = None) -> None:
        self.include_filters = [str(Path(f).resolve()) for f in include_filters] if include_filters else None
        self.callables: List[RawCallable] = []
        self.types: Dict[QualifiedName, TypeDecl] = {}
        self._seen_methods: set = set()

    def visit(self, node: Any) -> None:
        if not _should_consider_location(node, self.include_filters):
            return
        kind = _kind(node)
        if kind in _CLASS_KINDS:
            self._class(node)
        elif kind == "FUNCTION_DECL":
            self._add(node, _function(node))
        elif kind in ("FUNCTION_TEMPLATE", "CLASS_TEMPLATE", "CLASS_TEMPLATE_PARTIAL_SPECIALIZATION"):
            logger.debug("Skipping template %s", node.spelling or "<unnamed>")
        elif kind in ("TRANSLATION_UNIT", "NAMESPACE", "LINKAGE_SPEC"):
            for child in node.get_children():
                self.visit(child)

    def _add(self, node: Any, raw: RawCallable) -> None:
        key = getattr(node, "get_usr", lambda: "")() or (raw.display_name, tuple(p.cpp_type.spelling for p in raw.params))
        if key in self._seen_methods:
            return
        self._seen_methods.add(key)
        self.callables.append(raw)

    def _class(self, node: Any) -> None:
        if not node.spelling:
            logger.debug("Skipping anonymous class or struct")
            return
        name = _qualified_name(node)
        if not node.is_definition():
            if name not in self.types:
                self.types[name] = TypeDecl(name=name, is_forward_declaration=True)
            return
        existing = self.types.get(name)
        if existing is not None and not existing.is_forward_declaration:
            return

        default_access = Visibility.PRIVATE if _kind(node) == "CLASS_DECL" else Visibility.PUBLIC
        bases: List[BaseClassRef] = []
        fields: List[FieldDecl] = []
        nested: List[Any] = []
        for child in node.get_children():
            ck = _kind(child)
            if ck == "CXX_BASE_SPECIFIER":
                bases.append(_base(child))
            elif ck == "FIELD_DECL":
                fields.append(FieldDecl(child.spelling, _cpp_type(child.type), _visibility(child, default_access)))
            elif ck in ("CXX_METHOD", "CONSTRUCTOR", "DESTRUCTOR"):
                self._add(child, _method(child, name, default_access))
            elif ck in _CLASS_KINDS:
                nested.append(child)
            elif ck == "FUNCTION_TEMPLATE":
                logger.debug("Skipping member template %s::%s", name, child.spelling)

        self.types[name] = TypeDecl(name=name, bases=tuple(bases), fields=tuple(fields))
        logger.debug("Class %s: %d bases, %d fields", name, len(bases), len(fields))
        for child in nested:
            if _visibility(child, default_access) is Visibility.PUBLIC:
                self._class(child)
            else:
                logger.debug("Skipping non-public nested class %s::%s", name, child.spelling)


# --------------------------
# Public API
# --------------------------

def collect_from_headers(
    headers: Iterable[Path],
    clang_args: List[str],
    include_filters: Optional[List[str]] = None,
    emit_diagnostics: bool = True,
) -> Tuple[List[RawCallable], List[TypeDecl]]:
    """
    Parse headers and return the raw callables and type declarations they contain,
    in discovery order.

    Parameters:
    - headers: header files (directories must be expanded by the caller)
    - clang_args: include paths, defines, `-std=...`
    - include_filters: if given, only declarations from files under these prefixes
    - emit_diagnostics: log clang diagnostics as warnings
    """
    collector = DeclarationCollector(include_filters)
    for header in headers:
        tu = parse_translation_unit(Path(header), clang_args)
        if emit_diagnostics:
            for diag in tu.diagnostics:
                logger.warning("[clang] %s", diag)
        collector.visit(tu.cursor)
    logger.info("Discovered %d callables and %d types", len(collector.callables), len(collector.types))
    return collector.callables, list(collector.types.values())


__all__ = [
    "DeclarationCollector",
    "collect_from_headers",
    "normalize_type_spelling",
    "parse_translation_unit",
]
