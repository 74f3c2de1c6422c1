"""
Shared builders for the test suite.

Raw callables are built the way a front end would report them: methods carry an
explicit `this` pointer parameter, static methods carry only `self_type`.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

import pytest

from cpp_bridge_generator.analysis.classifier import FnAnalyzer
from cpp_bridge_generator.analysis.pipeline import AnalysisResult, BindingAnalyzer
from cpp_bridge_generator.config import BridgeConfig, UnsafePolicy
from cpp_bridge_generator.models import (
    BaseClassRef,
    CppType,
    GenerationContext,
    Parameter,
    QualifiedName,
    RawCallable,
    SpecialMemberKind,
    TypeDecl,
    Virtualness,
    Visibility,
)
from cpp_bridge_generator.type_mapping import TypeConverter

BOB = QualifiedName(("ns",), "Bob")


def qn(text: str) -> QualifiedName:
    return QualifiedName.parse(text)


def param(name: str, spelling: str) -> Parameter:
    return Parameter(name, CppType.from_spelling(spelling))


def this_param(owner: QualifiedName, const: bool = False) -> Parameter:
    prefix = "const " if const else ""
    return param("this", f"{prefix}{owner.to_cpp_name()}*")


def function(
    ident: str,
    params: Sequence[Tuple[str, str]] = (),
    ret: Optional[str] = None,
    namespace: Tuple[str, ...] = ("ns",),
    **kwargs,
) -> RawCallable:
    return RawCallable(
        ident=ident,
        namespace=namespace,
        params=tuple(param(n, t) for n, t in params),
        return_type=CppType.from_spelling(ret) if ret else None,
        **kwargs,
    )


def method(
    owner: QualifiedName,
    ident: str,
    params: Sequence[Tuple[str, str]] = (),
    ret: Optional[str] = None,
    const: bool = False,
    static: bool = False,
    **kwargs,
) -> RawCallable:
    receiver = () if static else (this_param(owner, const),)
    return RawCallable(
        ident=ident,
        namespace=owner.namespace,
        params=receiver + tuple(param(n, t) for n, t in params),
        return_type=CppType.from_spelling(ret) if ret else None,
        self_type=owner,
        **kwargs,
    )


def constructor(owner: QualifiedName, params: Sequence[Tuple[str, str]] = (), **kwargs) -> RawCallable:
    return method(owner, owner.final_item, params, **kwargs)


def copy_constructor(owner: QualifiedName, other: Optional[str] = None, **kwargs) -> RawCallable:
    spelling = other or f"const {owner.to_cpp_name()}&"
    return constructor(owner, [("other", spelling)], special_member=SpecialMemberKind.COPY_CONSTRUCTOR, **kwargs)


def destructor(owner: QualifiedName, **kwargs) -> RawCallable:
    return method(owner, f"~{owner.final_item}", special_member=SpecialMemberKind.DESTRUCTOR, **kwargs)


def virtual(
    owner: QualifiedName,
    ident: str,
    params: Sequence[Tuple[str, str]] = (),
    pure: bool = False,
    **kwargs,
) -> RawCallable:
    virtualness = Virtualness.PURE_VIRTUAL if pure else Virtualness.VIRTUAL
    return method(owner, ident, params, virtualness=virtualness, **kwargs)


def type_decl(name: QualifiedName, bases: Iterable[QualifiedName] = (), **kwargs) -> TypeDecl:
    return TypeDecl(name=name, bases=tuple(BaseClassRef(b) for b in bases), **kwargs)


def make_analyzer(types: Iterable[TypeDecl] = (), config: Optional[BridgeConfig] = None) -> FnAnalyzer:
    config = config or BridgeConfig(unsafe_policy=UnsafePolicy.ALL_FUNCTIONS_SAFE)
    return FnAnalyzer(config, TypeConverter(config, types))


def analyze(
    callables: Sequence[RawCallable],
    types: Iterable[TypeDecl] = (),
    config: Optional[BridgeConfig] = None,
) -> AnalysisResult:
    return BindingAnalyzer(config or BridgeConfig()).run(list(callables), list(types))


def records_named(result: AnalysisResult, ident: str):
    return [fa for fa in result.records() if fa.raw.ident == ident]


@pytest.fixture
def bob_callables():
    """
    A small, typical class: a constructor, a const getter, a setter taking a string
    and a free factory returning by value.
    """
    return [
        constructor(BOB, [("value", "uint32_t")]),
        method(BOB, "get", ret="uint32_t", const=True),
        method(BOB, "set_name", [("name", "std::string")]),
        function("make_bob", ret="ns::Bob"),
    ]


@pytest.fixture
def gen_ctx(tmp_path) -> GenerationContext:
    return GenerationContext(output_dir=tmp_path / "out")
