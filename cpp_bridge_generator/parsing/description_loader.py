#!/usr/bin/env python3
"""
JSON input descriptions.

A description is the front-end-neutral way to feed the generator: the raw callables
and type declarations a header parser would have found, plus the run configuration.

    {
      "config": {"allowlist": ["ns::Bob"], "unsafe_policy": "all-safe"},
      "types": [
        {"name": "ns::Bob", "bases": ["ns::Base"], "fields": [{"name": "a", "type": "int"}]}
      ],
      "functions": [
        {"ident": "get", "namespace": "ns", "self_type": "ns::Bob",
         "params": [{"name": "this", "type": "const ns::Bob*"}], "return_type": "int"}
      ]
    }

Enum-valued keys (`visibility`, `virtualness`, `special_member`) accept the member
names in any case, e.g. `"protected"`, `"pure_virtual"`, `"copy_constructor"`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from ..config import BridgeConfig
from ..errors import DescriptionError
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

E = TypeVar("E", bound=Enum)

_FUNCTION_KEYS = {
    "ident",
    "namespace",
    "params",
    "return_type",
    "self_type",
    "original_name",
    "visibility",
    "virtualness",
    "special_member",
    "deleted",
    "unused_template_param",
    "variadic",
}


@dataclass
class Description:
    callables: List[RawCallable] = field(default_factory=list)
    types: List[TypeDecl] = field(default_factory=list)
    config: BridgeConfig = field(default_factory=BridgeConfig)


# --------------------------
# Helpers
# --------------------------

def _enum(cls: Type[E], value: Any, where: str) -> E:
    try:
        return cls[str(value).upper()]
    except KeyError as e:
        choices = ", ".join(m.name.lower() for m in cls)
        raise DescriptionError(f"{where}: {value!r} is not one of {choices}") from e


def _namespace(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(p for p in value.split("::") if p)
    return tuple(str(p) for p in value)


def _qualified(value: Any, where: str) -> QualifiedName:
    if not isinstance(value, str) or not value.strip():
        raise DescriptionError(f"{where}: expected a qualified name, got {value!r}")
    return QualifiedName.parse(value)


def _param(entry: Any, index: int, where: str) -> Parameter:
    if isinstance(entry, str):
        return Parameter(f"arg{index}", CppType.from_spelling(entry))
    if not isinstance(entry, Mapping) or "type" not in entry:
        raise DescriptionError(f"{where}: parameter {index} needs a 'type'")
    return Parameter(entry.get("name") or f"arg{index}", CppType.from_spelling(entry["type"]))


def _callable(entry: Any, index: int) -> RawCallable:
    where = f"functions[{index}]"
    if not isinstance(entry, Mapping):
        raise DescriptionError(f"{where}: expected an object")
    if "ident" not in entry:
        raise DescriptionError(f"{where}: missing 'ident'")
    unknown = set(entry) - _FUNCTION_KEYS
    if unknown:
        raise DescriptionError(f"{where}: unknown keys {', '.join(sorted(unknown))}")

    where = f"{where} ({entry['ident']})"
    params = tuple(_param(p, i, where) for i, p in enumerate(entry.get("params", [])))
    ret = entry.get("return_type")
    self_type = entry.get("self_type")
    special = entry.get("special_member")
    return RawCallable(
        ident=str(entry["ident"]),
        namespace=_namespace(entry.get("namespace")),
        params=params,
        return_type=CppType.from_spelling(ret) if ret else None,
        self_type=_qualified(self_type, where) if self_type else None,
        original_name=entry.get("original_name"),
        visibility=_enum(Visibility, entry.get("visibility", "public"), where),
        virtualness=_enum(Virtualness, entry.get("virtualness", "none"), where),
        special_member=_enum(SpecialMemberKind, special, where) if special else None,
        is_deleted=bool(entry.get("deleted", False)),
        unused_template_param=bool(entry.get("unused_template_param", False)),
        is_variadic=bool(entry.get("variadic", False)),
    )


def _base(entry: Any, where: str) -> BaseClassRef:
    if isinstance(entry, str):
        return BaseClassRef(_qualified(entry, where))
    if not isinstance(entry, Mapping):
        raise DescriptionError(f"{where}: malformed base {entry!r}")
    return BaseClassRef(
        name=_qualified(entry.get("name"), where),
        access=_enum(Visibility, entry.get("access", "public"), where),
        is_virtual=bool(entry.get("virtual", False)),
    )


def _type(entry: Any, index: int) -> TypeDecl:
    where = f"types[{index}]"
    if isinstance(entry, str):
        name = _qualified(entry, where)
        return TypeDecl(name=name, is_generic=name.is_generic)
    if not isinstance(entry, Mapping):
        raise DescriptionError(f"{where}: expected an object or a name")
    name = _qualified(entry.get("name"), where)
    where = f"{where} ({name})"
    fields = []
    for f in entry.get("fields", []):
        if not isinstance(f, Mapping) or "type" not in f:
            raise DescriptionError(f"{where}: field entries need a 'type'")
        fields.append(
            FieldDecl(
                name=str(f.get("name", "")),
                cpp_type=CppType.from_spelling(f["type"]),
                visibility=_enum(Visibility, f.get("visibility", "public"), where),
            )
        )
    return TypeDecl(
        name=name,
        bases=tuple(_base(b, where) for b in entry.get("bases", [])),
        fields=tuple(fields),
        is_pod=bool(entry.get("pod", False)),
        is_generic=bool(entry.get("generic", name.is_generic)),
        is_forward_declaration=bool(entry.get("forward_declaration", False)),
    )


# --------------------------
# Public API
# --------------------------

def description_from_mapping(data: Any) -> Description:
    if not isinstance(data, Mapping):
        raise DescriptionError("A description must be a JSON object")
    unknown = set(data) - {"config", "types", "functions"}
    if unknown:
        raise DescriptionError(f"Unknown top-level keys: {', '.join(sorted(unknown))}")
    desc = Description(
        callables=[_callable(e, i) for i, e in enumerate(data.get("functions", []))],
        types=[_type(e, i) for i, e in enumerate(data.get("types", []))],
        config=BridgeConfig.from_mapping(data.get("config")),
    )
    logger.debug(
        "Description: %d callables, %d types, %d subclasses",
        len(desc.callables),
        len(desc.types),
        len(desc.config.subclasses),
    )
    return desc


def load_description(path: Union[str, Path], encoding: Optional[str] = "utf-8") -> Description:
    """
    Read and validate a JSON description file.
    """
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding=encoding))
    except json.JSONDecodeError as e:
        raise DescriptionError(f"{p}: invalid JSON: {e}") from e
    desc = description_from_mapping(data)
    logger.info("Loaded %d callables and %d types from %s", len(desc.callables), len(desc.types), p)
    return desc


__all__ = ["Description", "description_from_mapping", "load_description"]
