#!/usr/bin/env python3
"""
Global configuration for a bridge-generation run.

A `BridgeConfig` answers the questions the analysis needs from the user:
- which types/functions to generate (allowlist) and which to refuse (blocklist)
- whether every boundary function is unsafe, or only those whose signatures demand it
- whether string-conversion utilities are available
- which types are safe to hold by value on the safe side
- which safe-side subclasses of native types exist
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Pattern, Union

from .errors import DescriptionError
from .models import QualifiedName, SubclassDecl

logger = logging.getLogger(__name__)


class UnsafePolicy(Enum):
    ALL_FUNCTIONS_UNSAFE = "all-unsafe"
    ALL_FUNCTIONS_SAFE = "all-safe"


NameLike = Union[str, QualifiedName]


def _compile_patterns(patterns: List[str], label: str) -> List[Pattern[str]]:
    compiled: List[Pattern[str]] = []
    for pat in patterns:
        try:
            compiled.append(re.compile(pat))
        except re.error as ex:
            logger.warning("Treating %s entry %r literally: %s", label, pat, ex)
            compiled.append(re.compile(re.escape(pat)))
    return compiled


def _matches(patterns: List[Pattern[str]], name: NameLike) -> bool:
    text = name.to_cpp_name() if isinstance(name, QualifiedName) else str(name).lstrip(":")
    return any(p.fullmatch(text) for p in patterns)


@dataclass
class BridgeConfig:
    """
    Settings for the analysis phase.

    Allowlist and blocklist entries are fully-qualified names or regular expressions
    matched against fully-qualified names. An empty allowlist admits everything.
    """
    allowlist: List[str] = field(default_factory=list)
    blocklist: List[str] = field(default_factory=list)
    unsafe_policy: UnsafePolicy = UnsafePolicy.ALL_FUNCTIONS_UNSAFE
    exclude_utilities: bool = False
    pod_types: List[str] = field(default_factory=list)
    subclasses: List[SubclassDecl] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._allow = _compile_patterns(self.allowlist, "allowlist")
        self._block = _compile_patterns(self.blocklist, "blocklist")
        self._pods = {QualifiedName.parse(p) for p in self.pod_types}

    # ---- Predicates ----

    def is_on_allowlist(self, name: NameLike) -> bool:
        if not self._allow:
            return True
        return _matches(self._allow, name)

    def is_on_blocklist(self, name: NameLike) -> bool:
        return bool(self._block) and _matches(self._block, name)

    def is_pod(self, name: QualifiedName) -> bool:
        return name in self._pods

    # ---- Construction ----

    def with_subclass(self, subclass: str, superclass: str) -> BridgeConfig:
        self.subclasses.append(SubclassDecl(subclass=subclass, superclass=QualifiedName.parse(superclass)))
        return self

    @staticmethod
    def from_mapping(data: Optional[Mapping[str, Any]]) -> BridgeConfig:
        """
        Build from the `config` object of a JSON description:

            {"allowlist": ["ns::Bob"], "unsafe_policy": "all-safe",
             "subclasses": [{"subclass": "MyBob", "superclass": "ns::Bob"}]}
        """
        data = dict(data or {})
        unknown = set(data) - {"allowlist", "blocklist", "unsafe_policy", "exclude_utilities", "pod_types", "subclasses"}
        if unknown:
            raise DescriptionError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        try:
            policy = UnsafePolicy(data.get("unsafe_policy", UnsafePolicy.ALL_FUNCTIONS_UNSAFE.value))
        except ValueError as e:
            raise DescriptionError(f"Invalid unsafe_policy: {data.get('unsafe_policy')!r}") from e
        subclasses: List[SubclassDecl] = []
        for entry in data.get("subclasses", []):
            try:
                subclasses.append(SubclassDecl(subclass=entry["subclass"], superclass=QualifiedName.parse(entry["superclass"])))
            except (KeyError, TypeError) as e:
                raise DescriptionError(f"Malformed subclass entry: {entry!r}") from e
        return BridgeConfig(
            allowlist=list(data.get("allowlist", [])),
            blocklist=list(data.get("blocklist", [])),
            unsafe_policy=policy,
            exclude_utilities=bool(data.get("exclude_utilities", False)),
            pod_types=list(data.get("pod_types", [])),
            subclasses=subclasses,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowlist": list(self.allowlist),
            "blocklist": list(self.blocklist),
            "unsafe_policy": self.unsafe_policy.value,
            "exclude_utilities": self.exclude_utilities,
            "pod_types": list(self.pod_types),
            "subclasses": [s.to_dict() for s in self.subclasses],
        }


__all__ = ["UnsafePolicy", "BridgeConfig"]
