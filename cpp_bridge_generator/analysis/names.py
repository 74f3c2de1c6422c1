#!/usr/bin/env python3
"""
Name disambiguation for the boundary module.

A function may carry several names on its way across the boundary:

1. The native name. Fixed.
2. The name the front end reported, possibly with a global overload index appended.
3. The boundary identifier. The boundary module is a single flat namespace, so this
   has to be unique across every namespace and type; `BridgeNameTracker` picks it.
4. The exposed safe-side name. Overloads are not allowed there either, so repeated
   names become `get`, `get1`, `get2`... but numbered per type (or per namespace for
   free functions) rather than globally; `OverloadTracker` does that.

Both trackers are plain state objects scoped to one analysis run.
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Sequence

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

# Reserved on the safe side of the boundary.
_SAFE_SIDE_KEYWORDS = frozenset(
    {
        "as", "async", "await", "box", "break", "const", "continue", "crate", "do", "dyn",
        "else", "enum", "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop",
        "match", "mod", "move", "mut", "pub", "ref", "return", "self", "Self", "static",
        "struct", "super", "trait", "true", "try", "type", "unsafe", "use", "where", "while",
        "yield",
    }
)


def is_valid_bridge_identifier(name: str) -> bool:
    """
    Whether `name` may appear as an identifier in the boundary module.
    Double underscores are reserved by the native side.
    """
    if not _IDENTIFIER_RE.fullmatch(name or ""):
        return False
    if "__" in name:
        return False
    return name not in _SAFE_SIDE_KEYWORDS


class BridgeNameTracker:
    """
    Figure out the least confusing unique name for a function in the boundary module.

    The bare name is used the first time it is seen. After that the name is qualified
    with the namespace and owning type, and only if that is taken as well is a numeric
    suffix appended.
    """

    def __init__(self) -> None:
        self._next_for_prefix: Dict[str, int] = {}

    def get_unique_name(self, type_name: Optional[str], found_name: str, namespace: Sequence[str]) -> str:
        if found_name == "new":
            found_name = "new_bridge"
        if self._claim(found_name) == 0:
            return found_name
        prefix = "_".join(list(namespace) + ([type_name] if type_name else []) + [found_name])
        count = self._claim(prefix)
        if count == 0:
            return prefix
        return f"{prefix}_bridge{count}"

    def claim_derived_name(self, name: str) -> str:
        """
        Reserve a name built from an already unique one (e.g. `foo_` + `bridge_wrapper`
        meets `foo` + `_bridge_wrapper`). Repeats get a numeric suffix.
        """
        count = self._claim(name)
        while count:
            candidate = f"{name}{count}"
            if self._claim(candidate) == 0:
                return candidate
            count = self._claim(name)
        return name

    def _claim(self, key: str) -> int:
        count = self._next_for_prefix.get(key, 0)
        self._next_for_prefix[key] = count + 1
        return count


class OverloadTracker:
    """
    Appends a numeric suffix to repeated exposed names: `bob`, `bob1`, `bob2`...

    Counts are kept per name for free functions, and per (type, name) for methods,
    so the same method name in two types is not disambiguated.
    """

    def __init__(self) -> None:
        self._offset_by_name: Dict[str, int] = {}
        self._offset_by_type_and_name: Dict[str, Dict[str, int]] = {}

    def get_function_real_name(self, found_name: str) -> str:
        return self._get_name(None, found_name)

    def get_method_real_name(self, type_name: str, found_name: str) -> str:
        return self._get_name(type_name, found_name)

    def _get_name(self, type_name: Optional[str], found_name: str) -> str:
        if type_name is None:
            registry = self._offset_by_name
        else:
            registry = self._offset_by_type_and_name.setdefault(type_name, {})
        offset = registry.get(found_name, 0)
        registry[found_name] = offset + 1
        if offset == 0:
            return found_name
        return f"{found_name}{offset}"


__all__ = [
    "BridgeNameTracker",
    "OverloadTracker",
    "is_valid_bridge_identifier",
]
