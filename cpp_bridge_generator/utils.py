#!/usr/bin/env python3
"""
Shared helpers for the C++ bridge generator.

This module provides:
- Logging setup used by the command-line entry point (and handy in tests).
- A Jinja2 environment layering user templates over the packaged ones, with a few
  filters the native and safe-side templates share.
- File writing helpers: atomic replace, newline normalization, skip-if-unchanged and dry-run.
"""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple, Union

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, StrictUndefined, TemplateNotFound

logger = logging.getLogger(__name__)

PACKAGE_NAME = "cpp_bridge_generator"


def configure_logging(
    level: Optional[Union[int, str]] = None,
    *,
    to_file: Optional[Union[str, Path]] = None,
    fmt: Optional[str] = None,
    stream: Optional[TextIO] = None,
    propagate_package_loggers: bool = True,
) -> None:
    """
    Configure logging for a generator run.

    Parameters:
    - level: int or level name ('DEBUG', 'INFO', ...). Defaults to INFO.
    - to_file: optional log file, truncated on each run.
    - fmt: record format. Defaults to '%(levelname)s: %(message)s'.
    - stream: console stream (defaults to sys.stderr).
    - propagate_package_loggers: whether the package logger propagates to root.
    """
    if level is None:
        resolved = logging.INFO
    elif isinstance(level, str):
        resolved = getattr(logging, level.upper(), logging.INFO)
    else:
        resolved = int(level)

    formatter = logging.Formatter(fmt or "%(levelname)s: %(message)s")

    # Start from a clean root so repeated calls (tests, embedding) do not stack handlers
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(resolved)

    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if to_file:
        handlers.append(logging.FileHandler(str(to_file), mode="w"))
    for handler in handlers:
        handler.setLevel(resolved)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    pkg_logger = logging.getLogger(PACKAGE_NAME)
    pkg_logger.setLevel(resolved)
    pkg_logger.propagate = propagate_package_loggers


# ----------------------------------------
# Jinja environment helpers
# ----------------------------------------

class TemplateRenderer:
    """
    Jinja2 environment with layered loaders:
    - templates_dir: user-provided directory (highest precedence)
    - the templates shipped in cpp_bridge_generator/templates
    """

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        loaders: List[Any] = []
        if templates_dir:
            p = Path(templates_dir)
            if p.is_dir():
                loaders.append(FileSystemLoader(str(p)))
            else:
                logger.warning("Templates directory %s does not exist; using packaged templates only", p)
        loaders.append(PackageLoader(PACKAGE_NAME, "templates"))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.filters["safe_params"] = _filter_safe_params

    def render(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise RuntimeError(f"Template not found: {template_name}") from e
        return template.render(**context)


def _filter_safe_params(params: Iterable[Sequence[str]]) -> str:
    """
    `[("a", "u32"), ("b", "&str")]` -> `a: u32, b: &str`
    """
    return ", ".join(f"{name}: {ty}" for name, ty in params)


# ----------------------------------------
# Sequence helpers
# ----------------------------------------

def dedupe(items: Iterable[str]) -> List[str]:
    """
    Drop repeats, keeping first-seen order.
    """
    seen = set()
    out: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def split_pairs(values: Iterable[str], sep: str = ":") -> List[Tuple[str, str]]:
    """
    Parse `A:B` strings (e.g. `--subclass MyBob:ns::Bob`). Only the first separator splits.
    """
    out: List[Tuple[str, str]] = []
    for value in values:
        left, found, right = value.partition(sep)
        if not found or not left or not right:
            raise ValueError(f"Expected LEFT{sep}RIGHT, got {value!r}")
        out.append((left.strip(), right.strip()))
    return out


# ----------------------------------------
# File I/O helpers
# ----------------------------------------

def ensure_dir(p: Path) -> None:
    Path(p).mkdir(parents=True, exist_ok=True)


def normalize_newlines(text: str) -> str:
    """
    Unix newlines only, so regenerated files diff cleanly.
    """
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _existing_text(path: Path, encoding: str) -> Optional[str]:
    try:
        return Path(path).read_text(encoding=encoding)
    except FileNotFoundError:
        return None


def atomic_write_text(
    path: Path,
    content: str,
    encoding: str = "utf-8",
    mode: Optional[int] = 0o644,
    only_if_changed: bool = True,
) -> bool:
    """
    Write `content` via a temporary sibling file and `os.replace`.

    Returns False when the file already held exactly this content and was left alone.
    """
    path = Path(path)
    content = normalize_newlines(content)
    ensure_dir(path.parent)

    if only_if_changed:
        old = _existing_text(path, encoding)
        if old is not None and normalize_newlines(old) == content:
            logger.debug("[skip] %s (unchanged)", path)
            return False

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="\n") as f:
            f.write(content)
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise
    logger.info("[write] %s", path)
    return True


def write_text(path: Path, content: str, encoding: str = "utf-8", dry_run: bool = False) -> bool:
    """
    `atomic_write_text` honoring dry-run. Returns whether the file was (or would be) written.
    """
    if dry_run:
        logger.info("[dry-run] write %s", path)
        return True
    return atomic_write_text(Path(path), content, encoding=encoding)


__all__ = [
    "PACKAGE_NAME",
    "TemplateRenderer",
    "atomic_write_text",
    "configure_logging",
    "dedupe",
    "ensure_dir",
    "normalize_newlines",
    "split_pairs",
    "write_text",
]
