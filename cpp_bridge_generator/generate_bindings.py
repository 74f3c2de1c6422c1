#!/usr/bin/env python3
"""
C++ bridge generator command-line entry point.

This entrypoint wires together:
- Input: a JSON description (`--input`) and/or libclang parsing of headers (`--headers`)
- Analysis: classification of every callable plus the synthesized extras
- Emitting (Jinja2-based): native wrappers and the safe-side boundary module

Outputs:
- <output_dir>/bridge_wrappers.h
- <output_dir>/bridge_wrappers.cc
- <output_dir>/bridge.rs
- <optional> <output_dir>/manifest.json (every analysis record, for introspection)

Usage (example):
  cpp-bridge-generator \
    --headers path/to/include/bob.h \
    --clang-args "-Ipath/to/include -std=c++17" \
    --allowlist 'ns::.*' \
    --subclass MyBob:ns::Bob \
    --output-dir src/generated

Exit codes: 1 templating, 2 no input, 3 loading, 4 analysis, 5 emission, 6 manifest.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import shlex
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .analysis.pipeline import AnalysisResult, BindingAnalyzer
from .config import BridgeConfig, UnsafePolicy
from .emitters.bridge_emitter import BridgeEmitter
from .emitters.cpp_emitter import CppWrapperEmitter
from .errors import DescriptionError
from .manifest import emit_manifest
from .models import GenerationContext, QualifiedName, RawCallable, SubclassDecl, TypeDecl
from .parsing.clang_parser import collect_from_headers
from .parsing.description_loader import load_description
from .utils import TemplateRenderer, configure_logging, split_pairs

logger = logging.getLogger(__name__)

HEADER_SUFFIXES = (".h", ".hpp", ".hh", ".hxx")


# --------------------------
# Helpers
# --------------------------

def discover_header_files(paths: Sequence[str]) -> List[Path]:
    """
    Expand files and directories into a unique list of header files.
    """
    results: List[Path] = []
    for p in paths:
        pp = Path(p)
        if pp.is_file() and pp.suffix.lower() in HEADER_SUFFIXES:
            results.append(pp.resolve())
        elif pp.is_dir():
            for ext in HEADER_SUFFIXES:
                results.extend(sorted(f.resolve() for f in pp.rglob(f"*{ext}")))
        else:
            logger.warning("Skipping non-existent path: %s", p)

    seen = set()
    unique: List[Path] = []
    for f in results:
        if f not in seen:
            seen.add(f)
            unique.append(f)
    return unique


def merge_config(base: BridgeConfig, ns: argparse.Namespace) -> BridgeConfig:
    """
    Apply command-line overrides on top of a description's configuration.
    """
    subclasses = list(base.subclasses)
    for sub, sup in split_pairs(ns.subclass):
        subclasses.append(SubclassDecl(subclass=sub, superclass=QualifiedName.parse(sup)))
    return dataclasses.replace(
        base,
        allowlist=list(base.allowlist) + list(ns.allowlist),
        blocklist=list(base.blocklist) + list(ns.blocklist),
        unsafe_policy=UnsafePolicy(ns.unsafe_policy) if ns.unsafe_policy else base.unsafe_policy,
        exclude_utilities=base.exclude_utilities or ns.exclude_utilities,
        subclasses=subclasses,
    )


def load_inputs(ns: argparse.Namespace, headers: Sequence[Path]) -> Tuple[List[RawCallable], List[TypeDecl], BridgeConfig]:
    callables: List[RawCallable] = []
    types: List[TypeDecl] = []
    config = BridgeConfig()
    if ns.input:
        desc = load_description(ns.input)
        callables.extend(desc.callables)
        types.extend(desc.types)
        config = desc.config
    if headers:
        clang_args = shlex.split(ns.clang_args) if ns.clang_args else []
        found_callables, found_types = collect_from_headers(headers, clang_args, include_filters=ns.include_filter or None)
        callables.extend(found_callables)
        types.extend(found_types)
    return callables, types, merge_config(config, ns)


# --------------------------
# CLI
# --------------------------

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate a safe cross-language boundary and glue for C++ callables")

    p.add_argument("--input", default=None, help="JSON description of callables, types and configuration.")
    p.add_argument(
        "--headers",
        action="append",
        default=[],
        help="Header file or directory to parse (repeatable). Directories are searched for .h/.hpp/.hh/.hxx files.",
    )
    p.add_argument("--clang-args", default="", help="Additional clang arguments (e.g., -I/path/include -std=c++17)")
    p.add_argument(
        "--include-filter",
        action="append",
        default=[],
        help="Only take declarations from files under these prefixes. Repeatable.",
    )
    p.add_argument("--allowlist", action="append", default=[], help="Name or regex to generate (repeatable).")
    p.add_argument("--blocklist", action="append", default=[], help="Name or regex never to generate (repeatable).")
    p.add_argument(
        "--unsafe-policy",
        choices=[u.value for u in UnsafePolicy],
        default=None,
        help="Whether every boundary function is unsafe, or only those whose signatures demand it.",
    )
    p.add_argument("--exclude-utilities", action="store_true", help="Do not rely on string conversion utilities.")
    p.add_argument(
        "--subclass",
        action="append",
        default=[],
        metavar="SUB:SUPER",
        help="Declare a safe-side subclass SUB of native type SUPER (repeatable).",
    )
    p.add_argument("--output-dir", default="generated", help="Output directory for generated code.")
    p.add_argument("--templates-dir", default=None, help="Directory of templates overriding the packaged ones.")
    p.add_argument("--no-manifest", action="store_true", help="Do not emit the JSON manifest.")
    p.add_argument("--dry-run", action="store_true", help="Run everything but do not write files.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v for DEBUG).")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Decrease verbosity (-q for WARNING, -qq for ERROR).")
    p.add_argument(
        "--log-level",
        choices=["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "critical", "error", "warning", "info", "debug"],
        default=None,
        help="Explicit log level (overrides -v/-q).",
    )
    p.add_argument("--log-format", default="%(levelname)s: %(message)s", help="Logging format string.")
    p.add_argument("--log-file", default=None, help="Optional file to write logs to.")

    return p.parse_args(argv)


def _log_level(ns: argparse.Namespace) -> int:
    if ns.log_level:
        return getattr(logging, ns.log_level.upper())
    if ns.verbose >= 1:
        return logging.DEBUG
    if ns.quiet >= 2:
        return logging.ERROR
    if ns.quiet == 1:
        return logging.WARNING
    return logging.INFO


def _report(result: AnalysisResult) -> None:
    for fa in result.ignored():
        logger.debug("Ignored %s: %s", fa.raw.display_name, fa.ignore_reason.describe())
    stats = result.stats()
    logger.info(
        "%d callables analyzed (%d synthesized), %d ignored, %d subclass entries",
        stats["analyzed"],
        stats["synthesized"],
        stats["ignored"],
        stats["subclass_entries"],
    )


# --------------------------
# Main
# --------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    ns = parse_args(argv)
    configure_logging(level=_log_level(ns), to_file=ns.log_file, fmt=ns.log_format)

    ctx = GenerationContext(
        output_dir=Path(ns.output_dir).resolve(),
        templates_dir=Path(ns.templates_dir).resolve() if ns.templates_dir else None,
        dry_run=ns.dry_run,
    )

    try:
        renderer = TemplateRenderer(ctx.templates_dir)
    except Exception:
        logger.exception("Failed to initialize templating")
        return 1

    headers = discover_header_files(ns.headers)
    if not ns.input and not headers:
        logger.error("Nothing to generate. Provide --input and/or --headers.")
        return 2

    try:
        callables, types, config = load_inputs(ns, headers)
    except DescriptionError as e:
        logger.error("Invalid description: %s", e)
        return 3
    except Exception:
        logger.exception("Failed to load inputs")
        return 3

    try:
        result = BindingAnalyzer(config).run(callables, types)
    except Exception:
        logger.exception("Analysis failed")
        return 4
    _report(result)

    outputs: List[str] = []
    try:
        outputs.extend(CppWrapperEmitter(ctx, renderer).emit(result))
        bridge = BridgeEmitter(ctx, renderer)
        bridge.emit(result)
        outputs.append(bridge.config.output_name)
    except Exception:
        logger.exception("Failed to generate files")
        return 5

    if not ns.no_manifest:
        try:
            emit_manifest(ctx, result, outputs, argv=sys.argv if argv is None else ["cpp-bridge-generator", *argv])
        except Exception:
            logger.exception("Failed to emit generation manifest")
            return 6

    if ctx.dry_run:
        logger.info("Dry-run complete (no files written).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
