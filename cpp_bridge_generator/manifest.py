#!/usr/bin/env python3
"""
JSON manifest of a generation run: generator metadata, the invocation, the effective
configuration and every analysis record (including why ignored callables were
ignored). Useful for debugging bindings and for tests.
"""

from __future__ import annotations

import json
import logging
import platform
import shlex
import sys
from datetime import datetime, timezone
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from . import __version__
from .analysis.pipeline import AnalysisResult
from .models import GenerationContext
from .utils import write_text

logger = logging.getLogger(__name__)

DIST_NAME = "cpp-bridge-generator"
MANIFEST_NAME = "manifest.json"


def generator_version() -> str:
    try:
        return importlib_metadata.version(DIST_NAME)
    except importlib_metadata.PackageNotFoundError:
        return __version__


def build_manifest(
    ctx: GenerationContext,
    result: AnalysisResult,
    outputs: Sequence[str] = (),
    argv: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    argv = list(sys.argv if argv is None else argv)
    return {
        "generator": {"name": DIST_NAME, "version": generator_version()},
        "invocation": {
            "argv": argv,
            "command_line": " ".join(shlex.quote(a) for a in argv),
            "python_version": platform.python_version(),
            "platform": platform.platform(),
            "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        },
        "output_dir": str(ctx.output_dir),
        "outputs": list(outputs),
        "config": result.config.to_dict(),
        "analysis": result.to_dict(),
    }


def emit_manifest(
    ctx: GenerationContext,
    result: AnalysisResult,
    outputs: Sequence[str] = (),
    argv: Optional[Sequence[str]] = None,
) -> Path:
    """
    Write `manifest.json` into the output directory and return its path.
    """
    manifest = build_manifest(ctx, result, outputs, argv)
    path = Path(ctx.output_dir) / MANIFEST_NAME
    write_text(path, json.dumps(manifest, indent=2) + "\n", dry_run=ctx.dry_run)
    return path


__all__ = ["MANIFEST_NAME", "build_manifest", "emit_manifest", "generator_version"]
