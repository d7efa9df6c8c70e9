"""Post-install smoke test."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .errors import VersionMismatch
from .formula import expand_template
from .types import FormulaDescriptor

logger = logging.getLogger(__name__)


def run_smoke_test(descriptor: FormulaDescriptor, bin_path: Path, *, timeout_seconds: float = 30.0) -> bool:
    """Run ``bin_path --version`` and require the descriptor version in its stdout."""

    expected = expand_template(descriptor.test.expect, {"version": descriptor.version, "name": descriptor.name})
    command = [str(bin_path), *descriptor.test.args]
    logger.debug("smoke test cmd=%s expect=%s", " ".join(command), expected)
    try:
        result = subprocess.run(
            command,
            check=False,
            capture_output=True,
            text=True,
            timeout=max(float(timeout_seconds), 1.0),
        )
    except (FileNotFoundError, PermissionError) as exc:
        raise VersionMismatch(expected, f"unable to execute {bin_path}: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise VersionMismatch(expected, f"{bin_path} timed out after {timeout_seconds:.1f}s") from exc

    output = result.stdout or ""
    if result.returncode != 0:
        raise VersionMismatch(expected, f"exit={result.returncode} {output}{result.stderr or ''}")
    if expected not in output:
        raise VersionMismatch(expected, output)
    return True
