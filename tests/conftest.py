from __future__ import annotations

"""
Shared pytest utilities for the full test suite.

This module:
- exposes the repository root for subprocess runs of the CLI,
- provides a fixture that writes synthetic audit lines to a log file, and
- provides a fixture that runs `python -m audit2csv` and returns the result.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import Callable

import pytest

from tests.support.io import write_log


ROOT_DIR = Path(__file__).resolve().parents[1]


def run_cli(args: list[str], env: dict[str, str] | None = None) -> subprocess.CompletedProcess:
    merged = dict(os.environ)
    # A developer's own config must not leak into test runs.
    for key in ("AUDIT2CSV_CONFIG", "AUDIT2CSV_BACKEND", "AUDIT2CSV_AUSEARCH", "AUDIT2CSV_SUDO"):
        merged.pop(key, None)
    if env:
        merged.update(env)
    return subprocess.run(
        [sys.executable, "-m", "audit2csv", *args],
        cwd=ROOT_DIR,
        capture_output=True,
        text=True,
        check=False,
        env=merged,
    )


@pytest.fixture
def audit_log(tmp_path) -> Callable[[list[str]], Path]:
    """Returns a writer that stores audit lines as `<tmp>/audit.log`."""

    def _write(lines: list[str], name: str = "audit.log") -> Path:
        return write_log(tmp_path / name, lines)

    return _write


@pytest.fixture
def cli():
    """Returns the subprocess runner for the audit2csv command."""
    return run_cli
