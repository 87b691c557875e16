"""
Tests that each entry module imports cleanly in a fresh interpreter.

Import order matters for package cycles, and the test session has
usually imported everything already, so each module gets its own
interpreter.
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

import compsync

pytestmark = pytest.mark.slow

PACKAGE_ROOT = Path(compsync.__file__).resolve().parent.parent


@pytest.mark.parametrize(
    "module",
    [
        "compsync.context",
        "compsync.main",
        "compsync.cli",
        "compsync.services",
        "compsync.services.startup",
        "compsync.encoding",
        "compsync.encoding.process",
        "compsync.recovery",
        "compsync.recording.orchestrator",
        "compsync.routes.control",
    ],
)
def test_module_imports_in_fresh_interpreter(module):
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in [str(PACKAGE_ROOT), env.get("PYTHONPATH", "")] if p
    )

    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr
