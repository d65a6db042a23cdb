"""Smoke tests for the module entrypoint."""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path


FIXTURE = Path(__file__).parent / "fixtures" / "plans" / "generator_output.json"


def test_module_help_works() -> None:
    completed = subprocess.run(
        [sys.executable, "-m", "outingplanner", "--help"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert completed.returncode == 0
    assert "normalize" in completed.stdout
    assert "resolve" in completed.stdout


def test_normalize_runs_as_module() -> None:
    completed = subprocess.run(
        [sys.executable, "-m", "outingplanner", "normalize", str(FIXTURE)],
        capture_output=True,
        text=True,
        check=False,
    )
    assert completed.returncode == 0
    payload = json.loads(completed.stdout)
    assert len(payload["plans"]) == 2
