from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[3]
SRC = ROOT / "packages/exercise-validator/src"


def run_validator(*args: str, cwd: Path, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged = os.environ.copy()
    merged["PYTHONPATH"] = str(SRC)
    merged.setdefault("RUN_ID", "pytest-run")
    for key in ("EXERCISE_VALIDATOR_CONFIG", "EXERCISE_VALIDATOR_CACHE_FILE", "EXERCISE_VALIDATOR_TIMEOUT_MS"):
        merged.pop(key, None)
    if env:
        merged.update(env)
    return subprocess.run(
        [sys.executable, "-m", "exercise_validator.cli", *args],
        cwd=cwd,
        env=merged,
        text=True,
        capture_output=True,
        check=False,
        timeout=120,
    )


def write_file(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def fence(language: str, body: str) -> str:
    return f"```{language}\n{body}\n```\n"
