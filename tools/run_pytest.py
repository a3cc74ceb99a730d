"""Run the postkit test suite, preferring the project's virtual environment."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def _interpreter() -> str:
    override = os.environ.get("POSTKIT_PYTHON")
    if override:
        return override
    bin_dir, name = ("Scripts", "python.exe") if os.name == "nt" else ("bin", "python")
    candidate = ROOT / ".venv" / bin_dir / name
    return str(candidate) if candidate.exists() else sys.executable


def main(argv: list[str] | None = None) -> int:
    args = list(argv or [])
    if not any(arg.startswith("tests") for arg in args):
        args.append("tests")
    return subprocess.call([_interpreter(), "-m", "pytest", "-q", *args], cwd=ROOT)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
