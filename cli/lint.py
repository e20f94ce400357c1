"""CLI wrapper: Run linter."""

from __future__ import annotations

import sys

from cli._runner import run

PATHS = ["relay_pagination", "tests", "cli"]


def main() -> None:
    run([sys.executable, "-m", "ruff", "check", *PATHS, *sys.argv[1:]])
