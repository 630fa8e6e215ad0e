"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running git and the
GitHub CLI, plus output formatting helpers for the terminal.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path


def git(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Directory to run in; defaults to the current directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def gh(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a GitHub CLI command and return stdout.

    Same contract as git(); used for registry lookups against GitHub
    releases.
    """
    result = subprocess.run(
        ["gh", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate the sections of a plan preview in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def note(msg: str) -> None:
    """Print an indented informational line."""
    print(f"  {msg}")


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Use for unrecoverable errors that should halt the command.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
