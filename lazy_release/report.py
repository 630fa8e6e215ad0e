"""Dry-run rendering of release plans.

Formats plans, change reports and resolved config as text. The format_*
functions return strings (easy to test); print_plan writes to the terminal
with the shell helpers.
"""

from __future__ import annotations

import difflib
from collections.abc import Iterable
from typing import Any

import tomlkit

from .backends import FileSource
from .changes import ChangeReport
from .models import ReleasePlan, ReleaseStep, TextEdit
from .shell import note, step


def diff_edits(path: str, original: str, edits: Iterable[TextEdit]) -> str:
    """Unified diff of `original` after applying `edits` in order.

    Edits for other paths are ignored.
    """
    updated = original
    for edit in edits:
        if edit.path == path:
            updated = edit.apply(updated)
    return "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            updated.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )


def format_step(s: ReleaseStep) -> list[str]:
    if s.skipped:
        return [f"{s.package} {s.version}: skipped ({s.skip_reason})"]

    lines = [f"{s.package} {s.previous_version} → {s.version}  [{s.group}]"]
    for edit in s.edits:
        lines.append(f"  edit {edit.path}: {edit.description}")
    if s.tag:
        lines.append(f"  tag {s.tag}" + (f" (after {s.prior_tag})" if s.prior_tag else ""))
    actions = [a for a, on in (("publish", s.publish), ("push", s.push)) if on]
    if actions:
        lines.append(f"  {', '.join(actions)}")
    if s.wait_for_publish:
        lines.append("  wait for publish before dependents")
    return lines


def format_plan(plan: ReleasePlan) -> str:
    """Plain-text summary of every step and finding."""
    lines: list[str] = []
    for s in plan.steps:
        lines.extend(format_step(s))
    for f in plan.findings:
        where = f"{f.package}: " if f.package else ""
        lines.append(f"{f.level.upper()}: {where}{f.message}")
    if not plan.active_steps:
        lines.append("Nothing to release.")
    return "\n".join(lines)


def print_plan(plan: ReleasePlan, files: FileSource | None = None) -> None:
    """Print the plan, with per-file diffs when `files` is given."""
    step("Release plan")
    for s in plan.steps:
        for line in format_step(s):
            print(line)

    if files is not None:
        step("Changes")
        edits = [e for s in plan.active_steps for e in s.edits]
        for path in dict.fromkeys(e.path for e in edits):
            print(diff_edits(path, files.read(path), edits), end="")

    if plan.findings:
        step("Checks")
        for f in plan.findings:
            note(f"{f.level}: {f.package + ': ' if f.package else ''}{f.message}")


def format_changes(reports: dict[str, ChangeReport]) -> str:
    lines = []
    for name, report in reports.items():
        mark = "changed" if report.changed else "unchanged"
        lines.append(f"{name}: {mark} ({report.reason})")
        lines.extend(f"  {p}" for p in report.paths)
    return "\n".join(lines)


def format_config(rows: list[tuple[str, Any, str]]) -> str:
    """Render describe() rows as TOML, each key annotated with its source."""
    lines = []
    for key, value, source in rows:
        if value is None:
            lines.append(f"# {key} is unset  ({source})")
            continue
        rendered = tomlkit.dumps({key: value}).strip()
        if "\n" in rendered:
            lines.extend([f"# {key}: {source}", rendered])
        else:
            lines.append(f"{rendered}  # {source}")
    return "\n".join(lines)
