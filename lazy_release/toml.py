"""TOML reading utilities.

Uses tomlkit, the same parser that preserves formatting, so manifest text
and the values read from it always agree.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .models import DependencyKind

TOOL_NAME = "lazy-release"


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a pyproject.toml file.

    Raises:
        ConfigError: If the file can't be read or isn't valid TOML.
    """
    try:
        return tomlkit.parse(path.read_text())
    except (OSError, TOMLKitError) as exc:
        raise ConfigError(f"unable to load {path}: {exc}") from exc


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Names are normalized per PEP 503 (lowercase, hyphens instead of
    underscores) for consistent comparison.

    Args:
        doc: Parsed pyproject.toml document.
        fallback: Value to return if name is not specified.
    """
    return canonicalize_name(doc.get("project", {}).get("name", fallback))


def get_project_version(doc: tomlkit.TOMLDocument) -> str:
    """Extract version from [project].version, defaulting to '0.0.0'."""
    return str(doc.get("project", {}).get("version", "0.0.0"))


def has_project(doc: tomlkit.TOMLDocument) -> bool:
    """True if the document declares a [project] with a name."""
    return "name" in doc.get("project", {})


def get_dependency_strings(
    doc: tomlkit.TOMLDocument,
) -> list[tuple[DependencyKind, str]]:
    """Collect all dependency strings from a pyproject.toml, with their kind.

    Gathers dependencies from four locations:
    - [project].dependencies (normal)
    - [project].optional-dependencies.* (optional)
    - [dependency-groups].* (dev, PEP 735)
    - [build-system].requires (build)

    Returns raw strings like "requests>=2.0" or "pkg[extra]~=1.0", exactly
    as written. Group includes ({include-group = "..."}) are skipped.
    """
    project = doc.get("project", {})
    deps: list[tuple[DependencyKind, str]] = [
        (DependencyKind.NORMAL, str(d)) for d in project.get("dependencies", [])
    ]
    for group_deps in project.get("optional-dependencies", {}).values():
        deps.extend((DependencyKind.OPTIONAL, str(d)) for d in group_deps)
    for group_deps in doc.get("dependency-groups", {}).values():
        deps.extend(
            (DependencyKind.DEV, str(d)) for d in group_deps if isinstance(d, str)
        )
    for req in doc.get("build-system", {}).get("requires", []):
        deps.append((DependencyKind.BUILD, str(req)))
    return deps


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> tuple[list[str], list[str]]:
    """Extract workspace member and exclude globs from [tool.uv.workspace].

    These patterns (e.g., "packages/*", "libs/*") define which directories
    contain workspace packages.

    Returns:
        Tuple of (member globs, exclude globs).

    Raises:
        ConfigError: If no workspace members are defined.
    """
    workspace = doc.get("tool", {}).get("uv", {}).get("workspace", {})
    members = workspace.get("members")
    if not members:
        raise ConfigError("No [tool.uv.workspace] members defined in root pyproject.toml")
    return [str(m) for m in members], [str(e) for e in workspace.get("exclude", [])]


def get_tool_settings(doc: tomlkit.TOMLDocument) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split [tool.lazy-release] into package and workspace settings.

    Returns:
        Tuple of (package settings, [tool.lazy-release.workspace] settings)
        as plain Python values.
    """
    table = doc.get("tool", {}).get(TOOL_NAME)
    if table is None:
        return {}, {}
    settings = table.unwrap()
    workspace = settings.pop("workspace", {})
    if not isinstance(workspace, dict):
        raise ConfigError(f"[tool.{TOOL_NAME}.workspace] must be a table")
    return settings, workspace


def load_release_file(path: Path) -> dict[str, Any] | None:
    """Load a release.toml settings file, or None if it doesn't exist.

    Raises:
        ConfigError: If the file exists but can't be parsed.
    """
    if not path.is_file():
        return None
    try:
        return tomlkit.parse(path.read_text()).unwrap()
    except (OSError, TOMLKitError) as exc:
        raise ConfigError(f"unable to load {path}: {exc}") from exc
