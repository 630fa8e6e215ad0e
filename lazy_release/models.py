"""Data models for lazy-release.

These Pydantic models represent the core data structures used throughout
release planning: workspace packages and their dependency edges on the way
in, release steps and text edits on the way out.

All models are frozen. Planning builds new values instead of mutating the
ones it was given.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .errors import ReplacementError


class DependencyKind(str, Enum):
    """Where a dependency is declared.

    NORMAL: [project].dependencies
    OPTIONAL: [project].optional-dependencies.*
    DEV: [dependency-groups].*
    BUILD: [build-system].requires
    """

    NORMAL = "normal"
    BUILD = "build"
    DEV = "dev"
    OPTIONAL = "optional"


# Only these kinds force one package to be released before another.
ORDERING_KINDS = frozenset({DependencyKind.NORMAL, DependencyKind.BUILD})


class Dependency(BaseModel):
    """A directed edge from one workspace package to another.

    Attributes:
        source: Name of the package declaring the dependency.
        target: Name of the workspace package depended upon.
        kind: Declaration kind; dev and optional edges never force ordering.
        requirement: Version constraint text, e.g. ">=1.2" (may be empty).
        declaration: The literal manifest text holding the requirement,
                     e.g. "pkg-a>=1.2". Used to locate it for rewriting.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: DependencyKind = DependencyKind.NORMAL
    requirement: str = ""
    declaration: str = ""

    @property
    def orders(self) -> bool:
        return self.kind in ORDERING_KINDS


class Package(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Canonical package name.
        path: Relative path from workspace root to the package directory
              ("." for a package at the workspace root).
        manifest_path: Relative path to the package's pyproject.toml.
        version: Current version string from the manifest.
        dependencies: Edges to other workspace packages. External deps are
                      not tracked here since only internal requirements are
                      ever rewritten.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    manifest_path: str
    version: str
    dependencies: tuple[Dependency, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.path in ("", ".")


class TextEdit(BaseModel):
    """A planned regex substitution on one file.

    The core never writes files; the execution layer applies edits in plan
    order with `apply`, which refuses if the file drifted since planning.

    Attributes:
        path: File path relative to the workspace root.
        search: Regular expression to substitute.
        replace: Replacement template (placeholders already rendered,
                 back-references kept).
        occurrences: Number of matches found while planning.
        flags: `re` flags the pattern is compiled with.
        description: Human-readable summary for dry-run output.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    search: str
    replace: str
    occurrences: int
    flags: int = re.MULTILINE
    description: str = ""

    def apply(self, content: str) -> str:
        """Apply the edit to `content` and return the new text.

        Raises:
            ReplacementError: If the match count differs from planning time.
        """
        updated, count = re.compile(self.search, self.flags).subn(self.replace, content)
        if count != self.occurrences:
            raise ReplacementError(
                f"{self.path} changed since planning: expected {self.occurrences} "
                f"match(es) for `{self.search}`, found {count}"
            )
        return updated


class ReleaseStep(BaseModel):
    """The planned, not-yet-executed actions for one package.

    Attributes:
        package: Package name.
        previous_version: Version before the release.
        version: Decided next version (equals previous_version when skipped).
        edits: Ordered text edits to apply before committing.
        group: Grouping key for steps sharing a commit or tag.
        skip_reason: Set when the step should not be released.
        prior_tag: Tag of the package's previous release, if any.
        tag: Tag to create, or None when tagging is disabled.
        tag_message: Rendered tag annotation.
        commit_message: Rendered commit message.
        publish: Whether to publish to the registry.
        push: Whether to push commits and tags.
        wait_for_publish: The executor must wait for the published version
                          to become visible before running later steps.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    previous_version: str
    version: str
    edits: tuple[TextEdit, ...] = ()
    group: str
    skip_reason: str | None = None
    prior_tag: str | None = None
    tag: str | None = None
    tag_message: str | None = None
    commit_message: str | None = None
    publish: bool = True
    push: bool = True
    wait_for_publish: bool = False

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None

    @property
    def bumped(self) -> bool:
        return self.version != self.previous_version


class Finding(BaseModel):
    """A preflight check result surfaced alongside the plan."""

    model_config = ConfigDict(frozen=True)

    level: str  # "error" or "warning"
    message: str
    package: str | None = None


class ReleasePlan(BaseModel):
    """Ordered release steps plus preflight findings.

    Attributes:
        steps: One step per selected package, in release order.
        groups: Grouping keys in first-use order, each with its packages.
        findings: Preflight warnings and errors.
    """

    model_config = ConfigDict(frozen=True)

    steps: tuple[ReleaseStep, ...] = ()
    groups: dict[str, list[str]] = Field(default_factory=dict)
    findings: tuple[Finding, ...] = ()

    @property
    def active_steps(self) -> list[ReleaseStep]:
        return [s for s in self.steps if not s.skipped]

    @property
    def blocked(self) -> bool:
        """True when an error-level finding must stop execution."""
        return any(f.level == "error" for f in self.findings)

    def step(self, package: str) -> ReleaseStep:
        for s in self.steps:
            if s.package == package:
                return s
        raise KeyError(package)


class Selection(BaseModel):
    """Which packages an invocation asks to release.

    Attributes:
        packages: Explicitly named packages.
        all: Select every package in the workspace.
        exclude: Packages removed from the selection.
    """

    model_config = ConfigDict(frozen=True)

    packages: tuple[str, ...] = ()
    all: bool = False
    exclude: tuple[str, ...] = ()
