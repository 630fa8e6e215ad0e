"""Error types raised while planning a release.

Every error derives from LazyReleaseError so the CLI can catch them in one
place and report them before anything is committed, tagged or published.
"""

from __future__ import annotations

from dataclasses import dataclass


class LazyReleaseError(RuntimeError):
    """Base class for all lazy-release errors."""


class VersionError(LazyReleaseError):
    """A version transition could not be computed."""


class InvalidDowngrade(VersionError):
    """A pre-release bump would move to a lower-ranked pre-release name."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"cannot move {current} to a {requested} pre-release; "
            "pre-releases only move forward (alpha < beta < rc)"
        )
        self.current = current
        self.requested = requested


class NonMonotonicVersion(VersionError):
    """An explicit version is not strictly greater than the current one."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"{target} is not greater than the current version {current}")
        self.current = current
        self.target = target


class UnsupportedPrerelease(VersionError):
    """The current pre-release identifier does not follow `name.N`."""

    def __init__(self, version: str) -> None:
        super().__init__(
            f"unsupported pre-release scheme in {version}; expected <name>.<number>"
        )
        self.version = version


class ConfigError(LazyReleaseError):
    """Configuration could not be loaded or validated."""


class CycleDetected(LazyReleaseError):
    """The workspace dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        path = " -> ".join([*cycle, cycle[0]]) if cycle else ""
        super().__init__(f"Dependency cycle detected involving: {path}")
        self.cycle = cycle


class ReplacementError(LazyReleaseError):
    """A replacement rule could not be applied."""


class OccurrenceViolation(ReplacementError):
    """A search pattern matched an unexpected number of times."""

    def __init__(self, pattern: str, path: str, expected: str, actual: int) -> None:
        super().__init__(
            f"for `{pattern}` in '{path}', {expected} replacements expected, "
            f"found {actual}"
        )
        self.pattern = pattern
        self.path = path
        self.expected = expected
        self.actual = actual


class RequirementError(LazyReleaseError):
    """A dependency version requirement could not be updated."""


class RequirementMismatch(RequirementError):
    """A dependent's requirement excludes the new version of its dependency."""


class UnknownPackage(LazyReleaseError):
    """A selected package name is not a workspace member."""

    def __init__(self, name: str) -> None:
        super().__init__(f"package '{name}' is not a member of this workspace")
        self.name = name


class SharedVersionConflict(LazyReleaseError):
    """Packages sharing a version cannot agree on a single maximum."""


class CollaboratorError(LazyReleaseError):
    """A version control, registry or loader call failed."""


@dataclass(frozen=True)
class PackageError:
    """An error tagged with the package whose step it blocks."""

    package: str | None
    error: LazyReleaseError

    def __str__(self) -> str:
        if self.package is None:
            return str(self.error)
        return f"{self.package}: {self.error}"


class PlanError(LazyReleaseError):
    """Planning failed; carries every error collected across packages."""

    def __init__(self, errors: list[PackageError]) -> None:
        lines = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"release plan has {len(errors)} error(s):\n{lines}")
        self.errors = errors

    @property
    def packages(self) -> list[str]:
        """Names of the packages that are blocked, in report order."""
        seen: list[str] = []
        for e in self.errors:
            if e.package is not None and e.package not in seen:
                seen.append(e.package)
        return seen
