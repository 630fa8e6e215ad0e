"""Change detection against each package's last release.

A package needs releasing when it was never released, when files it owns
changed since its last release tag, when workspace-wide files changed, or
when one of its normal/build dependencies needs releasing.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from .backends import VersionControl
from .models import Dependency, Package

# Changes to these root files affect every package
WORKSPACE_FILES = frozenset({"pyproject.toml", "uv.lock"})


class ChangeReport(BaseModel):
    """Why a package is (or isn't) considered changed."""

    model_config = ConfigDict(frozen=True)

    changed: bool
    reason: str
    paths: tuple[str, ...] = ()


class ChangeDetector:
    """Decide which packages changed since their last release.

    Args:
        vcs: Version control backend.
        packages: Every workspace package; needed to know which paths the
                  root package owns.
        edges: Dependency edges used for propagation (defaults to the
               packages' own dependencies).
    """

    def __init__(
        self,
        vcs: VersionControl,
        packages: Iterable[Package],
        edges: Iterable[Dependency] | None = None,
    ) -> None:
        self.vcs = vcs
        self.packages = {p.name: p for p in packages}
        if edges is None:
            edges = [d for p in self.packages.values() for d in p.dependencies]
        self.edges = [e for e in edges if e.orders]
        self._paths_cache: dict[str, set[str]] = {}

    def changed_paths(self, ref: str) -> set[str]:
        """Paths changed since `ref`, queried once per ref."""
        if ref not in self._paths_cache:
            self._paths_cache[ref] = set(self.vcs.changed_paths_since(ref))
        return self._paths_cache[ref]

    def owns(self, package: Package, path: str) -> bool:
        """Whether `path` belongs to `package`.

        The root package owns every path not inside another member.
        """
        if not package.is_root:
            return path == package.path or path.startswith(package.path + "/")
        return not any(
            self.owns(other, path)
            for other in self.packages.values()
            if not other.is_root
        )

    def _direct(self, package: Package, ref: str | None) -> ChangeReport:
        if ref is None:
            return ChangeReport(changed=True, reason="never released")

        paths = self.changed_paths(ref)
        shared = sorted(p for p in paths if p in WORKSPACE_FILES)
        if shared:
            return ChangeReport(
                changed=True,
                reason=f"workspace file changed since {ref}: {', '.join(shared)}",
                paths=tuple(shared),
            )

        owned = sorted(p for p in paths if self.owns(package, p))
        if owned:
            return ChangeReport(
                changed=True,
                reason=f"{len(owned)} file(s) changed since {ref}",
                paths=tuple(owned),
            )
        return ChangeReport(changed=False, reason=f"no changes since {ref}")

    def has_changes(
        self,
        package: Package | str,
        last_release_ref: str | None,
        refs: dict[str, str | None] | None = None,
    ) -> bool:
        """Whether `package` needs releasing since `last_release_ref`.

        True if it was never released, if files it owns changed, or if any
        package it depends on (normal/build, transitively) changed.

        Args:
            package: The package or its name.
            last_release_ref: Ref of the package's last release.
            refs: Last-release refs of its dependencies. A dependency not
                  listed is compared against `last_release_ref`.
        """
        name = package if isinstance(package, str) else package.name
        last_refs = {name: last_release_ref}
        pending = [name]
        while pending:
            current = pending.pop()
            for edge in self.edges:
                if edge.source == current and edge.target not in last_refs:
                    last_refs[edge.target] = (refs or {}).get(edge.target, last_release_ref)
                    pending.append(edge.target)
        return self.detect(last_refs)[name].changed

    def detect(self, last_refs: dict[str, str | None]) -> dict[str, ChangeReport]:
        """Change status for every package named in `last_refs`.

        A package whose dependency (within `last_refs`) changed is itself
        marked changed, repeated until nothing new is marked.

        Args:
            last_refs: Package name to the ref of its last release, or None
                       if it was never released.
        """
        reports = {
            name: self._direct(self.packages[name], ref)
            for name, ref in last_refs.items()
        }

        # Propagate to dependents until a fixed point
        changed = True
        while changed:
            changed = False
            for edge in self.edges:
                if edge.source not in reports or edge.target not in reports:
                    continue
                if reports[edge.target].changed and not reports[edge.source].changed:
                    reports[edge.source] = ChangeReport(
                        changed=True, reason=f"dependency {edge.target} changed"
                    )
                    changed = True
        return reports
