"""Dependency graph operations.

Orders packages so every package is released after the workspace packages it
depends on. Only normal and build dependencies count; dev and optional edges
are dropped before the graph is built, so they can never form a cycle.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from .errors import CycleDetected
from .models import Dependency


class OrderedGroups(BaseModel):
    """Release order split into levels of mutually independent packages.

    Attributes:
        levels: Each level only depends on packages in earlier levels.
                Names inside a level are sorted.
    """

    model_config = ConfigDict(frozen=True)

    levels: tuple[tuple[str, ...], ...] = ()

    @property
    def order(self) -> list[str]:
        """Flattened release order."""
        return [name for level in self.levels for name in level]

    def level_of(self, name: str) -> int:
        for index, level in enumerate(self.levels):
            if name in level:
                return index
        raise KeyError(name)


def _ordering_deps(
    names: list[str], edges: Iterable[Dependency]
) -> dict[str, set[str]]:
    selected = set(names)
    deps: dict[str, set[str]] = {name: set() for name in names}
    for edge in edges:
        if edge.orders and edge.source in selected and edge.target in selected:
            deps[edge.source].add(edge.target)
    return deps


def find_cycle(deps: dict[str, set[str]]) -> list[str]:
    """Return the packages on one cycle, each depending on the next.

    Deterministic: nodes and their dependencies are visited alphabetically.
    Returns an empty list for an acyclic graph.
    """
    done: set[str] = set()

    def visit(node: str, path: list[str]) -> list[str]:
        if node in path:
            return path[path.index(node):]
        if node in done:
            return []
        path.append(node)
        for dep in sorted(deps.get(node, ())):
            cycle = visit(dep, path)
            if cycle:
                return cycle
        path.pop()
        done.add(node)
        return []

    for node in sorted(deps):
        cycle = visit(node, [])
        if cycle:
            return cycle
    return []


def order(
    packages: Iterable[str],
    edges: Iterable[Dependency],
    selection: Iterable[str] | None = None,
) -> OrderedGroups:
    """Sort packages so dependencies come before their dependents.

    Uses Kahn's algorithm one level at a time: every package whose
    dependencies are all in earlier levels forms the next level.

    Args:
        packages: Candidate package names.
        edges: Dependency edges; non-ordering kinds are ignored.
        selection: Restrict the graph to these names (default: all packages).
                   Edges to unselected packages are ignored.

    Returns:
        OrderedGroups with alphabetically sorted levels.

    Raises:
        CycleDetected: If normal/build dependencies form a cycle.
    """
    names = list(dict.fromkeys(packages))
    if selection is not None:
        chosen = set(selection)
        names = [n for n in names if n in chosen]

    deps = _ordering_deps(names, edges)
    remaining = dict(deps)
    released: set[str] = set()
    levels: list[tuple[str, ...]] = []

    while remaining:
        level = sorted(n for n, d in remaining.items() if d <= released)
        if not level:
            raise CycleDetected(find_cycle(remaining))
        levels.append(tuple(level))
        released.update(level)
        for name in level:
            del remaining[name]

    return OrderedGroups(levels=tuple(levels))


def dependents(edges: Iterable[Dependency], name: str) -> list[Dependency]:
    """Edges pointing at `name`, of every kind, sorted by declaring package."""
    return sorted(
        (e for e in edges if e.target == name),
        key=lambda e: (e.source, e.kind.value, e.declaration),
    )
