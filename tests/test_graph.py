"""Tests for lazy_release.graph."""

from __future__ import annotations

import pytest

from lazy_release.errors import CycleDetected
from lazy_release.graph import dependents, find_cycle, order
from lazy_release.models import Dependency, DependencyKind


def dep(source: str, target: str, kind: DependencyKind = DependencyKind.NORMAL) -> Dependency:
    return Dependency(source=source, target=target, kind=kind)


class TestOrder:
    def test_no_deps(self) -> None:
        result = order(["c", "a", "b"], [])
        assert result.order == ["a", "b", "c"]  # alphabetical when no deps
        assert result.levels == (("a", "b", "c"),)

    def test_linear_deps(self) -> None:
        result = order(["a", "b", "c"], [dep("a", "b"), dep("b", "c")])
        assert result.order == ["c", "b", "a"]
        assert result.levels == (("c",), ("b",), ("a",))

    def test_diamond_deps(self) -> None:
        edges = [
            dep("top", "left"),
            dep("top", "right"),
            dep("left", "bottom"),
            dep("right", "bottom"),
        ]
        result = order(["top", "left", "right", "bottom"], edges)
        assert result.levels == (("bottom",), ("left", "right"), ("top",))
        assert result.level_of("right") == 1

    def test_build_edges_order(self) -> None:
        result = order(["a", "b"], [dep("a", "b", DependencyKind.BUILD)])
        assert result.order == ["b", "a"]

    def test_dev_edge_does_not_form_cycle(self) -> None:
        edges = [dep("a", "b"), dep("b", "a", DependencyKind.DEV)]
        assert order(["a", "b"], edges).order == ["b", "a"]

    def test_optional_edge_ignored(self) -> None:
        edges = [dep("a", "b", DependencyKind.OPTIONAL)]
        assert order(["a", "b"], edges).levels == (("a", "b"),)

    def test_selection_drops_edges_to_unselected(self) -> None:
        edges = [dep("a", "b"), dep("b", "c")]
        result = order(["a", "b", "c"], edges, selection={"a", "c"})
        assert result.order == ["a", "c"]

    def test_empty_packages(self) -> None:
        assert order([], []).order == []

    def test_cycle_raises(self) -> None:
        with pytest.raises(CycleDetected, match="cycle") as exc_info:
            order(["a", "b"], [dep("a", "b"), dep("b", "a")])
        assert set(exc_info.value.cycle) == {"a", "b"}

    def test_three_way_cycle_raises(self) -> None:
        edges = [dep("a", "b"), dep("b", "c"), dep("c", "a")]
        with pytest.raises(CycleDetected) as exc_info:
            order(["a", "b", "c"], edges)
        assert exc_info.value.cycle == ["a", "b", "c"]
        assert "a -> b -> c -> a" in str(exc_info.value)

    def test_cycle_outside_selection_ignored(self) -> None:
        edges = [dep("a", "b"), dep("b", "a")]
        assert order(["a", "b", "c"], edges, selection={"a", "c"}).order == ["a", "c"]


class TestFindCycle:
    def test_acyclic(self) -> None:
        assert find_cycle({"a": {"b"}, "b": set()}) == []

    def test_cycle_behind_acyclic_prefix(self) -> None:
        deps = {"a": {"b"}, "b": {"c"}, "c": {"b"}}
        assert find_cycle(deps) == ["b", "c"]


class TestDependents:
    def test_reverse_edges(self) -> None:
        edges = [dep("x", "core"), dep("a", "core", DependencyKind.DEV), dep("a", "lib")]
        result = dependents(edges, "core")
        assert [(e.source, e.kind) for e in result] == [
            ("a", DependencyKind.DEV),
            ("x", DependencyKind.NORMAL),
        ]
