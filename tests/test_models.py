"""Tests for lazy_release.models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from lazy_release.errors import ReplacementError
from lazy_release.models import (
    Dependency,
    DependencyKind,
    Finding,
    Package,
    ReleasePlan,
    ReleaseStep,
    TextEdit,
)


class TestDependency:
    def test_defaults(self) -> None:
        d = Dependency(source="a", target="b")
        assert d.kind is DependencyKind.NORMAL
        assert d.orders

    @pytest.mark.parametrize("kind", ["dev", "optional"])
    def test_non_ordering_kinds(self, kind: str) -> None:
        assert not Dependency(source="a", target="b", kind=kind).orders

    def test_frozen(self) -> None:
        d = Dependency(source="a", target="b")
        with pytest.raises(ValidationError):
            d.target = "c"  # type: ignore[misc]


class TestPackage:
    @pytest.mark.parametrize(("path", "is_root"), [(".", True), ("", True), ("packages/a", False)])
    def test_is_root(self, path: str, is_root: bool) -> None:
        pkg = Package(name="a", path=path, manifest_path="pyproject.toml", version="1.0.0")
        assert pkg.is_root is is_root


class TestTextEdit:
    def test_apply(self) -> None:
        edit = TextEdit(path="f", search=r"^v=(\d+)$", replace=r"v=\g<1>0", occurrences=2)
        assert edit.apply("v=1\nv=2\n") == "v=10\nv=20\n"

    def test_drift_detected(self) -> None:
        edit = TextEdit(path="f", search="x", replace="y", occurrences=1)
        with pytest.raises(ReplacementError, match="changed since planning"):
            edit.apply("xx")


class TestReleasePlan:
    def _plan(self) -> ReleasePlan:
        return ReleasePlan(
            steps=(
                ReleaseStep(package="a", previous_version="1.0.0", version="1.1.0", group="a"),
                ReleaseStep(
                    package="b",
                    previous_version="1.0.0",
                    version="1.0.0",
                    group="b",
                    skip_reason="no changes since b/v1.0.0",
                ),
            ),
            groups={"a": ["a"]},
            findings=(Finding(level="warning", message="not tracking"),),
        )

    def test_active_steps(self) -> None:
        plan = self._plan()
        assert [s.package for s in plan.active_steps] == ["a"]
        assert plan.step("b").skipped
        assert not plan.step("b").bumped
        assert plan.step("a").bumped

    def test_warnings_do_not_block(self) -> None:
        assert not self._plan().blocked

    def test_errors_block(self) -> None:
        plan = self._plan().model_copy(
            update={"findings": (Finding(level="error", message="dirty", package=None),)}
        )
        assert plan.blocked

    def test_missing_step(self) -> None:
        with pytest.raises(KeyError):
            self._plan().step("zzz")
