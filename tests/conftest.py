"""Shared test fixtures."""

from __future__ import annotations

import fnmatch
from pathlib import Path

import pytest

from lazy_release.errors import CollaboratorError
from lazy_release.workspace import Workspace


class FakeVcs:
    """In-memory VersionControl."""

    def __init__(
        self,
        tags: list[str] | None = None,
        changed: dict[str, set[str]] | None = None,
        dirty: bool = False,
        branch: str = "main",
        tracking: bool = True,
    ) -> None:
        self.tags = list(tags or [])
        self.changed = changed or {}
        self.dirty = dirty
        self.branch = branch
        self.tracking = tracking
        self.diff_calls: list[str] = []

    def is_dirty(self, paths: list[str] | None = None) -> bool:
        return self.dirty

    def changed_paths_since(self, ref: str) -> set[str]:
        self.diff_calls.append(ref)
        return set(self.changed.get(ref, set()))

    def current_branch(self) -> str:
        return self.branch

    def is_tracking_remote(self) -> bool:
        return self.tracking

    def last_tag(self, pattern: str) -> str | None:
        matching = [t for t in self.tags if fnmatch.fnmatchcase(t, pattern)]
        return matching[-1] if matching else None

    def tag_exists(self, name: str) -> bool:
        return name in self.tags


class FakeRegistry:
    """In-memory Registry."""

    def __init__(
        self,
        published: set[tuple[str, str]] | None = None,
        owners: dict[str, set[str]] | None = None,
    ) -> None:
        self.published = published or set()
        self._owners = owners or {}

    def is_published(self, name: str, version: str) -> bool:
        return (name, version) in self.published

    def owners(self, name: str) -> set[str]:
        return self._owners.get(name, set())


class MemoryFiles:
    """In-memory FileSource keyed by workspace-relative path."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = files

    def glob(self, pattern: str) -> list[str]:
        return sorted(p for p in self.files if fnmatch.fnmatchcase(p, pattern))

    def read(self, path: str) -> str:
        if path not in self.files:
            raise CollaboratorError(f"unable to read {path}")
        return self.files[path]


ROOT_MANIFEST = """\
[project]
name = "root"
version = "1.2.0"
dependencies = []

[tool.uv.workspace]
members = ["child"]
"""

CHILD_MANIFEST = """\
[project]
name = "child"
version = "0.5.0"
dependencies = [
    "root^1.2",
]
"""


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def root_child_files() -> MemoryFiles:
    """Root package at 1.2.0 and a child requiring it with "^1.2"."""
    return MemoryFiles(
        {"pyproject.toml": ROOT_MANIFEST, "child/pyproject.toml": CHILD_MANIFEST}
    )


def write_workspace(root: Path, packages: dict[str, str], root_extra: str = "") -> None:
    """Create a uv workspace under `root` with one directory per package.

    Args:
        root: Workspace directory.
        packages: Package directory name to its pyproject.toml body.
        root_extra: Extra TOML appended to the root pyproject.toml.
    """
    (root / "pyproject.toml").write_text(
        '[tool.uv.workspace]\nmembers = ["packages/*"]\n' + root_extra
    )
    for name, body in packages.items():
        package_dir = root / "packages" / name
        package_dir.mkdir(parents=True)
        (package_dir / "pyproject.toml").write_text(body)


@pytest.fixture
def tmp_workspace(tmp_path: Path) -> Path:
    """Three packages: app → lib → core, plus a dev-only edge core → app."""
    write_workspace(
        tmp_path,
        {
            "core": (
                '[project]\nname = "core"\nversion = "1.0.0"\n\n'
                '[dependency-groups]\ntest = ["app"]\n'
            ),
            "lib": (
                '[project]\nname = "lib"\nversion = "0.3.0"\n'
                'dependencies = ["core>=1.0", "requests>=2.0"]\n'
            ),
            "app": (
                '[project]\nname = "app"\nversion = "2.1.0"\n'
                'dependencies = ["lib~=0.3", "click"]\n\n'
                "[tool.lazy-release]\npublish = false\n"
            ),
        },
    )
    return tmp_path


def make_workspace(root: Path, packages, layers=None) -> Workspace:
    return Workspace(root=root, packages=tuple(packages), config_layers=layers or {})
