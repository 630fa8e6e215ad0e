"""Collaborators the planner reads facts from.

The planner never runs git, talks to a registry, or opens files itself. It
is handed objects satisfying the protocols below. The concrete classes here
are what the CLI wires in; tests pass in-memory fakes instead.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Protocol

from packaging.utils import canonicalize_name

from .errors import CollaboratorError
from .shell import gh, git


class VersionControl(Protocol):
    def is_dirty(self, paths: list[str] | None = None) -> bool: ...

    def changed_paths_since(self, ref: str) -> set[str]: ...

    def current_branch(self) -> str: ...

    def is_tracking_remote(self) -> bool: ...

    def last_tag(self, pattern: str) -> str | None: ...

    def tag_exists(self, name: str) -> bool: ...


class Registry(Protocol):
    def is_published(self, name: str, version: str) -> bool: ...

    def owners(self, name: str) -> set[str]: ...


class FileSource(Protocol):
    def glob(self, pattern: str) -> list[str]: ...

    def read(self, path: str) -> str: ...


class GitBackend:
    """VersionControl implemented with the git CLI."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _git(self, *args: str, check: bool = True) -> str:
        try:
            return git(*args, cwd=self.root, check=check)
        except (OSError, subprocess.CalledProcessError) as exc:
            stderr = getattr(exc, "stderr", "") or ""
            raise CollaboratorError(
                f"git {' '.join(args)} failed: {stderr.strip() or exc}"
            ) from exc

    def is_dirty(self, paths: list[str] | None = None) -> bool:
        status = self._git("status", "--porcelain", "--", *(paths or []))
        return bool(status)

    def changed_paths_since(self, ref: str) -> set[str]:
        return set(self._git("diff", "--name-only", ref, "HEAD").splitlines())

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def is_tracking_remote(self) -> bool:
        upstream = self._git(
            "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}", check=False
        )
        return bool(upstream)

    def last_tag(self, pattern: str) -> str | None:
        # Sorted by version so pkg/v1.10.0 comes before pkg/v1.9.0
        tags = self._git("tag", "--list", pattern, "--sort=-v:refname", check=False)
        return tags.splitlines()[0] if tags else None

    def tag_exists(self, name: str) -> bool:
        return bool(self._git("tag", "--list", name, check=False))


class GitHubReleasesRegistry:
    """Registry backed by wheels attached to GitHub releases.

    A version counts as published when any release carries a wheel named
    `<dist_name>-<version>-*.whl`.
    """

    def __init__(self, root: Path, limit: int = 100) -> None:
        self.root = root
        self.limit = limit
        self._wheels: set[str] | None = None

    def _existing_wheels(self) -> set[str]:
        if self._wheels is not None:
            return self._wheels

        output = gh(
            "release", "list", "--json", "tagName", "--limit", str(self.limit),
            cwd=self.root, check=False,
        )
        wheels: set[str] = set()
        try:
            releases = json.loads(output) if output else []
        except json.JSONDecodeError as exc:
            raise CollaboratorError(f"could not parse gh release list: {exc}") from exc

        for release in releases:
            tag = release.get("tagName", "")
            if not tag:
                continue
            assets_output = gh(
                "release", "view", tag, "--json", "assets", cwd=self.root, check=False
            )
            if not assets_output:
                continue
            try:
                assets = json.loads(assets_output).get("assets", [])
            except json.JSONDecodeError as exc:
                raise CollaboratorError(
                    f"could not parse assets of release {tag}: {exc}"
                ) from exc
            wheels.update(
                a.get("name", "") for a in assets if a.get("name", "").endswith(".whl")
            )

        self._wheels = wheels
        return wheels

    def is_published(self, name: str, version: str) -> bool:
        # Wheel names use underscores, not hyphens
        prefix = f"{canonicalize_name(name).replace('-', '_')}-{version}-"
        return any(w.startswith(prefix) for w in self._existing_wheels())

    def owners(self, name: str) -> set[str]:
        logins = gh(
            "api", "repos/{owner}/{repo}/collaborators?permission=admin",
            "--jq", ".[].login",
            cwd=self.root, check=False,
        )
        return set(logins.splitlines())


class LocalFiles:
    """FileSource reading from the working tree."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def glob(self, pattern: str) -> list[str]:
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.glob(pattern)
            if p.is_file()
        )

    def read(self, path: str) -> str:
        try:
            return (self.root / path).read_text()
        except OSError as exc:
            raise CollaboratorError(f"unable to read {path}: {exc}") from exc
