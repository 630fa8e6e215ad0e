"""Workspace discovery.

Reads [tool.uv.workspace].members from the root pyproject.toml to find
package directories, then builds the Package list (names, versions, internal
dependency edges) and each package's stack of configuration layers.
"""

from __future__ import annotations

import os
from pathlib import Path

from packaging.utils import canonicalize_name
from pydantic import BaseModel, ConfigDict, Field

from . import config
from .config import ConfigLayer
from .deps import dep_canonical_name, requirement_text
from .errors import ConfigError, UnknownPackage
from .models import Dependency, Package
from .toml import (
    get_dependency_strings,
    get_project_name,
    get_project_version,
    get_tool_settings,
    get_workspace_member_globs,
    has_project,
    load_pyproject,
    load_release_file,
)

RELEASE_FILE = "release.toml"


class Workspace(BaseModel):
    """A discovered workspace.

    Attributes:
        root: Absolute path of the workspace root.
        packages: Packages in discovery order (root package first).
        config_layers: Package name to its implicit config layers, highest
                       precedence first.
    """

    model_config = ConfigDict(frozen=True)

    root: Path
    packages: tuple[Package, ...]
    config_layers: dict[str, tuple[ConfigLayer, ...]] = Field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.packages]

    @property
    def edges(self) -> list[Dependency]:
        return [d for p in self.packages for d in p.dependencies]

    @property
    def root_package(self) -> Package | None:
        for p in self.packages:
            if p.is_root:
                return p
        return None

    def package(self, name: str) -> Package:
        canonical = canonicalize_name(name)
        for p in self.packages:
            if p.name == canonical:
                return p
        raise UnknownPackage(name)

    def layers_for(self, name: str) -> list[ConfigLayer]:
        return list(self.config_layers.get(name, ()))


def default_user_config_paths() -> list[Path]:
    """User-global config files, most specific first."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    config_home = Path(xdg) if xdg else Path.home() / ".config"
    return [config_home / "lazy-release" / RELEASE_FILE, Path.home() / ".release.toml"]


def _file_layer(name: str, path: Path) -> ConfigLayer | None:
    values = load_release_file(path)
    if values is None:
        return None
    return ConfigLayer(name=name, source=str(path.resolve()), values=values)


def _member_dirs(root: Path, members: list[str], exclude: list[str]) -> list[Path]:
    excluded = {p.resolve() for pattern in exclude for p in root.glob(pattern)}
    dirs: list[Path] = []
    for pattern in members:
        for p in sorted(root.glob(pattern)):
            if p.resolve() in excluded or p.resolve() == root.resolve():
                continue
            if (p / "pyproject.toml").is_file() and p not in dirs:
                dirs.append(p)
    return dirs


def load_workspace(
    root: Path,
    *,
    custom_config: Path | None = None,
    isolated: bool = False,
    user_config_paths: list[Path] | None = None,
) -> Workspace:
    """Discover every package in the workspace rooted at `root`.

    Args:
        root: Directory holding the workspace pyproject.toml.
        custom_config: Explicit settings file (--config); always applied.
        isolated: Ignore release.toml and user config files.
        user_config_paths: Override the user-global config locations.

    Returns:
        The Workspace, packages in discovery order.

    Raises:
        ConfigError: If a manifest or settings file is missing or invalid.
    """
    root = root.resolve()
    root_doc = load_pyproject(root / "pyproject.toml")
    member_globs, exclude_globs = get_workspace_member_globs(root_doc)
    member_dirs = _member_dirs(root, member_globs, exclude_globs)

    if has_project(root_doc):
        member_dirs.insert(0, root)
    if not member_dirs:
        raise ConfigError("No packages found matching workspace members")

    if user_config_paths is None:
        user_config_paths = default_user_config_paths()

    # Layers shared by every package
    explicit: list[ConfigLayer] = []
    if custom_config is not None:
        if not custom_config.is_file():
            raise ConfigError(f"config file not found: {custom_config}")
        layer = _file_layer(config.EXPLICIT_FILE, custom_config)
        if layer is not None:
            explicit.append(layer)

    _, workspace_values = get_tool_settings(root_doc)
    shared: list[ConfigLayer] = [
        ConfigLayer(
            name=config.WORKSPACE_MANIFEST,
            source=f"{root / 'pyproject.toml'}#workspace",
            values=workspace_values,
        )
    ]
    if not isolated:
        for name, path in [(config.WORKSPACE_FILE, root / RELEASE_FILE)] + [
            (config.USER_FILE, p) for p in user_config_paths
        ]:
            layer = _file_layer(name, path)
            if layer is not None:
                shared.append(layer)

    # First pass: read each manifest
    docs = {}
    packages_info: dict[str, tuple[Path, str]] = {}
    for d in member_dirs:
        doc = load_pyproject(d / "pyproject.toml")
        name = get_project_name(doc, d.name)
        if name in packages_info:
            raise ConfigError(f"duplicate package name '{name}' in {d}")
        docs[name] = doc
        packages_info[name] = (d, get_project_version(doc))

    # Second pass: keep only dependencies on workspace members
    packages: list[Package] = []
    layers: dict[str, tuple[ConfigLayer, ...]] = {}
    for name, (d, version) in packages_info.items():
        dependencies = []
        for kind, dep_str in get_dependency_strings(docs[name]):
            target = dep_canonical_name(dep_str)
            if target is None or target == name or target not in packages_info:
                continue
            dependencies.append(
                Dependency(
                    source=name,
                    target=target,
                    kind=kind,
                    requirement=requirement_text(dep_str),
                    declaration=dep_str.strip(),
                )
            )

        rel = d.relative_to(root).as_posix()
        manifest = "pyproject.toml" if rel == "." else f"{rel}/pyproject.toml"
        packages.append(
            Package(
                name=name,
                path=rel,
                manifest_path=manifest,
                version=version,
                dependencies=tuple(dependencies),
            )
        )

        package_values, _ = get_tool_settings(docs[name])
        own: list[ConfigLayer] = [
            ConfigLayer(
                name=config.PACKAGE_MANIFEST,
                source=str(d / "pyproject.toml"),
                values=package_values,
            )
        ]
        if not isolated:
            layer = _file_layer(config.PACKAGE_FILE, d / RELEASE_FILE)
            if layer is not None:
                own.append(layer)
        layers[name] = tuple(explicit + own + shared)

    return Workspace(root=root, packages=tuple(packages), config_layers=layers)
