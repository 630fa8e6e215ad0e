"""Layered release configuration.

Settings come from several places (command line, package manifest, package
release.toml, workspace manifest, workspace release.toml, user files). Each
place is a ConfigLayer; resolve_config walks the layers in precedence order
and takes, for every setting independently, the first value that is set.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .models import Package
from .replace import ReplacementRule, TemplateVars
from .requirements import DependentVersion

# Layer names, highest precedence first
INVOCATION = "invocation"
EXPLICIT_FILE = "explicit file"
PACKAGE_MANIFEST = "package manifest"
PACKAGE_FILE = "package file"
WORKSPACE_MANIFEST = "workspace manifest"
WORKSPACE_FILE = "workspace file"
USER_FILE = "user file"
DEFAULT = "default"

DEFAULT_TAG_NAME = "{{prefix}}v{{version}}"


class ConfigLayer(BaseModel):
    """One source of settings.

    Attributes:
        name: Precedence level this layer sits at (e.g. "package file").
        source: Physical origin, usually a file path. Layers with the same
                source are only consulted once.
        values: Raw settings as read from TOML (kebab- or snake-case keys).
    """

    model_config = ConfigDict(frozen=True)

    name: str
    source: str | None = None
    values: dict[str, Any] = Field(default_factory=dict)


class _LayerSettings(BaseModel):
    """Validation schema for a single layer; every field is optional."""

    model_config = ConfigDict(extra="forbid")

    release: bool | None = None
    publish: bool | None = None
    push: bool | None = None
    tag: bool | None = None
    push_remote: str | None = None
    allow_branch: list[str] | None = None
    sign_commit: bool | None = None
    sign_tag: bool | None = None
    registry: str | None = None
    tag_prefix: str | None = None
    tag_name: str | None = None
    tag_message: str | None = None
    pre_release_commit_message: str | None = None
    pre_release_replacements: list[ReplacementRule] | None = None
    shared_version: bool | str | None = None
    consolidate_commits: bool | None = None
    dependent_version: DependentVersion | None = None
    owners: list[str] | None = None

    @field_validator("allow_branch", "owners", mode="before")
    @classmethod
    def _single_string(cls, value: Any) -> Any:
        return [value] if isinstance(value, str) else value


class ResolvedConfig(BaseModel):
    """Effective settings for one package, with where each value came from."""

    model_config = ConfigDict(frozen=True)

    release: bool = True
    publish: bool = True
    push: bool = True
    tag: bool = True
    push_remote: str = "origin"
    allow_branch: tuple[str, ...] = ("*", "!HEAD")
    sign_commit: bool = False
    sign_tag: bool = False
    registry: str | None = None
    tag_prefix: str | None = None
    tag_name: str = DEFAULT_TAG_NAME
    tag_message: str = "chore: release {{package_name}} version {{version}}"
    pre_release_commit_message: str = "chore: release {{package_name}} {{version}}"
    pre_release_replacements: tuple[ReplacementRule, ...] = ()
    shared_version: str | None = None
    consolidate_commits: bool = False
    dependent_version: DependentVersion = DependentVersion.UPGRADE
    owners: tuple[str, ...] = ()
    provenance: dict[str, str] = Field(default_factory=dict)

    def prefix_for(self, package: Package) -> str:
        """Rendered tag prefix: "" for the root package, "<name>/" otherwise."""
        if self.tag_prefix is not None:
            template = self.tag_prefix
        elif package.is_root:
            template = ""
        else:
            template = "{{package_name}}/"
        return TemplateVars(package_name=package.name).render(template)

    def branch_allowed(self, branch: str) -> bool:
        """Check `branch` against allow-branch globs.

        Patterns are evaluated in order and the last match wins; a pattern
        starting with "!" excludes.
        """
        allowed = False
        for pattern in self.allow_branch:
            negate = pattern.startswith("!")
            if fnmatchcase(branch, pattern[1:] if negate else pattern):
                allowed = not negate
        return allowed


SETTINGS: tuple[str, ...] = tuple(
    name for name in ResolvedConfig.model_fields if name != "provenance"
)


def normalize_key(key: str) -> str:
    return key.replace("-", "_")


def _validate_layer(layer: ConfigLayer) -> dict[str, Any]:
    values = {normalize_key(k): v for k, v in layer.values.items()}
    try:
        settings = _LayerSettings.model_validate(values)
    except ValidationError as exc:
        where = f"{layer.name} ({layer.source})" if layer.source else layer.name
        raise ConfigError(f"invalid settings in {where}:\n{exc}") from exc
    return settings.model_dump(exclude_none=True)


def _dedupe(layers: list[ConfigLayer]) -> list[ConfigLayer]:
    seen: set[str] = set()
    unique = []
    for layer in layers:
        if layer.source is not None:
            if layer.source in seen:
                continue
            seen.add(layer.source)
        unique.append(layer)
    return unique


def resolve_config(package: Package, layers: list[ConfigLayer]) -> ResolvedConfig:
    """Merge `layers` into the effective settings for `package`.

    Args:
        package: The package being configured (used in error messages).
        layers: Layers in precedence order, highest first.

    Returns:
        A new ResolvedConfig; the layers are not modified.

    Raises:
        ConfigError: If a layer has an unknown key or an ill-typed value.
    """
    merged: dict[str, Any] = {}
    provenance: dict[str, str] = {}
    for layer in _dedupe(layers):
        try:
            values = _validate_layer(layer)
        except ConfigError as exc:
            raise ConfigError(f"{package.name}: {exc}") from exc
        for key, value in values.items():
            if key not in merged:
                merged[key] = value
                provenance[key] = layer.name

    shared = merged.get("shared_version")
    if shared is True:
        merged["shared_version"] = "default"
    elif shared is False:
        merged["shared_version"] = None

    for key in SETTINGS:
        provenance.setdefault(key, DEFAULT)
    return ResolvedConfig(**merged, provenance=provenance)


def describe(resolved: ResolvedConfig) -> list[tuple[str, Any, str]]:
    """List every setting as (kebab-case key, value, layer that supplied it)."""
    rows = []
    for key in SETTINGS:
        value = getattr(resolved, key)
        if key == "pre_release_replacements":
            value = [rule.model_dump(exclude_none=True) for rule in value]
        elif isinstance(value, DependentVersion):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        rows.append((key.replace("_", "-"), value, resolved.provenance[key]))
    return rows
