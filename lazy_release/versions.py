"""Version parsing and bump transitions.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0")
and PEP 440 pre-releases (e.g., "1.0.0rc1" → "1.0.0-rc.1").

The transition rules are pure: every function returns a new semver.Version
and never touches the filesystem, git, or the registry.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

import semver
from packaging.version import InvalidVersion
from packaging.version import Version as Pep440Version
from pydantic import BaseModel, ConfigDict

from .errors import (
    InvalidDowngrade,
    NonMonotonicVersion,
    UnsupportedPrerelease,
    VersionError,
)

# Pre-release names in the order a release moves through them. Names not in
# this table (e.g. "dev") rank below alpha.
PRERELEASE_RANK: dict[str, int] = {"alpha": 0, "beta": 1, "rc": 2}

_PEP440_PRE_NAMES = {"a": "alpha", "b": "beta", "rc": "rc"}


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-rc.1+build.5" → unchanged

    PEP 440 pre-releases are translated to their semver spelling so a
    pyproject version like "2.0.0b3" plans the same way as "2.0.0-beta.3".

    Raises:
        VersionError: If the string is neither semver nor PEP 440.
    """
    text = version_str.strip()
    try:
        return semver.Version.parse(text, optional_minor_and_patch=True)
    except ValueError:
        pass

    try:
        pep = Pep440Version(text)
    except InvalidVersion:
        raise VersionError(f"invalid version: {version_str!r}") from None
    if pep.epoch or pep.is_postrelease or pep.is_devrelease or len(pep.release) > 3:
        raise VersionError(f"cannot express {version_str!r} as a semantic version")

    major, minor, patch = (list(pep.release) + [0, 0])[:3]
    prerelease = None
    if pep.pre is not None:
        letter, number = pep.pre
        prerelease = f"{_PEP440_PRE_NAMES[letter]}.{number}"
    build = pep.local.replace("_", ".") if pep.local else None
    return semver.Version(major, minor, patch, prerelease=prerelease, build=build)


def bare(version: semver.Version) -> semver.Version:
    """Return the version with build metadata dropped.

    Build metadata never participates in release ordering or equality, so
    every comparison in the planner goes through this.
    """
    return version.replace(build=None)


def is_prerelease(version: semver.Version) -> bool:
    return version.prerelease is not None


class PreRelease(NamedTuple):
    """A parsed `name.counter` pre-release identifier."""

    name: str
    counter: int

    @property
    def rank(self) -> int:
        return PRERELEASE_RANK.get(self.name, -1)

    def __str__(self) -> str:
        return f"{self.name}.{self.counter}"


def parse_prerelease(version: semver.Version) -> PreRelease | None:
    """Split a version's pre-release part into name and counter.

    Returns None for stable versions. A bare name ("1.0.0-rc") counts as
    counter 0.

    Raises:
        UnsupportedPrerelease: If the identifier is not `<name>[.<number>]`.
    """
    if version.prerelease is None:
        return None

    parts = version.prerelease.split(".")
    name = parts[0]
    if name.isdigit() or len(parts) > 2:
        raise UnsupportedPrerelease(str(version))
    if len(parts) == 1:
        return PreRelease(name, 0)
    if not parts[1].isdigit():
        raise UnsupportedPrerelease(str(version))
    return PreRelease(name, int(parts[1]))


class BumpLevel(str, Enum):
    """Bump levels accepted on the command line."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    RELEASE = "release"
    ALPHA = "alpha"
    BETA = "beta"
    RC = "rc"
    EXPLICIT = "explicit"

    @property
    def is_prerelease(self) -> bool:
        return self.value in PRERELEASE_RANK


class BumpIntent(BaseModel):
    """The requested kind of version change for one invocation.

    Attributes:
        level: Which transition to apply.
        version: Target version string, only for BumpLevel.EXPLICIT.
    """

    model_config = ConfigDict(frozen=True)

    level: BumpLevel
    version: str | None = None

    @classmethod
    def parse(cls, text: str) -> BumpIntent:
        """Build an intent from a level name or an explicit version.

        Examples:
            "minor" → BumpIntent(level=MINOR)
            "2.0.0-rc.1" → BumpIntent(level=EXPLICIT, version="2.0.0-rc.1")
        """
        value = text.strip().lower()
        if value in {level.value for level in BumpLevel} - {BumpLevel.EXPLICIT.value}:
            return cls(level=BumpLevel(value))
        # Validate now so a typo fails before planning starts
        parse_version(text)
        return cls(level=BumpLevel.EXPLICIT, version=text.strip())

    @classmethod
    def explicit(cls, version: str) -> BumpIntent:
        parse_version(version)
        return cls(level=BumpLevel.EXPLICIT, version=version)

    def __str__(self) -> str:
        return self.version if self.level is BumpLevel.EXPLICIT else self.level.value


def bump_prerelease(current: semver.Version, name: str) -> semver.Version:
    """Move a version to the next `name` pre-release.

    Examples:
        "1.0.0" + alpha → "1.0.1-alpha.1"
        "1.0.1-alpha.1" + alpha → "1.0.1-alpha.2"
        "1.0.1-alpha" + rc → "1.0.1-rc.1"
        "1.0.1-rc.1" + beta → InvalidDowngrade
    """
    pre = parse_prerelease(current)
    if pre is None:
        # A pre-release sorts below its triplet, so start from the next patch
        return current.bump_patch().replace(prerelease=f"{name}.1", build=None)

    requested_rank = PRERELEASE_RANK.get(name, -1)
    if pre.name == name:
        counter = pre.counter + 1
    elif pre.rank < requested_rank:
        counter = 1
    else:
        raise InvalidDowngrade(str(current), name)
    return current.replace(prerelease=f"{name}.{counter}", build=None)


def next_version(
    current: semver.Version,
    intent: BumpIntent,
    metadata: str | None = None,
) -> semver.Version:
    """Compute the version a package moves to for the given intent.

    Args:
        current: The version currently in the manifest.
        intent: Requested bump.
        metadata: Optional build metadata to attach to the result.

    Returns:
        A new semver.Version; `current` is never modified.

    Raises:
        InvalidDowngrade: Pre-release bump to a lower-ranked name.
        NonMonotonicVersion: Explicit version not greater than current.
        VersionError: Explicit intent without a version.
        UnsupportedPrerelease: Current pre-release is not `<name>.<number>`.
    """
    level = intent.level
    if level is BumpLevel.MAJOR:
        result = current.bump_major()
    elif level is BumpLevel.MINOR:
        result = current.bump_minor()
    elif level is BumpLevel.PATCH:
        if is_prerelease(current):
            result = current.finalize_version()
        else:
            result = current.bump_patch()
    elif level is BumpLevel.RELEASE:
        result = current.finalize_version() if is_prerelease(current) else current
    elif level.is_prerelease:
        result = bump_prerelease(current, level.value)
    else:
        if intent.version is None:
            raise VersionError("an explicit version intent needs a version")
        result = parse_version(intent.version)
        if not bare(result) > bare(current):
            raise NonMonotonicVersion(str(current), intent.version)

    if metadata is not None:
        result = result.replace(build=metadata)
    return result


def max_version(versions: list[semver.Version]) -> semver.Version | None:
    """Return the single greatest version, or None if there is no such value.

    Versions that tie in precedence but carry different build metadata have
    no single maximum.
    """
    if not versions:
        return None
    top = max(versions, key=bare)
    tied = {str(v) for v in versions if bare(v) == bare(top)}
    if len(tied) > 1:
        return None
    return top
