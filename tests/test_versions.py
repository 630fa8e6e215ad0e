"""Tests for lazy_release.versions."""

from __future__ import annotations

import pytest
import semver

from lazy_release.errors import (
    InvalidDowngrade,
    NonMonotonicVersion,
    UnsupportedPrerelease,
    VersionError,
)
from lazy_release.versions import (
    BumpIntent,
    BumpLevel,
    PreRelease,
    max_version,
    next_version,
    parse_prerelease,
    parse_version,
)


def bump(current: str, level: str, metadata: str | None = None) -> str:
    return str(next_version(parse_version(current), BumpIntent.parse(level), metadata))


class TestParseVersion:
    def test_full_semver(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_two_part_version(self) -> None:
        v = parse_version("1.2")
        assert (v.major, v.minor, v.patch) == (1, 2, 0)

    def test_single_part_version(self) -> None:
        v = parse_version("5")
        assert (v.major, v.minor, v.patch) == (5, 0, 0)

    def test_prerelease_and_build(self) -> None:
        v = parse_version("1.2.3-rc.1+build.5")
        assert v.prerelease == "rc.1"
        assert v.build == "build.5"

    def test_pep440_prerelease(self) -> None:
        assert str(parse_version("2.0.0b3")) == "2.0.0-beta.3"
        assert str(parse_version("1.0rc1")) == "1.0.0-rc.1"

    def test_pep440_local_becomes_build(self) -> None:
        assert parse_version("1.0.0+abc.1").build == "abc.1"

    def test_invalid(self) -> None:
        with pytest.raises(VersionError, match="invalid version"):
            parse_version("not-a-version")

    def test_post_release_rejected(self) -> None:
        with pytest.raises(VersionError):
            parse_version("1.0.0.post1")


class TestParsePrerelease:
    def test_stable(self) -> None:
        assert parse_prerelease(parse_version("1.0.0")) is None

    def test_named_counter(self) -> None:
        assert parse_prerelease(parse_version("1.0.0-beta.4")) == PreRelease("beta", 4)

    def test_bare_name_counts_as_zero(self) -> None:
        assert parse_prerelease(parse_version("1.0.0-rc")) == PreRelease("rc", 0)

    def test_unknown_name_ranks_below_alpha(self) -> None:
        assert PreRelease("dev", 1).rank < PreRelease("alpha", 1).rank

    @pytest.mark.parametrize("version", ["1.0.0-1", "1.0.0-rc.x", "1.0.0-rc.1.2"])
    def test_unsupported(self, version: str) -> None:
        with pytest.raises(UnsupportedPrerelease):
            parse_prerelease(parse_version(version))


class TestBumpIntent:
    def test_level(self) -> None:
        assert BumpIntent.parse("Minor").level is BumpLevel.MINOR

    def test_explicit(self) -> None:
        intent = BumpIntent.parse("2.0.0-rc.1")
        assert intent.level is BumpLevel.EXPLICIT
        assert intent.version == "2.0.0-rc.1"
        assert str(intent) == "2.0.0-rc.1"

    def test_garbage(self) -> None:
        with pytest.raises(VersionError):
            BumpIntent.parse("sideways")


class TestNextVersion:
    @pytest.mark.parametrize(
        ("current", "level", "expected"),
        [
            ("1.2.3", "major", "2.0.0"),
            ("1.2.3", "minor", "1.3.0"),
            ("1.2.3", "patch", "1.2.4"),
            ("1.2.3-rc.1", "patch", "1.2.3"),
            ("1.2.3-rc.1", "minor", "1.3.0"),
            ("1.2.3-rc.1", "major", "2.0.0"),
            ("1.2.3-rc.1", "release", "1.2.3"),
            ("1.2.3", "release", "1.2.3"),
            ("1.0.0", "alpha", "1.0.1-alpha.1"),
            ("1.0.1-alpha.1", "alpha", "1.0.1-alpha.2"),
            ("1.0.1-alpha", "rc", "1.0.1-rc.1"),
            ("1.0.1-rc", "rc", "1.0.1-rc.1"),
            ("1.0.1-beta.3", "rc", "1.0.1-rc.1"),
            ("1.0.1-dev.2", "alpha", "1.0.1-alpha.1"),
        ],
    )
    def test_transitions(self, current: str, level: str, expected: str) -> None:
        assert bump(current, level) == expected

    def test_prerelease_downgrade(self) -> None:
        with pytest.raises(InvalidDowngrade):
            bump("1.0.0-rc.1", "beta")

    def test_explicit_greater(self) -> None:
        assert bump("1.2.3", "1.4.0") == "1.4.0"

    def test_explicit_release_of_prerelease(self) -> None:
        assert bump("1.4.0-rc.2", "1.4.0") == "1.4.0"

    @pytest.mark.parametrize("target", ["1.2.3", "1.2.2", "1.2.3-rc.1", "1.2.3+other"])
    def test_explicit_not_greater(self, target: str) -> None:
        with pytest.raises(NonMonotonicVersion):
            bump("1.2.3", target)

    def test_explicit_without_version(self) -> None:
        with pytest.raises(VersionError, match="needs a version"):
            next_version(parse_version("1.2.3"), BumpIntent(level=BumpLevel.EXPLICIT))

    def test_metadata_replaces_build(self) -> None:
        assert bump("1.2.3+old", "minor", metadata="ci.7") == "1.3.0+ci.7"

    def test_current_not_mutated(self) -> None:
        current = parse_version("1.2.3")
        next_version(current, BumpIntent(level=BumpLevel.MAJOR))
        assert str(current) == "1.2.3"

    @pytest.mark.parametrize(
        "current", ["0.0.0", "1.2.3", "1.2.3-alpha.1", "3.0.0-rc+build.1", "9.9.9-beta"]
    )
    def test_release_is_idempotent(self, current: str) -> None:
        release = BumpIntent(level=BumpLevel.RELEASE)
        once = next_version(parse_version(current), release)
        assert next_version(once, release) == once

    @pytest.mark.parametrize(
        "current", ["0.0.0", "0.9.9", "1.2.3", "1.2.3-alpha.1", "4.0.0-rc.2+meta"]
    )
    def test_major_is_strictly_greater(self, current: str) -> None:
        v = parse_version(current)
        result = next_version(v, BumpIntent(level=BumpLevel.MAJOR))
        assert result > v
        assert (result.minor, result.patch, result.prerelease) == (0, 0, None)


class TestMaxVersion:
    def test_picks_highest(self) -> None:
        versions = [semver.Version.parse(v) for v in ["1.2.0", "1.10.0", "1.3.0-rc.1"]]
        assert str(max_version(versions)) == "1.10.0"

    def test_identical_duplicates(self) -> None:
        versions = [semver.Version.parse("2.0.0")] * 2
        assert str(max_version(versions)) == "2.0.0"

    def test_metadata_tie_has_no_max(self) -> None:
        versions = [semver.Version.parse(v) for v in ["2.0.0+a", "2.0.0+b"]]
        assert max_version(versions) is None

    def test_empty(self) -> None:
        assert max_version([]) is None
