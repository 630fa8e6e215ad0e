"""Rewriting workspace dependency requirements after a version bump.

When package A goes from 1.2.0 to 1.3.0, every workspace package that
requires A may need its requirement text updated ("^1.2" → "^1.3",
">=1.2" → ">=1.3"). This module understands just enough of the common
requirement operators to do that deterministically:

    ^1.2   ~1.2   ~=1.2   ==1.2.0   =1.2   >=1.2   >1   <2   <=2   !=1.5
    1.2 (bare, caret semantics)   *   1.*   1.2.*   ==1.2.*

Terms using a PEP 440 operator (==, !=, ~=, >=, <=, >, <, ===) are evaluated
with packaging's Specifier, which also covers forms like ">=1.2.0rc1" and
"!=1.1.*". The caret, tilde, "=" and bare forms have no PEP 440 meaning and
are evaluated here.

Each predicate keeps its precision when rewritten. Upper bounds and
exclusions are left alone; if the rewritten requirement no longer admits
the new version a RequirementError is raised rather than guessing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum

import semver
from packaging.specifiers import InvalidSpecifier, Specifier
from packaging.version import InvalidVersion, Version

from .errors import RequirementError, RequirementMismatch
from .versions import bare


class DependentVersion(str, Enum):
    """Policy for dependents whose requirement points at a bumped package.

    UPGRADE: Rewrite the requirement whenever the text would change.
    FIX: Rewrite only if the old requirement excludes the new version.
    ERROR: Fail the step if the old requirement excludes the new version.
    WARN: Warn if the old requirement excludes the new version.
    IGNORE: Never touch dependents.
    """

    UPGRADE = "upgrade"
    FIX = "fix"
    ERROR = "error"
    WARN = "warn"
    IGNORE = "ignore"


_PREDICATE_RE = re.compile(
    r"""
    ^\s*
    (?P<op>\^|~=|~|==|=|>=|>|<=|<|!=)?
    \s*
    (?P<major>\d+|[*xX])
    (?:\.(?P<minor>\d+|[*xX]))?
    (?:\.(?P<patch>\d+|[*xX]))?
    (?:-(?P<pre>[0-9A-Za-z.-]+))?
    \s*$
    """,
    re.VERBOSE,
)

# Operators whose version is a lower bound / anchor that follows a bump
_ANCHORED_OPS = frozenset({"", "^", "~", "~=", "=", "==", ">="})
_PEP440_OPS = frozenset({"==", "!=", "~=", ">=", "<=", ">", "<", "==="})


@dataclass(frozen=True)
class Predicate:
    """One comma-separated term of a requirement."""

    op: str
    major: int | None
    minor: int | None
    patch: int | None
    pre: str | None
    raw: str
    wild: bool = False
    specifier: Specifier | None = None

    @property
    def pep440_only(self) -> bool:
        """Understood only as a PEP 440 specifier (">=1.2.0rc1", "!=1.1.*")."""
        return self.specifier is not None and self.major is None and not self.wild

    def floor(self) -> semver.Version:
        return semver.Version(
            self.major or 0, self.minor or 0, self.patch or 0, prerelease=self.pre
        )

    def render(self) -> str:
        if self.pep440_only:
            return str(self.specifier)
        if self.wild:
            if self.major is None:
                return "*"
            parts = [str(self.major)]
            if self.minor is not None:
                parts.append(str(self.minor))
            return self.op + ".".join(parts) + ".*"
        text = str(self.major)
        if self.minor is not None:
            text += f".{self.minor}"
        if self.patch is not None:
            text += f".{self.patch}"
        if self.pre:
            text += f"-{self.pre}"
        return f"{self.op}{text}"


def _parse_component(value: str | None) -> tuple[int | None, bool]:
    if value is None:
        return None, False
    if value in ("*", "x", "X"):
        return None, True
    return int(value), False


def _specifier(text: str) -> Specifier | None:
    try:
        return Specifier(text)
    except InvalidSpecifier:
        return None


def _parse_native(text: str) -> Predicate:
    m = _PREDICATE_RE.match(text)
    if m is None:
        raise RequirementError(f"unsupported version requirement: {text.strip()!r}")

    op = m.group("op") or ""
    major, major_wild = _parse_component(m.group("major"))
    minor, minor_wild = _parse_component(m.group("minor"))
    patch, patch_wild = _parse_component(m.group("patch"))

    if major_wild or minor_wild or patch_wild:
        if op not in ("", "=", "=="):
            raise RequirementError(f"wildcard not allowed with {op!r}: {text.strip()!r}")
        if major_wild and (minor is not None or patch is not None):
            raise RequirementError(f"invalid wildcard requirement: {text.strip()!r}")
        if minor_wild and patch is not None:
            raise RequirementError(f"invalid wildcard requirement: {text.strip()!r}")
        return Predicate(op, major, minor, None, None, text.strip(), wild=True)

    if op == "~=" and minor is None:
        raise RequirementError(f"~= needs at least two components: {text.strip()!r}")
    return Predicate(op, major, minor, patch, m.group("pre"), text.strip())


def parse_predicate(text: str) -> Predicate:
    """Parse a single requirement term.

    Wildcard terms ("1.*", "==1.2.*", "*") keep their operator and set `wild`.
    Terms with a PEP 440 operator also carry a packaging Specifier; terms
    only PEP 440 understands (">=1.2.0rc1", "!=1.1.*", "===1.0") carry
    nothing else.

    Raises:
        RequirementError: If the term is not understood.
    """
    text = text.strip()
    try:
        pred = _parse_native(text)
    except RequirementError:
        specifier = _specifier(text)
        if specifier is None:
            raise
        return Predicate(specifier.operator, None, None, None, None, text, specifier=specifier)
    if pred.op in _PEP440_OPS:
        pred = replace(pred, specifier=_specifier(text))
    return pred


def parse_requirement(requirement: str) -> list[Predicate]:
    """Split a requirement into predicates. An empty requirement has none."""
    text = requirement.strip()
    if not text:
        return []
    return [parse_predicate(term) for term in text.split(",")]


def _upper_bound(pred: Predicate) -> semver.Version | None:
    """Exclusive upper bound implied by a range-style predicate."""
    major = pred.major or 0
    if pred.wild:
        if pred.major is None:
            return None
        if pred.minor is None:
            return semver.Version(major + 1, 0, 0)
        return semver.Version(major, pred.minor + 1, 0)
    if pred.op in ("", "^"):
        if major > 0 or pred.minor is None:
            return semver.Version(major + 1, 0, 0)
        if pred.minor > 0 or pred.patch is None:
            return semver.Version(0, pred.minor + 1, 0)
        return semver.Version(0, 0, pred.patch + 1)
    if pred.op == "~":
        if pred.minor is None:
            return semver.Version(major + 1, 0, 0)
        return semver.Version(major, pred.minor + 1, 0)
    if pred.op == "~=":
        if pred.patch is None:
            return semver.Version(major + 1, 0, 0)
        return semver.Version(major, (pred.minor or 0) + 1, 0)
    if pred.op == "=":
        if pred.minor is None:
            return semver.Version(major + 1, 0, 0)
        if pred.patch is None:
            return semver.Version(major, pred.minor + 1, 0)
    return None


def _as_pep440(version: semver.Version) -> Version | None:
    try:
        return Version(str(bare(version)))
    except InvalidVersion:
        return None


def _predicate_matches(pred: Predicate, version: semver.Version) -> bool:
    if pred.specifier is not None:
        candidate = _as_pep440(version)
        if candidate is not None:
            return pred.specifier.contains(candidate, prereleases=True)
        if pred.pep440_only:
            raise RequirementError(
                f"cannot check {version} against {pred.raw!r}: not a PEP 440 version"
            )
    version = bare(version)
    floor = pred.floor()
    if pred.wild:
        upper = _upper_bound(pred)
        return upper is None or floor <= version < upper
    if pred.op == "==":
        return version == floor
    if pred.op == "!=":
        return version != floor
    if pred.op == ">":
        return version > floor
    if pred.op == "<":
        return version < floor
    if pred.op == "<=":
        return version <= floor
    if pred.op == ">=":
        return version >= floor

    upper = _upper_bound(pred)
    if upper is None:
        # "=1.2.3" with full precision
        return version == floor
    return floor <= version < upper


def matches(requirement: str, version: semver.Version) -> bool:
    """Return True if every predicate of `requirement` admits `version`."""
    return all(_predicate_matches(p, version) for p in parse_requirement(requirement))


def _upgrade_specifier(
    pred: Predicate, spec: Specifier, version: semver.Version
) -> Predicate:
    if spec.operator not in ("==", "===", "~=", ">=") or spec.version.endswith(".*"):
        return pred
    try:
        old = Version(spec.version)
    except InvalidVersion:
        return pred
    new = _as_pep440(version)
    if new is None:
        raise RequirementError(
            f"cannot rewrite {pred.raw!r} for {version}: not a PEP 440 version"
        )

    suffixed = old.pre is not None or old.post is not None or old.dev is not None
    if new.is_prerelease or suffixed:
        # Full precision; a truncated release would drop the suffix
        text = str(new)
    else:
        precision = max(len(old.release), 2 if spec.operator == "~=" else 1)
        text = ".".join(str(n) for n in new.release[:precision])
    specifier = Specifier(f"{spec.operator}{text}")
    return replace(pred, raw=str(specifier), specifier=specifier)


def _upgrade_predicate(pred: Predicate, version: semver.Version) -> Predicate:
    if pred.specifier is not None and pred.pep440_only:
        return _upgrade_specifier(pred, pred.specifier, version)
    if pred.wild:
        if pred.major is None:
            return pred
        minor = version.minor if pred.minor is not None else None
        return replace(pred, major=version.major, minor=minor)
    if pred.op not in _ANCHORED_OPS:
        return pred

    minor = version.minor if pred.minor is not None else None
    patch = version.patch if pred.patch is not None else None
    pre = version.prerelease if pred.patch is not None else None
    if version.prerelease and pred.patch is None:
        # A partial requirement can't admit a pre-release; widen it
        minor, patch, pre = version.minor, version.patch, version.prerelease
    return replace(pred, major=version.major, minor=minor, patch=patch, pre=pre)


def upgrade(requirement: str, version: semver.Version) -> str | None:
    """Rewrite `requirement` so it is anchored at `version`.

    Examples:
        upgrade("^1.2", 1.3.0) → "^1.3"
        upgrade("1.0", 2.0.0) → "^2.0"
        upgrade(">=1.0,<2", 1.4.0) → ">=1.4,<2"
        upgrade("^1.3", 1.3.2) → None  (already anchored at the same precision)

    Returns:
        The new requirement text, or None if nothing changes.

    Raises:
        RequirementError: If the rewritten requirement would not admit
                          `version` (e.g. an upper bound excludes it).
    """
    preds = parse_requirement(requirement)
    if not preds:
        return None

    rendered: list[str] = []
    for pred in preds:
        new = _upgrade_predicate(pred, version)
        if new == pred:
            rendered.append(pred.raw)
            continue
        if new.op == "" and not new.wild:
            new = replace(new, op="^")
        rendered.append(new.render())

    separator = ", " if ", " in requirement else ","
    new_requirement = separator.join(rendered)
    if new_requirement == requirement.strip():
        return None
    if not matches(new_requirement, version):
        raise RequirementError(
            f"requirement {requirement!r} cannot be updated to admit {version}"
        )
    return new_requirement


@dataclass(frozen=True)
class RequirementUpdate:
    """Outcome of applying a DependentVersion policy to one requirement.

    Attributes:
        requirement: New requirement text, or None to leave it as is.
        warning: Message to surface when the WARN policy finds a mismatch.
    """

    requirement: str | None = None
    warning: str | None = None


def update_requirement(
    requirement: str, version: semver.Version, policy: DependentVersion
) -> RequirementUpdate:
    """Decide what happens to `requirement` after its target moves to `version`.

    Raises:
        RequirementError: Under ERROR when `requirement` excludes `version`,
                          or when the rewrite can't admit `version`.
    """
    if policy is DependentVersion.IGNORE or not requirement.strip():
        return RequirementUpdate()

    admitted = matches(requirement, version)
    if policy is DependentVersion.WARN:
        if admitted:
            return RequirementUpdate()
        return RequirementUpdate(
            warning=f"requirement {requirement!r} excludes {version}"
        )
    if policy is DependentVersion.ERROR and not admitted:
        raise RequirementMismatch(f"requirement {requirement!r} excludes {version}")
    if policy is DependentVersion.FIX and admitted:
        return RequirementUpdate()
    return RequirementUpdate(requirement=upgrade(requirement, version))
