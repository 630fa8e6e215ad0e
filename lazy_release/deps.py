"""Dependency string utilities.

Provides functions for reading the package name and version requirement out
of a dependency declaration, and for rewriting the requirement in place while
keeping the rest of the declaration (extras, markers, spacing) untouched.
"""

from __future__ import annotations

import re

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

# name, optional extras, then everything up to an environment marker
_DECLARATION_RE = re.compile(
    r"""
    ^\s*
    (?P<name>[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)
    \s*
    (?P<extras>\[[^\]]*\])?
    \s*
    (?P<rest>[^;]*)
    """,
    re.VERBOSE,
)


def dep_canonical_name(dep_str: str) -> str | None:
    """Extract the canonical package name from a dependency string.

    Handles PEP 508 strings as well as caret/tilde requirements that
    packaging rejects, and normalizes the name per PEP 503.

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
        "pkg-a^1.2" → "pkg-a"

    Returns:
        The canonical name, or None if the string has no recognizable name.
    """
    try:
        return canonicalize_name(Requirement(dep_str).name)
    except InvalidRequirement:
        m = _DECLARATION_RE.match(dep_str)
        return canonicalize_name(m.group("name")) if m else None


def requirement_text(dep_str: str) -> str:
    """Return the version requirement exactly as written in `dep_str`.

    Examples:
        "pkg-a >= 1.2 ; python_version > '3.9'" → ">= 1.2"
        "pkg-a[cli](>=1.0,<2)" → ">=1.0,<2"
        "pkg-a @ file:///src/pkg-a" → ""
        "pkg-a" → ""
    """
    m = _DECLARATION_RE.match(dep_str)
    if m is None:
        return ""
    rest = m.group("rest").strip()
    if rest.startswith("@"):
        return ""
    if rest.startswith("(") and rest.endswith(")"):
        rest = rest[1:-1].strip()
    return rest


def rewrite_declaration(declaration: str, requirement: str, new_requirement: str) -> str:
    """Swap the requirement inside a declaration, keeping everything else.

    Examples:
        rewrite_declaration("pkg-a>=1.2", ">=1.2", ">=1.3") → "pkg-a>=1.3"
    """
    m = _DECLARATION_RE.match(declaration)
    if m is None or not requirement:
        return declaration
    start = m.start("rest")
    head, tail = declaration[:start], declaration[start:]
    return head + tail.replace(requirement, new_requirement, 1)
