"""Search/replace rules for auxiliary files (changelogs, docs, manifests).

A rule names a file glob, a regex, and a replacement template. Applying a
rule counts the matches first and refuses when the count falls outside the
rule's bounds, so a changelog heading that silently stopped matching fails
the plan instead of shipping a stale file.

Placeholders like {{version}} are rendered into the replacement template
only; the search pattern is used verbatim.
"""

from __future__ import annotations

import posixpath
import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from .errors import OccurrenceViolation, ReplacementError
from .models import TextEdit

if TYPE_CHECKING:
    from .backends import FileSource


class ReplacementRule(BaseModel):
    """One entry of `pre-release-replacements`.

    Attributes:
        file: Glob relative to the package directory.
        search: Regular expression; ^ and $ match at line boundaries.
        replace: Replacement template with back-references and placeholders.
        min: Minimum number of matches (defaults to `exactly`, else 1).
        max: Maximum number of matches (defaults to `exactly`, else unbounded).
        exactly: Exact number of matches.
        prerelease: Apply this rule when releasing a pre-release version.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    file: str
    search: str
    replace: str
    min: int | None = None
    max: int | None = None
    exactly: int | None = None
    prerelease: bool = False

    @property
    def min_count(self) -> int:
        if self.min is not None:
            return self.min
        return self.exactly if self.exactly is not None else 1

    @property
    def max_count(self) -> int | None:
        return self.max if self.max is not None else self.exactly


class TemplateVars(BaseModel):
    """Values available to {{placeholder}} substitution.

    Unset values leave their placeholder untouched.
    """

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    prev_version: str | None = None
    metadata: str | None = None
    prev_metadata: str | None = None
    date: str | None = None
    package_name: str | None = None
    tag_name: str | None = None
    prefix: str | None = None

    def render(self, template: str) -> str:
        """Substitute every set placeholder in `template`."""
        for name, value in self.model_dump().items():
            if value is not None:
                template = template.replace("{{" + name + "}}", value)
        return template

    def render_replacement(self, template: str) -> str:
        """Render placeholders into a `re.sub` template.

        Values are escaped so a backslash in, say, a date format can't be
        mistaken for a back-reference.
        """
        escaped = self.model_copy(
            update={
                k: v.replace("\\", "\\\\")
                for k, v in self.model_dump().items()
                if v is not None
            }
        )
        return escaped.render(template)


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.MULTILINE)
    except re.error as exc:
        raise ReplacementError(f"invalid search pattern `{pattern}`: {exc}") from exc


def count_matches(content: str, rule: ReplacementRule, path: str = "<content>") -> int:
    """Count matches of the rule's pattern and enforce its bounds.

    Raises:
        OccurrenceViolation: If the count is outside [min, max] or != exactly.
    """
    actual = sum(1 for _ in _compile(rule.search).finditer(content))

    if rule.exactly is not None and actual != rule.exactly:
        raise OccurrenceViolation(rule.search, path, f"exactly {rule.exactly}", actual)
    if actual < rule.min_count:
        raise OccurrenceViolation(rule.search, path, f"at least {rule.min_count}", actual)
    max_count = rule.max_count
    if max_count is not None and actual > max_count:
        raise OccurrenceViolation(rule.search, path, f"at most {max_count}", actual)
    return actual


def apply_rule(
    content: str,
    rule: ReplacementRule,
    variables: TemplateVars,
    *,
    path: str = "<content>",
    prerelease: bool = False,
) -> tuple[str, int]:
    """Apply one rule to `content`.

    Args:
        content: Current file text.
        rule: The replacement rule.
        variables: Placeholder values for the replacement template.
        path: File name used in error messages.
        prerelease: True when the planned version is a pre-release; rules
                    not flagged `prerelease` are then skipped entirely.

    Returns:
        Tuple of (new content, number of matches replaced).

    Raises:
        OccurrenceViolation: If the match count violates the rule's bounds.
        ReplacementError: If the pattern or template is invalid.
    """
    if prerelease and not rule.prerelease:
        return content, 0

    actual = count_matches(content, rule, path)
    replacement = variables.render_replacement(rule.replace)
    try:
        updated = _compile(rule.search).sub(replacement, content)
    except (re.error, IndexError) as exc:
        raise ReplacementError(
            f"invalid replacement `{rule.replace}` for `{rule.search}` in '{path}': {exc}"
        ) from exc
    return updated, actual


def plan_replacements(
    rules: list[ReplacementRule],
    variables: TemplateVars,
    files: FileSource,
    package_path: str,
    *,
    prerelease: bool = False,
    contents: dict[str, str] | None = None,
) -> list[TextEdit]:
    """Turn a package's replacement rules into ordered TextEdits.

    Rules are grouped per file (files in sorted order, rules in declared
    order) and chained: each rule sees the text produced by the previous one.

    Args:
        rules: The package's `pre-release-replacements`.
        variables: Placeholder values for this step.
        files: Source of workspace file contents.
        package_path: Package directory relative to the workspace root.
        prerelease: Whether the planned version is a pre-release.
        contents: Working copy of files already edited earlier in the plan;
                  updated in place with the new text.

    Returns:
        One TextEdit per rule and file that matched at least once.

    Raises:
        ReplacementError: If a glob matches no file or a rule fails.
    """
    if contents is None:
        contents = {}

    by_file: dict[str, list[ReplacementRule]] = {}
    for rule in rules:
        if prerelease and not rule.prerelease:
            continue
        pattern = posixpath.normpath(posixpath.join(package_path or ".", rule.file))
        matched = files.glob(pattern)
        if not matched:
            raise ReplacementError(
                f"unable to find file matching '{pattern}' to perform replace"
            )
        for path in matched:
            by_file.setdefault(path, []).append(rule)

    edits: list[TextEdit] = []
    for path in sorted(by_file):
        text = contents[path] if path in contents else files.read(path)
        for rule in by_file[path]:
            text, count = apply_rule(text, rule, variables, path=path)
            if count:
                edits.append(
                    TextEdit(
                        path=path,
                        search=rule.search,
                        replace=variables.render_replacement(rule.replace),
                        occurrences=count,
                        description=f"replace `{rule.search}` ({count}x)",
                    )
                )
        contents[path] = text
    return edits
