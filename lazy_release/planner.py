"""Release planning: select → order → version → detect changes → edit → check.

This module turns a bump intent into a ReleasePlan:
1. Resolve the configuration of every package
2. Work out which packages are selected (shared-version groups move together)
3. Order them so dependencies are released first
4. Compute each package's next version
5. Skip packages with no changes since their last release tag
6. Plan the text edits: manifest version, replacement rules, and the
   requirements of dependents
7. Run preflight checks (clean tree, branch, existing tags, registry)

Nothing here commits, tags, publishes or writes a file. Every fact about the
outside world comes from the collaborators passed in.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass, field
from typing import Any

import semver
from packaging.utils import canonicalize_name

from . import graph
from .backends import FileSource, Registry, VersionControl
from .changes import ChangeDetector
from .config import INVOCATION, ConfigLayer, ResolvedConfig, resolve_config
from .deps import rewrite_declaration
from .errors import (
    CollaboratorError,
    ConfigError,
    CycleDetected,
    LazyReleaseError,
    PackageError,
    PlanError,
    ReplacementError,
    RequirementError,
    RequirementMismatch,
    SharedVersionConflict,
    UnknownPackage,
    VersionError,
)
from .models import Finding, Package, ReleasePlan, ReleaseStep, Selection, TextEdit
from .replace import TemplateVars, plan_replacements
from .requirements import DependentVersion, update_requirement
from .versions import (
    BumpIntent,
    bare,
    is_prerelease,
    max_version,
    next_version,
    parse_version,
)
from .workspace import Workspace

# Version placeholders replaced by a glob when looking up a package's last tag
_TAG_GLOB_VARS = {"version": "*", "prev_version": "*", "metadata": "*", "date": "*"}


def manifest_version_edit(path: str, content: str, old: str, new: str) -> TextEdit:
    """Edit that changes [project].version in a pyproject.toml.

    Only the `version` key of the [project] table is touched; a version
    string anywhere else in the file is left alone.

    Raises:
        ReplacementError: If the key isn't found exactly once.
    """
    search = (
        r"(?ms)^(\[project\][ \t]*$(?:(?!^\[)[\s\S])*?^version[ \t]*=[ \t]*[\"'])"
        + re.escape(old)
        + r"([\"'])"
    )
    count = len(re.findall(search, content))
    if count != 1:
        raise ReplacementError(
            f"expected one [project] version = \"{old}\" in {path}, found {count}"
        )
    return TextEdit(
        path=path,
        search=search,
        replace=r"\g<1>" + new.replace("\\", "\\\\") + r"\g<2>",
        occurrences=1,
        description=f"version {old} → {new}",
    )


def requirement_edit(
    path: str, content: str, declaration: str, new_declaration: str
) -> TextEdit:
    """Edit that rewrites one dependency declaration in a manifest.

    Raises:
        ReplacementError: If the declaration no longer appears in the file.
    """
    search = r"(?<![\w.-])" + re.escape(declaration) + r"(?![\w.*-])"
    count = len(re.findall(search, content, re.MULTILINE))
    if count == 0:
        raise ReplacementError(f"dependency '{declaration}' not found in {path}")
    return TextEdit(
        path=path,
        search=search,
        replace=new_declaration.replace("\\", "\\\\"),
        occurrences=count,
        description=f"{declaration} → {new_declaration}",
    )


@dataclass
class _RequirementUpdate:
    """A dependent's declaration to rewrite, and the step that carries it."""

    owner: str
    dependent: Package
    declaration: str
    new_declaration: str


@dataclass
class _Planning:
    """Mutable scratch state for a single plan_release call."""

    workspace: Workspace
    vcs: VersionControl
    files: FileSource
    registry: Registry | None
    errors: list[PackageError] = field(default_factory=list)
    findings: list[Finding] = field(default_factory=list)
    contents: dict[str, str] = field(default_factory=dict)

    def fail(self, package: str | None, error: LazyReleaseError) -> None:
        self.errors.append(PackageError(package, error))

    def read(self, path: str) -> str:
        if path not in self.contents:
            self.contents[path] = self.files.read(path)
        return self.contents[path]

    def apply(self, edit: TextEdit) -> None:
        self.contents[edit.path] = edit.apply(self.read(edit.path))


def _resolve_configs(
    workspace: Workspace, overrides: dict[str, Any] | None
) -> tuple[dict[str, ResolvedConfig], dict[str, ConfigError]]:
    invocation = ConfigLayer(name=INVOCATION, values=dict(overrides or {}))
    configs: dict[str, ResolvedConfig] = {}
    failures: dict[str, ConfigError] = {}
    for pkg in workspace.packages:
        try:
            configs[pkg.name] = resolve_config(
                pkg, [invocation, *workspace.layers_for(pkg.name)]
            )
        except ConfigError as exc:
            failures[pkg.name] = exc
    return configs, failures


def select_packages(
    workspace: Workspace,
    selection: Selection,
    configs: dict[str, ResolvedConfig],
    state: _Planning,
) -> list[str]:
    """Names of the packages to plan, in workspace order."""
    names = workspace.names

    if selection.packages:
        requested = []
        for name in selection.packages:
            canonical = canonicalize_name(name)
            if canonical not in names:
                state.fail(name, UnknownPackage(name))
            else:
                requested.append(canonical)
    elif selection.all:
        requested = list(names)
    elif workspace.root_package is not None:
        requested = [workspace.root_package.name]
    else:
        requested = list(names)

    excluded = {canonicalize_name(n) for n in selection.exclude}
    chosen: set[str] = set()
    for name in requested:
        if name in excluded or name not in configs:
            continue
        if not configs[name].release:
            if selection.packages:
                state.findings.append(
                    Finding(level="warning", message="release = false, skipping", package=name)
                )
            continue
        chosen.add(name)

    # Selecting one member of a shared-version group selects all of it
    groups = {configs[n].shared_version for n in chosen if configs[n].shared_version}
    for name, cfg in configs.items():
        if cfg.shared_version in groups and cfg.release:
            chosen.add(name)

    return [n for n in names if n in chosen]


def _compute_versions(
    workspace: Workspace,
    order: list[str],
    intent: BumpIntent,
    metadata: str | None,
    configs: dict[str, ResolvedConfig],
    state: _Planning,
) -> dict[str, tuple[semver.Version, semver.Version]]:
    versions: dict[str, tuple[semver.Version, semver.Version]] = {}
    failed: set[str] = set()
    for name in order:
        try:
            current = parse_version(workspace.package(name).version)
            versions[name] = (current, next_version(current, intent, metadata))
        except VersionError as exc:
            state.fail(name, exc)
            failed.add(name)

    groups: dict[str, list[str]] = {}
    for name in order:
        group = configs[name].shared_version
        if group:
            groups.setdefault(group, []).append(name)

    for group, members in groups.items():
        blocked = [m for m in members if m in failed]
        if blocked:
            for member in members:
                if member not in failed:
                    state.fail(
                        member,
                        VersionError(
                            f"shared-version group '{group}' is blocked by "
                            f"{', '.join(blocked)}"
                        ),
                    )
                    versions.pop(member, None)
            continue
        target = max_version([versions[m][1] for m in members])
        if target is None:
            candidates = ", ".join(f"{m}={versions[m][1]}" for m in members)
            raise SharedVersionConflict(
                f"shared-version group '{group}' has no single highest version: "
                f"{candidates}"
            )
        for member in members:
            versions[member] = (versions[member][0], target)
    return versions


def _template_vars(
    package: Package,
    cfg: ResolvedConfig,
    previous: semver.Version,
    version: semver.Version,
    date: str,
) -> TemplateVars:
    prefix = cfg.prefix_for(package)
    base = TemplateVars(
        version=str(version),
        prev_version=str(previous),
        metadata=version.build,
        prev_metadata=previous.build,
        date=date,
        package_name=package.name,
        prefix=prefix,
    )
    return base.model_copy(update={"tag_name": base.render(cfg.tag_name)})


def tag_glob(package: Package, cfg: ResolvedConfig) -> str:
    """Pattern matching every tag this package's releases would get."""
    variables = TemplateVars(
        package_name=package.name, prefix=cfg.prefix_for(package), **_TAG_GLOB_VARS
    )
    return variables.render(cfg.tag_name)


def _group_key(
    name: str, cfg: ResolvedConfig, groups: graph.OrderedGroups
) -> str:
    if cfg.shared_version:
        return f"shared-version:{cfg.shared_version}"
    if cfg.consolidate_commits:
        return f"consolidated:{groups.level_of(name)}"
    return name


def _requirement_updates(
    workspace: Workspace,
    active: list[str],
    versions: dict[str, tuple[semver.Version, semver.Version]],
    configs: dict[str, ResolvedConfig],
    state: _Planning,
) -> list[_RequirementUpdate]:
    """Decide which dependents' requirements change, and which step carries each."""
    updates: list[_RequirementUpdate] = []
    seen: set[tuple[str, str]] = set()
    for name in active:
        previous, version = versions[name]
        if bare(previous) == bare(version):
            continue
        cfg = configs[name]
        policy = cfg.dependent_version
        if policy is DependentVersion.IGNORE:
            continue

        for edge in graph.dependents(workspace.edges, name):
            if not edge.requirement or (edge.source, edge.declaration) in seen:
                continue
            seen.add((edge.source, edge.declaration))

            try:
                outcome = update_requirement(edge.requirement, version, policy)
            except RequirementMismatch as exc:
                # The bump itself is what the dependent can't accept
                state.fail(name, RequirementMismatch(f"{edge.source} requires {name}: {exc}"))
                continue
            except RequirementError as exc:
                state.fail(edge.source, RequirementError(f"{edge.source} requires {name}: {exc}"))
                continue
            if outcome.warning:
                state.findings.append(
                    Finding(
                        level="warning",
                        message=f"{edge.source} {outcome.warning}",
                        package=name,
                    )
                )
            new_requirement = outcome.requirement
            if new_requirement is None:
                continue

            dependent_active = edge.source in active
            owner = (
                edge.source
                if dependent_active and not cfg.consolidate_commits
                else name
            )
            updates.append(
                _RequirementUpdate(
                    owner=owner,
                    dependent=workspace.package(edge.source),
                    declaration=edge.declaration,
                    new_declaration=rewrite_declaration(
                        edge.declaration, edge.requirement, new_requirement
                    ),
                )
            )
    return updates


def _plan_edits(
    package: Package,
    cfg: ResolvedConfig,
    previous: semver.Version,
    version: semver.Version,
    variables: TemplateVars,
    updates: list[_RequirementUpdate],
    state: _Planning,
) -> list[TextEdit]:
    """Edits for one step, applied to the working copy as they are planned.

    Order: own manifest version, requirement rewrites in the package's own
    manifest, replacement rules, then rewrites it carries for other packages.
    """
    edits: list[TextEdit] = []

    if str(previous) != str(version):
        edit = manifest_version_edit(
            package.manifest_path,
            state.read(package.manifest_path),
            package.version,
            str(version),
        )
        state.apply(edit)
        edits.append(edit)

    own = [u for u in updates if u.owner == package.name and u.dependent.name == package.name]
    carried = [u for u in updates if u.owner == package.name and u.dependent.name != package.name]

    for update in own:
        edit = requirement_edit(
            package.manifest_path,
            state.read(package.manifest_path),
            update.declaration,
            update.new_declaration,
        )
        state.apply(edit)
        edits.append(edit)

    if cfg.pre_release_replacements:
        # plan_replacements updates the working copy itself
        edits.extend(
            plan_replacements(
                list(cfg.pre_release_replacements),
                variables,
                state.files,
                package.path,
                prerelease=is_prerelease(version),
                contents=state.contents,
            )
        )

    for update in carried:
        path = update.dependent.manifest_path
        edit = requirement_edit(
            path, state.read(path), update.declaration, update.new_declaration
        )
        state.apply(edit)
        edits.append(edit)
    return edits


def _preflight(
    steps: list[ReleaseStep],
    configs: dict[str, ResolvedConfig],
    state: _Planning,
) -> None:
    active = [s for s in steps if not s.skipped]
    if not active:
        return

    if state.vcs.is_dirty():
        state.findings.append(
            Finding(level="error", message="uncommitted changes in the working tree")
        )

    branch = state.vcs.current_branch()
    for s in active:
        cfg = configs[s.package]
        if not cfg.branch_allowed(branch):
            state.findings.append(
                Finding(
                    level="error",
                    message=f"branch '{branch}' is not allowed by allow-branch "
                    f"{list(cfg.allow_branch)}",
                    package=s.package,
                )
            )

    if any(s.push for s in active) and not state.vcs.is_tracking_remote():
        state.findings.append(
            Finding(level="warning", message=f"branch '{branch}' is not tracking a remote")
        )

    for s in active:
        if s.tag is not None and state.vcs.tag_exists(s.tag):
            state.findings.append(
                Finding(level="error", message=f"tag '{s.tag}' already exists", package=s.package)
            )

    if state.registry is None:
        return
    for s in active:
        if not s.publish:
            continue
        if state.registry.is_published(s.package, s.version):
            state.findings.append(
                Finding(
                    level="error",
                    message=f"{s.package} {s.version} is already published",
                    package=s.package,
                )
            )
        expected = set(configs[s.package].owners)
        if expected:
            actual = state.registry.owners(s.package)
            if actual != expected:
                state.findings.append(
                    Finding(
                        level="warning",
                        message=f"owners {sorted(actual)} differ from configured "
                        f"{sorted(expected)}",
                        package=s.package,
                    )
                )


def plan_release(
    workspace: Workspace,
    selection: Selection,
    intent: BumpIntent,
    overrides: dict[str, Any] | None = None,
    *,
    vcs: VersionControl,
    files: FileSource,
    registry: Registry | None = None,
    metadata: str | None = None,
    force: bool = False,
    date: str | None = None,
) -> ReleasePlan:
    """Compute the full release plan for a workspace.

    Args:
        workspace: Discovered workspace.
        selection: Which packages were asked for.
        intent: The bump to apply.
        overrides: Settings given on the command line; highest precedence.
        vcs: Version control backend (tags, changed paths, branch state).
        files: Source of file contents for edits.
        registry: Package registry, or None to skip registry checks.
        metadata: Build metadata to attach to every new version.
        force: Release packages even when unchanged since their last tag.
        date: Value of {{date}}; defaults to today (ISO format).

    Returns:
        The ReleasePlan. Findings of level "error" block execution but do
        not raise.

    Raises:
        PlanError: With every error found. A dependency cycle or a
                   SharedVersionConflict ends planning early and is reported
                   last, after the errors collected before it.
    """
    state = _Planning(workspace=workspace, vcs=vcs, files=files, registry=registry)
    date = date or datetime.date.today().isoformat()

    configs, config_failures = _resolve_configs(workspace, overrides)
    selected = select_packages(workspace, selection, configs, state)
    for name in [canonicalize_name(n) for n in selection.packages] or workspace.names:
        if name in config_failures:
            state.fail(name, config_failures[name])

    # Fatal to the whole plan, but reported alongside what was already found
    try:
        groups = graph.order(workspace.names, workspace.edges, selected)
        order = groups.order
        versions = _compute_versions(workspace, order, intent, metadata, configs, state)
    except (CycleDetected, SharedVersionConflict) as exc:
        state.fail(None, exc)
        raise PlanError(state.errors) from exc
    order = [n for n in order if n in versions]

    try:
        detector = ChangeDetector(vcs, workspace.packages, workspace.edges)
        prior_tags = {
            n: vcs.last_tag(tag_glob(workspace.package(n), configs[n])) for n in order
        }
        reports = detector.detect(prior_tags)
    except CollaboratorError as exc:
        state.fail(None, exc)
        raise PlanError(state.errors) from exc

    # Shared-version groups release together if any member changed
    changed_groups = {
        configs[n].shared_version
        for n in order
        if configs[n].shared_version and reports[n].changed
    }
    active = [
        n
        for n in order
        if force or reports[n].changed or configs[n].shared_version in changed_groups
    ]

    updates = _requirement_updates(workspace, active, versions, configs, state)

    steps: list[ReleaseStep] = []
    for name in order:
        pkg = workspace.package(name)
        cfg = configs[name]
        previous, version = versions[name]
        key = _group_key(name, cfg, groups)

        if name not in active:
            steps.append(
                ReleaseStep(
                    package=name,
                    previous_version=str(previous),
                    version=str(previous),
                    group=key,
                    skip_reason=reports[name].reason,
                    prior_tag=prior_tags[name],
                    publish=False,
                    push=False,
                )
            )
            continue

        variables = _template_vars(pkg, cfg, previous, version, date)
        try:
            edits = _plan_edits(pkg, cfg, previous, version, variables, updates, state)
        except LazyReleaseError as exc:
            state.fail(name, exc)
            edits = []

        steps.append(
            ReleaseStep(
                package=name,
                previous_version=str(previous),
                version=str(version),
                edits=tuple(edits),
                group=key,
                prior_tag=prior_tags[name],
                tag=variables.tag_name if cfg.tag else None,
                tag_message=variables.render(cfg.tag_message) if cfg.tag else None,
                commit_message=variables.render(cfg.pre_release_commit_message),
                publish=cfg.publish,
                push=cfg.push,
            )
        )

    steps = _mark_waits(steps, workspace)

    try:
        _preflight(steps, configs, state)
    except CollaboratorError as exc:
        state.fail(None, exc)

    if state.errors:
        raise PlanError(state.errors)

    plan_groups: dict[str, list[str]] = {}
    for s in steps:
        if not s.skipped:
            plan_groups.setdefault(s.group, []).append(s.package)
    return ReleasePlan(steps=tuple(steps), groups=plan_groups, findings=tuple(state.findings))


def _mark_waits(steps: list[ReleaseStep], workspace: Workspace) -> list[ReleaseStep]:
    """Set wait_for_publish where a later active step depends on a published one."""
    active = [s.package for s in steps if not s.skipped]
    needed: set[str] = set()
    for edge in workspace.edges:
        if edge.orders and edge.source in active and edge.target in active:
            if active.index(edge.source) > active.index(edge.target):
                needed.add(edge.target)
    return [
        s.model_copy(update={"wait_for_publish": True})
        if s.publish and not s.skipped and s.package in needed
        else s
        for s in steps
    ]
