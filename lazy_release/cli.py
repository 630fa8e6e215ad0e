"""CLI entry point for lazy-release."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from .backends import GitBackend, GitHubReleasesRegistry, LocalFiles
from .changes import ChangeDetector
from .config import describe, resolve_config
from .errors import LazyReleaseError
from .models import Selection
from .planner import plan_release, tag_glob
from .report import format_changes, format_config, print_plan
from .requirements import DependentVersion
from .shell import fatal, step
from .versions import BumpIntent
from .workspace import load_workspace

_config_options = [
    click.option(
        "--config",
        "custom_config",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="Settings file applied above every implicit one.",
    ),
    click.option("--isolated", is_flag=True, help="Ignore release.toml and user config."),
]


def config_options(f):
    for option in reversed(_config_options):
        f = option(f)
    return f


def _load(custom_config: Path | None, isolated: bool):
    try:
        return load_workspace(Path.cwd(), custom_config=custom_config, isolated=isolated)
    except LazyReleaseError as exc:
        fatal(str(exc))


@click.group()
@click.version_option(package_name="lazy-release")
def cli() -> None:
    """Plan releases of a uv workspace before anything is tagged or published."""


@cli.command()
@click.argument("level")
@click.option("-p", "--package", "packages", multiple=True, help="Package to release.")
@click.option("--all", "all_", is_flag=True, help="Release every package.")
@click.option("--exclude", multiple=True, help="Package to leave out.")
@click.option("--metadata", help="Build metadata for the new versions.")
@config_options
@click.option("--force", is_flag=True, help="Release packages without changes.")
@click.option("--date", help="Value for {{date}} (default: today).")
@click.option(
    "--dependent-version",
    type=click.Choice([p.value for p in DependentVersion]),
    help="How to update requirements of dependents.",
)
@click.option("--consolidate-commits", is_flag=True, default=None)
@click.option("--no-publish", is_flag=True)
@click.option("--no-push", is_flag=True)
@click.option("--no-tag", is_flag=True)
@click.option("--allow-branch", multiple=True, help="Branch glob; repeatable.")
@click.option("--check-registry", is_flag=True, help="Query GitHub releases.")
@click.option("--diff", "show_diff", is_flag=True, help="Show file diffs.")
def plan(
    level: str,
    packages: tuple[str, ...],
    all_: bool,
    exclude: tuple[str, ...],
    metadata: str | None,
    custom_config: Path | None,
    isolated: bool,
    force: bool,
    date: str | None,
    dependent_version: str | None,
    consolidate_commits: bool | None,
    no_publish: bool,
    no_push: bool,
    no_tag: bool,
    allow_branch: tuple[str, ...],
    check_registry: bool,
    show_diff: bool,
) -> None:
    """Preview a release. LEVEL is major, minor, patch, release, alpha, beta,
    rc, or an explicit version."""
    try:
        intent = BumpIntent.parse(level)
    except LazyReleaseError as exc:
        raise click.BadParameter(str(exc), param_hint="LEVEL") from exc

    overrides: dict[str, Any] = {}
    if dependent_version:
        overrides["dependent-version"] = dependent_version
    if consolidate_commits:
        overrides["consolidate-commits"] = True
    if no_publish:
        overrides["publish"] = False
    if no_push:
        overrides["push"] = False
    if no_tag:
        overrides["tag"] = False
    if allow_branch:
        overrides["allow-branch"] = list(allow_branch)

    workspace = _load(custom_config, isolated)
    files = LocalFiles(workspace.root)
    try:
        release_plan = plan_release(
            workspace,
            Selection(packages=packages, all=all_, exclude=exclude),
            intent,
            overrides,
            vcs=GitBackend(workspace.root),
            files=files,
            registry=GitHubReleasesRegistry(workspace.root) if check_registry else None,
            metadata=metadata,
            force=force,
            date=date,
        )
    except LazyReleaseError as exc:
        fatal(str(exc))

    print_plan(release_plan, files if show_diff else None)
    if release_plan.blocked:
        fatal("release plan is blocked by failed checks")


@cli.command("config")
@click.option("-p", "--package", "package", help="Package to show (default: root).")
@config_options
def show_config(package: str | None, custom_config: Path | None, isolated: bool) -> None:
    """Show resolved settings and where each one came from."""
    workspace = _load(custom_config, isolated)
    try:
        if package:
            pkg = workspace.package(package)
        else:
            pkg = workspace.root_package or workspace.packages[0]
        resolved = resolve_config(pkg, workspace.layers_for(pkg.name))
    except LazyReleaseError as exc:
        fatal(str(exc))

    step(f"Configuration for {pkg.name}")
    click.echo(format_config(describe(resolved)))


@cli.command()
@click.option("-p", "--package", "packages", multiple=True, help="Package to check.")
@config_options
def changes(packages: tuple[str, ...], custom_config: Path | None, isolated: bool) -> None:
    """Show which packages changed since their last release tag."""
    workspace = _load(custom_config, isolated)
    vcs = GitBackend(workspace.root)
    try:
        names = [workspace.package(p).name for p in packages] or workspace.names
        refs = {}
        for name in names:
            pkg = workspace.package(name)
            resolved = resolve_config(pkg, workspace.layers_for(name))
            refs[name] = vcs.last_tag(tag_glob(pkg, resolved))
        reports = ChangeDetector(vcs, workspace.packages).detect(refs)
    except LazyReleaseError as exc:
        fatal(str(exc))

    step("Changes since last release")
    click.echo(format_changes(reports))
