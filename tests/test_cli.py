"""Tests for lazy_release.cli."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from conftest import FakeVcs, write_workspace

from lazy_release.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def repo(tmp_workspace: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_workspace)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_workspace / "xdg"))
    monkeypatch.setenv("HOME", str(tmp_workspace / "home"))
    return tmp_workspace


class TestPlan:
    @patch("lazy_release.cli.GitBackend")
    def test_preview(self, mock_git: MagicMock, runner: CliRunner, repo: Path) -> None:
        mock_git.return_value = FakeVcs()
        result = runner.invoke(cli, ["plan", "minor", "--date", "2024-05-01"])
        assert result.exit_code == 0, result.output
        assert "core 1.0.0 → 1.1.0" in result.output
        assert "lib 0.3.0 → 0.4.0" in result.output
        assert "tag app/v2.2.0" in result.output
        # Preview only; nothing is written
        assert 'version = "1.0.0"' in (repo / "packages/core/pyproject.toml").read_text()

    @patch("lazy_release.cli.GitBackend")
    def test_diff(self, mock_git: MagicMock, runner: CliRunner, repo: Path) -> None:
        mock_git.return_value = FakeVcs()
        result = runner.invoke(cli, ["plan", "minor", "-p", "core", "--diff"])
        assert result.exit_code == 0, result.output
        assert "--- a/packages/core/pyproject.toml" in result.output
        assert '+version = "1.1.0"' in result.output
        assert '+dependencies = ["core>=1.1", "requests>=2.0"]' in result.output

    @patch("lazy_release.cli.GitBackend")
    def test_overrides(self, mock_git: MagicMock, runner: CliRunner, repo: Path) -> None:
        mock_git.return_value = FakeVcs()
        result = runner.invoke(
            cli, ["plan", "minor", "-p", "core", "--no-tag", "--dependent-version", "ignore"]
        )
        assert result.exit_code == 0, result.output
        assert "tag core" not in result.output
        assert "packages/lib/pyproject.toml" not in result.output

    @patch("lazy_release.cli.GitBackend")
    def test_blocked_plan_exits_nonzero(self, mock_git: MagicMock, runner: CliRunner, repo: Path) -> None:
        mock_git.return_value = FakeVcs(dirty=True)
        result = runner.invoke(cli, ["plan", "minor"])
        assert result.exit_code == 1
        assert "uncommitted changes" in result.output

    @patch("lazy_release.cli.GitBackend")
    def test_plan_error(self, mock_git: MagicMock, runner: CliRunner, repo: Path) -> None:
        mock_git.return_value = FakeVcs()
        result = runner.invoke(cli, ["plan", "0.0.1", "-p", "core"])
        assert result.exit_code == 1
        assert "not greater than" in result.output

    def test_bad_level(self, runner: CliRunner, repo: Path) -> None:
        result = runner.invoke(cli, ["plan", "sideways"])
        assert result.exit_code == 2
        assert "LEVEL" in result.output

    def test_not_a_workspace(self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = runner.invoke(cli, ["plan", "minor"])
        assert result.exit_code == 1
        assert "unable to load" in result.output


class TestConfigCommand:
    def test_shows_provenance(self, runner: CliRunner, repo: Path) -> None:
        result = runner.invoke(cli, ["config", "-p", "app"])
        assert result.exit_code == 0, result.output
        assert "publish = false  # package manifest" in result.output
        assert 'push-remote = "origin"  # default' in result.output

    def test_explicit_file(self, runner: CliRunner, repo: Path) -> None:
        (repo / "custom.toml").write_text('push-remote = "upstream"\n')
        result = runner.invoke(cli, ["config", "-p", "lib", "--config", "custom.toml"])
        assert 'push-remote = "upstream"  # explicit file' in result.output

    def test_unknown_package(self, runner: CliRunner, repo: Path) -> None:
        result = runner.invoke(cli, ["config", "-p", "nope"])
        assert result.exit_code == 1


class TestChangesCommand:
    @patch("lazy_release.cli.GitBackend")
    def test_reports(self, mock_git: MagicMock, runner: CliRunner, repo: Path) -> None:
        mock_git.return_value = FakeVcs(
            tags=["core/v1.0.0", "lib/v0.3.0", "app/v2.1.0"],
            changed={"lib/v0.3.0": {"packages/lib/lib.py"}},
        )
        result = runner.invoke(cli, ["changes"])
        assert result.exit_code == 0, result.output
        assert "core: unchanged (no changes since core/v1.0.0)" in result.output
        assert "lib: changed (1 file(s) changed since lib/v0.3.0)" in result.output
        assert "app: changed (dependency lib changed)" in result.output


class TestRootPackage:
    @patch("lazy_release.cli.GitBackend")
    def test_default_selection_is_root(
        self, mock_git: MagicMock, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        write_workspace(
            tmp_path,
            {"child": '[project]\nname = "child"\nversion = "0.5.0"\ndependencies = ["root^1.2"]\n'},
            root_extra='\n[project]\nname = "root"\nversion = "1.2.0"\n',
        )
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        mock_git.return_value = FakeVcs()

        result = runner.invoke(cli, ["plan", "minor", "--diff"])
        assert result.exit_code == 0, result.output
        assert "root 1.2.0 → 1.3.0" in result.output
        assert "child 0.5.0" not in result.output
        assert '+dependencies = ["root^1.3"]' in result.output
