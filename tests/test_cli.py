"""Tests for the command line interface."""

import json
import shutil
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from conftest import make_bare_remote, requires_git
from oneline.cli import main
from oneline.config import Config


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_config(tmp_path):
    config = Config(
        data_dir=tmp_path / "data",
        settings_backend="file",
        settings_file=tmp_path / "config" / "settings.json",
        verify_ownership=False,
    )
    with patch("oneline.cli.load_config", return_value=config):
        yield config


class TestEntries:
    def test_write_and_show(self, runner, cli_config):
        result = runner.invoke(main, ["write", "Snow", "all", "day.", "--date", "2025-01-15"])
        assert result.exit_code == 0
        assert "Saved entry for Wednesday, January 15, 2025." in result.output
        assert (cli_config.entries_dir / "2025-01-15.md").read_text() == "Snow all day."

        result = runner.invoke(main, ["show", "-d", "2025-01-15"])
        assert result.exit_code == 0
        assert "Snow all day." in result.output

    def test_show_missing(self, runner, cli_config):
        result = runner.invoke(main, ["show", "--date", "2025-01-15"])
        assert result.exit_code == 0
        assert "No entry for Wednesday, January 15, 2025." in result.output

    def test_list_json(self, runner, cli_config):
        runner.invoke(main, ["write", "first", "-d", "2025-01-01"])
        runner.invoke(main, ["write", "second", "-d", "2025-02-01"])

        result = runner.invoke(main, ["list", "--json"])
        assert result.exit_code == 0
        entries = json.loads(result.stdout)
        assert [e["date"] for e in entries] == ["2025-02-01", "2025-01-01"]
        assert entries[0]["content"] == "second"

    def test_list_month(self, runner, cli_config):
        runner.invoke(main, ["write", "first", "-d", "2025-01-01"])
        runner.invoke(main, ["write", "second", "-d", "2025-02-01"])

        result = runner.invoke(main, ["list", "--month", "2025-01"])
        assert result.exit_code == 0
        assert "2025-01-01  first" in result.output
        assert "2025-02-01" not in result.output

    def test_list_bad_month(self, runner, cli_config):
        result = runner.invoke(main, ["list", "--month", "2025-13"])
        assert result.exit_code == 2

    def test_delete(self, runner, cli_config):
        runner.invoke(main, ["write", "gone soon", "-d", "2025-01-15"])

        result = runner.invoke(main, ["delete", "2025-01-15"])
        assert "Deleted entry for Wednesday, January 15, 2025." in result.output

        result = runner.invoke(main, ["delete", "2025-01-15"])
        assert result.exit_code == 0
        assert "No entry for" in result.output

    def test_bad_date(self, runner, cli_config):
        result = runner.invoke(main, ["write", "x", "--date", "15/01/2025"])
        assert result.exit_code == 2
        assert "expected YYYY-MM-DD" in result.output

    def test_check(self, runner, cli_config):
        runner.invoke(main, ["write", "fine", "-d", "2025-01-15"])
        result = runner.invoke(main, ["check"])
        assert result.exit_code == 0
        assert "1/1 entries OK" in result.output

    def test_check_repair(self, runner, cli_config):
        runner.invoke(main, ["write", "fine", "-d", "2025-01-15"])
        (cli_config.entries_dir / "2025-01-16.md").write_text("  ")

        result = runner.invoke(main, ["check"])
        assert result.exit_code == 1
        assert "bad: 2025-01-16.md" in result.output

        result = runner.invoke(main, ["check", "--repair"])
        assert result.exit_code == 0
        assert "Deleted 1 bad entries." in result.output
        assert not (cli_config.entries_dir / "2025-01-16.md").exists()
        assert (cli_config.entries_dir / "2025-01-15.md").exists()


class TestStorageModes:
    def test_sync_in_local_mode(self, runner, cli_config):
        result = runner.invoke(main, ["sync"])
        assert result.exit_code == 0
        assert "Sync: skipped" in result.output

    def test_status(self, runner, cli_config):
        runner.invoke(main, ["write", "x", "-d", "2025-01-15"])
        result = runner.invoke(main, ["status"])
        assert result.exit_code == 0
        assert "Mode:     local_only" in result.output
        assert "Entries:  1" in result.output
        assert "Latest:   2025-01-15" in result.output

    def test_migrate_without_settings(self, runner, cli_config):
        result = runner.invoke(main, ["migrate", "git"])
        assert result.exit_code == 1
        assert "Git is not configured" in result.output

    def test_configure_git_hides_credentials(self, runner, cli_config):
        result = runner.invoke(
            main,
            ["configure-git", "--url", "https://me:pw@github.com/me/diary.git", "--username", "me", "--token", "tok"],
        )
        assert result.exit_code == 0
        assert cli_config.settings_file.exists()

        result = runner.invoke(main, ["status"])
        assert "Remote:   https://github.com/me/diary.git" in result.output
        assert "pw" not in result.output


@requires_git
class TestGitWorkflow:
    def test_validate_empty_remote(self, runner, cli_config, tmp_path):
        url = make_bare_remote(tmp_path / "remote.git")
        result = runner.invoke(main, ["validate", url, "--username", "me", "--token", "tok"])
        assert result.exit_code == 0
        assert "empty_repository" in result.output

    def test_migrate_and_back(self, runner, cli_config, tmp_path):
        url = make_bare_remote(tmp_path / "remote.git")
        runner.invoke(main, ["write", "before git", "-d", "2025-01-01"])
        runner.invoke(main, ["configure-git", "--url", url, "--username", "me", "--token", "tok"])

        result = runner.invoke(main, ["migrate", "git"])
        assert result.exit_code == 0, result.output
        assert "Migration completed." in result.output

        result = runner.invoke(main, ["configure-git", "--url", url, "--username", "me", "--token", "tok"])
        assert result.exit_code == 1

        runner.invoke(main, ["write", "in git", "-d", "2025-01-02"])
        result = runner.invoke(main, ["sync"])
        assert "Sync: synced" in result.output

        result = runner.invoke(main, ["status"])
        assert "Mode:     git" in result.output
        assert "Entries:  2" in result.output

        result = runner.invoke(main, ["migrate", "local", "--clear-git-data"])
        assert result.exit_code == 0, result.output
        assert not cli_config.repository_dir.exists()
        result = runner.invoke(main, ["show", "-d", "2025-01-02"])
        assert "in git" in result.output

    def test_lost_remote_and_tree_can_still_go_local(self, runner, cli_config, tmp_path):
        url = make_bare_remote(tmp_path / "remote.git")
        runner.invoke(main, ["write", "kept locally", "-d", "2025-01-01"])
        runner.invoke(main, ["configure-git", "--url", url, "--username", "me", "--token", "tok"])
        assert runner.invoke(main, ["migrate", "git"]).exit_code == 0
        shutil.rmtree(tmp_path / "remote.git")
        shutil.rmtree(cli_config.repository_dir)

        result = runner.invoke(main, ["show", "-d", "2025-01-01"])
        assert result.exit_code == 1
        assert "oneline migrate local" in result.output

        result = runner.invoke(main, ["status"])
        assert result.exit_code == 0
        assert "Mode:     git" in result.output
        assert "Entries:  unavailable" in result.output

        result = runner.invoke(main, ["migrate", "local"])
        assert result.exit_code == 0, result.output
        result = runner.invoke(main, ["show", "-d", "2025-01-01"])
        assert result.exit_code == 0
        assert "kept locally" in result.output
