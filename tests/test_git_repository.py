"""Tests for the git-backed diary repository."""

import shutil
from datetime import date

import pytest

from conftest import git_log, requires_git
from oneline.adapters.file_storage import LocalFileStorage
from oneline.adapters.git_ops import GitNotInitializedError, GitOperations
from oneline.adapters.git_repository import GitDiaryRepository
from oneline.adapters.settings_store import MemorySettingsStore
from oneline.core.entry import DiaryEntry
from oneline.settings import GitSettings, SettingsManager


@pytest.fixture
def settings():
    return SettingsManager(MemorySettingsStore())


@pytest.fixture
def repo(tmp_path, settings):
    storage = LocalFileStorage(tmp_path / "data")
    return GitDiaryRepository(GitOperations(storage), storage, settings, "repository")


class TestWithoutSetup:
    @pytest.mark.asyncio
    async def test_initialize_needs_settings(self, repo):
        with pytest.raises(GitNotInitializedError):
            await repo.initialize()

    @pytest.mark.asyncio
    async def test_operations_need_initialize(self, repo):
        with pytest.raises(GitNotInitializedError):
            await repo.save_entry(DiaryEntry(date(2025, 1, 15), "x"))
        with pytest.raises(GitNotInitializedError):
            await repo.get_entry(date(2025, 1, 15))
        with pytest.raises(GitNotInitializedError):
            await repo.list_entries()


@requires_git
class TestGitDiaryRepository:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, repo, settings, remote_url, tmp_path):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        assert await repo.initialize() is True
        assert await repo.initialize() is True
        assert repo.git_ops.get_local_path() == tmp_path / "data" / "repository"

    @pytest.mark.asyncio
    async def test_save_commits_with_message_and_identity(self, repo, settings, remote_url):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token", "Jo", "jo@example.com"))
        await repo.initialize()

        entry = DiaryEntry(date(2025, 1, 15), "Snow all day.")
        assert await repo.save_entry(entry) is True
        assert await repo.get_entry(date(2025, 1, 15)) == entry

        log = git_log(repo.git_ops.get_local_path(), "--format=%s|%an|%ae")
        assert log.strip() == "Update entry for 2025-01-15|Jo|jo@example.com"

    @pytest.mark.asyncio
    async def test_resave_same_content_is_false(self, repo, settings, remote_url):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()
        entry = DiaryEntry(date(2025, 1, 15), "same")
        assert await repo.save_entry(entry) is True
        assert await repo.save_entry(entry) is False

    @pytest.mark.asyncio
    async def test_delete(self, repo, settings, remote_url):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()
        await repo.save_entry(DiaryEntry(date(2025, 1, 15), "x"))

        assert await repo.delete_entry(date(2025, 1, 15)) is True
        assert await repo.delete_entry(date(2025, 1, 15)) is False
        assert await repo.get_entry(date(2025, 1, 15)) is None
        log = git_log(repo.git_ops.get_local_path(), "--format=%s")
        assert log.splitlines()[0] == "Delete entry for 2025-01-15"

    @pytest.mark.asyncio
    async def test_list_ignores_other_files(self, repo, settings, remote_url):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()
        await repo.save_entry(DiaryEntry(date(2025, 1, 1), "one"))
        await repo.save_entry(DiaryEntry(date(2025, 1, 2), "two"))
        (repo.git_ops.get_local_path() / "README.md").write_text("hi")

        entries = await repo.list_entries()
        assert [e.date for e in entries] == [date(2025, 1, 2), date(2025, 1, 1)]

    @pytest.mark.asyncio
    async def test_push_and_pull(self, repo, settings, remote_url, device):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()
        await repo.save_entry(DiaryEntry(date(2025, 1, 1), "mine"))
        assert await repo.push() is True

        other = await device("other", remote_url)
        assert (other.get_local_path() / "2025-01-01.md").read_text() == "mine"
        await other.save_and_commit("2025-01-02.md", "theirs", "Update entry for 2025-01-02")
        await other.push()

        assert await repo.pull() is True
        assert (await repo.get_entry(date(2025, 1, 2))).content == "theirs"

    @pytest.mark.asyncio
    async def test_save_and_delete_are_pushed(self, repo, settings, remote_url, tmp_path):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()

        await repo.save_entry(DiaryEntry(date(2025, 1, 15), "x"))
        assert git_log(tmp_path / "remote.git", "--all", "--format=%s").splitlines() == [
            "Update entry for 2025-01-15"
        ]
        await repo.delete_entry(date(2025, 1, 15))
        assert git_log(tmp_path / "remote.git", "--all", "--format=%s").splitlines()[0] == "Delete entry for 2025-01-15"

    @pytest.mark.asyncio
    async def test_save_offline_keeps_commit(self, repo, settings, remote_url, tmp_path):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()
        shutil.rmtree(tmp_path / "remote.git")

        assert await repo.save_entry(DiaryEntry(date(2025, 1, 15), "offline")) is True
        assert git_log(repo.git_ops.get_local_path(), "--format=%s").strip() == "Update entry for 2025-01-15"
        assert (await repo.get_entry(date(2025, 1, 15))).content == "offline"

    @pytest.mark.asyncio
    async def test_commit_entry_does_not_push(self, repo, settings, remote_url, tmp_path):
        await settings.save_git_settings(GitSettings(remote_url, "me", "token"))
        await repo.initialize()

        assert await repo.commit_entry(DiaryEntry(date(2025, 1, 15), "x")) is True
        assert await repo.git_ops.ls_remote(remote_url) == {}
