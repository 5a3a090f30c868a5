"""Git-backed diary repository adapter."""

import logging
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator

from oneline.adapters.git_ops import GitError, GitNotInitializedError, GitOperations
from oneline.adapters.local_repository import read_entry, scan_entries
from oneline.core.entry import DiaryEntry, entry_file_name
from oneline.feed import ChangeFeed
from oneline.ports.file_storage import FileStorage

if TYPE_CHECKING:
    from oneline.settings import SettingsManager

logger = logging.getLogger(__name__)


class GitDiaryRepository:
    """
    Diary entries as files at the top of a git working tree.

    Implements DiaryRepository protocol. Every save and delete is its own
    commit, pushed right away. A push that fails (offline, remote moved on)
    leaves the commit in place for the next sync.
    """

    def __init__(
        self,
        git_ops: GitOperations,
        storage: FileStorage,
        settings: "SettingsManager",
        repository_dir: Path | str,
    ):
        self.git_ops = git_ops
        self.storage = storage
        self.settings = settings
        self.repository_dir = storage.app_directory() / repository_dir
        self._feed = ChangeFeed()

    def _root(self) -> Path:
        if not self.git_ops.is_initialized():
            raise GitNotInitializedError("Git repository not initialized")
        return self.git_ops.get_local_path()

    async def initialize(self) -> bool:
        """Open or clone the configured remote. Raises GitError on failure."""
        git = await self.settings.get_git_settings()
        if not git.is_complete:
            raise GitNotInitializedError("Git settings are incomplete")
        return await self.git_ops.init_repository(git.repo_url, self.repository_dir, git.auth)

    async def save_entry(self, entry: DiaryEntry) -> bool:
        committed = await self.commit_entry(entry)
        if committed:
            await self._push_quietly()
        return committed

    async def commit_entry(self, entry: DiaryEntry) -> bool:
        """Commit an entry without pushing. False when the content is unchanged."""
        self._root()
        git = await self.settings.get_git_settings()
        committed = await self.git_ops.save_and_commit(
            entry.file_name,
            entry.content,
            f"Update entry for {entry.date.isoformat()}",
            git.commit_user_name,
            git.commit_user_email,
        )
        if committed:
            self._feed.publish()
        return committed

    async def get_entry(self, entry_date: date) -> DiaryEntry | None:
        path = self._root() / entry_file_name(entry_date)
        if not self.storage.exists(path):
            return None
        try:
            return await read_entry(self.storage, path, entry_date)
        except FileNotFoundError:
            return None

    async def delete_entry(self, entry_date: date) -> bool:
        self._root()
        git = await self.settings.get_git_settings()
        deleted = await self.git_ops.delete_and_commit(
            entry_file_name(entry_date),
            f"Delete entry for {entry_date.isoformat()}",
            git.commit_user_name,
            git.commit_user_email,
        )
        if deleted:
            self._feed.publish()
            await self._push_quietly()
        return deleted

    async def list_entries(self) -> list[DiaryEntry]:
        return await scan_entries(self.storage, self._root())

    async def get_all_entries(self) -> AsyncIterator[list[DiaryEntry]]:
        async for _ in self._feed.changes():
            yield await self.list_entries()

    async def pull(self, use_ours_strategy: bool = True) -> bool:
        pulled = await self.git_ops.pull(use_ours_strategy)
        logger.debug(f"Pulled (ours={use_ours_strategy})")
        self._feed.publish()
        return pulled

    async def push(self) -> bool:
        return await self.git_ops.push()

    async def _push_quietly(self) -> None:
        try:
            await self.git_ops.push()
        except GitError as e:
            logger.warning(f"Committed locally, push failed: {e}")

    async def has_uncommitted_changes(self) -> bool:
        return await self.git_ops.has_uncommitted_changes()

    def notify_changed(self) -> None:
        self._feed.publish()
