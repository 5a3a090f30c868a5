"""
Repository factory - owns the active diary repository and migrates between modes.

The factory is the one object the application holds for the lifetime of
the process. It picks the LocalDiaryRepository or the GitDiaryRepository
according to the persisted RepositoryMode and is the only place where the
mode changes. Every mutation goes through a single lock, so at most one
save, delete, sync or migration touches a working tree at a time.

Migration contract: the active repository and the persisted mode change
only after the destination was validated, initialized and populated.
Any failure returns a MigrationResult variant with the previous mode intact.
"""

import asyncio
import calendar
import logging
import os
import shutil
import uuid
from datetime import date
from typing import AsyncIterator

from oneline.adapters.file_storage import LocalFileStorage
from oneline.adapters.git_ops import GitAuthenticationError, GitError, GitOperations
from oneline.adapters.git_repository import GitDiaryRepository
from oneline.adapters.local_repository import LocalDiaryRepository, scan_entries
from oneline.config import Config, load_config
from oneline.core.entry import DiaryEntry
from oneline.core.results import (
    DataMigrationFailed,
    GitInitializationFailed,
    GitSettingsNotConfigured,
    LocalInitializationFailed,
    MigrationOption,
    MigrationResult,
    MigrationSuccess,
    RepositoryMode,
    SyncResult,
    SyncStatus,
    UnknownError,
    ValidationResult,
)
from oneline.feed import ChangeFeed
from oneline.ports.diary_repository import DiaryRepository
from oneline.ports.file_storage import FileStorage
from oneline.settings import GitSettings, SettingsManager, create_settings_store
from oneline.validator import RepositoryValidator

logger = logging.getLogger(__name__)


class RepositoryFactory:
    """Selects, owns and switches the active diary repository."""

    def __init__(
        self,
        config: Config,
        settings: SettingsManager,
        storage: FileStorage,
        git_ops: GitOperations | None = None,
        validator: RepositoryValidator | None = None,
    ):
        self.config = config
        self.settings = settings
        self.storage = storage
        self.git_ops = git_ops or self._new_git_ops()
        self.validator = validator or RepositoryValidator(self.git_ops, config)
        self.local_repository = LocalDiaryRepository(storage, config.entries_dir)
        self.git_repository = GitDiaryRepository(self.git_ops, storage, settings, config.repository_dir)

        self._mode = RepositoryMode.LOCAL_ONLY
        self._active: DiaryRepository = self.local_repository
        self._lock = asyncio.Lock()
        self._feed = ChangeFeed()
        self.git_error: str | None = None

    def _new_git_ops(self) -> GitOperations:
        return GitOperations(
            self.storage,
            git_binary=self.config.git_binary,
            default_author_name=self.config.default_author_name,
            default_author_email=self.config.default_author_email,
        )

    def _activate(self, mode: RepositoryMode) -> None:
        self._mode = mode
        self._active = self.git_repository if mode is RepositoryMode.GIT else self.local_repository
        self._feed.publish()
        logger.info(f"Active repository: {mode.value}")

    # ------------------------------------------------------------------
    # Lifecycle and accessors
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Prepare the repository for the persisted mode. Idempotent.

        In git mode an existing working tree opens without network access;
        a missing one is cloned. If that fails the mode stays git but the
        backend is unavailable: entry operations raise GitNotInitializedError,
        `git_error` says why, and False is returned. Migrating to local mode
        and syncing (which retries the clone) still work.
        """
        async with self._lock:
            mode = await self.settings.get_mode()
            await self.local_repository.initialize()
            ready = True
            self.git_error = None
            if mode is RepositoryMode.GIT:
                try:
                    await self.git_repository.initialize()
                except GitError as e:
                    self.git_error = str(e)
                    ready = False
                    logger.error(f"Git repository unavailable: {e}")
            if mode is not self._mode or self._active is not self._repository_for(mode):
                self._activate(mode)
            return ready

    def _repository_for(self, mode: RepositoryMode) -> DiaryRepository:
        return self.git_repository if mode is RepositoryMode.GIT else self.local_repository

    def get_current_mode(self) -> RepositoryMode:
        return self._mode

    @property
    def active_repository(self) -> DiaryRepository:
        return self._active

    @property
    def git_available(self) -> bool:
        """False while git mode is active but no working tree could be opened."""
        return self._mode is not RepositoryMode.GIT or self.git_ops.is_initialized()

    async def has_valid_settings(self) -> bool:
        return await self.settings.has_valid_settings()

    # ------------------------------------------------------------------
    # Entry operations, dispatched to the active repository
    # ------------------------------------------------------------------

    async def save_entry(self, entry: DiaryEntry) -> bool:
        async with self._lock:
            saved = await self._active.save_entry(entry)
        if saved:
            self._feed.publish()
        return saved

    async def get_entry(self, entry_date: date) -> DiaryEntry | None:
        return await self._active.get_entry(entry_date)

    async def delete_entry(self, entry_date: date) -> bool:
        async with self._lock:
            deleted = await self._active.delete_entry(entry_date)
        if deleted:
            self._feed.publish()
        return deleted

    async def list_entries(self) -> list[DiaryEntry]:
        return await self._active.list_entries()

    async def get_all_entries(self) -> AsyncIterator[list[DiaryEntry]]:
        """Live entry list of whichever repository is active, across mode switches."""
        async for _ in self._feed.changes():
            yield await self._active.list_entries()

    async def get_entry_dates_for_month(self, year: int, month: int) -> set[date]:
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])
        return {entry.date for entry in await self.list_entries() if first <= entry.date <= last}

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_repository(self) -> SyncResult:
        """Pull (local wins) then push. Push is skipped when the pull fails."""
        if self._mode is not RepositoryMode.GIT:
            return SyncResult(SyncStatus.SKIPPED)

        async with self._lock:
            try:
                if not self.git_ops.is_initialized():
                    await self.git_repository.initialize()
                    self.git_error = None
                await self.git_repository.pull(use_ours_strategy=True)
            except GitAuthenticationError as e:
                logger.error(f"Sync failed, authentication rejected: {e}")
                return SyncResult(SyncStatus.AUTHENTICATION_FAILED, str(e))
            except GitError as e:
                logger.error(f"Pull failed: {e}")
                return SyncResult(SyncStatus.PULL_FAILED, str(e))
            self._feed.publish()

            try:
                await self.git_repository.push()
            except GitAuthenticationError as e:
                logger.error(f"Push rejected credentials: {e}")
                return SyncResult(SyncStatus.AUTHENTICATION_FAILED, str(e))
            except GitError as e:
                logger.warning(f"Pull merged but push failed, retry later: {e}")
                return SyncResult(SyncStatus.PUSH_FAILED, str(e))

        logger.info("Repository synced")
        return SyncResult(SyncStatus.SYNCED)

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    async def migrate_to_git_mode(
        self,
        option: MigrationOption = MigrationOption.MIGRATE_DATA,
        confirm_unknown: bool = False,
    ) -> MigrationResult:
        """
        Switch from local-only to git.

        Requires complete git settings. The remote is validated first; an
        unknown repository is adopted only with `confirm_unknown`. With
        MIGRATE_DATA every local entry is committed into the clone; entries
        already there with the same content are skipped, so a retry after
        DataMigrationFailed continues where the last attempt stopped.
        """
        async with self._lock:
            try:
                return await self._migrate_to_git(option, confirm_unknown)
            except Exception as e:
                logger.error(f"Migration to git failed unexpectedly: {e}")
                return UnknownError(str(e))

    async def _migrate_to_git(self, option: MigrationOption, confirm_unknown: bool) -> MigrationResult:
        git = await self.settings.get_git_settings()
        if not git.is_complete:
            return GitSettingsNotConfigured()

        validation = await self.validator.validate_repository_safely(git.repo_url, git.username, git.token)
        if not self._may_adopt(validation, confirm_unknown):
            logger.warning(f"Refusing to migrate into repository: {validation.value}")
            return GitInitializationFailed(validation=validation)

        try:
            await self.git_repository.initialize()
        except GitError as e:
            logger.error(f"Could not initialize git repository: {e}")
            return GitInitializationFailed(detail=str(e))

        if option is MigrationOption.MIGRATE_DATA:
            entries = sorted(await self.local_repository.list_entries(), key=lambda e: e.date)
            migrated = 0
            for entry in entries:
                try:
                    await self.git_repository.commit_entry(entry)
                except (GitError, OSError) as e:
                    logger.error(f"Migration stopped at {entry.date}: {e}")
                    return DataMigrationFailed(migrated=migrated, failed_date=entry.date)
                migrated += 1
            logger.info(f"Copied {migrated} entries into the git repository")

        warning = None
        try:
            await self.git_repository.push()
        except GitError as e:
            warning = f"entries are committed but not pushed yet ({e})"
            logger.warning(f"Push after migration failed: {e}")

        self.git_error = None
        await self.settings.set_mode(RepositoryMode.GIT)
        self._activate(RepositoryMode.GIT)
        return MigrationSuccess(warning=warning)

    async def migrate_to_local_mode(self, clear_git_data: bool = False) -> MigrationResult:
        """
        Switch back to local-only storage.

        Entries from the git working tree are copied into local storage
        first (git content wins for dates present on both sides). With
        `clear_git_data` the working tree and git settings are deleted after
        the switch; a failure there is reported as a warning, the switch stays.
        """
        async with self._lock:
            try:
                return await self._migrate_to_local(clear_git_data)
            except Exception as e:
                logger.error(f"Migration to local failed unexpectedly: {e}")
                return UnknownError(str(e))

    async def _migrate_to_local(self, clear_git_data: bool) -> MigrationResult:
        try:
            await self.local_repository.initialize()
        except OSError as e:
            logger.error(f"Could not prepare local storage: {e}")
            return LocalInitializationFailed(detail=str(e))

        if self._mode is RepositoryMode.GIT:
            migrated = 0
            for entry in await scan_entries(self.storage, self.git_repository.repository_dir):
                try:
                    await self.local_repository.save_entry(entry)
                except OSError as e:
                    logger.error(f"Copy to local storage stopped at {entry.date}: {e}")
                    return DataMigrationFailed(migrated=migrated, failed_date=entry.date)
                migrated += 1
            logger.info(f"Copied {migrated} entries into local storage")

        await self.settings.set_mode(RepositoryMode.LOCAL_ONLY)
        self._activate(RepositoryMode.LOCAL_ONLY)

        warning = None
        if clear_git_data:
            try:
                await self.git_ops.remove_working_tree(self.git_repository.repository_dir)
                await self.settings.clear_git_settings()
            except (OSError, GitError) as e:
                warning = f"could not delete git data: {e}"
                logger.warning(f"Cleanup after switching to local failed: {e}")
        return MigrationSuccess(warning=warning)

    async def switch_remote(
        self,
        remote_url: str,
        username: str,
        token: str,
        option: MigrationOption = MigrationOption.MIGRATE_DATA,
    ) -> MigrationResult:
        """
        Move the diary to another remote.

        In local-only mode this records the settings and migrates to git. In
        git mode the new remote is validated and cloned next to the current
        tree; with MIGRATE_DATA the current entries are carried over, the
        more recently committed side winning for dates both hold. The trees
        are swapped and the settings replaced only after all of that worked.
        """
        async with self._lock:
            previous = await self.settings.get_git_settings()
            target = GitSettings(
                repo_url=remote_url,
                username=username,
                token=token,
                commit_user_name=previous.commit_user_name,
                commit_user_email=previous.commit_user_email,
            )
            if not target.is_complete:
                return GitSettingsNotConfigured()
            try:
                if self._mode is RepositoryMode.GIT:
                    return await self._switch_remote(target, option)
                await self.settings.save_git_settings(target)
                try:
                    result = await self._migrate_to_git(option, confirm_unknown=False)
                except Exception:
                    await self.settings.save_git_settings(previous)
                    raise
                if not result.succeeded:
                    await self.settings.save_git_settings(previous)
                return result
            except Exception as e:
                logger.error(f"Switching remote failed unexpectedly: {e}")
                return UnknownError(str(e))

    async def _switch_remote(self, target: GitSettings, option: MigrationOption) -> MigrationResult:
        validation = await self.validator.validate_repository_safely(target.repo_url, target.username, target.token)
        if not self._may_adopt(validation, confirm_unknown=False):
            return GitInitializationFailed(validation=validation)

        current_dir = self.git_repository.repository_dir
        staging_dir = current_dir.parent / f".{current_dir.name}.switch-{uuid.uuid4().hex[:8]}"
        staging_ops = self._new_git_ops()
        try:
            await staging_ops.init_repository(target.repo_url, staging_dir, target.auth)
        except GitError as e:
            return GitInitializationFailed(detail=str(e))

        try:
            if option is MigrationOption.MIGRATE_DATA:
                failed = await self._carry_entries(staging_ops, target)
                if failed is not None:
                    return failed
                try:
                    await staging_ops.push()
                except GitError as e:
                    logger.warning(f"Push to new remote failed, will retry on next sync: {e}")

            backup_dir = current_dir.parent / f".{current_dir.name}.old-{uuid.uuid4().hex[:8]}"
            self.git_ops.reset()
            if current_dir.exists():
                os.replace(current_dir, backup_dir)
            try:
                os.replace(staging_dir, current_dir)
            except OSError:
                if backup_dir.exists():
                    os.replace(backup_dir, current_dir)
                raise
        finally:
            if staging_dir.exists():
                shutil.rmtree(staging_dir, ignore_errors=True)

        await self.git_ops.init_repository(target.repo_url, current_dir, target.auth)
        await self.settings.save_git_settings(target)
        self._feed.publish()
        logger.info("Switched to new remote")

        warning = None
        if backup_dir.exists():
            try:
                await asyncio.to_thread(shutil.rmtree, backup_dir)
            except OSError as e:
                warning = f"old working tree left at {backup_dir} ({e})"
                logger.warning(f"Could not delete old working tree: {e}")
        return MigrationSuccess(warning=warning)

    async def _carry_entries(self, staging_ops: GitOperations, target: GitSettings) -> MigrationResult | None:
        """Commit current entries into the staging clone. Returns a failure result or None."""
        root = staging_ops.get_local_path()
        incoming = {entry.date: entry for entry in await scan_entries(self.storage, root)}
        carried = 0
        for entry in sorted(await self.git_repository.list_entries(), key=lambda e: e.date):
            theirs = incoming.get(entry.date)
            if theirs is not None and theirs.content != entry.content:
                ours_time = await self.git_ops.last_commit_millis(entry.file_name) or entry.last_modified
                theirs_time = await staging_ops.last_commit_millis(entry.file_name) or theirs.last_modified
                if theirs_time >= ours_time:
                    continue
            try:
                await staging_ops.save_and_commit(
                    entry.file_name,
                    entry.content,
                    f"Update entry for {entry.date.isoformat()}",
                    target.commit_user_name,
                    target.commit_user_email,
                )
            except (GitError, OSError) as e:
                logger.error(f"Carrying entries stopped at {entry.date}: {e}")
                return DataMigrationFailed(migrated=carried, failed_date=entry.date)
            carried += 1
        logger.info(f"Carried {carried} entries to the new remote")
        return None

    @staticmethod
    def _may_adopt(validation: ValidationResult, confirm_unknown: bool) -> bool:
        if validation.needs_confirmation:
            return confirm_unknown
        return validation.is_safe


def create_repository_factory(config: Config | None = None) -> RepositoryFactory:
    """Wire the factory from configuration: file storage, settings backend, git."""
    config = config or load_config()
    storage = LocalFileStorage(config.data_dir)
    settings = SettingsManager(create_settings_store(config))
    return RepositoryFactory(config, settings, storage)
