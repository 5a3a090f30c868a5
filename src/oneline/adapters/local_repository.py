"""File-based diary repository adapter."""

import logging
from datetime import date
from pathlib import Path
from typing import AsyncIterator

from oneline.core.entry import DiaryEntry, EntryParseError, entry_file_name, parse_entry_file_name
from oneline.core.results import IntegrityReport
from oneline.feed import ChangeFeed
from oneline.ports.file_storage import FileStorage

logger = logging.getLogger(__name__)


async def read_entry(storage: FileStorage, path: Path, entry_date: date) -> DiaryEntry:
    """Turn one existing entry file into a DiaryEntry. Raises EntryParseError if undecodable."""
    try:
        content = await storage.read(path)
    except UnicodeDecodeError as e:
        raise EntryParseError(f"{path.name} is not valid UTF-8: {e}") from e
    return DiaryEntry(entry_date, content, _mtime_millis(path))


async def scan_entries(storage: FileStorage, directory: Path) -> list[DiaryEntry]:
    """All readable entries in a directory, most recent first. Other files are skipped."""
    entries = []
    for name in await storage.list(directory):
        entry_date = parse_entry_file_name(name)
        if entry_date is None:
            continue
        path = directory / name
        try:
            entries.append(await read_entry(storage, path, entry_date))
        except EntryParseError as e:
            logger.warning(f"Skipping unreadable entry: {e}")
        except FileNotFoundError:
            # Deleted between listing and reading
            continue
    entries.sort(key=lambda entry: entry.date, reverse=True)
    return entries


def _mtime_millis(path: Path) -> int:
    return int(path.stat().st_mtime * 1000)


class LocalDiaryRepository:
    """
    Diary entries as plain files, one `YYYY-MM-DD.md` per date.

    Implements DiaryRepository protocol. Only this process's own writes
    refresh the live view; files changed by other programs show up on the
    next change or subscription.
    """

    def __init__(self, storage: FileStorage, entries_dir: Path | str):
        self.storage = storage
        self.entries_dir = storage.app_directory() / entries_dir
        self._feed = ChangeFeed()

    def _path_for_date(self, entry_date: date) -> Path:
        return self.entries_dir / entry_file_name(entry_date)

    async def initialize(self) -> bool:
        await self.storage.create_directory(self.entries_dir)
        return True

    async def save_entry(self, entry: DiaryEntry) -> bool:
        await self.storage.write(self._path_for_date(entry.date), entry.content)
        logger.debug(f"Saved entry for {entry.date}")
        self._feed.publish()
        return True

    async def get_entry(self, entry_date: date) -> DiaryEntry | None:
        path = self._path_for_date(entry_date)
        if not self.storage.exists(path):
            return None
        try:
            return await read_entry(self.storage, path, entry_date)
        except FileNotFoundError:
            return None

    async def delete_entry(self, entry_date: date) -> bool:
        deleted = await self.storage.delete(self._path_for_date(entry_date))
        if deleted:
            logger.debug(f"Deleted entry for {entry_date}")
            self._feed.publish()
        return deleted

    async def list_entries(self) -> list[DiaryEntry]:
        return await scan_entries(self.storage, self.entries_dir)

    async def get_all_entries(self) -> AsyncIterator[list[DiaryEntry]]:
        async for _ in self._feed.changes():
            yield await self.list_entries()

    def notify_changed(self) -> None:
        """Tell live views to re-read, after the directory was changed from outside."""
        self._feed.publish()

    async def check_integrity(self) -> IntegrityReport:
        """Scan the entries directory for diary files that cannot be read or are empty."""
        report = IntegrityReport()
        for name in await self.storage.list(self.entries_dir):
            entry_date = parse_entry_file_name(name)
            if entry_date is None:
                continue
            report.total_files += 1
            try:
                entry = await read_entry(self.storage, self.entries_dir / name, entry_date)
            except EntryParseError:
                report.invalid_entries += 1
                report.corrupted_files.append(name)
                continue
            if entry.content.strip():
                report.valid_entries += 1
            else:
                report.invalid_entries += 1
                report.corrupted_files.append(name)
        if report.corrupted_files:
            logger.warning(f"Integrity check found {len(report.corrupted_files)} bad entries")
        return report

    async def repair_corrupted_files(self, names: list[str]) -> bool:
        """
        Delete the named entry files, as reported by `check_integrity`.

        Names that are not diary file names are ignored, so nothing outside
        the entries directory can be touched. Returns False if any delete failed.
        """
        repaired = 0
        ok = True
        for name in names:
            if parse_entry_file_name(name) is None:
                logger.warning(f"Not repairing {name!r}, not an entry file")
                continue
            try:
                if await self.storage.delete(self.entries_dir / name):
                    repaired += 1
            except OSError as e:
                logger.error(f"Could not delete {name}: {e}")
                ok = False
        logger.info(f"Repaired {repaired} corrupted entries")
        if repaired:
            self._feed.publish()
        return ok
