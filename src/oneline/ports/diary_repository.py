"""Diary repository interface."""

from datetime import date
from typing import AsyncIterator, Protocol

from oneline.core.entry import DiaryEntry


class DiaryRepository(Protocol):
    """CRUD over diary entries, one file per date, whatever the backend."""

    async def initialize(self) -> bool:
        """Idempotent setup. Safe to call more than once."""
        ...

    async def save_entry(self, entry: DiaryEntry) -> bool:
        """Write/overwrite the entry for its date. False if nothing changed."""
        ...

    async def get_entry(self, entry_date: date) -> DiaryEntry | None:
        """Read the entry for a date. Returns None if there is none."""
        ...

    async def delete_entry(self, entry_date: date) -> bool:
        """Remove the entry for a date. False if it was already absent."""
        ...

    async def list_entries(self) -> list[DiaryEntry]:
        """Snapshot of all entries, most recent first."""
        ...

    def get_all_entries(self) -> AsyncIterator[list[DiaryEntry]]:
        """Live view: the current snapshot, then a new one after every change."""
        ...
