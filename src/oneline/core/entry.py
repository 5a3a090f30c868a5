"""Diary entry value type and its date-derived file identity."""

import re
import time
from dataclasses import dataclass, field
from datetime import date

ENTRY_SUFFIX = ".md"

_FILE_NAME_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\.md$")


def now_millis() -> int:
    return int(time.time() * 1000)


class EntryParseError(ValueError):
    """Raised when an existing entry file cannot be turned into an entry."""

    pass


@dataclass(frozen=True)
class DiaryEntry:
    """
    One diary entry per calendar date.

    Identity is the date. `last_modified` (ms since epoch) is assigned by
    whichever store produced the entry, so it does not take part in equality.
    """

    date: date
    content: str
    last_modified: int = field(default_factory=now_millis, compare=False)

    @property
    def file_name(self) -> str:
        return entry_file_name(self.date)

    @property
    def display_date(self) -> str:
        return display_date(self.date)


def entry_file_name(entry_date: date) -> str:
    """Map a date to its on-disk file name, e.g. 2025-01-15.md."""
    return f"{entry_date.isoformat()}{ENTRY_SUFFIX}"


def parse_entry_file_name(name: str) -> date | None:
    """
    Map a file name back to its date.

    Returns None for anything that is not a diary file. Only the exact
    YYYY-MM-DD.md spelling is accepted so the mapping stays one-to-one.
    """
    match = _FILE_NAME_RE.match(name)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def is_entry_file_name(name: str) -> bool:
    return parse_entry_file_name(name) is not None


def display_date(entry_date: date) -> str:
    """Human label, e.g. 'Wednesday, January 15, 2025'."""
    return f"{entry_date.strftime('%A, %B')} {entry_date.day}, {entry_date.year}"
