"""Tests for the diary entry model."""

from datetime import date

import pytest

from oneline.core.entry import (
    DiaryEntry,
    display_date,
    entry_file_name,
    is_entry_file_name,
    parse_entry_file_name,
)


class TestEntryFileName:
    def test_iso_date_with_md_suffix(self):
        assert entry_file_name(date(2025, 1, 15)) == "2025-01-15.md"

    def test_entry_file_name_property(self):
        entry = DiaryEntry(date(2024, 12, 3), "hello")
        assert entry.file_name == "2024-12-03.md"

    @pytest.mark.parametrize(
        "day",
        [date(2025, 1, 1), date(2024, 2, 29), date(1999, 12, 31), date(2030, 7, 4)],
    )
    def test_parse_recovers_date(self, day):
        assert parse_entry_file_name(entry_file_name(day)) == day

    @pytest.mark.parametrize(
        "name",
        [
            "notes.md",
            "README.md",
            "2025-01-15.txt",
            "2025-1-15.md",
            "2025-01-15.md.bak",
            ".2025-01-15.md.tmp",
            "2025-02-30.md",
            "2025-13-01.md",
            "",
        ],
    )
    def test_non_diary_names_are_rejected(self, name):
        assert parse_entry_file_name(name) is None
        assert not is_entry_file_name(name)


class TestDiaryEntry:
    def test_equality_ignores_last_modified(self):
        a = DiaryEntry(date(2025, 1, 15), "text", last_modified=1)
        b = DiaryEntry(date(2025, 1, 15), "text", last_modified=2)
        assert a == b

    def test_different_content_is_not_equal(self):
        assert DiaryEntry(date(2025, 1, 15), "a") != DiaryEntry(date(2025, 1, 15), "b")

    def test_last_modified_defaults_to_now(self):
        entry = DiaryEntry(date(2025, 1, 15), "text")
        assert entry.last_modified > 1_600_000_000_000

    def test_is_immutable(self):
        entry = DiaryEntry(date(2025, 1, 15), "text")
        with pytest.raises(AttributeError):
            entry.content = "other"


class TestDisplayDate:
    def test_long_form(self):
        assert display_date(date(2025, 1, 15)) == "Wednesday, January 15, 2025"

    def test_no_zero_padding(self):
        assert display_date(date(2025, 3, 2)) == "Sunday, March 2, 2025"

    def test_entry_property(self):
        assert DiaryEntry(date(2025, 1, 15), "").display_date == "Wednesday, January 15, 2025"
