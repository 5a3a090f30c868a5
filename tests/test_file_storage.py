"""Tests for the local file storage adapter."""

import pytest

from oneline.adapters.file_storage import LocalFileStorage, write_atomic


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path)


class TestLocalFileStorage:
    @pytest.mark.asyncio
    async def test_write_then_read(self, storage):
        await storage.write("a/b/2025-01-15.md", "hello\nworld")
        assert await storage.read("a/b/2025-01-15.md") == "hello\nworld"

    @pytest.mark.asyncio
    async def test_relative_paths_resolve_against_app_directory(self, storage, tmp_path):
        await storage.write("note.md", "x")
        assert (tmp_path / "note.md").read_text() == "x"
        assert storage.exists("note.md")
        assert storage.exists(tmp_path / "note.md")

    @pytest.mark.asyncio
    async def test_overwrite_leaves_no_temp_files(self, storage, tmp_path):
        await storage.write("note.md", "one")
        await storage.write("note.md", "two")
        assert await storage.read("note.md") == "two"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["note.md"]

    @pytest.mark.asyncio
    async def test_preserves_line_endings(self, storage):
        await storage.write("crlf.md", "a\r\nb")
        assert (storage.app_directory() / "crlf.md").read_bytes() == b"a\r\nb"

    @pytest.mark.asyncio
    async def test_read_missing_raises(self, storage):
        with pytest.raises(FileNotFoundError):
            await storage.read("missing.md")

    @pytest.mark.asyncio
    async def test_delete(self, storage):
        await storage.write("note.md", "x")
        assert await storage.delete("note.md") is True
        assert await storage.delete("note.md") is False
        assert not storage.exists("note.md")

    @pytest.mark.asyncio
    async def test_list_sorted_names(self, storage):
        await storage.write("d/b.md", "")
        await storage.write("d/a.md", "")
        assert await storage.list("d") == ["a.md", "b.md"]

    @pytest.mark.asyncio
    async def test_list_missing_directory_is_empty(self, storage):
        assert await storage.list("nowhere") == []

    @pytest.mark.asyncio
    async def test_list_file_raises(self, storage):
        await storage.write("note.md", "x")
        with pytest.raises(NotADirectoryError):
            await storage.list("note.md")

    @pytest.mark.asyncio
    async def test_create_directory_is_idempotent(self, storage, tmp_path):
        await storage.create_directory("x/y")
        await storage.create_directory("x/y")
        assert (tmp_path / "x" / "y").is_dir()


class TestWriteAtomic:
    def test_failed_write_keeps_old_content(self, tmp_path, monkeypatch):
        target = tmp_path / "entry.md"
        target.write_text("old")

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("oneline.adapters.file_storage.os.replace", broken_replace)
        with pytest.raises(OSError, match="disk full"):
            write_atomic(target, "new")

        assert target.read_text() == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["entry.md"]
