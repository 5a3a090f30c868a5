"""Local file system storage adapter."""

import asyncio
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def write_atomic(target: Path, content: str) -> None:
    """Write via a temp file in the same directory, then rename over the target."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    logger.debug(f"Wrote {len(content)} chars to {target}")


def _delete(target: Path) -> bool:
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    logger.debug(f"Deleted {target}")
    return True


def _list_names(directory: Path) -> list[str]:
    if not directory.exists():
        return []
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {directory}")
    return sorted(p.name for p in directory.iterdir())


class LocalFileStorage:
    """
    File storage rooted at the app's data directory.

    Implements FileStorage protocol. Blocking calls run in a worker thread.
    Writes are atomic from a reader's point of view: old or new content,
    never a partial file.
    """

    def __init__(self, app_dir: Path | str):
        self._app_dir = Path(app_dir).expanduser()

    def app_directory(self) -> Path:
        return self._app_dir

    def resolve(self, path: str | Path) -> Path:
        """Absolute paths pass through; relative ones hang off the app directory."""
        path = Path(path)
        return path if path.is_absolute() else self._app_dir / path

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).exists()

    async def write(self, path: str | Path, content: str) -> None:
        await asyncio.to_thread(write_atomic, self.resolve(path), content)

    async def read(self, path: str | Path) -> str:
        return await asyncio.to_thread(self.resolve(path).read_text, encoding="utf-8")

    async def delete(self, path: str | Path) -> bool:
        return await asyncio.to_thread(_delete, self.resolve(path))

    async def list(self, directory: str | Path) -> "list[str]":
        return await asyncio.to_thread(_list_names, self.resolve(directory))

    async def create_directory(self, directory: str | Path) -> None:
        await asyncio.to_thread(self.resolve(directory).mkdir, parents=True, exist_ok=True)
