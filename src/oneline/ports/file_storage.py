"""File storage interface."""

from pathlib import Path
from typing import Protocol


class FileStorage(Protocol):
    """
    Read/write/list access to the app's document directory.

    Relative paths resolve against `app_directory()`. Everything except
    `app_directory` and `exists` is a coroutine; I/O errors propagate.
    """

    def app_directory(self) -> Path:
        """Root directory owned by the application."""
        ...

    def exists(self, path: str | Path) -> bool:
        """Check if a file or directory exists."""
        ...

    async def write(self, path: str | Path, content: str) -> None:
        """Atomically replace a file's content, creating parents as needed."""
        ...

    async def read(self, path: str | Path) -> str:
        """Read a UTF-8 file. Raises FileNotFoundError if missing."""
        ...

    async def delete(self, path: str | Path) -> bool:
        """Delete a file. Returns False if it was already absent."""
        ...

    async def list(self, directory: str | Path) -> "list[str]":
        """List entry names in a directory. Missing directory yields []."""
        ...

    async def create_directory(self, directory: str | Path) -> None:
        """Create a directory and its parents if needed."""
        ...
