"""Settings storage interface."""

from typing import AsyncIterator, Protocol


class SettingsStore(Protocol):
    """Opaque string/boolean key-value store with change notification."""

    async def get_string(self, key: str) -> str | None:
        """Read a string value. Returns None if not set."""
        ...

    async def get_boolean(self, key: str) -> bool:
        """Read a boolean value. Returns False if not set."""
        ...

    async def save_string(self, key: str, value: str) -> None:
        ...

    async def save_boolean(self, key: str, value: bool) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def clear(self) -> None:
        ...

    def observe_string(self, key: str) -> AsyncIterator[str | None]:
        """Yield the current value, then every new value."""
        ...

    def observe_boolean(self, key: str) -> AsyncIterator[bool]:
        """Yield the current value, then every new value."""
        ...
