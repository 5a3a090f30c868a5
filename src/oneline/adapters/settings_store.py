"""Key-value settings storage adapters."""

import asyncio
import json
import logging
from pathlib import Path
from typing import AsyncIterator

from oneline.adapters.file_storage import write_atomic
from oneline.feed import ChangeFeed

logger = logging.getLogger(__name__)

_UNSET = object()


class MemorySettingsStore:
    """
    In-process settings store.

    Implements SettingsStore protocol. Nothing survives the process; used
    when `settings_backend = memory` and as the base for the JSON store.
    """

    def __init__(self, values: dict[str, str | bool] | None = None):
        self._values: dict[str, str | bool] = dict(values or {})
        self._feed = ChangeFeed()

    async def get_string(self, key: str) -> str | None:
        value = self._values.get(key)
        return value if isinstance(value, str) else None

    async def get_boolean(self, key: str) -> bool:
        return self._values.get(key) is True

    async def save_string(self, key: str, value: str) -> None:
        await self._update(lambda values: values.__setitem__(key, value))

    async def save_boolean(self, key: str, value: bool) -> None:
        await self._update(lambda values: values.__setitem__(key, bool(value)))

    async def remove(self, key: str) -> None:
        await self._update(lambda values: values.pop(key, None))

    async def clear(self) -> None:
        await self._update(lambda values: values.clear())

    async def observe_string(self, key: str) -> AsyncIterator[str | None]:
        last = _UNSET
        async for _ in self._feed.changes():
            value = await self.get_string(key)
            if value != last:
                last = value
                yield value

    async def observe_boolean(self, key: str) -> AsyncIterator[bool]:
        last = _UNSET
        async for _ in self._feed.changes():
            value = await self.get_boolean(key)
            if value != last:
                last = value
                yield value

    async def _update(self, mutate) -> None:
        mutate(self._values)
        await self._persist()
        self._feed.publish()

    async def _persist(self) -> None:
        pass


class JsonSettingsStore(MemorySettingsStore):
    """
    Settings persisted as a JSON object in a single file (mode 0600).

    Implements SettingsStore protocol. The whole file is rewritten atomically
    on every change.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        super().__init__(self._load())

    def _load(self) -> dict[str, str | bool]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Settings file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.path} must hold a JSON object")
        return {k: v for k, v in data.items() if isinstance(v, (str, bool))}

    async def _persist(self) -> None:
        payload = json.dumps(self._values, indent=2, sort_keys=True)
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: str) -> None:
        write_atomic(self.path, payload)
        self.path.chmod(0o600)
        logger.debug(f"Saved {len(self._values)} settings to {self.path}")
