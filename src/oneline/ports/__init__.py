"""Ports - interfaces/protocols for external dependencies."""

from .file_storage import FileStorage
from .settings_store import SettingsStore
from .diary_repository import DiaryRepository

__all__ = [
    "FileStorage",
    "SettingsStore",
    "DiaryRepository",
]
