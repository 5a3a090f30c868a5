"""Adapters - I/O implementations of ports."""

from .file_storage import LocalFileStorage
from .settings_store import JsonSettingsStore, MemorySettingsStore
from .git_ops import (
    GitOperations,
    GitError,
    GitAuthenticationError,
    GitConnectionError,
    GitMergeConflictError,
    GitNotAvailableError,
    GitNotInitializedError,
    GitPushRejectedError,
    GitRemoteMismatchError,
    GitRepositoryNotFoundError,
)
from .local_repository import LocalDiaryRepository
from .git_repository import GitDiaryRepository

__all__ = [
    "LocalFileStorage",
    "JsonSettingsStore",
    "MemorySettingsStore",
    "GitOperations",
    "GitError",
    "GitAuthenticationError",
    "GitConnectionError",
    "GitMergeConflictError",
    "GitNotAvailableError",
    "GitNotInitializedError",
    "GitPushRejectedError",
    "GitRemoteMismatchError",
    "GitRepositoryNotFoundError",
    "LocalDiaryRepository",
    "GitDiaryRepository",
]
