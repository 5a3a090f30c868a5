"""Typed access to the settings the repository layer depends on."""

import logging
from dataclasses import dataclass, field

from oneline.adapters.settings_store import JsonSettingsStore, MemorySettingsStore
from oneline.config import Config
from oneline.core.results import GitAuth, RepositoryMode
from oneline.ports.settings_store import SettingsStore

logger = logging.getLogger(__name__)

GIT_REPO_URL = "git_repo_url"
GIT_USERNAME = "git_username"
GIT_TOKEN = "git_token"
GIT_COMMIT_USER_NAME = "git_commit_user_name"
GIT_COMMIT_USER_EMAIL = "git_commit_user_email"
REPOSITORY_MODE = "repository_mode"

GIT_KEYS = (GIT_REPO_URL, GIT_USERNAME, GIT_TOKEN, GIT_COMMIT_USER_NAME, GIT_COMMIT_USER_EMAIL)


@dataclass(frozen=True)
class GitSettings:
    """Remote location, credentials and commit identity."""

    repo_url: str = ""
    username: str = ""
    token: str = field(default="", repr=False)
    commit_user_name: str = ""
    commit_user_email: str = ""

    @property
    def auth(self) -> GitAuth:
        return GitAuth(self.username, self.token)

    @property
    def is_complete(self) -> bool:
        return bool(self.repo_url.strip()) and self.auth.is_complete


def create_settings_store(config: Config) -> SettingsStore:
    """Pick the settings backend named in the config."""
    match config.settings_backend:
        case "memory":
            return MemorySettingsStore()
        case _:
            return JsonSettingsStore(config.settings_file)


class SettingsManager:
    """Reads and writes the git settings and the repository mode."""

    def __init__(self, store: SettingsStore):
        self.store = store

    async def get_git_settings(self) -> GitSettings:
        return GitSettings(
            repo_url=await self.store.get_string(GIT_REPO_URL) or "",
            username=await self.store.get_string(GIT_USERNAME) or "",
            token=await self.store.get_string(GIT_TOKEN) or "",
            commit_user_name=await self.store.get_string(GIT_COMMIT_USER_NAME) or "",
            commit_user_email=await self.store.get_string(GIT_COMMIT_USER_EMAIL) or "",
        )

    async def save_git_settings(self, settings: GitSettings) -> None:
        """Record git settings. Does not change the repository mode."""
        await self.store.save_string(GIT_REPO_URL, settings.repo_url.strip())
        await self.store.save_string(GIT_USERNAME, settings.username.strip())
        await self.store.save_string(GIT_TOKEN, settings.token.strip())
        await self.store.save_string(GIT_COMMIT_USER_NAME, settings.commit_user_name.strip())
        await self.store.save_string(GIT_COMMIT_USER_EMAIL, settings.commit_user_email.strip())

    async def clear_git_settings(self) -> None:
        for key in GIT_KEYS:
            await self.store.remove(key)
        logger.info("Git settings cleared")

    async def get_mode(self) -> RepositoryMode:
        value = await self.store.get_string(REPOSITORY_MODE)
        if value is None:
            return RepositoryMode.LOCAL_ONLY
        try:
            return RepositoryMode(value)
        except ValueError:
            logger.warning(f"Unknown repository mode {value!r}, using local-only")
            return RepositoryMode.LOCAL_ONLY

    async def set_mode(self, mode: RepositoryMode) -> None:
        await self.store.save_string(REPOSITORY_MODE, mode.value)

    async def has_valid_settings(self) -> bool:
        """Local-only mode is always valid; git mode needs URL and credentials."""
        if await self.get_mode() is RepositoryMode.LOCAL_ONLY:
            return True
        return (await self.get_git_settings()).is_complete
