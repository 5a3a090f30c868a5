"""Modes, credentials and the closed result sets returned by the repository layer."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class RepositoryMode(Enum):
    """Which backend holds the diary."""

    LOCAL_ONLY = "local_only"
    GIT = "git"


@dataclass(frozen=True)
class GitAuth:
    """HTTPS basic credentials for the remote (username + access token)."""

    username: str
    token: str = field(repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.username.strip() and self.token.strip())


class ValidationResult(Enum):
    """
    Outcome of probing a remote before trusting it.

    Ordered roughly from "safe to adopt" to "must not touch".
    """

    DIARY_REPOSITORY = "diary_repository"
    LIKELY_DIARY_REPOSITORY = "likely_diary_repository"
    EMPTY_REPOSITORY = "empty_repository"
    UNKNOWN_REPOSITORY = "unknown_repository"
    SUSPICIOUS_REPOSITORY = "suspicious_repository"
    DANGEROUS_REPOSITORY = "dangerous_repository"
    OWNERSHIP_VERIFICATION_FAILED = "ownership_verification_failed"
    AUTHENTICATION_FAILED = "authentication_failed"
    REPOSITORY_NOT_FOUND = "repository_not_found"
    CONNECTION_FAILED = "connection_failed"
    VALIDATION_FAILED = "validation_failed"

    @property
    def is_safe(self) -> bool:
        """Safe to adopt without asking the user."""
        return self in _SAFE_RESULTS

    @property
    def needs_confirmation(self) -> bool:
        """Adoptable only after explicit user confirmation."""
        return self is ValidationResult.UNKNOWN_REPOSITORY

    @property
    def is_blocking(self) -> bool:
        return not (self.is_safe or self.needs_confirmation)

    def describe(self) -> str:
        """User-facing explanation."""
        return _VALIDATION_MESSAGES[self]


_SAFE_RESULTS = frozenset(
    {
        ValidationResult.DIARY_REPOSITORY,
        ValidationResult.LIKELY_DIARY_REPOSITORY,
        ValidationResult.EMPTY_REPOSITORY,
    }
)


class MigrationOption(Enum):
    """What to do with existing data when switching to a remote that may hold data."""

    MIGRATE_DATA = "migrate_data"
    DISCARD_AND_SWITCH = "discard_and_switch"


@dataclass(frozen=True)
class MigrationResult:
    """Terminal outcome of one migration attempt."""

    @property
    def succeeded(self) -> bool:
        return isinstance(self, MigrationSuccess)

    def describe(self) -> str:
        """User-facing explanation."""
        match self:
            case MigrationSuccess(warning=None):
                return "Migration completed."
            case MigrationSuccess(warning=warning):
                return f"Migration completed with a warning: {warning}"
            case GitInitializationFailed(validation=None, detail=detail):
                return _with_detail(
                    "Could not initialize the git repository. Check your settings.", detail
                )
            case GitInitializationFailed(validation=validation):
                return validation.describe()
            case LocalInitializationFailed(detail=detail):
                return _with_detail("Could not initialize local storage.", detail)
            case DataMigrationFailed(migrated=migrated, failed_date=failed_date):
                where = f" at {failed_date.isoformat()}" if failed_date else ""
                return (
                    f"Data migration stopped{where} after {migrated} entries. "
                    "Nothing was switched; retrying skips entries already copied."
                )
            case GitSettingsNotConfigured():
                return "Git is not configured. Set the repository URL, username and token."
            case UnknownError(message=message):
                return f"Unexpected error: {message}"
        raise AssertionError(f"Unhandled migration result: {self!r}")


@dataclass(frozen=True)
class MigrationSuccess(MigrationResult):
    warning: str | None = None


@dataclass(frozen=True)
class GitInitializationFailed(MigrationResult):
    validation: ValidationResult | None = None
    detail: str = ""


@dataclass(frozen=True)
class LocalInitializationFailed(MigrationResult):
    detail: str = ""


@dataclass(frozen=True)
class DataMigrationFailed(MigrationResult):
    migrated: int = 0
    failed_date: date | None = None


@dataclass(frozen=True)
class GitSettingsNotConfigured(MigrationResult):
    pass


@dataclass(frozen=True)
class UnknownError(MigrationResult):
    message: str = ""


def _with_detail(message: str, detail: str) -> str:
    return f"{message} ({detail})" if detail else message


_VALIDATION_MESSAGES = {
    ValidationResult.DIARY_REPOSITORY: "The repository already holds diary entries.",
    ValidationResult.LIKELY_DIARY_REPOSITORY: "The repository looks like a diary.",
    ValidationResult.EMPTY_REPOSITORY: "The repository is empty.",
    ValidationResult.UNKNOWN_REPOSITORY: (
        "The repository content is unknown. Confirm before using it for the diary."
    ),
    ValidationResult.SUSPICIOUS_REPOSITORY: (
        "The repository looks like a development project. It was not touched."
    ),
    ValidationResult.DANGEROUS_REPOSITORY: (
        "The repository contains source code. It was not touched."
    ),
    ValidationResult.OWNERSHIP_VERIFICATION_FAILED: (
        "The repository does not belong to the configured user. It was not touched."
    ),
    ValidationResult.AUTHENTICATION_FAILED: (
        "Authentication failed. Re-enter the username and access token."
    ),
    ValidationResult.REPOSITORY_NOT_FOUND: "The repository was not found. Check the URL.",
    ValidationResult.CONNECTION_FAILED: "Could not reach the remote. Check the network.",
    ValidationResult.VALIDATION_FAILED: "The repository could not be validated.",
}


class SyncStatus(Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"  # local-only mode, nothing to sync
    AUTHENTICATION_FAILED = "authentication_failed"
    PULL_FAILED = "pull_failed"
    PUSH_FAILED = "push_failed"  # merged locally, push again later


@dataclass(frozen=True)
class SyncResult:
    status: SyncStatus
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (SyncStatus.SYNCED, SyncStatus.SKIPPED)


@dataclass
class IntegrityReport:
    """Result of scanning the local entries directory."""

    total_files: int = 0
    valid_entries: int = 0
    invalid_entries: int = 0
    corrupted_files: list[str] = field(default_factory=list)
