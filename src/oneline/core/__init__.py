"""Functional core - diary value types and result sets, no I/O."""

from .entry import (
    DiaryEntry,
    EntryParseError,
    display_date,
    entry_file_name,
    is_entry_file_name,
    parse_entry_file_name,
)
from .results import (
    DataMigrationFailed,
    GitAuth,
    GitInitializationFailed,
    GitSettingsNotConfigured,
    IntegrityReport,
    LocalInitializationFailed,
    MigrationOption,
    MigrationResult,
    MigrationSuccess,
    RepositoryMode,
    SyncResult,
    SyncStatus,
    UnknownError,
    ValidationResult,
)

__all__ = [
    # Entries
    "DiaryEntry",
    "EntryParseError",
    "display_date",
    "entry_file_name",
    "is_entry_file_name",
    "parse_entry_file_name",
    # Modes and credentials
    "RepositoryMode",
    "GitAuth",
    # Validation
    "ValidationResult",
    # Migration
    "MigrationOption",
    "MigrationResult",
    "MigrationSuccess",
    "GitInitializationFailed",
    "LocalInitializationFailed",
    "DataMigrationFailed",
    "GitSettingsNotConfigured",
    "UnknownError",
    # Sync and maintenance
    "SyncResult",
    "SyncStatus",
    "IntegrityReport",
]
