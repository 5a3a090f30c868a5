"""Configuration management for OneLine."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

ONELINE_HOME = Path(os.environ.get("ONELINE_HOME", Path.home() / "oneline"))
CONFIG_FILE = ONELINE_HOME / "config" / "oneline.conf"
SETTINGS_FILE = ONELINE_HOME / "config" / "settings.json"
DATA_DIR = ONELINE_HOME / "data"

SETTINGS_BACKENDS = ("file", "memory")


@dataclass
class Config:
    """OneLine configuration."""

    data_dir: Path = field(default_factory=lambda: DATA_DIR)
    entries_dirname: str = "diary_entries"
    repository_dirname: str = "repository"
    settings_backend: str = "file"
    settings_file: Path = field(default_factory=lambda: SETTINGS_FILE)
    # Commit identity used when the user has not set one
    default_author_name: str = "OneLine"
    default_author_email: str = "oneline@localhost"
    git_binary: str = "git"
    # Seconds for the validator's HTTP requests; None waits forever
    request_timeout: float | None = 30.0
    verify_ownership: bool = True
    suspicious_file_threshold: int = 500

    @property
    def entries_dir(self) -> Path:
        return self.data_dir / self.entries_dirname

    @property
    def repository_dir(self) -> Path:
        return self.data_dir / self.repository_dirname


def _parse_bool(key: str, value: str, default: bool) -> bool:
    lowered = value.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    logger.warning(f"Invalid boolean for {key.upper()}: {value!r}")
    return default


def _parse_number(key: str, value: str, default: int | float) -> int | float:
    try:
        return type(default)(value)
    except ValueError:
        logger.warning(f"Invalid number for {key.upper()}: {value!r}")
        return default


def load_config(path: Path | None = None) -> Config:
    """Load configuration from oneline.conf file."""
    config = Config()
    config_file = path or CONFIG_FILE

    if not config_file.exists():
        return config

    for line in config_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = value.strip()

        # Handle quoted values with inline comments: "value" # comment
        if value.startswith('"'):
            end_quote = value.find('"', 1)
            if end_quote != -1:
                value = value[1:end_quote]
            else:
                value = value[1:]
        elif value.startswith("'"):
            end_quote = value.find("'", 1)
            if end_quote != -1:
                value = value[1:end_quote]
            else:
                value = value[1:]
        else:
            # Unquoted: strip inline comments
            if "#" in value:
                value = value.split("#")[0].strip()

        match key:
            case "data_dir":
                config.data_dir = Path(value).expanduser()
            case "entries_dirname":
                config.entries_dirname = value
            case "repository_dirname":
                config.repository_dirname = value
            case "settings_backend":
                if value.lower() in SETTINGS_BACKENDS:
                    config.settings_backend = value.lower()
                else:
                    logger.warning(f"Unknown SETTINGS_BACKEND {value!r}, keeping 'file'")
            case "settings_file":
                config.settings_file = Path(value).expanduser()
            case "default_author_name":
                config.default_author_name = value
            case "default_author_email":
                config.default_author_email = value
            case "git_binary":
                config.git_binary = value
            case "request_timeout":
                timeout = _parse_number(key, value, 30.0)
                config.request_timeout = timeout if timeout > 0 else None
            case "verify_ownership":
                config.verify_ownership = _parse_bool(key, value, True)
            case "suspicious_file_threshold":
                config.suspicious_file_threshold = _parse_number(key, value, 500)

    return config
