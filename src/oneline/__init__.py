"""OneLine - a one-file-per-day diary that can sync through a git remote."""

__version__ = "0.3.0"
