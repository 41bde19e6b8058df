"""Browse and search Claude Code conversation logs."""

__version__ = "0.1.0"
