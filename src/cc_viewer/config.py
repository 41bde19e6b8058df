"""Configuration for cc-viewer.

Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from cc_viewer.errors import ConfigError

DEFAULT_PROJECTS_DIR = Path.home() / ".claude" / "projects"
DEFAULT_INDEX_PATH = Path.home() / ".claude-viewer" / "search-index.db"
DEFAULT_SEARCH_LIMIT = 50


@dataclass
class Settings:
    """Application settings."""

    projects_dir: Path
    index_path: Path
    search_limit: int

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        projects_dir = Path(
            os.getenv("CC_VIEWER_PROJECTS_DIR", str(DEFAULT_PROJECTS_DIR))
        ).expanduser()
        index_path = Path(
            os.getenv("CC_VIEWER_INDEX_PATH", str(DEFAULT_INDEX_PATH))
        ).expanduser()

        limit_str = os.getenv("CC_VIEWER_SEARCH_LIMIT", str(DEFAULT_SEARCH_LIMIT))
        try:
            search_limit = int(limit_str)
            if search_limit < 1:
                raise ValueError(f"limit must be positive, got {search_limit}")
        except ValueError as e:
            raise ConfigError(f"Invalid CC_VIEWER_SEARCH_LIMIT value '{limit_str}': {e}") from e

        return cls(
            projects_dir=projects_dir,
            index_path=index_path,
            search_limit=search_limit,
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings (loaded on first use)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings (useful for testing)."""
    global _settings
    _settings = None
