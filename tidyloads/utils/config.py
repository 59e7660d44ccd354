"""
Configuration management for Tidyloads.

Uses pydantic-settings to load configuration from environment variables
and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Inbox Configuration
    inbox_dir: Path = Path("~/Downloads")
    state_dir: Path = Path("~/.local/state/tidyloads")

    # API Configuration
    api_port: int = 8765
    log_level: str = "INFO"
    api_title: str = "Tidyloads API"
    api_version: str = "1.0.0"
    auto_start: bool = True

    # Scheduling Configuration (seconds)
    settle_delay: float = 0.5
    backup_scan_interval: float = 10.0
    cleanup_interval: float = 3600.0

    # History Configuration
    recent_window_minutes: int = 30
    max_log_entries: int = 1000
    max_unique_suffix: int = 10000

    # Notification Configuration
    notifications: Literal["log", "desktop"] = "log"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def get_inbox_dir(self) -> Path:
        """Expanded inbox directory."""
        return self.inbox_dir.expanduser()

    def get_state_dir(self) -> Path:
        """Expanded state directory."""
        return self.state_dir.expanduser()

    @property
    def preferences_file(self) -> Path:
        return self.get_state_dir() / "preferences.json"

    @property
    def activity_log_file(self) -> Path:
        return self.get_state_dir() / "activity.json"

    @property
    def registry_file(self) -> Path:
        return self.get_state_dir() / "registry.json"

    @property
    def installers_file(self) -> Path:
        return self.get_state_dir() / "installers.json"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
