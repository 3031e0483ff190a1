# SPDX-License-Identifier: MIT
"""Configuration management for the dashboard sync layer."""

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_API_TIMEOUT,
    DEFAULT_FEED_PAGE_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MUTED,
    DEFAULT_RETRY_EXPONENTIAL_BASE,
    DEFAULT_RETRY_INITIAL_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    HIGHLIGHT_DURATION,
    INSIGHT_CACHE_TTL,
    INSIGHTS_INTERVAL,
    LIVE_FEED_INTERVAL,
    NOTIFICATION_STATS_CACHE_TTL,
    NOTIFICATION_STATS_INTERVAL,
    NOTIFICATIONS_CACHE_TTL,
    NOTIFICATIONS_INTERVAL,
    UNREAD_COUNT_CACHE_TTL,
    UNREAD_COUNT_INTERVAL,
)


ENV_PREFIX = "DASHBOARD_SYNC_"


class ApiConfig(BaseModel):
    """Configuration for the remote dashboard API."""

    base_url: str = Field(DEFAULT_API_BASE_URL, description="API root URL")
    token: str | None = Field(None, description="Bearer token for API requests")
    timeout: float = Field(
        DEFAULT_API_TIMEOUT, gt=0.0, description="Total request timeout in seconds"
    )
    feed_page_size: int = Field(
        DEFAULT_FEED_PAGE_SIZE, ge=1, description="Records requested per feed poll"
    )


class PollingConfig(BaseModel):
    """Poll cadences in seconds. 0 disables recurring polls."""

    live_feed_interval: float = Field(LIVE_FEED_INTERVAL, ge=0.0)
    unread_count_interval: float = Field(UNREAD_COUNT_INTERVAL, ge=0.0)
    notifications_interval: float = Field(NOTIFICATIONS_INTERVAL, ge=0.0)
    notification_stats_interval: float = Field(NOTIFICATION_STATS_INTERVAL, ge=0.0)
    insights_interval: float = Field(INSIGHTS_INTERVAL, ge=0.0)


class CacheConfig(BaseModel):
    """Configuration for the cache store."""

    db_path: str = Field(
        default_factory=lambda: str(Path.cwd() / ".dashboard-sync" / "cache.db"),
        description="SQLite file of the durable cache medium",
    )
    persistent: bool = Field(
        True, description="Mirror cache entries to the durable medium"
    )
    insight_ttl: float = Field(INSIGHT_CACHE_TTL, ge=0.0)
    unread_count_ttl: float = Field(UNREAD_COUNT_CACHE_TTL, ge=0.0)
    notifications_ttl: float = Field(NOTIFICATIONS_CACHE_TTL, ge=0.0)
    notification_stats_ttl: float = Field(NOTIFICATION_STATS_CACHE_TTL, ge=0.0)


class EffectsConfig(BaseModel):
    """Configuration for new-item highlights and audio alerts."""

    highlight_duration: float = Field(HIGHLIGHT_DURATION, gt=0.0)
    muted: bool = Field(DEFAULT_MUTED, description="Start live feeds muted")
    suppress_audio_when_unfocused: bool = Field(
        False, description="Skip audio alerts while the view is in the background"
    )


class RetryConfig(BaseModel):
    """Backoff policy for remote reads."""

    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0)
    initial_delay: float = Field(DEFAULT_RETRY_INITIAL_DELAY, ge=0.0)
    max_delay: float = Field(DEFAULT_RETRY_MAX_DELAY, ge=0.0)
    exponential_base: float = Field(DEFAULT_RETRY_EXPONENTIAL_BASE, ge=1.0)


class AppConfig(BaseModel):
    """Main application configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    effects: EffectsConfig = Field(default_factory=EffectsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class ConfigManager:
    """Manages application configuration from files and environment."""

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or self._find_config_file()
        self._config: AppConfig | None = None

    def _find_config_file(self) -> Path | None:
        """Find configuration file in standard locations."""
        search_paths = [
            Path.cwd() / ".dashboard-sync" / "config.yaml",  # Local project config
            Path.cwd() / "config" / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "dashboard-sync" / "config.yaml",
            Path("/etc/dashboard-sync/config.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def load_config(self) -> AppConfig:
        """Load configuration from file or create default."""
        if self._config is not None:
            return self._config

        default_config = self.get_default_config()

        if self.config_path and self.config_path.exists():
            with open(self.config_path, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
            config_data = self._deep_merge_configs(default_config, file_config)
        else:
            config_data = default_config

        config_data = self._apply_env_overrides(config_data)

        self._config = AppConfig(**config_data)
        return self._config

    def _deep_merge_configs(
        self, default_config: dict[str, Any], override_config: dict[str, Any]
    ) -> dict[str, Any]:
        """Merge override config into default config one section at a time.

        Sections are merged key by key, so a file that only sets
        ``polling: {live_feed_interval: 10}`` keeps every other polling default.

        Example:
            Default: {"effects": {"muted": True, "highlight_duration": 2.0}}
            Override: {"effects": {"muted": False}}
            Result: {"effects": {"muted": False, "highlight_duration": 2.0}}
        """
        result = copy.deepcopy(default_config)

        for key, value in override_config.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key].update(value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config_data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to config.

        ``DASHBOARD_SYNC_<SECTION>_<FIELD>`` sets one field, for example
        ``DASHBOARD_SYNC_API_BASE_URL`` or ``DASHBOARD_SYNC_EFFECTS_MUTED=false``.
        Values are validated by the pydantic models afterwards.
        """
        sections = set(AppConfig.model_fields)
        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue
            config_key = key[len(ENV_PREFIX) :].lower()
            section, _, field = config_key.partition("_")
            if section not in sections or not field:
                continue
            config_data.setdefault(section, {})[field] = value

        return config_data

    def get_complete_config_dict(self) -> dict[str, Any]:
        """Get the complete configuration as a dictionary for display."""
        return self.load_config().model_dump()

    def show_config(self) -> str:
        """Show the complete configuration in YAML format.

        The API token is masked.

        Returns:
            YAML formatted configuration string
        """
        config_dict = self.get_complete_config_dict()
        if config_dict["api"].get("token"):
            config_dict["api"]["token"] = "***"
        return yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration as a plain dictionary."""
        return AppConfig().model_dump()

    def create_default_config(self, output_path: Path) -> None:
        """Write the default configuration to a YAML file."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.get_default_config(), f, default_flow_style=False, sort_keys=False
            )


# Global config manager instance with factory pattern
_config_manager_instance: ConfigManager | None = None


def get_config_manager(config_path: Path | None = None) -> ConfigManager:
    """Get or create the global config manager instance.

    Args:
        config_path: Optional path to config file (only used on first call)

    Returns:
        The global ConfigManager instance
    """
    global _config_manager_instance
    if _config_manager_instance is None:
        _config_manager_instance = ConfigManager(config_path)
    return _config_manager_instance


def set_config_manager(manager: ConfigManager) -> None:
    """Set the config manager instance (primarily for testing).

    Args:
        manager: ConfigManager instance to use globally
    """
    global _config_manager_instance
    _config_manager_instance = manager


def reset_config_manager() -> None:
    """Reset the config manager instance (primarily for testing)."""
    global _config_manager_instance
    _config_manager_instance = None
