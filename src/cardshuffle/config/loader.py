"""Settings loader and singleton manager.

This module handles:
- Environment variable loading from .env files
- Configuration file loading from TOML
- Thread-safe singleton pattern for the Settings instance
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from dotenv import load_dotenv

from cardshuffle.config.models import Settings
from cardshuffle.shared.constants import CLIDefaults
from cardshuffle.shared.errors import create_config_error

logger = logging.getLogger(__name__)


class SettingsLoader:
    """Thread-safe singleton manager for Settings.

    Uses double-checked locking to keep the lock off the hot path.
    """

    _instance: Settings | None = None
    _lock: threading.RLock = threading.RLock()

    def get_config(self) -> Settings:
        """Get the global settings instance, loading it if necessary."""
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = load_settings()

        return self._instance

    def reload_config(self, config_path: Path | str | None = None) -> Settings:
        """Reload the global settings instance from configuration files."""
        with self._lock:
            self._instance = load_settings(config_path)

        return self._instance

    def set_config(self, settings: Settings) -> None:
        """Replace the global settings instance."""
        with self._lock:
            self._instance = settings

    def reset(self) -> None:
        """Forget the cached instance so the next access reloads it."""
        with self._lock:
            self._instance = None


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from .env, an optional TOML file and the environment.

    The TOML file is taken from ``config_path`` or, when omitted, from the
    ``CARDSHUFFLE_CONFIG`` environment variable.

    Raises:
        ApplicationError: If the TOML file cannot be parsed or validated
    """
    load_dotenv(Path(".env"), override=False)

    path = config_path or os.environ.get(CLIDefaults.CONFIG_ENV_VAR)
    if not path:
        return Settings()

    try:
        settings = Settings.from_toml_file(path)
    except FileNotFoundError as e:
        raise create_config_error(
            f"Configuration file not found: {path}",
            config_key=str(path),
            original_error=e,
        ) from e
    except Exception as e:
        raise create_config_error(
            f"Failed to load configuration from {path}: {e}",
            config_key=str(path),
            original_error=e,
        ) from e

    logger.debug("Loaded configuration from %s", path)
    return settings


_loader = SettingsLoader()


def get_config() -> Settings:
    """Get the global settings instance."""
    return _loader.get_config()


def reload_config(config_path: Path | str | None = None) -> Settings:
    """Reload the global settings instance."""
    return _loader.reload_config(config_path)


def set_config(settings: Settings) -> None:
    """Replace the global settings instance (CLI overrides, tests)."""
    _loader.set_config(settings)


def reset_config() -> None:
    """Drop the global settings instance."""
    _loader.reset()


__all__ = [
    "SettingsLoader",
    "get_config",
    "load_settings",
    "reload_config",
    "reset_config",
    "set_config",
]
