"""cardshuffle Configuration Module

Unified access to configuration models and settings management:
- Settings: Main configuration facade
- Loader functions: get_config, load_settings, reload_config, set_config
- Domain models: API, Cache, Compression, Shuffle, Logging settings
"""

from __future__ import annotations

from .loader import (
    get_config,
    load_settings,
    reload_config,
    reset_config,
    set_config,
)
from .models import (
    APISettings,
    CacheSettings,
    CompressionSettings,
    LoggingSettings,
    Settings,
    ShuffleSettings,
)

__all__ = [
    "APISettings",
    "CacheSettings",
    "CompressionSettings",
    "LoggingSettings",
    "Settings",
    "ShuffleSettings",
    "get_config",
    "load_settings",
    "reload_config",
    "reset_config",
    "set_config",
]
