"""cardshuffle Settings Configuration Model.

Main Settings class that consolidates all configuration domains.
"""

from __future__ import annotations

import logging
from pathlib import Path

import toml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cardshuffle.shared.constants import (
    APIConfig,
    CacheConfig,
    CompressionConfig,
    SpeedConfig,
)

logger = logging.getLogger(__name__)


class APISettings(BaseModel):
    """Remote collection API configuration."""

    base_url: str = Field(
        default=APIConfig.DEFAULT_BASE_URL,
        description="Base URL of the collection API (without trailing slash)",
    )
    timeout: float = Field(
        default=APIConfig.DEFAULT_TIMEOUT,
        gt=0,
        description="Request timeout in seconds",
    )


class CacheSettings(BaseModel):
    """Local cache configuration.

    ``schema_version`` is bumped whenever the stored data shape changes;
    entries written under another version are treated as misses.
    """

    enabled: bool = Field(default=True, description="Enable the local cache")
    directory: Path = Field(
        default=Path(CacheConfig.DEFAULT_DIR),
        description="Directory holding cache entries",
    )
    ttl_seconds: int = Field(
        default=CacheConfig.DEFAULT_TTL,
        gt=0,
        description="Cache time-to-live in seconds",
    )
    schema_version: int = Field(
        default=CacheConfig.SCHEMA_VERSION,
        ge=1,
        description="Expected schema version of cache entries",
    )

    @property
    def ttl_ms(self) -> int:
        return self.ttl_seconds * 1000


class CompressionSettings(BaseModel):
    """Image ingestion policy applied before upload."""

    quality: float = Field(
        default=CompressionConfig.DEFAULT_QUALITY,
        gt=0,
        le=1,
        description="Encoder quality factor (0-1]",
    )
    max_width: int = Field(
        default=CompressionConfig.DEFAULT_MAX_WIDTH,
        gt=0,
        description="Maximum image width in pixels",
    )


class ShuffleSettings(BaseModel):
    """Shuffle presentation defaults."""

    default_speed: int = Field(
        default=SpeedConfig.DEFAULT_SPEED,
        ge=SpeedConfig.MIN_SPEED,
        le=SpeedConfig.MAX_SPEED,
        description="Speed used when no speed setting has been persisted",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level name")
    file: str | None = Field(default=None, description="Optional JSON log file")
    use_rich: bool = Field(default=True, description="Rich console output")


class Settings(BaseSettings):
    """Unified configuration facade for cardshuffle."""

    model_config = SettingsConfigDict(
        env_prefix="CARDSHUFFLE_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    api: APISettings = Field(default_factory=APISettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    compression: CompressionSettings = Field(default_factory=CompressionSettings)
    shuffle: ShuffleSettings = Field(default_factory=ShuffleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml_file(cls, file_path: str | Path) -> Settings:
        """Load settings from TOML file with environment variable overrides."""
        file_path = Path(file_path)
        if not file_path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise FileNotFoundError(msg)

        raw_config = toml.load(file_path)
        return cls(**raw_config)

    def to_toml_file(self, file_path: str | Path) -> None:
        """Save settings to TOML file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(mode="json", exclude_none=True)

        with open(file_path, "w", encoding="utf-8") as f:
            toml.dump(config_dict, f)
