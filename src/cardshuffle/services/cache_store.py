"""Versioned, time-bounded local cache.

``LocalCacheStore`` keeps keyed ``CacheEntry`` records on a pluggable
storage medium. An entry is valid only while its schema version matches
the expected one and it is younger than the caller's TTL. Stale entries
are never removed implicitly; they stay readable through ``read`` for
diagnostics and fallback.

Medium failures never propagate: reads degrade to a miss and writes
report ``False``, with a ``StorageUnavailable`` error logged.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import orjson
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from cardshuffle.shared.constants import CacheConfig
from cardshuffle.shared.errors import (
    ErrorCode,
    ErrorContext,
    StorageUnavailable,
)
from cardshuffle.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class CacheEntry(BaseModel):
    """Schema for cache entries.

    Attributes:
        payload: The cached payload (any JSON-serializable value)
        captured_at: Epoch milliseconds when the entry was written
        schema_version: Data shape version the payload was written under
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "payload": [{"_id": "a1", "name": "Cat"}],
                "capturedAt": 1700000000000,
                "schemaVersion": 1,
            },
        },
    )

    payload: Any = Field(..., description="The cached payload")
    captured_at: int = Field(..., alias="capturedAt", ge=0)
    schema_version: int = Field(..., alias="schemaVersion")

    def age_ms(self, now: int) -> int:
        return now - self.captured_at

    def is_valid(self, now: int, ttl_ms: int, expected_version: int) -> bool:
        return self.schema_version == expected_version and self.age_ms(now) < ttl_ms


class StorageMedium(Protocol):
    """Persistent key-value medium underneath the cache store.

    Implementations raise ``StorageUnavailable`` (or ``OSError``) on failure.
    """

    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


class MemoryMedium:
    """In-process medium, optionally bounded by a byte quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = quota_bytes
        self.available = True
        self._data: dict[str, bytes] = {}

    def _check_available(self, operation: str, key: str) -> None:
        if not self.available:
            raise StorageUnavailable(
                "Storage medium is unavailable",
                context=ErrorContext(operation=operation, key=key),
            )

    def get(self, key: str) -> bytes | None:
        self._check_available("medium_get", key)
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._check_available("medium_set", key)
        if self.quota_bytes is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.quota_bytes:
                raise StorageUnavailable(
                    "Storage quota exceeded",
                    ErrorCode.STORAGE_QUOTA_EXCEEDED,
                    ErrorContext(
                        operation="medium_set",
                        key=key,
                        additional_data={
                            "quota_bytes": self.quota_bytes,
                            "requested_bytes": len(value),
                        },
                    ),
                )
        self._data[key] = value

    def delete(self, key: str) -> bool:
        self._check_available("medium_delete", key)
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        self._check_available("medium_keys", "*")
        return sorted(self._data)


class JSONFileMedium:
    """One JSON file per key under ``cache_dir``.

    File names are SHA-256 hashes of the key; the key itself is kept in a
    small index file so ``keys()`` can list entries.
    """

    INDEX_FILE = "index.json"

    def __init__(self, cache_dir: Path | str) -> None:
        self.cache_dir = Path(cache_dir)

    def _ensure_dir(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        key_hash = hashlib.sha256(key.strip().encode("utf-8")).hexdigest()
        return self.cache_dir / f"{key_hash}{CacheConfig.FILE_SUFFIX}"

    def _read_index(self) -> list[str]:
        index_path = self.cache_dir / self.INDEX_FILE
        if not index_path.exists():
            return []
        try:
            keys = orjson.loads(index_path.read_bytes())
        except orjson.JSONDecodeError:
            keys = None
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            logger.warning("Cache index %s is corrupted, rebuilding", index_path)
            return []
        return keys

    def _write_index(self, keys: list[str]) -> None:
        (self.cache_dir / self.INDEX_FILE).write_bytes(orjson.dumps(sorted(set(keys))))

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        self._ensure_dir()
        self._path_for(key).write_bytes(value)
        keys = self._read_index()
        if key not in keys:
            keys.append(key)
            self._write_index(keys)

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        existed = path.exists()
        if existed:
            path.unlink()
        keys = self._read_index()
        if key in keys:
            keys.remove(key)
            self._write_index(keys)
        return existed

    def keys(self) -> list[str]:
        return sorted(self._read_index())


class LocalCacheStore:
    """Keyed cache of versioned, timestamped entries.

    Args:
        medium: Storage medium holding serialized entries.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(self, medium: StorageMedium, clock: Clock = now_ms) -> None:
        self.medium = medium
        self.clock = clock

    def _report(self, error: StorageUnavailable, operation: str, key: str) -> None:
        log_operation_error(
            logger,
            error,
            operation=operation,
            additional_context={"key": key},
            level=logging.WARNING,
        )

    def read(self, key: str) -> CacheEntry | None:
        """Return the stored entry regardless of validity, or None."""
        try:
            raw = self.medium.get(key)
        except (StorageUnavailable, OSError) as e:
            self._report(self._as_storage_error(e, "cache_read", key), "cache_read", key)
            return None

        if raw is None:
            return None

        try:
            return CacheEntry.model_validate(orjson.loads(raw))
        except (orjson.JSONDecodeError, PydanticValidationError) as e:
            error = StorageUnavailable(
                f"Cache entry for key '{key}' is corrupted",
                ErrorCode.CACHE_CORRUPTED,
                ErrorContext(operation="cache_read", key=key),
                original_error=e,
            )
            self._report(error, "cache_read", key)
            return None

    def is_valid(self, entry: CacheEntry, ttl_ms: int, expected_version: int) -> bool:
        """Apply the validity rule to ``entry`` at the current time."""
        return entry.is_valid(self.clock(), ttl_ms, expected_version)

    def read_valid(self, key: str, ttl_ms: int, expected_version: int) -> Any | None:
        """Return the payload only if the entry is fresh and of the expected version.

        A stale or mismatched entry behaves as a miss but is left in place.
        """
        entry = self.read(key)
        if entry is None:
            return None
        if not self.is_valid(entry, ttl_ms, expected_version):
            logger.debug(
                "Cache entry for '%s' is stale (age=%dms, version=%d, expected=%d)",
                key,
                entry.age_ms(self.clock()),
                entry.schema_version,
                expected_version,
            )
            return None
        logger.debug("Cache hit for key '%s'", key)
        return entry.payload

    def write(self, key: str, payload: Any, version: int) -> bool:
        """Store ``payload`` under ``key`` stamped with the current time.

        Returns:
            True if the entry was stored, False if the medium rejected it.
        """
        entry = CacheEntry(payload=payload, captured_at=self.clock(), schema_version=version)
        try:
            data = orjson.dumps(entry.model_dump(by_alias=True))
        except TypeError as e:
            error = StorageUnavailable(
                f"Failed to serialize cache entry for key '{key}'",
                ErrorCode.CACHE_SERIALIZATION_ERROR,
                ErrorContext(operation="cache_write", key=key),
                original_error=e,
            )
            self._report(error, "cache_write", key)
            return False

        try:
            self.medium.set(key, data)
        except (StorageUnavailable, OSError) as e:
            self._report(self._as_storage_error(e, "cache_write", key), "cache_write", key)
            return False

        logger.debug("Cached %d bytes for key '%s' (version %d)", len(data), key, version)
        return True

    def purge(self, key: str) -> bool:
        """Remove the entry for ``key`` entirely.

        Returns:
            True if an entry was removed.
        """
        try:
            removed = self.medium.delete(key)
        except (StorageUnavailable, OSError) as e:
            self._report(self._as_storage_error(e, "cache_purge", key), "cache_purge", key)
            return False
        if removed:
            logger.debug("Purged cache entry for key '%s'", key)
        return removed

    def keys(self) -> list[str]:
        try:
            return self.medium.keys()
        except (StorageUnavailable, OSError) as e:
            self._report(self._as_storage_error(e, "cache_keys", "*"), "cache_keys", "*")
            return []

    @staticmethod
    def _as_storage_error(
        error: StorageUnavailable | OSError,
        operation: str,
        key: str,
    ) -> StorageUnavailable:
        if isinstance(error, StorageUnavailable):
            return error
        return StorageUnavailable(
            f"Storage medium failed during {operation}: {error!s}",
            context=ErrorContext(operation=operation, key=key),
            original_error=error,
        )
