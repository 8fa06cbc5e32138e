"""Synchronization between the remote collection and the local cache.

``SyncController`` hands out best-effort-fresh ``CollectionSnapshot``
objects using stale-while-revalidate:

- a valid, non-empty cached snapshot is returned at once and a detached
  background refresh brings the cache up to date; its failures are
  only logged
- without a valid cached snapshot the remote fetch is awaited and its
  failure is returned to the caller

Mutations go to the remote API first. Only when the remote call succeeds
is the cache reconciled, always by refetching the canonical list rather
than patching it locally, so server-assigned fields (ids, timestamps)
never diverge.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace

from cardshuffle.config.models import Settings
from cardshuffle.core.models import (
    EMPTY_SNAPSHOT,
    ClearAll,
    CollectionSnapshot,
    CreateCard,
    DeleteCard,
    Mutation,
    UpdateCard,
)
from cardshuffle.core.speed import clamp_speed
from cardshuffle.services.api_client import CardsApiClient, CollectionAPI
from cardshuffle.services.cache_store import JSONFileMedium, LocalCacheStore
from cardshuffle.services.compression import ImageCompressor, is_raw_image
from cardshuffle.shared.constants import CacheConfig, SpeedConfig
from cardshuffle.shared.errors import (
    CardShuffleError,
    ErrorContext,
    create_validation_error,
)
from cardshuffle.shared.logging import (
    log_operation_error,
    log_operation_start,
    log_operation_success,
)
from cardshuffle.shared.result import Failure, Result, Success, capture, capture_async

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[CollectionSnapshot], None]


class SyncController:
    """Stale-while-revalidate access to the card collection.

    Args:
        api: Remote collection API.
        cache: Local cache store shared by collection data and settings.
        compressor: Image compression adapter used for raw image payloads.
        ttl_ms: Validity window of cache entries in milliseconds.
        schema_version: Expected schema version of cache entries.
        default_speed: Shuffle speed used when none has been persisted.
    """

    def __init__(
        self,
        api: CollectionAPI,
        cache: LocalCacheStore,
        compressor: ImageCompressor,
        *,
        ttl_ms: int = CacheConfig.DEFAULT_TTL * 1000,
        schema_version: int = CacheConfig.SCHEMA_VERSION,
        default_speed: int = SpeedConfig.DEFAULT_SPEED,
    ) -> None:
        self.api = api
        self.cache = cache
        self.compressor = compressor
        self.ttl_ms = ttl_ms
        self.schema_version = schema_version
        self.default_speed = clamp_speed(default_speed)

        self._snapshot: CollectionSnapshot = EMPTY_SNAPSHOT
        self._listeners: list[SnapshotListener] = []
        self._background: dict[str, asyncio.Task[None]] = {}
        # Bumped on every canonical store; lets a slow background fetch
        # detect that a newer result already landed.
        self._generation = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        api: CollectionAPI | None = None,
        cache: LocalCacheStore | None = None,
    ) -> SyncController:
        """Build a controller wired from configuration."""
        return cls(
            api=api or CardsApiClient(settings.api.base_url, settings.api.timeout),
            cache=cache or LocalCacheStore(JSONFileMedium(settings.cache.directory)),
            compressor=ImageCompressor(
                quality=settings.compression.quality,
                max_width=settings.compression.max_width,
            ),
            ttl_ms=settings.cache.ttl_ms,
            schema_version=settings.cache.schema_version,
            default_speed=settings.shuffle.default_speed,
        )

    @property
    def snapshot(self) -> CollectionSnapshot:
        """Last known-good snapshot (network or cache)."""
        return self._snapshot

    @property
    def background_refreshes(self) -> tuple[asyncio.Task[None], ...]:
        return tuple(self._background.values())

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register ``listener`` for new snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: CollectionSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)

    # Reads

    def _read_cached_snapshot(self) -> CollectionSnapshot | None:
        payload = self.cache.read_valid(
            CacheConfig.KEY_COLLECTION,
            self.ttl_ms,
            self.schema_version,
        )
        if payload is None:
            return None
        result = capture(lambda: CollectionSnapshot.from_payload(payload))
        if isinstance(result, Failure):
            log_operation_error(
                logger,
                result.error,
                operation="read_cached_snapshot",
                level=logging.WARNING,
            )
            return None
        return result.value

    async def get_snapshot(self) -> Result[CollectionSnapshot]:
        """Return the collection, preferring a valid cached snapshot.

        A cache hit returns immediately and schedules a background refresh
        whose outcome is never awaited. A miss awaits the remote fetch.
        """
        cached = self._read_cached_snapshot()
        if cached is not None and len(cached) > 0:
            logger.debug("Serving %d cached cards, revalidating in background", len(cached))
            self._publish(cached)
            self._schedule_background_refresh(CacheConfig.KEY_COLLECTION)
            return Success(cached)

        return await self._fetch_and_store("get_snapshot")

    async def refresh(self) -> Result[CollectionSnapshot]:
        """Fetch the canonical snapshot in the foreground (explicit retry)."""
        return await self._fetch_and_store("refresh")

    async def _fetch_and_store(self, operation: str) -> Result[CollectionSnapshot]:
        log_operation_start(logger, operation)
        started = time.perf_counter()

        result = await capture_async(self.api.list_cards)
        if isinstance(result, Failure):
            if result.error is not None:
                log_operation_error(logger, result.error, operation=operation)
            return result

        self._store(result.value)
        log_operation_success(
            logger,
            operation,
            (time.perf_counter() - started) * 1000,
            result_info={"cards": len(result.value)},
        )
        return result

    def _store(self, snapshot: CollectionSnapshot) -> None:
        self._generation += 1
        self.cache.write(
            CacheConfig.KEY_COLLECTION,
            snapshot.to_payload(),
            self.schema_version,
        )
        self._publish(snapshot)

    def _schedule_background_refresh(self, key: str) -> None:
        in_flight = self._background.get(key)
        if in_flight is not None and not in_flight.done():
            logger.debug("Background refresh for '%s' already in flight", key)
            return

        task = asyncio.get_running_loop().create_task(
            self._background_refresh(),
            name=f"cardshuffle-refresh-{key}",
        )
        self._background[key] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._background.get(key) is done:
                del self._background[key]

        task.add_done_callback(_forget)

    async def _background_refresh(self) -> None:
        generation = self._generation
        try:
            snapshot = await self.api.list_cards()
        except CardShuffleError as e:
            log_operation_error(
                logger,
                e,
                operation="background_refresh",
                level=logging.WARNING,
            )
            return
        except Exception:  # noqa: BLE001
            # Detached task: nothing upstream can observe the error
            logger.exception("Unexpected error during background refresh")
            return

        if generation != self._generation:
            logger.debug("Discarding background refresh superseded by a newer fetch")
            return
        self._store(snapshot)

    # Mutations

    def _validate(self, operation: Mutation) -> None:
        """Reject incomplete mutations before any network call."""
        if isinstance(operation, CreateCard):
            if not operation.draft.image_ref:
                raise create_validation_error(
                    "An image (URL or upload) is required", "image_ref", "create_card"
                )
            if not operation.draft.target_link:
                raise create_validation_error("A link is required", "target_link", "create_card")
        elif isinstance(operation, UpdateCard):
            if not operation.card_id:
                raise create_validation_error("No card id provided", "id", "update_card")
            patch = operation.patch
            if patch.image_ref is not None and not patch.image_ref:
                raise create_validation_error(
                    "An image (URL or upload) is required", "image_ref", "update_card"
                )
            if patch.target_link is not None and not patch.target_link:
                raise create_validation_error("A link is required", "target_link", "update_card")
            if not patch.to_payload():
                raise create_validation_error("Nothing to update", None, "update_card")
        elif isinstance(operation, DeleteCard):
            if not operation.card_id:
                raise create_validation_error("No card id provided", "id", "delete_card")

    async def _prepare(self, operation: Mutation) -> Mutation:
        """Substitute compressed images for raw payloads."""
        if isinstance(operation, CreateCard) and is_raw_image(operation.draft.image_ref):
            compressed = await self.compressor.compress_async(operation.draft.image_ref)
            return CreateCard(replace(operation.draft, image_ref=compressed))
        if isinstance(operation, UpdateCard) and is_raw_image(operation.patch.image_ref):
            compressed = await self.compressor.compress_async(operation.patch.image_ref)
            return UpdateCard(operation.card_id, replace(operation.patch, image_ref=compressed))
        return operation

    async def _apply_remote(self, operation: Mutation) -> None:
        if isinstance(operation, CreateCard):
            await self.api.create_card(operation.draft)
        elif isinstance(operation, UpdateCard):
            await self.api.update_card(operation.card_id, operation.patch)
        elif isinstance(operation, DeleteCard):
            await self.api.delete_card(operation.card_id)
        elif isinstance(operation, ClearAll):
            await self.api.clear_cards()
        else:
            raise TypeError(f"Unsupported mutation: {operation!r}")

    async def mutate(self, operation: Mutation) -> Result[CollectionSnapshot]:
        """Apply ``operation`` remotely, then refetch the canonical snapshot.

        On any failure before or during the remote call the cache is left
        untouched and a Failure is returned.
        """
        name = type(operation).__name__
        log_operation_start(logger, f"mutate:{name}")

        try:
            self._validate(operation)
            prepared = await self._prepare(operation)
            await self._apply_remote(prepared)
        except CardShuffleError as e:
            log_operation_error(
                logger,
                e,
                operation=f"mutate:{name}",
                additional_context=ErrorContext(operation=f"mutate:{name}"),
            )
            return Failure.from_error(e)

        if isinstance(operation, ClearAll):
            self.cache.purge(CacheConfig.KEY_COLLECTION)

        return await self._fetch_and_store(f"mutate:{name}")

    # Settings

    def get_speed(self) -> int:
        """Persisted shuffle speed, or the configured default.

        The setting expires with the same TTL and schema version as the
        collection; an expired entry falls back to the default.
        """
        payload = self.cache.read_valid(
            CacheConfig.KEY_SHUFFLE_SPEED,
            self.ttl_ms,
            self.schema_version,
        )
        if isinstance(payload, int) and not isinstance(payload, bool):
            return clamp_speed(payload)
        return self.default_speed

    def set_speed(self, speed: int) -> int:
        """Persist ``speed`` (clamped to [1, 100]) and return the stored value."""
        speed = clamp_speed(speed)
        if not self.cache.write(CacheConfig.KEY_SHUFFLE_SPEED, speed, self.schema_version):
            logger.warning("Shuffle speed %d could not be persisted", speed)
        return speed

    # Lifecycle

    async def aclose(self) -> None:
        """Cancel outstanding background refreshes."""
        tasks = list(self._background.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()
