"""cardshuffle Services Module.

Cache storage, remote API access, image compression and the
synchronization controller built on top of them.
"""

from cardshuffle.services.api_client import CardsApiClient, CollectionAPI
from cardshuffle.services.cache_store import (
    CacheEntry,
    JSONFileMedium,
    LocalCacheStore,
    MemoryMedium,
    StorageMedium,
)
from cardshuffle.services.compression import ImageCompressor, is_raw_image
from cardshuffle.services.sync_controller import SyncController

__all__ = [
    "CacheEntry",
    "CardsApiClient",
    "CollectionAPI",
    "ImageCompressor",
    "JSONFileMedium",
    "LocalCacheStore",
    "MemoryMedium",
    "StorageMedium",
    "SyncController",
    "is_raw_image",
]
