"""
Pytest configuration and shared fixtures for cardshuffle tests.

This module provides the fake clock, in-memory cache medium, stubbed
collection API and sample images used across the test modules.
"""

from __future__ import annotations

import base64
import io
import struct
import zlib
from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from cardshuffle.config import reset_config
from cardshuffle.core.models import CollectionSnapshot, Item
from cardshuffle.services.cache_store import LocalCacheStore, MemoryMedium
from cardshuffle.services.compression import ImageCompressor
from cardshuffle.services.sync_controller import SyncController
from cardshuffle.shuffle.scheduler import ManualScheduler

T0 = 1_700_000_000_000
TTL_MS = 60_000
SCHEMA_VERSION = 1


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_item(
    card_id: str,
    *,
    image: str = "https://img.example/{id}.jpg",
    link: str = "https://example.com/{id}",
) -> Item:
    return Item(
        id=card_id,
        display_name=f"Card {card_id}",
        image_ref=image.format(id=card_id),
        target_link=link.format(id=card_id),
        created_at=T0,
    )


def make_snapshot(*ids: str) -> CollectionSnapshot:
    return CollectionSnapshot(make_item(card_id) for card_id in ids)


def make_image_data_url(
    width: int = 64,
    height: int = 32,
    mode: str = "RGB",
    fmt: str = "PNG",
) -> str:
    color = (200, 40, 40, 128) if mode == "RGBA" else (200, 40, 40)
    img = Image.new(mode, (width, height), color=color)
    out = io.BytesIO()
    img.save(out, format=fmt)
    mime = f"image/{fmt.lower()}"
    return f"data:{mime};base64,{base64.b64encode(out.getvalue()).decode('ascii')}"


def make_png_header_data_url(width: int, height: int) -> str:
    """PNG data URL declaring ``width`` x ``height`` with no pixel data."""

    def chunk(kind: bytes, body: bytes) -> bytes:
        crc = zlib.crc32(kind + body) & 0xFFFFFFFF
        return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", crc)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    png = b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IEND", b"")
    return f"data:image/png;base64,{base64.b64encode(png).decode('ascii')}"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep the global settings and CARDSHUFFLE_* environment out of tests."""
    monkeypatch.delenv("CARDSHUFFLE_CONFIG", raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def medium() -> MemoryMedium:
    return MemoryMedium()


@pytest.fixture
def cache_store(medium: MemoryMedium, clock: FakeClock) -> LocalCacheStore:
    return LocalCacheStore(medium, clock=clock)


@pytest.fixture
def fake_api() -> AsyncMock:
    """Collection API stub; ``list_cards`` returns two cards by default."""
    api = AsyncMock()
    api.list_cards.return_value = make_snapshot("a1", "b2")
    api.create_card.return_value = None
    api.update_card.return_value = None
    api.delete_card.return_value = None
    api.clear_cards.return_value = None
    return api


@pytest.fixture
def compressor() -> ImageCompressor:
    return ImageCompressor(quality=0.7, max_width=32)


@pytest.fixture
def controller(
    fake_api: AsyncMock,
    cache_store: LocalCacheStore,
    compressor: ImageCompressor,
) -> SyncController:
    return SyncController(
        fake_api,
        cache_store,
        compressor,
        ttl_ms=TTL_MS,
        schema_version=SCHEMA_VERSION,
        default_speed=90,
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def image_data_url() -> str:
    return make_image_data_url()


@pytest.fixture
def snapshot_factory():
    """Build a snapshot of shuffleable cards from ids."""
    return make_snapshot


@pytest.fixture
def item_factory():
    return make_item


@pytest.fixture
def image_factory():
    return make_image_data_url


@pytest.fixture
def oversized_image() -> str:
    """Tiny payload whose header declares a 30000x30000 image."""
    return make_png_header_data_url(30_000, 30_000)
