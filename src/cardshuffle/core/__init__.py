"""Domain models and pure speed arithmetic."""

from cardshuffle.core.models import (
    EMPTY_SNAPSHOT,
    CardDraft,
    CardPatch,
    ClearAll,
    CollectionSnapshot,
    CreateCard,
    DeleteCard,
    Item,
    Mutation,
    UpdateCard,
)
from cardshuffle.core.speed import clamp_speed, map_speed_to_interval_ms

__all__ = [
    "EMPTY_SNAPSHOT",
    "CardDraft",
    "CardPatch",
    "ClearAll",
    "CollectionSnapshot",
    "CreateCard",
    "DeleteCard",
    "Item",
    "Mutation",
    "UpdateCard",
    "clamp_speed",
    "map_speed_to_interval_ms",
]
