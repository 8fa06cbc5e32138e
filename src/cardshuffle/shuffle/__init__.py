"""Timed random selection over a collection snapshot."""

from cardshuffle.shuffle.engine import (
    ShuffleEngine,
    ShuffleState,
    ShuffleStatus,
    reduce,
)
from cardshuffle.shuffle.scheduler import AsyncioScheduler, ManualScheduler, Scheduler

__all__ = [
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "ShuffleEngine",
    "ShuffleState",
    "ShuffleStatus",
    "reduce",
]
