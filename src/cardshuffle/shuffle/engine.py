"""Shuffle state machine.

The engine moves between two states:

- IDLE: no timer armed, ``current_index`` keeps its last value
- RUNNING: exactly one repeating timer armed at ``interval_ms``

Transitions are computed by the pure ``reduce`` function; ``ShuffleEngine``
applies them and reconciles the single timer handle it owns. Changing the
interval while running is the only RUNNING -> RUNNING transition and
re-arms the timer. A tick with fewer than two cards stops the engine.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from cardshuffle.core.models import EMPTY_SNAPSHOT, CollectionSnapshot, Item
from cardshuffle.core.speed import clamp_speed, map_speed_to_interval_ms
from cardshuffle.shared.constants import SpeedConfig
from cardshuffle.shuffle.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

MIN_SHUFFLE_ITEMS = 2


class ShuffleStatus(Enum):
    """Shuffle engine states."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class ShuffleState:
    """Snapshot of the engine state.

    ``history`` is an append-only trace of picked indexes; only its last
    element matters for the no-repeat rule.
    """

    current_index: int | None = None
    is_running: bool = False
    interval_ms: int = SpeedConfig.MAX_INTERVAL_MS
    history: tuple[int, ...] = ()

    @property
    def status(self) -> ShuffleStatus:
        return ShuffleStatus.RUNNING if self.is_running else ShuffleStatus.IDLE


@dataclass(frozen=True)
class Start:
    item_count: int


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class SetInterval:
    interval_ms: int


@dataclass(frozen=True)
class Tick:
    item_count: int
    next_index: int | None


@dataclass(frozen=True)
class ReplaceSnapshot:
    item_count: int


ShuffleEvent = Union[Start, Stop, SetInterval, Tick, ReplaceSnapshot]


def initial_state(item_count: int, interval_ms: int) -> ShuffleState:
    return ShuffleState(
        current_index=0 if item_count > 0 else None,
        interval_ms=interval_ms,
    )


def reduce(state: ShuffleState, event: ShuffleEvent) -> ShuffleState:
    """Return the state that follows ``state`` after ``event``."""
    if isinstance(event, Start):
        if state.is_running or event.item_count < MIN_SHUFFLE_ITEMS:
            return state
        return replace(state, is_running=True)

    if isinstance(event, Stop):
        return replace(state, is_running=False) if state.is_running else state

    if isinstance(event, SetInterval):
        return replace(state, interval_ms=event.interval_ms)

    if isinstance(event, Tick):
        if not state.is_running:
            return state
        if event.item_count < MIN_SHUFFLE_ITEMS or event.next_index is None:
            return replace(state, is_running=False)
        return replace(
            state,
            current_index=event.next_index,
            history=(*state.history, event.next_index),
        )

    if isinstance(event, ReplaceSnapshot):
        if event.item_count == 0:
            return replace(state, current_index=None)
        if state.current_index is None or state.current_index >= event.item_count:
            return replace(state, current_index=0)
        return state

    raise TypeError(f"Unknown shuffle event: {event!r}")


def draw_next_index(rng: random.Random, item_count: int, previous: int | None) -> int | None:
    """Uniform random index different from ``previous`` (rejection sampling).

    With a single item the previous index is kept; with none, None.
    """
    if item_count <= 0:
        return None
    if item_count == 1:
        return 0 if previous is None else previous
    while True:
        candidate = rng.randrange(item_count)
        if candidate != previous:
            return candidate


ItemListener = Callable[[Union[Item, None]], None]


class ShuffleEngine:
    """Randomized, timed selection of the current card.

    Args:
        scheduler: Source of the repeating shuffle timer.
        snapshot: Initial collection; only cards with an image and a link
            take part in the shuffle.
        speed: Initial speed in [1, 100].
        rng: Random source, injectable for reproducible runs.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        snapshot: CollectionSnapshot = EMPTY_SNAPSHOT,
        speed: int = SpeedConfig.DEFAULT_SPEED,
        rng: random.Random | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self._speed = clamp_speed(speed)
        self._items = snapshot.shuffleable()
        self._state = initial_state(len(self._items), map_speed_to_interval_ms(self._speed))
        self._timer: TimerHandle | None = None
        self._listeners: list[ItemListener] = []
        self._disposed = False

    @property
    def state(self) -> ShuffleState:
        return self._state

    @property
    def status(self) -> ShuffleStatus:
        return self._state.status

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def speed(self) -> int:
        return self._speed

    @property
    def items(self) -> CollectionSnapshot:
        return self._items

    @property
    def current_item(self) -> Item | None:
        index = self._state.current_index
        if index is None or index >= len(self._items):
            return None
        return self._items[index]

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and self._timer.active

    def subscribe(self, listener: ItemListener) -> Callable[[], None]:
        """Call ``listener`` with the current card whenever it changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, event: ShuffleEvent) -> None:
        previous = self._state
        self._state = reduce(previous, event)
        self._reconcile_timer(previous)

        if previous.is_running != self._state.is_running:
            logger.debug("Shuffle %s -> %s", previous.status.value, self._state.status.value)

        if previous.current_index != self._state.current_index or isinstance(
            event, ReplaceSnapshot
        ):
            item = self.current_item
            for listener in list(self._listeners):
                listener(item)

    def _reconcile_timer(self, previous: ShuffleState) -> None:
        state = self._state
        if not state.is_running:
            self._cancel_timer()
            return

        needs_arm = (
            self._timer is None
            or not self._timer.active
            or self._timer.interval_ms != state.interval_ms
        )
        if needs_arm:
            # Only one timer may ever be armed
            self._cancel_timer()
            self._timer = self.scheduler.call_every(state.interval_ms, self._on_tick)
            if previous.is_running:
                logger.debug("Shuffle re-armed at %dms", state.interval_ms)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self) -> None:
        count = len(self._items)
        next_index = draw_next_index(self.rng, count, self._state.current_index)
        self._dispatch(Tick(count, next_index))

    def start(self) -> bool:
        """Start shuffling; a no-op with fewer than two cards or when disposed.

        Returns:
            True if the engine is running afterwards.
        """
        if self._disposed:
            logger.debug("Ignoring start() on a disposed shuffle engine")
            return False
        self._dispatch(Start(len(self._items)))
        return self.is_running

    def stop(self) -> None:
        """Stop shuffling; the current card stays selected."""
        self._dispatch(Stop())

    def set_speed(self, speed: int) -> int:
        """Change the speed; a running shuffle continues at the new interval."""
        self._speed = clamp_speed(speed)
        self.set_interval_ms(map_speed_to_interval_ms(self._speed))
        return self._speed

    def set_interval_ms(self, interval_ms: int) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._dispatch(SetInterval(interval_ms))

    def replace_snapshot(self, snapshot: CollectionSnapshot) -> None:
        """Swap in a new collection; a running shuffle re-checks it on the next tick."""
        self._items = snapshot.shuffleable()
        self._dispatch(ReplaceSnapshot(len(self._items)))

    def dispose(self) -> None:
        """Stop, cancel the timer and refuse further starts."""
        self.stop()
        self._cancel_timer()
        self._listeners.clear()
        self._disposed = True
