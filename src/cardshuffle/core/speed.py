"""Mapping from the user-facing shuffle speed to a timer interval."""

from __future__ import annotations

from cardshuffle.shared.constants import SpeedConfig


def clamp_speed(speed: int) -> int:
    """Clamp ``speed`` into ``[MIN_SPEED, MAX_SPEED]``."""
    return max(SpeedConfig.MIN_SPEED, min(SpeedConfig.MAX_SPEED, int(speed)))


def map_speed_to_interval_ms(speed: int) -> int:
    """Map a speed in ``[1, 100]`` to a shuffle interval in milliseconds.

    Linear interpolation from ``MAX_INTERVAL_MS`` at speed 1 down to
    ``MIN_INTERVAL_MS`` at speed 100. Out-of-range speeds are clamped.

    >>> map_speed_to_interval_ms(1)
    300
    >>> map_speed_to_interval_ms(100)
    10
    """
    speed = clamp_speed(speed)
    span = SpeedConfig.MAX_INTERVAL_MS - SpeedConfig.MIN_INTERVAL_MS
    steps = SpeedConfig.MAX_SPEED - SpeedConfig.MIN_SPEED
    return round(SpeedConfig.MAX_INTERVAL_MS - (speed - SpeedConfig.MIN_SPEED) * span / steps)
