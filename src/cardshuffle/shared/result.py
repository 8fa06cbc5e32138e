"""Explicit success/failure results for boundary crossings.

Cache reads, network calls and compression calls are wrapped in
``Success`` or ``Failure`` so that failure kinds can be enumerated
(``Failure.code``) instead of being inferred from ``None``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

from cardshuffle.shared.errors import CardShuffleError, ErrorCode

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    """Failed outcome carrying the error kind and the original error."""

    code: ErrorCode
    message: str
    error: CardShuffleError | None = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        """Raise the wrapped error."""
        if self.error is not None:
            raise self.error
        raise CardShuffleError(self.message, self.code)

    def unwrap_or(self, default: T) -> T:
        return default

    @classmethod
    def from_error(cls, error: CardShuffleError) -> Failure:
        return cls(code=error.code, message=error.message, error=error)


Result = Union[Success[T], Failure]


def capture(func: Callable[[], T]) -> Result[T]:
    """Run ``func`` and convert a raised CardShuffleError into a Failure."""
    try:
        return Success(func())
    except CardShuffleError as e:
        return Failure.from_error(e)


async def capture_async(func: Callable[[], Awaitable[T]]) -> Result[T]:
    """Await ``func()`` and convert a raised CardShuffleError into a Failure."""
    try:
        return Success(await func())
    except CardShuffleError as e:
        return Failure.from_error(e)
