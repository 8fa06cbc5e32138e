"""Card collection models.

Pydantic models for cards as exchanged with the remote collection API,
the immutable ``CollectionSnapshot`` handed to consumers, and the
mutation operations accepted by the sync controller.

Wire field names follow the API (``_id``, ``name``, ``imageUrl``,
``link``, ``createdAt``); Python attribute names are used everywhere else.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union, overload

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cardshuffle.shared.constants import CardFields, CompressionConfig
from cardshuffle.shared.errors import ErrorCode, ErrorContext, ValidationError


class Item(BaseModel):
    """A single card: a labeled image with an external link.

    Attributes:
        id: Server-assigned identifier, unique within a snapshot
        display_name: Label shown with the card
        image_ref: Image URL or embedded ``data:image`` payload
        target_link: External link opened from the card
        created_at: Creation time in epoch milliseconds

    Example:
        >>> item = Item.model_validate(
        ...     {"_id": "a1", "name": "Cat", "imageUrl": "https://x/cat.jpg",
        ...      "link": "https://x", "createdAt": 1700000000000}
        ... )
        >>> item.display_name
        'Cat'
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(..., alias=CardFields.ID, min_length=1)
    display_name: str = Field(CardFields.DEFAULT_NAME, alias=CardFields.NAME)
    image_ref: str = Field("", alias=CardFields.IMAGE_URL)
    target_link: str = Field("", alias=CardFields.LINK)
    created_at: int = Field(0, alias=CardFields.CREATED_AT)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        # The API may serialize dates as ISO strings instead of epoch ms
        if isinstance(value, str) and not value.isdigit():
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return int(parsed.timestamp() * 1000)
        return value

    @property
    def is_shuffleable(self) -> bool:
        return bool(self.image_ref) and bool(self.target_link)

    @property
    def has_embedded_image(self) -> bool:
        return self.image_ref.startswith(CompressionConfig.RAW_IMAGE_PREFIX)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CollectionSnapshot(Sequence[Item]):
    """Immutable, ordered view of the collection at a point in time."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[Item] = ()) -> None:
        items = tuple(items)
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise ValidationError(
                    f"Duplicate card id in snapshot: {item.id}",
                    ErrorCode.DUPLICATE_ENTRY,
                    ErrorContext(operation="build_snapshot", key=item.id),
                )
            seen.add(item.id)
        self._items: tuple[Item, ...] = items

    @classmethod
    def from_payload(cls, payload: Any) -> CollectionSnapshot:
        """Build a snapshot from a decoded JSON list of cards.

        Raises:
            ValidationError: If the payload is not a list of valid cards
        """
        if not isinstance(payload, list):
            raise ValidationError(
                f"Expected a list of cards, got {type(payload).__name__}",
                context=ErrorContext(operation="build_snapshot"),
            )
        try:
            items = [Item.model_validate(entry) for entry in payload]
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid card in payload: {e.error_count()} validation error(s)",
                context=ErrorContext(operation="build_snapshot"),
                original_error=e,
            ) from e
        return cls(items)

    def to_payload(self) -> list[dict[str, Any]]:
        return [item.to_payload() for item in self._items]

    def ids(self) -> tuple[str, ...]:
        return tuple(item.id for item in self._items)

    def get(self, card_id: str) -> Item | None:
        for item in self._items:
            if item.id == card_id:
                return item
        return None

    def shuffleable(self) -> CollectionSnapshot:
        """Snapshot restricted to cards with both an image and a link."""
        return CollectionSnapshot(item for item in self._items if item.is_shuffleable)

    @overload
    def __getitem__(self, index: int) -> Item: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[Item, ...]: ...

    def __getitem__(self, index: int | slice) -> Item | tuple[Item, ...]:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CollectionSnapshot):
            return self._items == other._items
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"CollectionSnapshot({len(self._items)} items)"


EMPTY_SNAPSHOT = CollectionSnapshot()


@dataclass(frozen=True)
class CardDraft:
    """Fields for a new card; the server assigns id and creation time."""

    image_ref: str
    target_link: str
    display_name: str = CardFields.DEFAULT_NAME

    def to_payload(self) -> dict[str, Any]:
        return {
            CardFields.NAME: self.display_name or CardFields.DEFAULT_NAME,
            CardFields.IMAGE_URL: self.image_ref,
            CardFields.LINK: self.target_link,
        }


@dataclass(frozen=True)
class CardPatch:
    """Partial card fields for an update; ``None`` leaves a field unchanged."""

    display_name: str | None = None
    image_ref: str | None = None
    target_link: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.display_name is not None:
            payload[CardFields.NAME] = self.display_name or CardFields.DEFAULT_NAME
        if self.image_ref is not None:
            payload[CardFields.IMAGE_URL] = self.image_ref
        if self.target_link is not None:
            payload[CardFields.LINK] = self.target_link
        return payload


@dataclass(frozen=True)
class CreateCard:
    draft: CardDraft


@dataclass(frozen=True)
class UpdateCard:
    card_id: str
    patch: CardPatch


@dataclass(frozen=True)
class DeleteCard:
    card_id: str


@dataclass(frozen=True)
class ClearAll:
    pass


Mutation = Union[CreateCard, UpdateCard, DeleteCard, ClearAll]
