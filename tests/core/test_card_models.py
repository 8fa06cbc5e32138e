"""Tests for card models and collection snapshots."""

from __future__ import annotations

import pytest

from cardshuffle.core.models import (
    EMPTY_SNAPSHOT,
    CardDraft,
    CardPatch,
    CollectionSnapshot,
    Item,
)
from cardshuffle.shared.errors import ErrorCode, ValidationError


class TestItem:
    """Test the Item wire model."""

    def test_from_wire_payload(self):
        """Wire field names map onto Python attributes."""
        item = Item.model_validate(
            {
                "_id": "a1",
                "name": "Cat",
                "imageUrl": "https://img.example/cat.jpg",
                "link": "https://example.com",
                "createdAt": 1700000000000,
                "__v": 0,
            }
        )

        assert item.id == "a1"
        assert item.display_name == "Cat"
        assert item.image_ref == "https://img.example/cat.jpg"
        assert item.target_link == "https://example.com"
        assert item.created_at == 1700000000000

    def test_iso_created_at_is_converted(self):
        """ISO timestamps are converted to epoch milliseconds."""
        item = Item.model_validate({"_id": "a1", "createdAt": "2023-11-14T22:13:20.000Z"})
        assert item.created_at == 1700000000000

    def test_defaults(self):
        item = Item.model_validate({"_id": "a1"})
        assert item.display_name == "Unnamed Card"
        assert not item.is_shuffleable

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            Item.model_validate({"_id": ""})

    def test_payload_uses_wire_names(self):
        item = Item(id="a1", display_name="Cat", image_ref="u", target_link="l", created_at=5)
        assert item.to_payload() == {
            "_id": "a1",
            "name": "Cat",
            "imageUrl": "u",
            "link": "l",
            "createdAt": 5,
        }

    def test_embedded_image(self, item_factory):
        assert item_factory("a1", image="data:image/png;base64,AAAA").has_embedded_image
        assert not item_factory("a1").has_embedded_image


class TestCollectionSnapshot:
    """Test snapshot construction and queries."""

    def test_from_payload_keeps_order(self):
        snapshot = CollectionSnapshot.from_payload(
            [{"_id": "b"}, {"_id": "a"}, {"_id": "c"}],
        )
        assert snapshot.ids() == ("b", "a", "c")
        assert len(snapshot) == 3
        assert snapshot[1].id == "a"

    def test_duplicate_ids_rejected(self, item_factory):
        """Ids must be unique within a snapshot."""
        with pytest.raises(ValidationError) as exc_info:
            CollectionSnapshot([item_factory("a1"), item_factory("a1")])
        assert exc_info.value.code == ErrorCode.DUPLICATE_ENTRY

    @pytest.mark.parametrize("payload", [{"_id": "a"}, "cards", None])
    def test_non_list_payload_rejected(self, payload):
        with pytest.raises(ValidationError):
            CollectionSnapshot.from_payload(payload)

    def test_invalid_card_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CollectionSnapshot.from_payload([{"name": "no id"}])
        assert exc_info.value.original_error is not None

    def test_get(self, snapshot_factory):
        snapshot = snapshot_factory("a1", "b2")
        assert snapshot.get("b2").id == "b2"
        assert snapshot.get("zz") is None

    def test_shuffleable_filters_incomplete_cards(self, item_factory):
        """Cards without an image or a link are left out of the shuffle."""
        snapshot = CollectionSnapshot(
            [
                item_factory("a1"),
                item_factory("b2", image=""),
                item_factory("c3", link=""),
                item_factory("d4"),
            ]
        )
        assert snapshot.shuffleable().ids() == ("a1", "d4")

    def test_equality(self, snapshot_factory):
        assert snapshot_factory("a1", "b2") == snapshot_factory("a1", "b2")
        assert snapshot_factory("a1") != snapshot_factory("b2")
        assert len(EMPTY_SNAPSHOT) == 0
        assert not EMPTY_SNAPSHOT


class TestDraftAndPatch:
    def test_draft_payload_defaults_name(self):
        draft = CardDraft(image_ref="u", target_link="l", display_name="")
        assert draft.to_payload() == {"name": "Unnamed Card", "imageUrl": "u", "link": "l"}

    def test_patch_only_carries_set_fields(self):
        """Unset patch fields are left out of the request body."""
        assert CardPatch(target_link="https://new").to_payload() == {"link": "https://new"}
        assert CardPatch().to_payload() == {}
