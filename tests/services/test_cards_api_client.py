"""Tests for CardsApiClient against an in-process aiohttp server."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from cardshuffle.core.models import CardDraft, CardPatch
from cardshuffle.services.api_client import CardsApiClient
from cardshuffle.shared.errors import ErrorCode, NetworkError, NotFoundError, ValidationError


class FakeCardsBackend:
    """Minimal in-memory version of the collection API."""

    def __init__(self) -> None:
        self.cards: list[dict] = []
        self.next_id = 1
        self.requests: list[tuple[str, str]] = []
        self.fail_status: int | None = None
        self.raw_list_body: str | None = None
        self.delay: float = 0

    def app(self) -> web.Application:
        app = web.Application(middlewares=[self._record])
        app.router.add_get("/api/cards", self.list_cards)
        app.router.add_post("/api/cards", self.create_card)
        app.router.add_delete("/api/cards", self.clear_cards)
        app.router.add_put("/api/cards/{card_id}", self.update_card)
        app.router.add_delete("/api/cards/{card_id}", self.delete_card)
        app.router.add_get("/api/health", self.health)
        return app

    @web.middleware
    async def _record(self, request: web.Request, handler):
        self.requests.append((request.method, request.path))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_status is not None:
            return web.json_response({"message": "boom"}, status=self.fail_status)
        return await handler(request)

    def _find(self, card_id: str) -> dict:
        for card in self.cards:
            if card["_id"] == card_id:
                return card
        raise web.HTTPNotFound

    async def list_cards(self, request: web.Request) -> web.StreamResponse:
        if self.raw_list_body is not None:
            return web.Response(text=self.raw_list_body, content_type="application/json")
        return web.json_response(self.cards)

    async def create_card(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        card = {
            "_id": f"id{self.next_id}",
            "name": body["name"],
            "imageUrl": body["imageUrl"],
            "link": body["link"],
            "createdAt": 1700000000000 + self.next_id,
        }
        self.next_id += 1
        self.cards.append(card)
        return web.json_response(card, status=201)

    async def update_card(self, request: web.Request) -> web.StreamResponse:
        card = self._find(request.match_info["card_id"])
        card.update(await request.json())
        return web.json_response(card)

    async def delete_card(self, request: web.Request) -> web.StreamResponse:
        card = self._find(request.match_info["card_id"])
        self.cards.remove(card)
        return web.json_response({"message": "Card deleted"})

    async def clear_cards(self, request: web.Request) -> web.StreamResponse:
        self.cards.clear()
        return web.json_response({"message": "All cards deleted"})

    async def health(self, request: web.Request) -> web.StreamResponse:
        return web.json_response({"status": "ok"})


@pytest.fixture
def backend() -> FakeCardsBackend:
    return FakeCardsBackend()


@pytest_asyncio.fixture
async def client(backend: FakeCardsBackend) -> AsyncIterator[CardsApiClient]:
    server = test_utils.TestServer(backend.app())
    await server.start_server()
    api = CardsApiClient(str(server.make_url("/api")), timeout=2)
    try:
        yield api
    finally:
        await api.aclose()
        await server.close()


class TestCardsApiClient:
    """Test the card endpoints."""

    @pytest.mark.asyncio
    async def test_list_empty(self, client):
        snapshot = await client.list_cards()
        assert len(snapshot) == 0

    @pytest.mark.asyncio
    async def test_create_then_list(self, client, backend):
        """The server assigns ids and creation times."""
        await client.create_card(CardDraft("https://img/1.jpg", "https://l/1", "One"))
        await client.create_card(CardDraft("https://img/2.jpg", "https://l/2", ""))

        snapshot = await client.list_cards()

        assert snapshot.ids() == ("id1", "id2")
        assert snapshot[0].display_name == "One"
        assert snapshot[1].display_name == "Unnamed Card"
        assert snapshot[1].created_at == 1700000000002

    @pytest.mark.asyncio
    async def test_update_sends_partial_fields(self, client, backend):
        await client.create_card(CardDraft("https://img/1.jpg", "https://l/1", "One"))

        await client.update_card("id1", CardPatch(display_name="Renamed"))

        assert backend.cards[0]["name"] == "Renamed"
        assert backend.cards[0]["link"] == "https://l/1"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, client, backend):
        await client.create_card(CardDraft("u1", "l1"))
        await client.create_card(CardDraft("u2", "l2"))

        await client.delete_card("id1")
        assert [c["_id"] for c in backend.cards] == ["id2"]

        await client.clear_cards()
        assert backend.cards == []
        assert ("DELETE", "/api/cards") in backend.requests

    @pytest.mark.asyncio
    async def test_card_id_is_quoted(self, client, backend):
        """Ids are escaped into a single path segment."""
        with pytest.raises(NotFoundError):
            await client.delete_card("a/b")
        assert backend.cards == []


class TestCardsApiClientErrors:
    """Test error mapping."""

    @pytest.mark.asyncio
    async def test_missing_card_is_not_found(self, client):
        with pytest.raises(NotFoundError) as exc_info:
            await client.update_card("missing", CardPatch(display_name="x"))
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.context.key == "missing"

    @pytest.mark.asyncio
    async def test_empty_id_rejected_before_request(self, client, backend):
        with pytest.raises(ValidationError):
            await client.delete_card("")
        assert backend.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (500, ErrorCode.API_SERVER_ERROR),
            (503, ErrorCode.API_SERVER_ERROR),
            (400, ErrorCode.API_REQUEST_FAILED),
        ],
    )
    async def test_error_status(self, client, backend, status, code):
        backend.fail_status = status

        with pytest.raises(NetworkError) as exc_info:
            await client.list_cards()

        assert exc_info.value.code == code
        assert exc_info.value.status == status

    @pytest.mark.asyncio
    async def test_list_404_is_network_error(self, client, backend):
        """A 404 on the collection route is not a missing card."""
        backend.fail_status = 404
        with pytest.raises(NetworkError):
            await client.list_cards()

    @pytest.mark.asyncio
    async def test_invalid_json(self, client, backend):
        backend.raw_list_body = "<html>oops</html>"
        with pytest.raises(NetworkError) as exc_info:
            await client.list_cards()
        assert exc_info.value.code == ErrorCode.API_INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_malformed_cards(self, client, backend):
        backend.raw_list_body = '[{"name": "missing id"}]'
        with pytest.raises(NetworkError) as exc_info:
            await client.list_cards()
        assert exc_info.value.code == ErrorCode.API_INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_timeout(self, backend):
        backend.delay = 0.5
        server = test_utils.TestServer(backend.app())
        await server.start_server()
        try:
            async with CardsApiClient(str(server.make_url("/api")), timeout=0.05) as api:
                with pytest.raises(NetworkError) as exc_info:
                    await api.list_cards()
            assert exc_info.value.code == ErrorCode.API_TIMEOUT
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        async with CardsApiClient("http://127.0.0.1:1/api", timeout=2) as api:
            with pytest.raises(NetworkError) as exc_info:
                await api.list_cards()
        assert exc_info.value.code == ErrorCode.NETWORK_ERROR


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_online(self, client):
        assert await client.check_health() is True

    @pytest.mark.asyncio
    async def test_offline_never_raises(self):
        async with CardsApiClient("http://127.0.0.1:1/api", timeout=2) as api:
            assert await api.check_health() is False
