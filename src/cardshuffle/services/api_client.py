"""Remote collection API client.

Thin aiohttp wrapper over the card endpoints:

- ``GET /cards``: ordered list of cards
- ``POST /cards``: create (server assigns id and creation time)
- ``PUT /cards/{id}``: partial update
- ``DELETE /cards/{id}``: delete one card
- ``DELETE /cards``: clear all cards
- ``GET /health``: liveness probe

Transport failures and non-success statuses are raised as
``NetworkError``; a 404 on an id route is raised as ``NotFoundError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp

from cardshuffle.core.models import CardDraft, CardPatch, CollectionSnapshot
from cardshuffle.shared.constants import APIConfig, CLIDefaults, HTTPStatusCodes
from cardshuffle.shared.errors import (
    ErrorCode,
    ErrorContext,
    NetworkError,
    NotFoundError,
    ValidationError,
)
from cardshuffle.shared.logging import log_api_call

logger = logging.getLogger(__name__)


class CollectionAPI(Protocol):
    """Contract of the remote collection API consumed by the sync controller."""

    async def list_cards(self) -> CollectionSnapshot: ...

    async def create_card(self, draft: CardDraft) -> None: ...

    async def update_card(self, card_id: str, patch: CardPatch) -> None: ...

    async def delete_card(self, card_id: str) -> None: ...

    async def clear_cards(self) -> None: ...


class CardsApiClient:
    """aiohttp client for the card collection API.

    Args:
        base_url: API root, e.g. ``http://localhost:5000/api``.
        timeout: Total request timeout in seconds.
        session: Optional externally managed session; it is not closed by
            ``aclose`` when supplied.
    """

    def __init__(
        self,
        base_url: str = APIConfig.DEFAULT_BASE_URL,
        timeout: float = APIConfig.DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> CardsApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    "User-Agent": f"cardshuffle/{CLIDefaults.VERSION}",
                    "Accept": "application/json",
                },
            )
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _card_path(card_id: str) -> str:
        if not card_id:
            raise ValidationError(
                "No card id provided",
                ErrorCode.MISSING_REQUIRED_FIELD,
                ErrorContext(operation="card_route", additional_data={"field": "id"}),
            )
        return f"{APIConfig.CARDS_PATH}/{quote(card_id, safe='')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        card_id: str | None = None,
        expect_json: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body if requested.

        Raises:
            NetworkError: On transport failure, timeout, non-2xx status or
                an undecodable body
            NotFoundError: On 404 for a request that targets ``card_id``
        """
        context = ErrorContext(
            operation=f"{method} {path}",
            key=card_id,
            additional_data={"url": self._url(path)},
        )
        started = time.perf_counter()
        session = self._get_session()

        try:
            async with session.request(method, self._url(path), json=json) as response:
                duration_ms = (time.perf_counter() - started) * 1000
                log_api_call(logger, path, method, response.status, duration_ms)

                if card_id is not None and response.status == HTTPStatusCodes.NOT_FOUND:
                    raise NotFoundError(f"Card not found: {card_id}", context=context)

                if not HTTPStatusCodes.is_success(response.status):
                    code = (
                        ErrorCode.API_SERVER_ERROR
                        if response.status >= 500
                        else ErrorCode.API_REQUEST_FAILED
                    )
                    raise NetworkError(
                        f"{method} {path} failed with status {response.status}",
                        code,
                        context,
                        status=response.status,
                    )

                if not expect_json:
                    return None

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise NetworkError(
                        f"{method} {path} returned an invalid JSON body",
                        ErrorCode.API_INVALID_RESPONSE,
                        context,
                        original_error=e,
                        status=response.status,
                    ) from e

        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"{method} {path} timed out after {self.timeout}s",
                ErrorCode.API_TIMEOUT,
                context,
                original_error=e,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"{method} {path} failed: {e!s}",
                ErrorCode.NETWORK_ERROR,
                context,
                original_error=e,
            ) from e

    async def list_cards(self) -> CollectionSnapshot:
        """Fetch the canonical, ordered card list."""
        payload = await self._request("GET", APIConfig.CARDS_PATH, expect_json=True)
        try:
            return CollectionSnapshot.from_payload(payload)
        except ValidationError as e:
            raise NetworkError(
                f"Collection API returned malformed cards: {e.message}",
                ErrorCode.API_INVALID_RESPONSE,
                ErrorContext(operation="list_cards"),
                original_error=e,
            ) from e

    async def create_card(self, draft: CardDraft) -> None:
        await self._request("POST", APIConfig.CARDS_PATH, json=draft.to_payload())

    async def update_card(self, card_id: str, patch: CardPatch) -> None:
        await self._request(
            "PUT",
            self._card_path(card_id),
            json=patch.to_payload(),
            card_id=card_id,
        )

    async def delete_card(self, card_id: str) -> None:
        await self._request("DELETE", self._card_path(card_id), card_id=card_id)

    async def clear_cards(self) -> None:
        await self._request("DELETE", APIConfig.CARDS_PATH)

    async def check_health(self) -> bool:
        """One-shot liveness probe; never raises."""
        try:
            await self._request("GET", APIConfig.HEALTH_PATH)
        except NetworkError as e:
            logger.debug("Health check failed: %s", e)
            return False
        return True
