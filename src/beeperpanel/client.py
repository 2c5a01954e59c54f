"""Async client for the local Beeper Desktop HTTP API."""

import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class BeeperError(Exception):
    """Base error for Beeper Desktop API failures."""


class BeeperConnectionError(BeeperError):
    """The Beeper Desktop API could not be reached."""


class BeeperAPIError(BeeperError):
    """The Beeper Desktop API answered with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"Beeper Desktop API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class BeeperDesktop:
    """Thin wrapper around the Beeper Desktop API.

    Usage::

        async with BeeperDesktop(base_url, token) as client:
            async for chat in client.search_chats():
                ...
    """

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "BeeperDesktop":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise BeeperConnectionError(
                f"Unable to reach Beeper Desktop at {self.base_url}: {e}"
            ) from e

        if response.is_error:
            raise BeeperAPIError(response.status_code, _error_message(response))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BeeperAPIError(response.status_code, "invalid JSON response") from e

    async def _paginate(
        self, path: str, params: dict[str, Any], limit: int | None
    ) -> AsyncIterator[dict[str, Any]]:
        seen = 0
        cursors: set[str] = set()
        params = dict(params)
        while True:
            page = await self._request("GET", path, params=params) or {}
            for item in page.get("items") or []:
                yield item
                seen += 1
                if limit is not None and seen >= limit:
                    return

            cursor = page.get("oldestCursor")
            if not page.get("hasMore") or not cursor:
                return
            if cursor in cursors:
                logger.warning("Pagination cursor %s repeated for %s; stopping", cursor, path)
                return
            cursors.add(cursor)
            params["cursor"] = cursor
            params["direction"] = "before"

    def search_chats(
        self, query: str | None = None, limit: int | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Iterate over chats, optionally filtered by ``query``."""
        params = {"query": query} if query else {}
        return self._paginate("/v1/chats/search", params, limit)

    async def retrieve_chat(self, chat_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/v1/chats/{quote(chat_id, safe='')}")

    def search_messages(self, query: str, limit: int | None = 50) -> AsyncIterator[dict[str, Any]]:
        """Iterate over messages matching ``query``, at most ``limit`` of them."""
        return self._paginate("/v1/messages/search", {"query": query}, limit)

    async def send_message(self, chat_id: str, text: str) -> dict[str, Any] | None:
        logger.info("Sending message to chat %s", chat_id)
        return await self._request(
            "POST", f"/v1/chats/{quote(chat_id, safe='')}/messages", json={"text": text}
        )

    async def focus_app(
        self, chat_id: str | None = None, message_sort_key: str | None = None
    ) -> None:
        """Bring Beeper Desktop forward, optionally opening a chat at a message."""
        body = {}
        if chat_id:
            body["chatID"] = chat_id
            if message_sort_key:
                body["messageSortKey"] = message_sort_key
        await self._request("POST", "/v1/focus", json=body)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            if data.get(key):
                return str(data[key])
    return response.text or response.reason_phrase
