from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from marketdesk.config.settings import settings
from marketdesk.exceptions import MalformedResponse, NetworkUnavailable
from marketdesk.schemas.market import (
    Exchange,
    HistoryResponse,
    IndicesResponse,
    QuoteResponse,
    SearchResponse,
)

logger = logging.getLogger(__name__)

_INDICES_PATH = "/indices"
_QUOTE_PATH = "/quote"
_HISTORY_PATH = "/history"
_SEARCH_PATH = "/search"

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class MarketApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=self._timeout,
            headers={"Cache-Control": "no-store"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, str], model: type[ResponseT]) -> ResponseT:
        logger.debug(f"GET {path} {params}")
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise NetworkUnavailable(f"GET {path} failed: {exc}") from exc

        if response.is_error:
            raise NetworkUnavailable(
                f"GET {path} returned HTTP {response.status_code}",
                code=str(response.status_code),
            )

        try:
            return model.model_validate_json(response.content)
        except ValidationError as exc:
            raise MalformedResponse(f"GET {path} returned an invalid payload: {exc}") from exc

    async def fetch_indices(self, exchange: Exchange) -> IndicesResponse:
        return await self._get(_INDICES_PATH, {"exchange": exchange}, IndicesResponse)

    async def fetch_quote(self, symbol: str, exchange: Exchange) -> QuoteResponse:
        return await self._get(_QUOTE_PATH, {"symbol": symbol, "exchange": exchange}, QuoteResponse)

    async def fetch_history(self, symbol: str, period: str, exchange: Exchange) -> HistoryResponse:
        return await self._get(
            _HISTORY_PATH,
            {"symbol": symbol, "period": period, "exchange": exchange},
            HistoryResponse,
        )

    async def search(self, query: str, exchange: Exchange) -> SearchResponse:
        return await self._get(_SEARCH_PATH, {"q": query, "exchange": exchange}, SearchResponse)

    async def stream_events(self, path: str | None = None) -> AsyncIterator[tuple[str, str]]:
        """Yield ``(event, data)`` pairs from a server-sent event stream.

        Transport failures surface as ``NetworkUnavailable``; the iterator
        simply ends when the server closes the stream.
        """
        path = path or settings.feed.stream_path
        # Idle gaps between events must not trip the read timeout.
        timeout = httpx.Timeout(self._timeout, read=None)
        event_name = "message"
        data_lines: list[str] = []
        try:
            async with self._client.stream(
                "GET", path, headers={"Accept": "text/event-stream"}, timeout=timeout
            ) as response:
                if response.is_error:
                    raise NetworkUnavailable(
                        f"GET {path} returned HTTP {response.status_code}",
                        code=str(response.status_code),
                    )
                async for line in response.aiter_lines():
                    if not line:
                        if data_lines:
                            yield event_name, "\n".join(data_lines)
                        event_name, data_lines = "message", []
                        continue
                    if line.startswith(":"):
                        continue
                    field, _, value = line.partition(":")
                    if value.startswith(" "):
                        value = value[1:]
                    if field == "event":
                        event_name = value or "message"
                    elif field == "data":
                        data_lines.append(value)
        except httpx.HTTPError as exc:
            raise NetworkUnavailable(f"Stream {path} failed: {exc}") from exc
