from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from marketdesk.config.settings import settings
from marketdesk.schemas.market import Exchange, SearchCacheEntry, Stock

logger = logging.getLogger(__name__)


def cache_key(exchange: Exchange, query: str) -> str:
    return f"search:{exchange}:{query.strip().upper()}"


class SearchCache:
    """Search results keyed by (exchange, uppercased query).

    Entries expire lazily: age is checked on lookup and stale entries are
    evicted there. With a Redis URL configured the entries are shared through
    Redis and also carry a native expiry.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        redis_url: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = settings.search.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._redis_url = redis_url if redis_url is not None else settings.redis_url
        self._clock = clock
        self._entries: dict[str, SearchCacheEntry] = {}
        self._client: Redis | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _get_client(self) -> Redis | None:
        if not self._redis_url:
            return None
        if self._client is None:
            self._client = Redis.from_url(self._redis_url)
        return self._client

    async def _load(self, key: str) -> SearchCacheEntry | None:
        client = self._get_client()
        if client is None:
            return self._entries.get(key)

        try:
            raw = await client.get(key)
        except RedisError as exc:
            logger.warning(f"Search cache read failed for {key}: {exc}")
            return None
        if not raw:
            return None

        try:
            return SearchCacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding malformed search cache entry {key}")
            return None

    async def get(self, exchange: Exchange, query: str) -> SearchCacheEntry | None:
        key = cache_key(exchange, query)
        entry = await self._load(key)
        if entry is None:
            return None

        if self._clock() - entry.fetched_at >= self._ttl:
            self._entries.pop(key, None)
            return None
        return entry

    async def set(self, exchange: Exchange, query: str, results: Sequence[Stock]) -> SearchCacheEntry:
        key = cache_key(exchange, query)
        entry = SearchCacheEntry(results=list(results), fetched_at=self._clock())
        client = self._get_client()
        if client is None:
            self._entries[key] = entry
            return entry

        try:
            await client.setex(key, max(1, math.ceil(self._ttl)), entry.model_dump_json())
        except RedisError as exc:
            logger.warning(f"Search cache write failed for {key}: {exc}")
        return entry

    async def close(self) -> None:
        self._entries.clear()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
