from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from marketdesk.cache import SearchCache
from marketdesk.config.settings import settings
from marketdesk.exceptions import MalformedResponse, NetworkUnavailable
from marketdesk.providers.market_api import MarketApiClient
from marketdesk.schemas.market import Exchange, Stock
from marketdesk.search.ranking import find_instant_matches
from marketdesk.state import DashboardState
from marketdesk.symbols import canonical

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No stocks found for this search."
UNAVAILABLE_MESSAGE = "Search is temporarily unavailable."


class SearchStatus(StrEnum):
    IDLE = "idle"
    SEARCHING = "searching"
    RESULTS = "results"
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"
    SUPERSEDED = "superseded"


def outcome_status(results: list[Stock], error: str | None) -> SearchStatus:
    if results:
        return SearchStatus.RESULTS
    if error == NO_RESULTS_MESSAGE or not error:
        return SearchStatus.EMPTY
    return SearchStatus.UNAVAILABLE


@dataclass(frozen=True)
class SearchOutcome:
    """Final answer to one query."""

    query: str
    status: SearchStatus
    results: list[Stock] = field(default_factory=list)
    error: str | None = None


def dedupe_by_company_symbol(stocks: list[Stock]) -> list[Stock]:
    # Later duplicates replace the value but keep the first slot.
    unique: dict[str, Stock] = {}
    for stock in stocks:
        unique[canonical(stock)] = stock
    return list(unique.values())


class SearchSession:
    """Two-tier symbol search bound to one dashboard state.

    Every query shows instant matches from the live market pool right away.
    A remote search follows after a debounce unless a fresh cache entry
    exists. Each query owns at most one task; a newer query cancels it.
    """

    def __init__(
        self,
        state: DashboardState,
        client: MarketApiClient,
        cache: SearchCache | None = None,
        exchange: Exchange | None = None,
        debounce_seconds: float | None = None,
        limit: int | None = None,
        min_length: int | None = None,
    ) -> None:
        self._state = state
        self._client = client
        self._cache = cache or SearchCache()
        self._exchange: Exchange = exchange or settings.search.exchange
        self._debounce = (
            settings.search.debounce_ms / 1000 if debounce_seconds is None else debounce_seconds
        )
        self._limit = settings.search.result_limit if limit is None else limit
        self._min_length = settings.search.min_query_length if min_length is None else min_length
        self._task: asyncio.Task[SearchOutcome] | None = None

    @property
    def cache(self) -> SearchCache:
        return self._cache

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def status(self) -> SearchStatus:
        state = self._state
        query = state.search_query.strip()
        if len(query) < self._min_length:
            return SearchStatus.IDLE
        answered = state.search_results_query == query.upper()
        if (self.pending or state.searching) and not (answered and state.search_results):
            return SearchStatus.SEARCHING
        if state.search_error == NO_RESULTS_MESSAGE:
            return SearchStatus.EMPTY
        if state.search_error:
            return SearchStatus.UNAVAILABLE
        return SearchStatus.RESULTS

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def instant_matches(self, query: str) -> list[Stock]:
        return find_instant_matches(
            self._state.quick_search_pool(), query, limit=self._limit, min_length=self._min_length
        )

    def set_query(self, query: str) -> asyncio.Task[SearchOutcome] | None:
        state = self._state
        if state.disposed:
            return None
        self._cancel_pending()
        state.search_query = query

        normalized = query.strip()
        if len(normalized) < self._min_length:
            self._show("", [], None)
            state.searching = False
            return None

        instant = self.instant_matches(normalized)
        if instant:
            self._show(normalized, instant, None)

        self._task = asyncio.create_task(self._run(normalized, instant))
        return self._task

    async def run(self, query: str) -> SearchOutcome:
        """Search for one caller and return that query's own outcome.

        A newer query on the same session cancels this one; the caller then
        gets its instant matches marked as superseded.
        """
        normalized = query.strip()
        task = self.set_query(query)
        if task is None:
            return SearchOutcome(normalized, SearchStatus.IDLE)

        await asyncio.gather(task, return_exceptions=True)
        if task.cancelled():
            return SearchOutcome(
                normalized, SearchStatus.SUPERSEDED, self.instant_matches(normalized)
            )
        return task.result()

    def clear(self) -> None:
        self._cancel_pending()
        state = self._state
        state.search_query = ""
        self._show("", [], None)
        state.searching = False

    async def settle(self) -> None:
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    def dispose(self) -> list[asyncio.Task[SearchOutcome]]:
        task = self._task
        self._cancel_pending()
        return [task] if task is not None else []

    def _show(self, query: str, results: list[Stock], error: str | None) -> None:
        state = self._state
        state.search_results = results
        state.search_error = error
        state.search_results_query = query.upper()

    def _finish(self, query: str, results: list[Stock], error: str | None) -> SearchOutcome:
        if not self._state.disposed:
            self._show(query, results, error)
        return SearchOutcome(query, outcome_status(results, error), results, error)

    def _fallback(self, query: str, instant: list[Stock], message: str) -> SearchOutcome:
        if instant:
            return self._finish(query, instant[: self._limit], None)
        return self._finish(query, [], message)

    async def _run(self, query: str, instant: list[Stock]) -> SearchOutcome:
        state = self._state
        superseded = SearchOutcome(query, SearchStatus.SUPERSEDED, instant)

        cached = await self._cache.get(self._exchange, query)
        if state.disposed:
            return superseded
        if cached is not None:
            state.searching = False
            return self._finish(
                query, cached.results, None if cached.results else NO_RESULTS_MESSAGE
            )

        await asyncio.sleep(self._debounce)
        if state.disposed:
            return superseded

        state.searching = True
        try:
            response = await self._client.search(query, self._exchange)
        except (NetworkUnavailable, MalformedResponse) as exc:
            logger.warning(f"Remote search for {query!r} failed: {exc}")
            return self._fallback(query, instant, UNAVAILABLE_MESSAGE)
        finally:
            if not state.disposed:
                state.searching = False

        if state.disposed:
            return superseded
        if not response.success or response.data is None:
            return self._fallback(query, instant, response.error or UNAVAILABLE_MESSAGE)

        deduped = dedupe_by_company_symbol(response.data.results)
        final = deduped[: self._limit] if deduped else instant[: self._limit]
        outcome = self._finish(query, final, None if final else NO_RESULTS_MESSAGE)
        await self._cache.set(self._exchange, query, final)
        return outcome
