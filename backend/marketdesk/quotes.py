from __future__ import annotations

import asyncio
import logging

from marketdesk.chart import ChartDataAdapter
from marketdesk.exceptions import MalformedResponse, NetworkUnavailable, Superseded
from marketdesk.providers.market_api import MarketApiClient
from marketdesk.schemas.market import Exchange, QuoteData, Stock
from marketdesk.search.engine import SearchSession
from marketdesk.state import DashboardState
from marketdesk.symbols import canonical, stock_key, with_exchange

logger = logging.getLogger(__name__)


class QuoteRefreshController:
    def __init__(
        self,
        state: DashboardState,
        client: MarketApiClient,
        chart: ChartDataAdapter,
        search: SearchSession | None = None,
    ) -> None:
        self._state = state
        self._client = client
        self._chart = chart
        self._search = search
        self._tasks: set[asyncio.Task[None]] = set()

    def select(
        self,
        stock: Stock,
        exchange: Exchange,
        reset_period: bool = True,
        close_search: bool = False,
    ) -> asyncio.Task[None] | None:
        state = self._state
        if state.disposed:
            return None

        state.selection_token += 1
        token = state.selection_token
        base_symbol = canonical(stock)
        qualified = with_exchange(stock, exchange)

        if reset_period:
            state.period = "1d"
        self._chart.clear()
        state.selected = stock.model_copy(update={"symbol": base_symbol, "yahoo_symbol": qualified})
        if close_search and self._search is not None:
            self._search.clear()
        self._chart.load()

        task = asyncio.create_task(self._refresh(token, base_symbol, qualified, exchange))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def settle(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def dispose(self) -> list[asyncio.Task[None]]:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        return tasks

    async def _refresh(self, token: int, base_symbol: str, qualified: str, exchange: Exchange) -> None:
        try:
            response = await self._client.fetch_quote(qualified, exchange)
        except (NetworkUnavailable, MalformedResponse) as exc:
            logger.warning(f"Quote refresh for {qualified} failed: {exc}")
            return

        if not response.success or response.data is None:
            logger.debug(f"Quote service returned no data for {qualified}")
            return

        try:
            self.commit(token, response.data, base_symbol, qualified)
        except Superseded as exc:
            logger.debug(f"Dropping quote for {qualified}: {exc}")

    def commit(self, token: int, quote: QuoteData, base_symbol: str, qualified: str) -> Stock:
        state = self._state
        if state.disposed:
            raise Superseded("session disposed")
        if token != state.selection_token:
            raise Superseded(f"token {token} replaced by {state.selection_token}")

        previous_key = state.selected_key
        update = quote.model_dump(exclude={"exchange", "timestamp"}, exclude_unset=True)
        update["symbol"] = quote.symbol or base_symbol
        update["yahoo_symbol"] = quote.yahoo_symbol or qualified

        current = state.selected
        state.selected = current.model_copy(update=update) if current is not None else Stock(**update)
        state.touch()

        if stock_key(state.selected) != previous_key:
            self._chart.load()
        return state.selected
