from __future__ import annotations

import asyncio
import logging

from marketdesk.cache import SearchCache
from marketdesk.chart import ChartDataAdapter, format_price, validate_period
from marketdesk.feed import LiveFeedClient
from marketdesk.providers.market_api import MarketApiClient
from marketdesk.quotes import QuoteRefreshController
from marketdesk.schemas.dashboard import ChartView, DashboardView, SearchView, StatsView
from marketdesk.schemas.market import Exchange, LiveMarketSnapshot, Stock
from marketdesk.search.engine import SearchSession
from marketdesk.state import DashboardState
from marketdesk.symbols import (
    EXCHANGE_SUFFIX_RE,
    canonical,
    exchange_of,
    fetch_symbol,
    merge_unique_stocks,
    parse_exchange,
    seed_stock,
    supports_toggle,
)

logger = logging.getLogger(__name__)


class DashboardSession:
    """One viewer's dashboard: live feed, search, selection and chart.

    All components share a single ``DashboardState`` and run on one event
    loop; none of them block.
    """

    def __init__(
        self,
        client: MarketApiClient | None = None,
        cache: SearchCache | None = None,
        state: DashboardState | None = None,
        stream_enabled: bool | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.state = state or DashboardState()
        self.client = client or MarketApiClient()
        self.chart = ChartDataAdapter(self.state, self.client)
        self.search = SearchSession(
            self.state, self.client, cache=cache, debounce_seconds=debounce_seconds
        )
        self.quotes = QuoteRefreshController(self.state, self.client, self.chart, self.search)
        self.feed = LiveFeedClient(
            self.state, self.client, self._apply_snapshot, stream_enabled=stream_enabled
        )
        self._last_link_request: str | None = None

    def start(self) -> asyncio.Task[None]:
        return self.feed.start()

    def _apply_snapshot(self, snapshot: LiveMarketSnapshot) -> None:
        if self.state.disposed:
            return
        if self.state.apply_snapshot(snapshot):
            self.chart.load()

    def select(
        self,
        stock: Stock,
        exchange: Exchange | None = None,
        reset_period: bool = True,
        close_search: bool = False,
    ) -> asyncio.Task[None] | None:
        return self.quotes.select(
            stock,
            exchange or exchange_of(stock),
            reset_period=reset_period,
            close_search=close_search,
        )

    def select_symbol(self, symbol: str, exchange: str = "NSE") -> asyncio.Task[None] | None:
        """Select a stock named by an external link, e.g. ``?stock=TCS&exchange=BSE``."""
        requested_symbol = symbol.strip().upper()
        if not requested_symbol:
            return None
        requested_exchange: Exchange = "BSE" if exchange.strip().upper() == "BSE" else "NSE"

        request_key = f"{requested_exchange}:{requested_symbol}"
        if self._last_link_request == request_key:
            return None
        self._last_link_request = request_key

        return self.quotes.select(
            self.resolve_symbol(requested_symbol),
            requested_exchange,
            reset_period=True,
            close_search=True,
        )

    def resolve_symbol(self, symbol: str) -> Stock:
        """Find a known stock by fetch symbol, then by company symbol, else seed one."""
        requested_symbol = symbol.strip().upper()
        base_symbol = EXCHANGE_SUFFIX_RE.sub("", requested_symbol)
        snapshot = self.state.snapshot
        universe = merge_unique_stocks(
            [*snapshot.indices, *snapshot.gainers, *snapshot.losers, *self.state.search_results]
        )
        for stock in universe:
            if fetch_symbol(stock) == requested_symbol:
                return stock
        for stock in universe:
            if canonical(stock) == base_symbol:
                return stock
        return seed_stock(requested_symbol)

    def set_period(self, period: str) -> asyncio.Task[None] | None:
        validated = validate_period(period)
        if validated == self.state.period:
            return None
        self.state.period = validated
        return self.chart.load()

    def set_active_stats_exchange(self, exchange: str) -> Exchange:
        self.state.active_stats_exchange = parse_exchange(exchange)
        return self.state.active_stats_exchange

    def set_search_query(self, query: str) -> None:
        self.search.set_query(query)

    async def run_search(self, query: str) -> SearchView:
        outcome = await self.search.run(query)
        return SearchView(
            query=outcome.query,
            status=outcome.status.value,
            results=outcome.results,
            error=outcome.error,
        )

    async def settle(self) -> None:
        await self.search.settle()
        await self.quotes.settle()
        await self.chart.settle()

    async def dispose(self) -> None:
        if self.state.disposed:
            return
        self.state.disposed = True
        self.feed.dispose()
        cancelled = [*self.search.dispose(), *self.quotes.dispose(), *self.chart.dispose()]
        await asyncio.gather(*cancelled, return_exceptions=True)
        await self.feed.wait()
        await self.client.aclose()
        await self.search.cache.close()
        logger.debug("Dashboard session disposed")

    def dashboard_view(self) -> DashboardView:
        state = self.state
        snapshot = state.snapshot
        stats = state.active_market_stats()
        selected = state.selected
        return DashboardView(
            feed_state=self.feed.state.value,
            loading=state.loading,
            last_updated=state.last_updated,
            indices=snapshot.indices,
            gainers=snapshot.gainers,
            losers=snapshot.losers,
            market_stats=StatsView(
                exchange=state.active_stats_exchange,
                available=list(snapshot.market_stats_by_exchange),
                stats=stats,
                today_high_label=format_price(stats.today_high),
                today_low_label=format_price(stats.today_low),
            ),
            selected=selected,
            selected_exchange=exchange_of(selected) if selected is not None else None,
            selected_price_label=(
                format_price(selected.price, selected.currency) if selected is not None else None
            ),
            supports_exchange_toggle=supports_toggle(selected) if selected is not None else False,
            period=state.period,
        )

    def search_view(self) -> SearchView:
        state = self.state
        return SearchView(
            query=state.search_query,
            status=self.search.status.value,
            results=state.search_results,
            error=state.search_error,
            searching=state.searching,
        )

    def chart_view(self) -> ChartView:
        return self.chart.chart_view()
