from __future__ import annotations

import datetime
from dataclasses import dataclass, field

from marketdesk.schemas.market import (
    ChartPoint,
    Exchange,
    LiveMarketSnapshot,
    MarketStats,
    Period,
    Stock,
)
from marketdesk.symbols import merge_unique_by_company, stock_key

_ZERO_STATS = MarketStats()


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


def market_universe(snapshot: LiveMarketSnapshot) -> list[Stock]:
    return [*snapshot.indices, *snapshot.gainers, *snapshot.losers]


def resolve_selection(previous: Stock | None, snapshot: LiveMarketSnapshot) -> Stock | None:
    universe = market_universe(snapshot)
    if previous is None:
        if snapshot.indices:
            return snapshot.indices[0]
        return universe[0] if universe else None

    previous_key = stock_key(previous)
    for stock in universe:
        if stock_key(stock) == previous_key:
            return stock
    # A stock that dropped out of the movers stays selected.
    return previous


def resolve_stats_exchange(previous: Exchange, stats: dict[Exchange, MarketStats]) -> Exchange:
    if previous in stats:
        return previous
    if "NSE" in stats:
        return "NSE"
    if "BSE" in stats:
        return "BSE"
    return previous


def quick_search_pool(snapshot: LiveMarketSnapshot, selected: Stock | None) -> list[Stock]:
    extra = [selected] if selected is not None else []
    return merge_unique_by_company([*market_universe(snapshot), *extra])


def parse_timestamp(value: str) -> datetime.datetime:
    if value:
        try:
            parsed = datetime.datetime.fromisoformat(value)
        except ValueError:
            return _utc_now()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.UTC)
        return parsed
    return _utc_now()


@dataclass
class DashboardState:
    snapshot: LiveMarketSnapshot = field(default_factory=LiveMarketSnapshot)
    selected: Stock | None = None
    # Generation of the latest explicit selection; quote responses carry the
    # value they were issued under.
    selection_token: int = 0
    period: Period = "1d"
    chart: list[ChartPoint] = field(default_factory=list)
    chart_updating: bool = False
    active_stats_exchange: Exchange = "NSE"
    loading: bool = True
    last_updated: datetime.datetime = field(default_factory=_utc_now)

    search_query: str = ""
    search_results: list[Stock] = field(default_factory=list)
    search_error: str | None = None
    # Uppercased query the current results answer.
    search_results_query: str = ""
    searching: bool = False

    disposed: bool = False

    @property
    def selected_key(self) -> str:
        return stock_key(self.selected) if self.selected is not None else ""

    def apply_snapshot(self, snapshot: LiveMarketSnapshot) -> bool:
        """Replace the market lists wholesale; return True if the selected key changed."""
        previous_key = self.selected_key
        self.snapshot = snapshot
        self.active_stats_exchange = resolve_stats_exchange(
            self.active_stats_exchange, snapshot.market_stats_by_exchange
        )
        self.last_updated = parse_timestamp(snapshot.timestamp)
        self.selected = resolve_selection(self.selected, snapshot)
        self.loading = False
        return self.selected_key != previous_key

    def active_market_stats(self) -> MarketStats:
        stats = self.snapshot.market_stats_by_exchange
        return (
            stats.get(self.active_stats_exchange)
            or stats.get("NSE")
            or stats.get("BSE")
            or _ZERO_STATS
        )

    def quick_search_pool(self) -> list[Stock]:
        return quick_search_pool(self.snapshot, self.selected)

    def touch(self) -> None:
        self.last_updated = _utc_now()
