from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, Field

from marketdesk.schemas.market import Exchange, MarketStats, Stock

FeedStateName = Literal["connecting", "streaming", "fallback_poll", "disconnected", "disposed"]
SearchStatusName = Literal["idle", "searching", "results", "empty", "unavailable", "superseded"]


class ChartView(BaseModel):
    label: str
    period: str
    labels: list[str] = Field(default_factory=list)
    prices: list[float] = Field(default_factory=list)
    updating: bool = False
    empty: bool = True


class SearchView(BaseModel):
    query: str
    status: SearchStatusName
    results: list[Stock] = Field(default_factory=list)
    error: str | None = None
    searching: bool = False


class StatsView(BaseModel):
    exchange: Exchange
    available: list[Exchange] = Field(default_factory=list)
    stats: MarketStats
    today_high_label: str
    today_low_label: str


class DashboardView(BaseModel):
    feed_state: FeedStateName
    loading: bool
    last_updated: datetime.datetime
    indices: list[Stock] = Field(default_factory=list)
    gainers: list[Stock] = Field(default_factory=list)
    losers: list[Stock] = Field(default_factory=list)
    market_stats: StatsView
    selected: Stock | None = None
    selected_exchange: Exchange | None = None
    selected_price_label: str | None = None
    supports_exchange_toggle: bool = False
    period: str


class SelectRequest(BaseModel):
    symbol: str
    exchange: str = "NSE"


class PeriodRequest(BaseModel):
    period: str


class StatsExchangeRequest(BaseModel):
    exchange: str
