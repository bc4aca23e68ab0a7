from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Exchange = Literal["NSE", "BSE"]
Period = Literal["1d", "1m", "3m", "1y", "3y"]

EXCHANGES: tuple[Exchange, ...] = ("NSE", "BSE")
PERIODS: tuple[Period, ...] = ("1d", "1m", "3m", "1y", "3y")


class MarketModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Stock(MarketModel):
    symbol: str
    yahoo_symbol: str | None = None
    name: str = ""
    price: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    currency: str = "INR"


class MarketStats(MarketModel):
    today_high: float = 0.0
    today_low: float = 0.0
    advances: int = 0
    declines: int = 0
    unchanged: int = 0


class ExchangeSnapshot(MarketModel):
    exchange: Exchange | None = None
    indices: list[Stock] = Field(default_factory=list)
    gainers: list[Stock] = Field(default_factory=list)
    losers: list[Stock] = Field(default_factory=list)
    # Absent means the exchange reported no breadth data, not zero counts.
    market_stats: MarketStats | None = None
    timestamp: str = ""


class LiveMarketSnapshot(MarketModel):
    indices: list[Stock] = Field(default_factory=list)
    gainers: list[Stock] = Field(default_factory=list)
    losers: list[Stock] = Field(default_factory=list)
    market_stats_by_exchange: dict[Exchange, MarketStats] = Field(default_factory=dict)
    timestamp: str = ""


class ChartPoint(MarketModel):
    date: str = ""
    time: str = ""
    price: float
    volume: float = 0.0


class QuoteData(Stock):
    exchange: Exchange | None = None
    timestamp: str = ""


class HistoryData(MarketModel):
    symbol: str = ""
    exchange: Exchange | None = None
    period: str = ""
    prices: list[ChartPoint] = Field(default_factory=list)
    timestamp: str = ""


class SearchData(MarketModel):
    query: str = ""
    exchange: Exchange | None = None
    results: list[Stock] = Field(default_factory=list)
    timestamp: str = ""


class IndicesResponse(MarketModel):
    success: bool = False
    data: ExchangeSnapshot | None = None


class QuoteResponse(MarketModel):
    success: bool = False
    data: QuoteData | None = None


class HistoryResponse(MarketModel):
    success: bool = False
    data: HistoryData | None = None


class SearchResponse(MarketModel):
    success: bool = False
    data: SearchData | None = None
    error: str | None = None


class SearchCacheEntry(MarketModel):
    results: list[Stock] = Field(default_factory=list)
    fetched_at: float
