from __future__ import annotations

import datetime

from marketdesk.config.settings import settings
from marketdesk.schemas.market import (
    Exchange,
    ExchangeSnapshot,
    LiveMarketSnapshot,
    MarketStats,
)
from marketdesk.symbols import merge_unique_by_company, merge_unique_stocks

_EMPTY_SNAPSHOT = ExchangeSnapshot()


def _utc_now_iso() -> str:
    return datetime.datetime.now(tz=datetime.UTC).isoformat()


def combine_snapshots(
    nse: ExchangeSnapshot | None = None,
    bse: ExchangeSnapshot | None = None,
    limit: int | None = None,
) -> LiveMarketSnapshot:
    nse = nse or _EMPTY_SNAPSHOT
    bse = bse or _EMPTY_SNAPSHOT
    limit = settings.momentum_limit if limit is None else limit

    stats: dict[Exchange, MarketStats] = {}
    if nse.market_stats is not None:
        stats["NSE"] = nse.market_stats
    if bse.market_stats is not None:
        stats["BSE"] = bse.market_stats

    indices = merge_unique_stocks([*nse.indices, *bse.indices])
    universe = merge_unique_by_company(
        [*nse.gainers, *nse.losers, *bse.gainers, *bse.losers]
    )

    # sorted() is stable, so equal moves keep their universe order.
    gainers = sorted(
        (stock for stock in universe if stock.change_percent >= 0),
        key=lambda stock: stock.change_percent,
        reverse=True,
    )[:limit]
    losers = sorted(
        (stock for stock in universe if stock.change_percent < 0),
        key=lambda stock: stock.change_percent,
    )[:limit]

    return LiveMarketSnapshot(
        indices=indices,
        gainers=gainers,
        losers=losers,
        market_stats_by_exchange=stats,
        timestamp=nse.timestamp or bse.timestamp or _utc_now_iso(),
    )
