import datetime

from fakes import make_stock
from marketdesk.combiner import combine_snapshots
from marketdesk.schemas.market import ExchangeSnapshot, MarketStats


def build_snapshot(exchange, gainers=(), losers=(), indices=(), stats=None, timestamp=""):
    return ExchangeSnapshot(
        exchange=exchange,
        indices=list(indices),
        gainers=list(gainers),
        losers=list(losers),
        market_stats=stats,
        timestamp=timestamp,
    )


def test_momentum_lists_are_capped_sorted_and_signed() -> None:
    nse_gainers = [make_stock(f"G{i}", f"G{i}.NS", change_percent=float(i)) for i in range(1, 5)]
    nse_losers = [make_stock(f"L{i}", f"L{i}.NS", change_percent=-float(i)) for i in range(1, 5)]
    bse_gainers = [make_stock(f"BG{i}", f"BG{i}.BO", change_percent=i + 0.5) for i in range(1, 4)]
    bse_losers = [make_stock(f"BL{i}", f"BL{i}.BO", change_percent=-i - 0.5) for i in range(1, 4)]

    combined = combine_snapshots(
        build_snapshot("NSE", nse_gainers, nse_losers),
        build_snapshot("BSE", bse_gainers, bse_losers),
        limit=5,
    )

    assert len(combined.gainers) == 5
    assert len(combined.losers) == 5
    assert all(stock.change_percent >= 0 for stock in combined.gainers)
    assert all(stock.change_percent < 0 for stock in combined.losers)
    gainer_moves = [stock.change_percent for stock in combined.gainers]
    loser_moves = [stock.change_percent for stock in combined.losers]
    assert gainer_moves == sorted(gainer_moves, reverse=True)
    assert loser_moves == sorted(loser_moves)
    assert gainer_moves[0] == 4.0
    assert loser_moves[0] == -4.0


def test_cross_exchange_duplicate_keeps_larger_absolute_move() -> None:
    up = make_stock("TCS", "TCS.NS", change_percent=5.0)
    down = make_stock("TCS", "TCS.BO", change_percent=-8.0)

    combined = combine_snapshots(
        build_snapshot("NSE", gainers=[up]),
        build_snapshot("BSE", losers=[down]),
    )

    assert combined.gainers == []
    assert combined.losers == [down]


def test_unchanged_stock_counts_as_gainer() -> None:
    flat = make_stock("ITC", "ITC.NS", change_percent=0.0)

    combined = combine_snapshots(build_snapshot("NSE", gainers=[flat]))

    assert combined.gainers == [flat]
    assert combined.losers == []


def test_equal_moves_keep_universe_order() -> None:
    first = make_stock("AAA", "AAA.NS", change_percent=2.0)
    second = make_stock("BBB", "BBB.BO", change_percent=2.0)

    combined = combine_snapshots(
        build_snapshot("NSE", gainers=[first]),
        build_snapshot("BSE", gainers=[second]),
    )

    assert combined.gainers == [first, second]


def test_indices_union_keeps_first_occurrence() -> None:
    nifty = make_stock("^NSEI", price=22000.0)
    sensex_nse = make_stock("^BSESN", price=73000.0)
    sensex_bse = make_stock("^BSESN", price=1.0)

    combined = combine_snapshots(
        build_snapshot("NSE", indices=[nifty, sensex_nse]),
        build_snapshot("BSE", indices=[sensex_bse]),
    )

    assert combined.indices == [nifty, sensex_nse]


def test_market_stats_pass_through_unchanged() -> None:
    nse_stats = MarketStats(today_high=22100.5, today_low=21900.25, advances=1200, declines=800)
    bse_stats = MarketStats(today_high=73000.0, today_low=72500.0, advances=2000, declines=1500)

    combined = combine_snapshots(
        build_snapshot("NSE", stats=nse_stats),
        build_snapshot("BSE", stats=bse_stats),
    )

    assert combined.market_stats_by_exchange == {"NSE": nse_stats, "BSE": bse_stats}


def test_missing_stats_are_omitted_not_zeroed() -> None:
    nse_stats = MarketStats(today_high=10.0, today_low=9.0)

    combined = combine_snapshots(build_snapshot("NSE", stats=nse_stats), build_snapshot("BSE"))

    assert combined.market_stats_by_exchange == {"NSE": nse_stats}


def test_missing_snapshot_is_treated_as_empty() -> None:
    loser = make_stock("SBIN", "SBIN.BO", change_percent=-1.5)

    combined = combine_snapshots(None, build_snapshot("BSE", losers=[loser], timestamp="t-bse"))

    assert combined.losers == [loser]
    assert combined.gainers == []
    assert combined.timestamp == "t-bse"


def test_timestamp_prefers_nse() -> None:
    combined = combine_snapshots(
        build_snapshot("NSE", timestamp="2026-01-05T09:15:00+05:30"),
        build_snapshot("BSE", timestamp="2026-01-05T09:16:00+05:30"),
    )

    assert combined.timestamp == "2026-01-05T09:15:00+05:30"


def test_timestamp_defaults_to_now_without_inputs() -> None:
    before = datetime.datetime.now(tz=datetime.UTC)

    combined = combine_snapshots()

    stamped = datetime.datetime.fromisoformat(combined.timestamp)
    assert stamped >= before
    assert combined.indices == []
    assert combined.market_stats_by_exchange == {}
