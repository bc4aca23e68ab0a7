import asyncio

import pytest

from fakes import FakeMarketClient, make_stock, until
from marketdesk.cache import SearchCache
from marketdesk.schemas.market import (
    ExchangeSnapshot,
    IndicesResponse,
    LiveMarketSnapshot,
    MarketStats,
    QuoteData,
    QuoteResponse,
)
from marketdesk.session import DashboardSession

NIFTY = make_stock("^NSEI", name="NIFTY 50", price=22150.35)
TCS = make_stock("TCS", "TCS.NS", change_percent=2.0, name="Tata Consultancy Services", price=3500.0)
TCS_BSE = make_stock("TCS", "TCS.BO", change_percent=1.0, name="Tata Consultancy Services", price=3499.0)
NSE_STATS = MarketStats(today_high=22210.5, today_low=22010.0, advances=31, declines=19)


def build_session(client: FakeMarketClient) -> DashboardSession:
    return DashboardSession(
        client=client,
        cache=SearchCache(redis_url=""),
        stream_enabled=False,
        debounce_seconds=0,
    )


def seed_market(session: DashboardSession, *movers) -> None:
    session.state.apply_snapshot(
        LiveMarketSnapshot(
            indices=[NIFTY],
            gainers=list(movers),
            market_stats_by_exchange={"NSE": NSE_STATS},
        )
    )


def test_start_polls_and_selects_first_index() -> None:
    client = FakeMarketClient()
    client.indices["NSE"] = IndicesResponse(
        success=True,
        data=ExchangeSnapshot(exchange="NSE", indices=[NIFTY], gainers=[TCS], market_stats=NSE_STATS),
    )
    session = build_session(client)

    async def scenario():
        session.start()
        await session.feed.wait()
        await session.settle()

    asyncio.run(scenario())

    view = session.dashboard_view()
    assert view.feed_state == "fallback_poll"
    assert view.loading is False
    assert view.selected == NIFTY
    assert view.supports_exchange_toggle is False
    assert view.selected_price_label == "₹22,150.35"
    assert view.market_stats.exchange == "NSE"
    assert view.market_stats.today_high_label == "₹22,210.50"
    assert client.calls_of("history") == [("history", "^NSEI", "1d", "NSE")]


def test_select_symbol_resolves_known_company() -> None:
    client = FakeMarketClient()
    session = build_session(client)
    seed_market(session, TCS)

    async def scenario():
        session.select_symbol("tcs", "bse")
        await session.settle()

    asyncio.run(scenario())

    assert session.state.selected.yahoo_symbol == "TCS.BO"
    assert session.state.selected.name == "Tata Consultancy Services"
    assert client.calls_of("quote") == [("quote", "TCS.BO", "BSE")]


def test_repeated_link_request_is_ignored() -> None:
    client = FakeMarketClient()
    session = build_session(client)
    seed_market(session, TCS)

    async def scenario():
        first = session.select_symbol("TCS", "NSE")
        second = session.select_symbol(" tcs ", "nse")
        third = session.select_symbol("TCS", "BSE")
        await session.settle()
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first is not None
    assert second is None
    assert third is not None
    assert len(client.calls_of("quote")) == 2


def test_unknown_exchange_in_link_defaults_to_nse() -> None:
    client = FakeMarketClient()
    session = build_session(client)

    async def scenario():
        session.select_symbol("INFY", "nyse")
        await session.settle()

    asyncio.run(scenario())

    assert client.calls_of("quote") == [("quote", "INFY.NS", "NSE")]


def test_unknown_symbol_is_seeded_and_refreshed() -> None:
    client = FakeMarketClient()
    client.quotes["WIPRO.BO"] = QuoteResponse(
        success=True,
        data=QuoteData(symbol="WIPRO", yahoo_symbol="WIPRO.BO", name="Wipro", price=480.25),
    )
    session = build_session(client)

    async def scenario():
        session.select_symbol("wipro.bo", "BSE")
        await session.settle()

    asyncio.run(scenario())

    selected = session.state.selected
    assert selected.symbol == "WIPRO"
    assert selected.yahoo_symbol == "WIPRO.BO"
    assert selected.name == "Wipro"
    assert selected.price == 480.25


def test_resolve_symbol_prefers_exact_fetch_symbol() -> None:
    session = build_session(FakeMarketClient())
    seed_market(session, TCS, TCS_BSE)

    assert session.resolve_symbol("tcs.bo") == TCS_BSE
    assert session.resolve_symbol("TCS") == TCS
    assert session.resolve_symbol("HDFCBANK").name == "HDFCBANK"


def test_set_period_reloads_chart_once() -> None:
    client = FakeMarketClient()
    session = build_session(client)
    session.state.selected = TCS

    async def scenario():
        changed = session.set_period("1Y")
        unchanged = session.set_period("1y")
        await session.settle()
        return changed, unchanged

    changed, unchanged = asyncio.run(scenario())

    assert changed is not None
    assert unchanged is None
    assert session.state.period == "1y"
    assert client.calls_of("history") == [("history", "TCS.NS", "1y", "NSE")]
    with pytest.raises(ValueError):
        session.set_period("10y")


def test_set_active_stats_exchange() -> None:
    session = build_session(FakeMarketClient())
    seed_market(session)

    assert session.set_active_stats_exchange("bse") == "BSE"
    # No BSE breadth data yet, so the view falls back to NSE.
    assert session.dashboard_view().market_stats.stats == NSE_STATS
    with pytest.raises(ValueError):
        session.set_active_stats_exchange("LSE")


def test_dispose_is_idempotent_and_stops_work() -> None:
    client = FakeMarketClient()
    client.quote_gates["TCS.NS"] = asyncio.Event()
    session = build_session(client)

    async def scenario():
        session.select(TCS)
        await session.dispose()
        await session.dispose()
        return session.select(TCS)

    after = asyncio.run(scenario())

    assert after is None
    assert client.closed is True
    assert session.state.disposed is True
    assert session.dashboard_view().feed_state == "disposed"


def test_dispose_waits_for_cancelled_fetches_before_closing_client() -> None:
    client = FakeMarketClient()
    client.quote_gates["TCS.NS"] = asyncio.Event()
    session = build_session(client)

    async def scenario():
        session.select(TCS)
        await until(lambda: client.calls_of("quote"))
        await session.dispose()

    asyncio.run(scenario())

    assert client.calls.index(("quote-cancelled", "TCS.NS")) < client.calls.index(("aclose",))


def test_set_search_query_shows_instant_matches() -> None:
    client = FakeMarketClient()
    session = build_session(client)
    seed_market(session, TCS)

    async def scenario():
        session.set_search_query("tcs")
        view = session.search_view()
        await session.settle()
        return view

    view = asyncio.run(scenario())

    assert view.query == "tcs"
    assert view.status == "results"
    assert view.results == [TCS]
    assert client.calls_of("search") == [("search", "tcs", "NSE")]
