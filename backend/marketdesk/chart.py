from __future__ import annotations

import asyncio
import logging
from typing import cast

from marketdesk.exceptions import MalformedResponse, NetworkUnavailable
from marketdesk.providers.market_api import MarketApiClient
from marketdesk.schemas.dashboard import ChartView
from marketdesk.schemas.market import PERIODS, Exchange, Period, Stock
from marketdesk.state import DashboardState
from marketdesk.symbols import canonical, stock_key

logger = logging.getLogger(__name__)

INTRADAY_PERIOD: Period = "1d"

_CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


def validate_period(value: str) -> Period:
    period = value.strip().lower()
    if period not in PERIODS:
        raise ValueError(f"Unsupported period {value!r}; expected one of {', '.join(PERIODS)}")
    return cast(Period, period)


def history_exchange(stock: Stock) -> Exchange:
    return "BSE" if stock_key(stock).endswith(".BO") else "NSE"


def history_key(stock: Stock, period: Period) -> tuple[str, Period, Exchange]:
    return canonical(stock), period, history_exchange(stock)


def _group_indian(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups: list[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join([*groups, tail])


def format_price(value: float, currency: str = "INR") -> str:
    code = (currency or "INR").upper()
    whole, fraction = f"{abs(value):.2f}".split(".")
    grouped = _group_indian(whole) if code == "INR" else f"{int(whole):,}"
    sign = "-" if value < 0 and float(f"{abs(value):.2f}") != 0 else ""
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{sign}{code} {grouped}.{fraction}"
    return f"{sign}{symbol}{grouped}.{fraction}"


class ChartDataAdapter:
    def __init__(self, state: DashboardState, client: MarketApiClient) -> None:
        self._state = state
        self._client = client
        self._task: asyncio.Task[None] | None = None

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def clear(self) -> None:
        self._state.chart = []

    def load(self) -> asyncio.Task[None] | None:
        state = self._state
        if state.disposed:
            return None
        self._cancel_pending()
        state.chart = []
        if state.selected is None:
            state.chart_updating = False
            return None
        self._task = asyncio.create_task(self._fetch(state.selected, state.period))
        return self._task

    async def settle(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def dispose(self) -> list[asyncio.Task[None]]:
        task = self._task
        self._cancel_pending()
        return [task] if task is not None else []

    async def _fetch(self, stock: Stock, period: Period) -> None:
        state = self._state
        requested = history_key(stock, period)
        symbol = stock_key(stock)
        state.chart_updating = True
        try:
            response = await self._client.fetch_history(symbol, period, requested[2])
        except (NetworkUnavailable, MalformedResponse) as exc:
            logger.warning(f"History fetch for {symbol} ({period}) failed: {exc}")
            return
        finally:
            if not state.disposed:
                state.chart_updating = False

        if state.disposed:
            return
        if state.selected is None or history_key(state.selected, state.period) != requested:
            logger.debug(f"Dropping superseded history for {symbol} ({period})")
            return
        if response.success and response.data is not None:
            state.chart = list(response.data.prices)

    def chart_view(self) -> ChartView:
        state = self._state
        points = state.chart
        if state.period == INTRADAY_PERIOD:
            labels = [point.time for point in points]
        else:
            labels = [point.date for point in points]
        name = state.selected.name if state.selected is not None else ""
        return ChartView(
            label=f"{name} Price",
            period=state.period,
            labels=labels,
            prices=[point.price for point in points],
            updating=state.chart_updating,
            empty=not points,
        )
