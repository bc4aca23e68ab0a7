from __future__ import annotations

import re
from collections.abc import Iterable
from typing import cast

from marketdesk.schemas.market import Exchange, Stock

EXCHANGE_SUFFIX_RE = re.compile(r"\.(NS|BO)$", re.IGNORECASE)

_SUFFIX_BY_EXCHANGE: dict[Exchange, str] = {"NSE": "NS", "BSE": "BO"}


def fetch_symbol(stock: Stock) -> str:
    return (stock.yahoo_symbol or stock.symbol).upper()


# The fetch symbol doubles as the identity of a stock across snapshots.
stock_key = fetch_symbol


def canonical(stock: Stock) -> str:
    symbol = fetch_symbol(stock)
    if EXCHANGE_SUFFIX_RE.search(symbol):
        return EXCHANGE_SUFFIX_RE.sub("", symbol)
    return stock.symbol.upper()


def exchange_of(stock: Stock) -> Exchange:
    return "BSE" if fetch_symbol(stock).endswith(".BO") else "NSE"


def _is_index_or_pair(symbol: str) -> bool:
    return symbol.startswith("^") or "=" in symbol


def supports_toggle(stock: Stock) -> bool:
    return not _is_index_or_pair(fetch_symbol(stock))


def with_exchange(stock: Stock, exchange: Exchange) -> str:
    symbol = fetch_symbol(stock)
    suffix = _SUFFIX_BY_EXCHANGE[exchange]

    if EXCHANGE_SUFFIX_RE.search(symbol):
        return EXCHANGE_SUFFIX_RE.sub(f".{suffix}", symbol)
    if _is_index_or_pair(symbol) or "." in symbol:
        return symbol
    return f"{symbol}.{suffix}"


def parse_exchange(value: str) -> Exchange:
    normalized = value.strip().upper()
    if normalized not in _SUFFIX_BY_EXCHANGE:
        raise ValueError(f"Unsupported exchange {value!r}; expected NSE or BSE")
    return cast(Exchange, normalized)


def seed_stock(symbol_input: str) -> Stock:
    yahoo_symbol = symbol_input.strip().upper()
    symbol = EXCHANGE_SUFFIX_RE.sub("", yahoo_symbol)
    return Stock(symbol=symbol, yahoo_symbol=yahoo_symbol, name=symbol, currency="INR")


def merge_unique_stocks(stocks: Iterable[Stock]) -> list[Stock]:
    unique: dict[str, Stock] = {}
    for stock in stocks:
        unique.setdefault(stock_key(stock), stock)
    return list(unique.values())


def merge_unique_by_company(stocks: Iterable[Stock]) -> list[Stock]:
    # Cross-exchange duplicates keep the variant with the larger move; the
    # survivor takes the slot of the first occurrence.
    unique: dict[str, Stock] = {}
    for stock in stocks:
        key = canonical(stock)
        existing = unique.get(key)
        if existing is None or abs(stock.change_percent) > abs(existing.change_percent):
            unique[key] = stock
    return list(unique.values())
