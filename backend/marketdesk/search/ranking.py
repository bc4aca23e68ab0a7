from __future__ import annotations

from collections.abc import Iterable

from marketdesk.config.settings import settings
from marketdesk.schemas.market import Stock
from marketdesk.symbols import canonical, fetch_symbol, merge_unique_by_company

EXACT_MATCH_SCORE = 1000

# (starts-with, contains) weights per field.
CANONICAL_WEIGHTS = (360, 200)
FETCH_SYMBOL_WEIGHTS = (220, 120)
NAME_WEIGHTS = (150, 90)


def _field_score(value: str, query: str, weights: tuple[int, int]) -> int:
    if value.startswith(query):
        return weights[0]
    if query in value:
        return weights[1]
    return 0


def score(stock: Stock, query: str) -> int:
    normalized = query.upper()
    base_symbol = canonical(stock)
    yahoo_symbol = fetch_symbol(stock)

    if normalized in (base_symbol, yahoo_symbol):
        return EXACT_MATCH_SCORE

    return (
        _field_score(base_symbol, normalized, CANONICAL_WEIGHTS)
        + _field_score(yahoo_symbol, normalized, FETCH_SYMBOL_WEIGHTS)
        + _field_score(stock.name.upper(), normalized, NAME_WEIGHTS)
    )


def find_instant_matches(
    pool: Iterable[Stock],
    query: str,
    limit: int | None = None,
    min_length: int | None = None,
) -> list[Stock]:
    limit = settings.search.result_limit if limit is None else limit
    min_length = settings.search.min_query_length if min_length is None else min_length
    normalized = query.strip().upper()
    if len(normalized) < min_length:
        return []

    scored = [(stock, score(stock, normalized)) for stock in merge_unique_by_company(pool)]
    ranked = sorted(
        (item for item in scored if item[1] > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    return [stock for stock, _ in ranked[:limit]]
