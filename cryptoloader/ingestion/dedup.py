"""Priority-based reconciliation of symbols reported by several providers."""

from __future__ import annotations

from typing import Dict, Iterable, List

from cryptoloader.schemas.crypto import CryptoDataSource, CryptoSymbol

# Higher wins when two providers report the same ticker.
SOURCE_PRIORITY: Dict[CryptoDataSource, int] = {
    CryptoDataSource.COINGECKO: 4,
    CryptoDataSource.COINPAPRIKA: 3,
    CryptoDataSource.COINCAP: 2,
    CryptoDataSource.SOSOVALUE: 1,
    CryptoDataSource.COINMARKETCAP: 0,
}


def source_priority(source: CryptoDataSource) -> int:
    return SOURCE_PRIORITY.get(source, -1)


def deduplicate(symbols: Iterable[CryptoSymbol]) -> List[CryptoSymbol]:
    """Keep one record per ticker, preferring the highest-priority source.

    Records from the same source replace each other (last write wins). The
    result is ordered by the first appearance of each ticker in the input.
    """
    best: Dict[str, CryptoSymbol] = {}
    for record in symbols:
        key = record.symbol.upper()
        current = best.get(key)
        if current is None or source_priority(record.source) >= source_priority(current.source):
            best[key] = record
    return list(best.values())
