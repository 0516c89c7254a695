"""CoinPaprika provider implementation."""

from __future__ import annotations

from typing import List

import httpx

from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import UNRANKED_PRIORITY, CryptoDataSource, CryptoSymbol
from .base import CryptoDataProvider

log = get_logger("ingestion.coinpaprika")

COINS_URL = "https://api.coinpaprika.com/v1/coins"


class CoinPaprikaProvider(CryptoDataProvider):
    """Active coins from CoinPaprika's public coin list."""

    source = CryptoDataSource.COINPAPRIKA

    def rate_limit_delay(self) -> int:
        return 500

    async def fetch_symbols(self, client: httpx.AsyncClient) -> List[CryptoSymbol]:
        log.info("Fetching symbols from CoinPaprika")
        resp = await self._request(client, "GET", COINS_URL)
        data = self._parse_json(resp)
        if not isinstance(data, list):
            raise self._malformed("expected a list of coins", data)

        log.debug(f"CoinPaprika returned {len(data)} coins")

        symbols: List[CryptoSymbol] = []
        for item in self._entries(data):
            if not item.get("is_active"):
                continue
            if not item.get("id") or not item.get("symbol"):
                continue
            symbol = self._build_symbol(
                symbol=item["symbol"],
                name=item.get("name") or item["symbol"],
                quote_currency="USD",
                market_cap_rank=item.get("rank"),
                source=self.source,
                source_id=item["id"],
                is_active=True,
                additional_data={
                    k: v for k, v in item.items() if k not in ("id", "symbol", "name", "rank", "is_active")
                },
            )
            symbol.priority = symbol.market_cap_rank or UNRANKED_PRIORITY
            symbols.append(symbol)

        log.info(f"Successfully processed {len(symbols)} active symbols from CoinPaprika")
        return symbols
