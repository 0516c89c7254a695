"""CoinCap provider implementation (paginated)."""

from __future__ import annotations

import asyncio
from typing import List

import httpx

from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import UNRANKED_PRIORITY, CryptoDataSource, CryptoSymbol
from .base import CryptoDataProvider

log = get_logger("ingestion.coincap")

ASSETS_URL = "https://api.coincap.io/v2/assets"


class CoinCapProvider(CryptoDataProvider):
    """CoinCap assets, fetched page by page until a short page comes back."""

    source = CryptoDataSource.COINCAP
    PAGE_SIZE = 2000

    def rate_limit_delay(self) -> int:
        return 200

    async def fetch_symbols(self, client: httpx.AsyncClient) -> List[CryptoSymbol]:
        log.info("Fetching symbols from CoinCap")
        all_symbols: List[CryptoSymbol] = []
        offset = 0

        while True:
            resp = await self._request(client, "GET", ASSETS_URL, params={"limit": self.PAGE_SIZE, "offset": offset})
            payload = self._parse_json(resp)
            if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
                raise self._malformed("expected an object with a data list", payload)

            page = payload["data"]
            log.debug(f"CoinCap returned {len(page)} assets at offset {offset}")

            for asset in self._entries(page):
                if not asset.get("id") or not asset.get("symbol"):
                    continue
                rank = asset.get("rank")
                symbol = self._build_symbol(
                    symbol=asset["symbol"],
                    name=asset.get("name") or asset["symbol"],
                    quote_currency="USD",
                    market_cap_rank=rank,
                    source=self.source,
                    source_id=asset["id"],
                    is_active=True,
                    additional_data={k: v for k, v in asset.items() if k not in ("id", "symbol", "name", "rank")},
                )
                symbol.priority = symbol.market_cap_rank or UNRANKED_PRIORITY
                all_symbols.append(symbol)

            if len(page) < self.PAGE_SIZE:
                break

            offset += self.PAGE_SIZE
            await asyncio.sleep(self.rate_limit_delay() / 1000)

        log.info(f"Successfully processed {len(all_symbols)} symbols from CoinCap")
        return all_symbols
