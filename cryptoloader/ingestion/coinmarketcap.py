"""CoinMarketCap provider implementation."""

from __future__ import annotations

from typing import Any, Dict, List

import httpx

from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import UNRANKED_PRIORITY, CryptoDataSource, CryptoSymbol
from .base import CryptoDataProvider

log = get_logger("ingestion.coinmarketcap")

LISTINGS_URL = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/listings/latest"

# Fields kept from the listing payload for later enrichment.
ENRICHMENT_FIELDS = ("slug", "tags", "num_market_pairs", "date_added", "platform")


class CoinMarketCapProvider(CryptoDataProvider):
    """Latest listings from the CoinMarketCap pro API."""

    source = CryptoDataSource.COINMARKETCAP
    LISTING_LIMIT = 5000

    def rate_limit_delay(self) -> int:
        return 300

    def requires_api_key(self) -> bool:
        return True

    async def fetch_symbols(self, client: httpx.AsyncClient) -> List[CryptoSymbol]:
        api_key = self._require_api_key()
        log.info("Fetching symbols from CoinMarketCap")

        resp = await self._request(
            client,
            "GET",
            LISTINGS_URL,
            params={"start": 1, "limit": self.LISTING_LIMIT, "convert": "USD"},
            headers={"X-CMC_PRO_API_KEY": api_key, "Accept": "application/json"},
        )
        payload = self._parse_json(resp)
        if not isinstance(payload, dict):
            raise self._malformed("expected a JSON object", payload)

        status: Dict[str, Any] = payload.get("status") or {}
        if status.get("error_code", 0) != 0:
            raise self._malformed(status.get("error_message") or "Unknown CMC error", status)

        data = payload.get("data")
        if not isinstance(data, list):
            raise self._malformed("expected a data list", payload)

        log.debug(f"CoinMarketCap returned {len(data)} cryptocurrencies")

        symbols: List[CryptoSymbol] = []
        for crypto in self._entries(data):
            if crypto.get("id") is None or not crypto.get("symbol"):
                continue
            rank = crypto.get("cmc_rank")
            symbol = self._build_symbol(
                symbol=crypto["symbol"],
                name=crypto.get("name") or crypto["symbol"],
                quote_currency="USD",
                market_cap_rank=rank,
                source=self.source,
                source_id=str(crypto["id"]),
                is_active=crypto.get("is_active", 1) == 1,
                additional_data={k: crypto[k] for k in ENRICHMENT_FIELDS if crypto.get(k) is not None},
            )
            symbol.priority = symbol.market_cap_rank or UNRANKED_PRIORITY
            symbols.append(symbol)

        log.info(f"Successfully processed {len(symbols)} symbols from CoinMarketCap")
        return symbols
