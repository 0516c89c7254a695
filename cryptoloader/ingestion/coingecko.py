"""CoinGecko provider implementation."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Tuple

import httpx

from cryptoloader.core.errors import CryptoLoaderError
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import UNRANKED_PRIORITY, CryptoDataSource, CryptoSymbol
from .base import CryptoDataProvider

log = get_logger("ingestion.coingecko")

PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"
PUBLIC_BASE_URL = "https://api.coingecko.com/api/v3"


def coingecko_endpoint(api_key: str) -> Tuple[str, str]:
    """Pick base URL and auth query parameter from the key flavour (pro keys start with CG-)."""
    if api_key.startswith("CG-"):
        return PRO_BASE_URL, "x_cg_pro_api_key"
    return PUBLIC_BASE_URL, "x_cg_demo_api_key"


class CoinGeckoProvider(CryptoDataProvider):
    """Complete CoinGecko coin universe, ranked from /coins/markets where available."""

    source = CryptoDataSource.COINGECKO
    PAGE_SIZE = 250

    def __init__(self, api_key: str | None = None, ranking_pages: int = 20, page_delay_ms: int = 1000):
        super().__init__(api_key)
        self.ranking_pages = ranking_pages
        self.page_delay_ms = page_delay_ms

    def rate_limit_delay(self) -> int:
        return 2000

    def requires_api_key(self) -> bool:
        return True

    async def fetch_symbols(self, client: httpx.AsyncClient) -> List[CryptoSymbol]:
        api_key = self._require_api_key()
        base_url, auth_param = coingecko_endpoint(api_key)
        log.info("Fetching complete symbol universe from CoinGecko with rankings")

        coins = await self._fetch_coins_list(client, base_url, auth_param, api_key)
        rankings = await self._build_rankings_map(client, base_url, auth_param, api_key)

        symbols: List[CryptoSymbol] = []
        for coin in self._entries(coins):
            coin_id = coin.get("id")
            ticker = coin.get("symbol")
            if not coin_id or not ticker:
                continue
            rank = rankings.get(coin_id)
            symbols.append(
                self._build_symbol(
                    symbol=ticker,
                    name=coin.get("name") or ticker,
                    quote_currency="USD",
                    market_cap_rank=rank,
                    priority=rank or UNRANKED_PRIORITY,
                    source=self.source,
                    source_id=coin_id,
                    is_active=True,
                    additional_data={k: v for k, v in coin.items() if k not in ("id", "symbol", "name")},
                )
            )

        ranked = sum(1 for s in symbols if s.market_cap_rank is not None)
        log.info(f"Processed {len(symbols)} CoinGecko symbols ({ranked} with rankings, {len(symbols) - ranked} without)")
        return symbols

    async def _fetch_coins_list(
        self, client: httpx.AsyncClient, base_url: str, auth_param: str, api_key: str
    ) -> List[Dict[str, Any]]:
        resp = await self._request(
            client,
            "GET",
            f"{base_url}/coins/list",
            params={auth_param: api_key},
            headers={"accept": "application/json"},
        )
        data = self._parse_json(resp)
        if not isinstance(data, list):
            raise self._malformed("expected a list from /coins/list", data)
        log.info(f"Fetched {len(data)} total coins from CoinGecko /coins/list")
        return data

    async def _build_rankings_map(
        self, client: httpx.AsyncClient, base_url: str, auth_param: str, api_key: str
    ) -> Dict[str, int]:
        rankings: Dict[str, int] = {}
        for page in range(1, self.ranking_pages + 1):
            if page > 1 and self.page_delay_ms:
                await asyncio.sleep(self.page_delay_ms / 1000)
            try:
                resp = await self._request(
                    client,
                    "GET",
                    f"{base_url}/coins/markets",
                    params={
                        auth_param: api_key,
                        "vs_currency": "usd",
                        "order": "market_cap_desc",
                        "per_page": self.PAGE_SIZE,
                        "page": page,
                        "sparkline": "false",
                    },
                    headers={"accept": "application/json"},
                )
                batch = self._parse_json(resp)
            except CryptoLoaderError as exc:
                # Rankings are an enrichment; keep whatever pages we already have.
                log.warning(f"Failed to fetch CoinGecko rankings page {page}: {exc}")
                break

            if not isinstance(batch, list) or not batch:
                log.debug(f"Rankings page {page} returned no results, stopping pagination")
                break

            for coin in self._entries(batch):
                rank = coin.get("market_cap_rank")
                if coin.get("id") and rank:
                    rankings[coin["id"]] = int(rank)

            if len(batch) < self.PAGE_SIZE:
                break

        log.info(f"Built CoinGecko rankings map with {len(rankings)} entries")
        return rankings
