"""Live lookup of a provider's coin id by ticker.

Both functions scan the provider's full coin listing for an exact symbol
match and return the FIRST match in listing order. Only the query ticker is
normalized (lower case for CoinGecko, upper case for CoinPaprika) to the case
each listing uses; listing symbols are compared as served, so an entry in the
other case is not matched. Entries that are not JSON objects are skipped.
Listings do contain duplicate tickers (several "ETH" bridges, for example);
no attempt is made to pick the "right" one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from cryptoloader.core.errors import InvalidResponse, RateLimitExceeded, RequestFailed
from cryptoloader.core.logging import get_logger
from cryptoloader.ingestion.coingecko import PUBLIC_BASE_URL, coingecko_endpoint
from cryptoloader.ingestion.coinpaprika import COINS_URL as COINPAPRIKA_COINS_URL

log = get_logger("discovery")


@dataclass(frozen=True)
class DiscoveredMapping:
    api_id: str
    api_slug: Optional[str] = None
    api_symbol: Optional[str] = None


async def _get_listing(
    client: httpx.AsyncClient, source: str, url: str, params: Optional[Dict[str, Any]] = None
) -> List[Dict[str, Any]]:
    try:
        resp = await client.get(url, params=params)
    except httpx.HTTPError as exc:
        raise RequestFailed(source, f"{type(exc).__name__}: {exc}") from exc

    if resp.status_code == 429:
        raise RateLimitExceeded(source)
    if not resp.is_success:
        raise InvalidResponse(source, f"{source} HTTP {resp.status_code}", status_code=resp.status_code)

    try:
        data = resp.json()
    except ValueError as exc:
        raise InvalidResponse(source, f"Invalid JSON response: {exc}") from exc
    if not isinstance(data, list):
        raise InvalidResponse(source, "expected a JSON array of coins")
    return data


async def discover_coingecko_id(
    client: httpx.AsyncClient, symbol: str, api_key: Optional[str] = None
) -> Optional[DiscoveredMapping]:
    if api_key:
        base_url, auth_param = coingecko_endpoint(api_key)
        params = {auth_param: api_key}
    else:
        base_url, params = PUBLIC_BASE_URL, None

    coins = await _get_listing(client, "CoinGecko", f"{base_url}/coins/list", params)
    wanted = symbol.lower()
    for coin in coins:
        if not isinstance(coin, dict):
            continue
        coin_id = coin.get("id")
        if coin_id and coin.get("symbol") == wanted:
            return DiscoveredMapping(api_id=coin_id, api_slug=coin_id, api_symbol=coin.get("symbol"))
    return None


async def discover_coinpaprika_id(client: httpx.AsyncClient, symbol: str) -> Optional[DiscoveredMapping]:
    coins = await _get_listing(client, "CoinPaprika", COINPAPRIKA_COINS_URL)
    wanted = symbol.upper()
    for coin in coins:
        if not isinstance(coin, dict):
            continue
        coin_id = coin.get("id")
        if coin_id and coin.get("symbol") == wanted:
            return DiscoveredMapping(api_id=coin_id, api_symbol=coin.get("symbol"))
    return None
