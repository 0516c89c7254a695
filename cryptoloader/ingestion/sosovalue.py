"""SosoValue aggregator provider implementation."""

from __future__ import annotations

from typing import List

import httpx

from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import CryptoDataSource, CryptoSymbol
from .base import CryptoDataProvider

log = get_logger("ingestion.sosovalue")

COIN_LIST_URL = "https://openapi.sosovalue.com/openapi/v1/data/default/coin/list"


class SosoValueProvider(CryptoDataProvider):
    """Coin list from the SosoValue open API.

    The payload names are misleading: ``currencyName`` carries the ticker and
    ``fullName`` the project name. No ranking is provided.
    """

    source = CryptoDataSource.SOSOVALUE

    def rate_limit_delay(self) -> int:
        return 500

    def requires_api_key(self) -> bool:
        return True

    async def fetch_symbols(self, client: httpx.AsyncClient) -> List[CryptoSymbol]:
        api_key = self._require_api_key()
        log.info("Fetching symbols from SosoValue")

        resp = await self._request(
            client,
            "POST",
            COIN_LIST_URL,
            json={},
            headers={"Content-Type": "application/json", "x-soso-api-key": api_key},
        )
        payload = self._parse_json(resp)
        if not isinstance(payload, dict) or "code" not in payload:
            raise self._malformed("expected an object with a code field", payload)

        if payload["code"] != 0:
            raise self._malformed(f"API Error: {payload.get('msg') or 'Unknown error'}", payload)

        data = payload.get("data")
        if not isinstance(data, list):
            raise self._malformed("No data field in response", payload)

        log.debug(f"SosoValue returned {len(data)} cryptocurrencies")

        symbols: List[CryptoSymbol] = []
        for crypto in self._entries(data):
            ticker = crypto.get("currencyName")
            currency_id = crypto.get("currencyId")
            if not ticker or currency_id is None:
                continue
            symbols.append(
                self._build_symbol(
                    symbol=ticker,
                    name=crypto.get("fullName") or ticker,
                    quote_currency="USD",
                    source=self.source,
                    source_id=str(currency_id),
                    is_active=True,
                    additional_data={
                        k: v for k, v in crypto.items() if k not in ("currencyId", "currencyName", "fullName")
                    },
                )
            )

        log.info(f"Successfully processed {len(symbols)} symbols from SosoValue")
        return symbols
