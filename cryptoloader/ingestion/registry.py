"""Builds the active provider set from configuration."""

from __future__ import annotations

from typing import Dict, Type

from cryptoloader.schemas.crypto import CryptoDataSource, CryptoLoaderConfig
from .base import CryptoDataProvider
from .coincap import CoinCapProvider
from .coingecko import CoinGeckoProvider
from .coinmarketcap import CoinMarketCapProvider
from .coinpaprika import CoinPaprikaProvider
from .sosovalue import SosoValueProvider

PROVIDER_CLASSES: Dict[CryptoDataSource, Type[CryptoDataProvider]] = {
    CryptoDataSource.COINGECKO: CoinGeckoProvider,
    CryptoDataSource.COINPAPRIKA: CoinPaprikaProvider,
    CryptoDataSource.COINCAP: CoinCapProvider,
    CryptoDataSource.COINMARKETCAP: CoinMarketCapProvider,
    CryptoDataSource.SOSOVALUE: SosoValueProvider,
}


def build_providers(config: CryptoLoaderConfig) -> Dict[CryptoDataSource, CryptoDataProvider]:
    """One provider per enabled source, in configured order.

    Keyed providers are built even without a key so the run reports
    ApiKeyMissing for them instead of silently skipping the source.
    """
    return {source: PROVIDER_CLASSES[source](api_key=config.api_keys.get(source)) for source in config.sources}
