from cryptoloader.models.base import Base
from cryptoloader.models.symbols import CRYPTO_SEC_TYPE, Symbol
from cryptoloader.models.api_map import CryptoApiMap
from cryptoloader.models.runs import ETLRun

__all__ = [
    "Base",
    "CRYPTO_SEC_TYPE",
    "Symbol",
    "CryptoApiMap",
    "ETLRun",
]
