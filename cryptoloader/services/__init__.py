# Services package
from cryptoloader.services.batch_processor import BatchConfig, BatchProcessor, BatchResult, create_batches
from cryptoloader.services.data_service import DataService
from cryptoloader.services.etl_service import ETLService
from cryptoloader.services.mapping_repository import MappingRepository, SqlMappingRepository, SymbolRef
from cryptoloader.services.mapping_service import CryptoMappingService
from cryptoloader.services.symbol_repository import SymbolRepository

__all__ = [
    "BatchConfig",
    "BatchProcessor",
    "BatchResult",
    "create_batches",
    "DataService",
    "ETLService",
    "MappingRepository",
    "SqlMappingRepository",
    "SymbolRef",
    "CryptoMappingService",
    "SymbolRepository",
]
