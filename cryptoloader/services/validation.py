"""Pre-persistence checks on fetched symbol records."""

from __future__ import annotations

from cryptoloader.core.errors import InvalidSymbol
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import UNRANKED_PRIORITY, CryptoSymbol

log = get_logger("validation")

MAX_SYMBOL_LENGTH = 20
MAX_NAME_LENGTH = 255


async def validate_symbol(symbol: CryptoSymbol) -> CryptoSymbol:
    """Enforce column limits of the symbols table and stamp the priority.

    Async so it can be passed straight to BatchProcessor.process_batches.
    """
    if not symbol.symbol:
        raise InvalidSymbol(f"Empty symbol from {symbol.source.value} (id={symbol.source_id})", str(symbol.source))
    if not symbol.name or not symbol.name.strip():
        raise InvalidSymbol(f"Empty name for {symbol.symbol}", str(symbol.source))
    if len(symbol.symbol) > MAX_SYMBOL_LENGTH:
        raise InvalidSymbol(
            f"Symbol too long ({len(symbol.symbol)} > {MAX_SYMBOL_LENGTH}): {symbol.symbol}", str(symbol.source)
        )

    updates = {"priority": symbol.market_cap_rank or UNRANKED_PRIORITY}
    if len(symbol.name) > MAX_NAME_LENGTH:
        log.warning(f"Truncating name for {symbol.symbol} ({len(symbol.name)} chars)")
        updates["name"] = symbol.name[:MAX_NAME_LENGTH]

    return symbol.model_copy(update=updates)
