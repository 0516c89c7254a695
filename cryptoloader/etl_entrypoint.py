"""ETL entrypoint - Standalone script for running symbol and mapping jobs.

Usage:
    python -m cryptoloader.etl_entrypoint symbols                      # All configured sources
    python -m cryptoloader.etl_entrypoint symbols coingecko coincap    # Subset
    python -m cryptoloader.etl_entrypoint preview coinpaprika --limit 10
    python -m cryptoloader.etl_entrypoint mappings discover coingecko
    python -m cryptoloader.etl_entrypoint mappings init BTC ETH SOL --source coinpaprika
    python -m cryptoloader.etl_entrypoint mappings stats
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from cryptoloader.core.db import SessionLocal
from cryptoloader.core.errors import CryptoLoaderError
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import CryptoDataSource
from cryptoloader.services.etl_service import ETLService

logger = get_logger("etl_entrypoint")

SOURCE_CHOICES = [s.value for s in CryptoDataSource]


async def run_symbols(sources: List[CryptoDataSource]) -> Dict[str, Any]:
    logger.info(f"Starting symbol ETL for: {', '.join(s.value for s in sources) or 'all sources'}")
    with SessionLocal() as db:
        return await ETLService(db).load_symbols(sources or None)


async def run_preview(source: CryptoDataSource, limit: int) -> Dict[str, Any]:
    with SessionLocal() as db:
        return await ETLService(db).preview_source(source, limit=limit)


async def run_discover(source: CryptoDataSource) -> Dict[str, Any]:
    with SessionLocal() as db:
        return await ETLService(db).discover_mappings(source)


async def run_init(tickers: List[str], source: CryptoDataSource) -> Dict[str, Any]:
    with SessionLocal() as db:
        return await ETLService(db).initialize_mappings(tickers, source)


def run_stats() -> Dict[str, Any]:
    with SessionLocal() as db:
        return ETLService(db).mapping_stats()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cryptoloader.etl_entrypoint", description="Crypto symbol ETL jobs")
    commands = parser.add_subparsers(dest="command", required=True)

    symbols = commands.add_parser("symbols", help="Load, reconcile and persist symbols")
    symbols.add_argument(
        "sources", nargs="*", type=CryptoDataSource, metavar="SOURCE", help=f"One of {SOURCE_CHOICES} (default: all configured)"
    )

    preview = commands.add_parser("preview", help="Fetch one source without writing")
    preview.add_argument("source", choices=SOURCE_CHOICES)
    preview.add_argument("--limit", type=int, default=20)

    mappings = commands.add_parser("mappings", help="Provider id mapping jobs")
    mapping_commands = mappings.add_subparsers(dest="mapping_command", required=True)

    discover = mapping_commands.add_parser("discover", help="Discover mappings for unmapped symbols")
    discover.add_argument("source", choices=SOURCE_CHOICES)

    init = mapping_commands.add_parser("init", help="Resolve mappings for explicit tickers")
    init.add_argument("tickers", nargs="+")
    init.add_argument("--source", choices=SOURCE_CHOICES, default=CryptoDataSource.COINGECKO.value)

    mapping_commands.add_parser("stats", help="Show mapping coverage")
    return parser


def main(argv: Optional[List[str]] = None) -> Dict[str, Any]:
    """Main entry point; exits non-zero when the job failed."""
    args = build_parser().parse_args(argv)
    logger.info(f"ETL command starting: {args.command}")

    try:
        if args.command == "symbols":
            result = asyncio.run(run_symbols(args.sources))
        elif args.command == "preview":
            result = asyncio.run(run_preview(CryptoDataSource(args.source), args.limit))
        elif args.mapping_command == "discover":
            result = asyncio.run(run_discover(CryptoDataSource(args.source)))
        elif args.mapping_command == "init":
            result = asyncio.run(run_init(args.tickers, CryptoDataSource(args.source)))
        else:
            result = run_stats()
    except CryptoLoaderError as exc:
        logger.error(f"ETL command failed: {exc}")
        sys.exit(1)

    print(json.dumps(result, indent=2, default=str))
    logger.info(f"ETL command completed: {args.command}")

    if not result.get("success", True):
        sys.exit(1)

    return result


if __name__ == "__main__":
    main()
