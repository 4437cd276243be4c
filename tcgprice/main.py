"""
TCG Price Aggregator - Command-Line Entrypoint

Configures structlog, optionally opens the durable cache database, runs
one price lookup and prints the aggregated result as JSON.

Run via:
    python -m tcgprice.main "Pikachu VMAX" --game pokemon --sources ebay,mercari
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tcgprice import __version__
from tcgprice.config import settings
from tcgprice.errors import PriceLookupError
from tcgprice.pricing import CardQuery, PriceQueryOptions
from tcgprice.pricing.cache import ResultCache
from tcgprice.pricing.orchestrator import PriceOrchestrator
from tcgprice.storage.kv_store import SqlKeyValueStore


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Logs go to stderr; stdout carries only the result.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Configure stdlib logging first (for third-party libraries)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine() -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory for the durable cache.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    logger.info("database_engine_initializing", database_url=settings.DATABASE_URL)

    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await SqlKeyValueStore.create_schema(engine)

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcgprice",
        description="Look up a trading card's market price across several sources.",
    )
    parser.add_argument("name", help="Card name, e.g. 'Pikachu VMAX'")
    parser.add_argument("--series", default=None, help="Set / series name")
    parser.add_argument("--number", dest="card_number", default=None, help="Collector number")
    parser.add_argument("--game", dest="game_type", default=None,
                        help="pokemon, yugioh, one-piece or magic")
    parser.add_argument("--sources", default=None,
                        help="Comma-separated source ids (default: all active)")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the result cache")
    parser.add_argument("--retries", type=_positive_int, default=settings.DEFAULT_MAX_RETRIES)
    parser.add_argument("--timeout-ms", type=_positive_int, default=settings.DEFAULT_TIMEOUT_MS)
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv: list[str] | None = None) -> tuple[CardQuery, PriceQueryOptions, str]:
    args = build_parser().parse_args(argv)
    query = CardQuery(
        name=args.name,
        series=args.series,
        card_number=args.card_number,
        game_type=args.game_type,
    )
    sources = [s.strip() for s in args.sources.split(",") if s.strip()] if args.sources else None
    options = PriceQueryOptions(
        sources=sources,
        use_cache=not args.no_cache,
        max_retries=args.retries,
        timeout_ms=args.timeout_ms,
    )
    return query, options, args.log_level


async def run(query: CardQuery, options: PriceQueryOptions) -> str:
    """Run one lookup and return the result as a JSON string."""
    engine = None
    store = None
    if settings.ENABLE_PERSISTENT_CACHE:
        engine, session_factory = await create_db_engine()
        store = SqlKeyValueStore(session_factory)

    cache = ResultCache(settings.PRICE_CACHE_TTL_SECONDS, store=store)
    try:
        async with PriceOrchestrator(cache=cache) as orchestrator:
            result = await orchestrator.get_card_prices(query, options)
        return result.model_dump_json(indent=2)
    finally:
        if engine is not None:
            await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    query, options, log_level = parse_args(argv)
    _configure_logging(log_level)
    logger = structlog.get_logger(__name__)
    logger.info("tcgprice_lookup_begin", version=__version__, card_name=query.name)

    try:
        output = asyncio.run(run(query, options))
    except PriceLookupError as e:
        logger.error("tcgprice_lookup_failed", error=str(e), error_type=type(e).__name__)
        print(str(e), file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
