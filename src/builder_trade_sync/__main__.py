"""Command line entry point.

Usage:
    python -m builder_trade_sync sync
    python -m builder_trade_sync check-connection
    python -m builder_trade_sync init-db
    python -m builder_trade_sync serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from pydantic import ValidationError

from builder_trade_sync.config import Settings, get_settings
from builder_trade_sync.ingestor.clob_client import BuilderClobClient
from builder_trade_sync.ingestor.retry import RetryPolicy
from builder_trade_sync.ingestor.trade_sync import BuilderAuthError, TradeSynchronizer, TradeSyncError
from builder_trade_sync.storage.database import DatabaseManager

logger = logging.getLogger("builder_trade_sync")


def build_synchronizer(settings: Settings, db: DatabaseManager) -> TradeSynchronizer:
    feed = BuilderClobClient.from_settings(settings.builder)
    return TradeSynchronizer(
        db,
        feed,
        retry_policy=RetryPolicy(max_retries=settings.sync.max_retries),
        max_pages=settings.sync.max_pages,
    )


async def _sync(settings: Settings) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        report = await build_synchronizer(settings, db).run()
    except BuilderAuthError as e:
        logger.error("%s", e)
        return 2
    except TradeSyncError as e:
        logger.error("%s", e)
        return 1
    finally:
        await db.dispose_async()
    print(
        json.dumps(
            {
                "message": report.message,
                "fetched": report.fetched,
                "upserted": report.upserted,
                "lastSyncedMatchTime": (
                    report.last_synced_match_time.isoformat() if report.last_synced_match_time else None
                ),
                "lastSyncedCursor": report.last_synced_cursor,
            }
        )
    )
    return 0


async def _check_connection(settings: Settings) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        status = await build_synchronizer(settings, db).check_connection()
    finally:
        await db.dispose_async()
    print(json.dumps(status.to_dict()))
    return 0 if status.connected else 1


async def _init_db(settings: Settings) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()
    return 0


def _serve(settings: Settings) -> int:
    import uvicorn

    from builder_trade_sync.api import create_app

    db = DatabaseManager(settings.database.url)
    app = create_app(db, build_synchronizer(settings, db))
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="builder-trade-sync", description=__doc__.splitlines()[0])
    parser.add_argument(
        "command",
        choices=("sync", "check-connection", "init-db", "serve"),
        help="Action to run",
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        settings.validate_requirements(command=args.command)
    except (ValidationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s with settings %s", args.command, settings.redacted_summary())

    if args.command == "serve":
        return _serve(settings)
    if args.command == "sync":
        return asyncio.run(_sync(settings))
    if args.command == "check-connection":
        return asyncio.run(_check_connection(settings))
    return asyncio.run(_init_db(settings))


if __name__ == "__main__":
    sys.exit(main())
