"""JSON API for the builder trades dashboard.

Thin FastAPI layer over the synchronizer and the trade query repository.
Failure responses always carry a fresh correlation id that also appears in
the server log.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from builder_trade_sync.ingestor.errors import describe_failure
from builder_trade_sync.ingestor.trade_sync import BuilderAuthError, TradeSyncError
from builder_trade_sync.storage.repos import DEFAULT_PAGE_SIZE, TradeFilters, TradeQueryRepository

if TYPE_CHECKING:
    from builder_trade_sync.ingestor.trade_sync import TradeSynchronizer
    from builder_trade_sync.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _failure_response(scope: str, error: Exception, message: str) -> JSONResponse:
    correlation_id = str(uuid.uuid4())
    logger.error("[%s:%s] %s", scope, correlation_id, describe_failure(error).log_line())
    return JSONResponse(
        {"ok": False, "error": f"{message} (correlationId {correlation_id})", "correlationId": correlation_id},
        status_code=500,
    )


def create_app(db: DatabaseManager, synchronizer: TradeSynchronizer) -> FastAPI:
    """Build the API around an already-constructed database and synchronizer."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await db.dispose_async()

    app = FastAPI(
        title="Builder Trades Dashboard API",
        description="Sync and browse Polymarket builder-attributed trades.",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.post("/api/sync")
    async def trigger_sync() -> JSONResponse:
        try:
            report = await synchronizer.run()
        except BuilderAuthError as e:
            return JSONResponse(
                {
                    "ok": False,
                    "error": str(e),
                    "status": e.status or 401,
                    "correlationId": e.correlation_id,
                },
                status_code=401,
            )
        except TradeSyncError as e:
            return JSONResponse(
                {"ok": False, "error": str(e), "correlationId": e.correlation_id},
                status_code=500,
            )
        return JSONResponse(
            {
                "ok": True,
                "message": report.message,
                "fetched": report.fetched,
                "upserted": report.upserted,
                "lastSyncedMatchTime": (
                    report.last_synced_match_time.isoformat() if report.last_synced_match_time else None
                ),
                "lastSyncedCursor": report.last_synced_cursor,
                "lastRunAt": report.last_run_at.isoformat() if report.last_run_at else None,
            }
        )

    @app.get("/api/sync")
    async def sync_state() -> JSONResponse:
        try:
            state = await synchronizer.get_state()
        except Exception as e:
            return _failure_response("sync-get", e, "Failed to read sync state")
        body = {"ok": True, "lastSyncedMatchTime": None, "lastSyncedCursor": None, "lastRunAt": None}
        if state is not None:
            body.update(state.to_api())
        return JSONResponse(body)

    @app.get("/api/connection")
    async def connection() -> JSONResponse:
        status = await synchronizer.check_connection()
        return JSONResponse(status.to_dict(), status_code=200 if status.connected else 503)

    @app.get("/api/trades")
    async def list_trades(
        page: str | None = None,
        page_size: str | None = Query(default=None, alias="pageSize"),
        sort_by: str = Query(default="matchTime", alias="sortBy"),
        sort_dir: str = Query(default="desc", alias="sortDir"),
        wallet: str = "",
        market_asset: str = Query(default="", alias="marketAsset"),
        side: str = "",
        start_date: str | None = Query(default=None, alias="startDate"),
        end_date: str | None = Query(default=None, alias="endDate"),
        format: str | None = None,
    ) -> JSONResponse:
        filters = TradeFilters(
            wallet=wallet.strip(),
            market_asset=market_asset.strip(),
            side=side.strip(),
            start_date=_parse_date(start_date),
            end_date=_parse_date(end_date),
        )
        try:
            async with db.get_async_session() as session:
                repo = TradeQueryRepository(session)
                if format == "txhashes":
                    hashes = await repo.transaction_hashes(filters)
                    return JSONResponse({"ok": True, "hashes": hashes})
                result = await repo.list_trades(
                    filters,
                    page=_parse_int(page, 1),
                    page_size=_parse_int(page_size, DEFAULT_PAGE_SIZE),
                    sort_by=sort_by,
                    sort_dir="asc" if sort_dir == "asc" else "desc",
                )
        except Exception as e:
            return _failure_response("trades", e, "Failed to fetch trades")

        return JSONResponse(
            {
                "ok": True,
                "page": result.page,
                "pageSize": result.page_size,
                "total": result.total,
                "totalPages": result.total_pages,
                "summary": result.summary.to_api(),
                "syncState": result.sync_state.to_api(),
                "items": [item.to_api() for item in result.items],
            }
        )

    return app
