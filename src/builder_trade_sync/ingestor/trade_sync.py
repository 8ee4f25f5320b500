"""Builder trade synchronizer.

Reconciles the cursor-paginated builder trades feed into the local store:
fetch a page (through the retry policy), upsert every usable record, advance
the cursor, and finally move the sync-state watermark forward.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from builder_trade_sync.ingestor.errors import describe_failure, is_auth_failure
from builder_trade_sync.ingestor.models import BuilderTradesPage, ConnectionStatus, SyncReport
from builder_trade_sync.ingestor.retry import RetryPolicy
from builder_trade_sync.ingestor.trade_mapper import to_trade_dto
from builder_trade_sync.storage.repos import SyncStateDTO, SyncStateRepository, TradeRepository

if TYPE_CHECKING:
    from builder_trade_sync.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 200
AUTH_REMEDIATION = "check POLY_BUILDER_* env vars and restart server"


class TradeFeed(Protocol):
    """The slice of the builder client the synchronizer depends on."""

    @property
    def host(self) -> str: ...

    def get_builder_trades_page(self, cursor: str | None = None) -> BuilderTradesPage: ...

    def clock_skew_seconds(self) -> int | None: ...


class SyncRunState(str, Enum):
    """State of the current (or last) sync run."""

    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    DONE = "done"
    SUCCESS = "success"
    AUTH_FAILURE = "auth_failure"
    GENERIC_FAILURE = "generic_failure"


class TradeSyncError(Exception):
    """A sync run or connection check failed; carries a correlation id for log lookup."""

    def __init__(self, message: str, correlation_id: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.correlation_id = correlation_id
        self.status = status


class BuilderAuthError(TradeSyncError):
    """The feed rejected the builder credentials. Not retried."""

    def __init__(
        self,
        message: str,
        correlation_id: str,
        *,
        status: int | None = None,
        clock_skew_seconds: int | None = None,
    ) -> None:
        super().__init__(message, correlation_id, status=status)
        self.clock_skew_seconds = clock_skew_seconds


def _diagnostics(correlation_id: str, skew: int | None) -> str:
    details = f"correlationId {correlation_id}"
    if skew is not None:
        details += f", clockSkewSeconds {skew}"
    return details


def auth_failure_message(status: int | None, correlation_id: str, skew: int | None) -> str:
    status_text = status if status is not None else "unknown"
    return (
        f"Builder auth failed: {AUTH_REMEDIATION} "
        f"(status {status_text}, {_diagnostics(correlation_id, skew)})"
    )


StateCallback = Callable[[SyncRunState], None]


class TradeSynchronizer:
    """Drives the fetch-and-upsert loop for the builder trades feed.

    Example:
        ```python
        db = DatabaseManager(settings.database.url)
        feed = BuilderClobClient.from_settings(settings.builder)
        sync = TradeSynchronizer(db, feed, max_pages=settings.sync.max_pages)

        report = await sync.run()
        print(report.upserted, report.last_synced_match_time)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        feed: TradeFeed,
        *,
        retry_policy: RetryPolicy | None = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        on_state_change: StateCallback | None = None,
    ) -> None:
        """Initialize the synchronizer.

        Args:
            db: Database manager providing transactional sessions.
            feed: Builder trades feed client.
            retry_policy: Backoff policy for page fetches.
            max_pages: Hard cap on pages fetched per run.
            on_state_change: Callback for run state transitions.
        """
        self._db = db
        self._feed = feed
        self._retry = retry_policy or RetryPolicy()
        self._max_pages = max_pages
        self._on_state_change = on_state_change

        self._state = SyncRunState.IDLE
        # Serializes runs within this process only; separate processes can still overlap.
        self._run_lock = asyncio.Lock()

    @property
    def state(self) -> SyncRunState:
        return self._state

    def _set_state(self, new_state: SyncRunState) -> None:
        old_state = self._state
        self._state = new_state
        if self._on_state_change and old_state != new_state:
            try:
                self._on_state_change(new_state)
            except Exception as e:
                logger.warning("State change callback failed: %s", e)

    async def _fetch_page(self, cursor: str) -> BuilderTradesPage:
        return await self._retry.call(
            lambda: asyncio.to_thread(self._feed.get_builder_trades_page, cursor or None)
        )

    async def _clock_skew(self) -> int | None:
        try:
            return await asyncio.to_thread(self._feed.clock_skew_seconds)
        except Exception as e:
            logger.debug("Clock skew unavailable: %s", e)
            return None

    async def _fetch_failure(self, error: Exception) -> TradeSyncError:
        """Build the terminal signal for a page fetch that failed after retries."""
        correlation_id = str(uuid.uuid4())
        info = describe_failure(error)
        skew = await self._clock_skew()
        if is_auth_failure(info):
            logger.error("[sync:%s] builder auth failed %s", correlation_id, info.log_line())
            return BuilderAuthError(
                auth_failure_message(info.status, correlation_id, skew),
                correlation_id,
                status=info.status,
                clock_skew_seconds=skew,
            )
        logger.error("[sync:%s] builder request failed %s", correlation_id, info.log_line())
        status_text = f" {info.status}" if info.status else ""
        return TradeSyncError(
            f"Builder CLOB request failed{status_text}: {info.message} "
            f"({_diagnostics(correlation_id, skew)})",
            correlation_id,
            status=info.status,
        )

    async def run(self) -> SyncReport:
        """Run one full sync pass.

        Returns:
            SyncReport with counters and the updated watermark.

        Raises:
            BuilderAuthError: The feed rejected the builder credentials.
            TradeSyncError: Any other failure; the sync-state row is left untouched.
        """
        async with self._run_lock:
            try:
                report = await self._run()
            except BuilderAuthError:
                self._set_state(SyncRunState.AUTH_FAILURE)
                raise
            except Exception as e:
                self._set_state(SyncRunState.GENERIC_FAILURE)
                if isinstance(e, TradeSyncError):
                    raise
                correlation_id = str(uuid.uuid4())
                logger.error("[sync:%s] %s", correlation_id, describe_failure(e).log_line())
                raise TradeSyncError(
                    f"{str(e) or 'Unknown sync error'} (correlationId {correlation_id})",
                    correlation_id,
                ) from e
            self._set_state(SyncRunState.SUCCESS)
            return report

    async def _run(self) -> SyncReport:
        async with self._db.get_async_session() as session:
            trades = TradeRepository(session)
            states = SyncStateRepository(session)

            prior = await states.get_or_create()
            await session.commit()
            newest_seen = prior.last_synced_match_time

            cursor = ""
            last_processed_cursor = ""
            seen_cursors: set[str] = set()
            pages = 0
            fetched = 0
            upserted = 0

            while pages < self._max_pages:
                pages += 1
                self._set_state(SyncRunState.FETCHING)
                try:
                    page = await self._fetch_page(cursor)
                except Exception as e:
                    raise await self._fetch_failure(e) from e

                if not page.trades:
                    break

                self._set_state(SyncRunState.MERGING)
                fetched += len(page.trades)
                for raw in page.trades:
                    dto = to_trade_dto(raw)
                    if dto is None:
                        continue
                    if dto.match_time is not None and (
                        newest_seen is None or dto.match_time > newest_seen
                    ):
                        newest_seen = dto.match_time
                    await trades.upsert(dto)
                    upserted += 1
                # Upserted pages survive a later failure; the watermark does not move.
                await session.commit()

                next_cursor = page.next_cursor
                if not next_cursor or next_cursor == cursor or next_cursor in seen_cursors:
                    break
                seen_cursors.add(next_cursor)
                last_processed_cursor = next_cursor
                cursor = next_cursor
            else:
                logger.warning("Sync stopped at page cap (%d pages)", self._max_pages)

            self._set_state(SyncRunState.DONE)
            updated = await states.upsert(
                SyncStateDTO(
                    last_synced_match_time=newest_seen or prior.last_synced_match_time,
                    last_synced_cursor=last_processed_cursor or None,
                    last_run_at=datetime.now(UTC),
                )
            )

        logger.info(
            "Builder trade sync finished: pages=%d fetched=%d upserted=%d watermark=%s",
            pages,
            fetched,
            upserted,
            updated.last_synced_match_time,
        )
        return SyncReport(
            fetched=fetched,
            upserted=upserted,
            pages=pages,
            last_synced_match_time=updated.last_synced_match_time,
            last_synced_cursor=updated.last_synced_cursor,
            last_run_at=updated.last_run_at,
            skipped=fetched - upserted,
        )

    async def get_state(self) -> SyncStateDTO | None:
        """Read the stored sync-state row without creating it."""
        async with self._db.get_async_session() as session:
            return await SyncStateRepository(session).get()

    async def check_connection(self) -> ConnectionStatus:
        """Check the builder feed with one page fetch. Never raises."""
        host = self._feed.host
        try:
            await self._fetch_page("")
        except Exception as e:
            correlation_id = str(uuid.uuid4())
            info = describe_failure(e)
            skew = await self._clock_skew()
            if info.status == 401:
                error = auth_failure_message(401, correlation_id, skew)
            else:
                status_text = f" {info.status}" if info.status else ""
                error = (
                    f"Builder connection failed{status_text}: {info.message} "
                    f"({_diagnostics(correlation_id, skew)})"
                )
            logger.warning("[connection:%s] %s", correlation_id, info.log_line())
            return ConnectionStatus(
                connected=False, host=host, error=error, correlation_id=correlation_id
            )
        return ConnectionStatus(connected=True, host=host)
