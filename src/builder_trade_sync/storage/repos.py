"""Repository pattern implementations for data access.

This module provides data access abstractions for synced builder trades,
the singleton sync-state row, and the filtered dashboard queries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from builder_trade_sync.storage.models import SYNC_STATE_ID, SyncStateModel, TradeModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 25

# Public sort keys (as used by the dashboard) mapped to columns.
SORT_COLUMNS = {
    "id": TradeModel.id,
    "matchTime": TradeModel.match_time,
    "walletAddress": TradeModel.wallet_address,
    "market": TradeModel.market,
    "assetId": TradeModel.asset_id,
    "side": TradeModel.side,
    "sizeUsdc": TradeModel.size_usdc,
    "transactionHash": TradeModel.transaction_hash,
}


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _upsert_insert(dialect_name: str) -> Any:
    if dialect_name == "postgresql":
        return pg_insert
    if dialect_name == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Upsert is not supported for dialect {dialect_name!r}")


@dataclass
class TradeDTO:
    """Data transfer object for builder trades."""

    id: str
    wallet_address: str
    size_usdc: Decimal
    raw_json: Any
    builder_api_key: str | None = None
    market: str | None = None
    asset_id: str | None = None
    side: str | None = None
    match_time: datetime | None = None
    transaction_hash: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeDTO:
        return cls(
            id=model.id,
            wallet_address=model.wallet_address,
            size_usdc=model.size_usdc,
            raw_json=model.raw_json,
            builder_api_key=model.builder_api_key,
            market=model.market,
            asset_id=model.asset_id,
            side=model.side,
            match_time=as_utc(model.match_time),
            transaction_hash=model.transaction_hash,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "builderApiKey": self.builder_api_key,
            "walletAddress": self.wallet_address,
            "transactionHash": self.transaction_hash,
            "matchTime": self.match_time.isoformat() if self.match_time else None,
            "market": self.market,
            "assetId": self.asset_id,
            "side": self.side,
            "sizeUsdc": str(self.size_usdc),
            "rawJson": self.raw_json,
        }


class TradeRepository:
    """Repository for synced builder trades."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, trade_id: str) -> TradeDTO | None:
        result = await self.session.execute(select(TradeModel).where(TradeModel.id == trade_id))
        model = result.scalar_one_or_none()
        return TradeDTO.from_model(model) if model else None

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(TradeModel))
        return int(result.scalar_one())

    async def upsert(self, dto: TradeDTO) -> TradeDTO:
        """Insert the trade, or overwrite every mutable field if the id exists."""
        now = datetime.now(UTC)
        values = {
            "id": dto.id,
            "builder_api_key": dto.builder_api_key,
            "wallet_address": dto.wallet_address,
            "market": dto.market,
            "asset_id": dto.asset_id,
            "side": dto.side,
            "size_usdc": dto.size_usdc,
            "match_time": dto.match_time,
            "transaction_hash": dto.transaction_hash,
            "raw_json": dto.raw_json,
        }
        insert = _upsert_insert(self.session.get_bind().dialect.name)
        stmt = insert(TradeModel).values(**values, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "builder_api_key": stmt.excluded.builder_api_key,
                "wallet_address": stmt.excluded.wallet_address,
                "market": stmt.excluded.market,
                "asset_id": stmt.excluded.asset_id,
                "side": stmt.excluded.side,
                "size_usdc": stmt.excluded.size_usdc,
                "match_time": stmt.excluded.match_time,
                "transaction_hash": stmt.excluded.transaction_hash,
                "raw_json": stmt.excluded.raw_json,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto


@dataclass
class SyncStateDTO:
    """Data transfer object for the singleton sync-state row."""

    last_synced_match_time: datetime | None = None
    last_synced_cursor: str | None = None
    last_run_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SyncStateModel) -> SyncStateDTO:
        return cls(
            last_synced_match_time=as_utc(model.last_synced_match_time),
            last_synced_cursor=model.last_synced_cursor,
            last_run_at=as_utc(model.last_run_at),
        )

    def to_api(self) -> dict[str, str | None]:
        return {
            "lastSyncedMatchTime": (
                self.last_synced_match_time.isoformat() if self.last_synced_match_time else None
            ),
            "lastSyncedCursor": self.last_synced_cursor,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
        }


class SyncStateRepository:
    """Repository for the singleton sync-state row (fixed key SYNC_STATE_ID)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self) -> SyncStateDTO | None:
        result = await self.session.execute(
            select(SyncStateModel).where(SyncStateModel.id == SYNC_STATE_ID)
        )
        model = result.scalar_one_or_none()
        return SyncStateDTO.from_model(model) if model else None

    async def get_or_create(self) -> SyncStateDTO:
        """Load the sync-state row, creating an empty one if absent."""
        insert = _upsert_insert(self.session.get_bind().dialect.name)
        stmt = insert(SyncStateModel).values(id=SYNC_STATE_ID, updated_at=datetime.now(UTC))
        stmt = stmt.on_conflict_do_nothing(index_elements=["id"])
        await self.session.execute(stmt)
        await self.session.flush()
        state = await self.get()
        if state is None:
            raise RuntimeError("sync_state row missing after insert")
        return state

    async def upsert(self, dto: SyncStateDTO) -> SyncStateDTO:
        now = datetime.now(UTC)
        values = {
            "last_synced_match_time": dto.last_synced_match_time,
            "last_synced_cursor": dto.last_synced_cursor,
            "last_run_at": dto.last_run_at,
        }
        insert = _upsert_insert(self.session.get_bind().dialect.name)
        stmt = insert(SyncStateModel).values(id=SYNC_STATE_ID, updated_at=now, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={**values, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()
        return dto


@dataclass
class TradeFilters:
    """Dashboard filters; empty values mean no filter."""

    wallet: str = ""
    market_asset: str = ""
    side: str = ""
    start_date: datetime | None = None
    end_date: datetime | None = None

    def base_conditions(self) -> list[ColumnElement[bool]]:
        """Conditions shared by the listing and the rolling-volume windows."""
        conditions: list[ColumnElement[bool]] = []
        if self.wallet:
            conditions.append(TradeModel.wallet_address.contains(self.wallet))
        if self.side:
            conditions.append(TradeModel.side == self.side)
        if self.market_asset:
            conditions.append(
                or_(
                    TradeModel.market.contains(self.market_asset),
                    TradeModel.asset_id.contains(self.market_asset),
                )
            )
        return conditions

    def conditions(self) -> list[ColumnElement[bool]]:
        conditions = self.base_conditions()
        if self.start_date is not None:
            conditions.append(TradeModel.match_time >= self.start_date)
        if self.end_date is not None:
            conditions.append(TradeModel.match_time <= self.end_date)
        return conditions


@dataclass
class TradeSummary:
    """Aggregate statistics over the filtered trades."""

    total_trades: int
    builder_volume_usdc: Decimal
    avg_trade_size_usdc: Decimal
    volume_today_usdc: Decimal
    volume_7d_usdc: Decimal
    volume_30d_usdc: Decimal
    trades_today: int
    unique_wallets: int

    def to_api(self) -> dict[str, Any]:
        return {
            "totalTrades": self.total_trades,
            "builderVolumeUsdc": str(self.builder_volume_usdc),
            "avgTradeSizeUsdc": str(self.avg_trade_size_usdc),
            "volumeTodayUsdc": str(self.volume_today_usdc),
            "volume7dUsdc": str(self.volume_7d_usdc),
            "volume30dUsdc": str(self.volume_30d_usdc),
            "tradesToday": self.trades_today,
            "uniqueWallets": self.unique_wallets,
        }


@dataclass
class TradePage:
    items: list[TradeDTO]
    page: int
    page_size: int
    total: int
    summary: TradeSummary
    sync_state: SyncStateDTO = field(default_factory=SyncStateDTO)

    @property
    def total_pages(self) -> int:
        return max(-(-self.total // self.page_size), 1)


def utc_day_start(reference: datetime | None = None) -> datetime:
    ref = (reference or datetime.now(UTC)).astimezone(UTC)
    return ref.replace(hour=0, minute=0, second=0, microsecond=0)


class TradeQueryRepository:
    """Read-side queries backing the dashboard listing."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _sum_size(self, conditions: list[ColumnElement[bool]]) -> Decimal:
        stmt = select(func.coalesce(func.sum(TradeModel.size_usdc), 0)).where(*conditions)
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar_one()))

    async def _count(self, conditions: list[ColumnElement[bool]]) -> int:
        stmt = select(func.count()).select_from(TradeModel).where(*conditions)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def summary(self, filters: TradeFilters, *, now: datetime | None = None) -> TradeSummary:
        conditions = filters.conditions()
        base = filters.base_conditions()
        today = utc_day_start(now)

        total = await self._count(conditions)
        volume = await self._sum_size(conditions)
        wallets_stmt = select(func.count(func.distinct(TradeModel.wallet_address))).where(
            *conditions
        )
        unique_wallets = int((await self.session.execute(wallets_stmt)).scalar_one())

        avg = (volume / total).quantize(Decimal("0.000001")) if total > 0 else Decimal("0")
        return TradeSummary(
            total_trades=total,
            builder_volume_usdc=volume,
            avg_trade_size_usdc=avg,
            volume_today_usdc=await self._sum_size([*base, TradeModel.match_time >= today]),
            volume_7d_usdc=await self._sum_size(
                [*base, TradeModel.match_time >= today - timedelta(days=7)]
            ),
            volume_30d_usdc=await self._sum_size(
                [*base, TradeModel.match_time >= today - timedelta(days=30)]
            ),
            trades_today=await self._count([*base, TradeModel.match_time >= today]),
            unique_wallets=unique_wallets,
        )

    async def list_trades(
        self,
        filters: TradeFilters,
        *,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_by: str = "matchTime",
        sort_dir: Literal["asc", "desc"] = "desc",
        now: datetime | None = None,
    ) -> TradePage:
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        column = SORT_COLUMNS.get(sort_by, TradeModel.match_time)
        order = column.asc() if sort_dir == "asc" else column.desc()

        stmt = (
            select(TradeModel)
            .where(*filters.conditions())
            .order_by(order, TradeModel.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)
        items = [TradeDTO.from_model(m) for m in result.scalars().all()]
        summary = await self.summary(filters, now=now)
        sync_state = await SyncStateRepository(self.session).get() or SyncStateDTO()
        return TradePage(
            items=items,
            page=page,
            page_size=page_size,
            total=summary.total_trades,
            summary=summary,
            sync_state=sync_state,
        )

    async def transaction_hashes(self, filters: TradeFilters) -> list[str]:
        """Non-empty transaction hashes of the filtered trades, newest first."""
        stmt = (
            select(TradeModel.transaction_hash)
            .where(*filters.conditions())
            .order_by(TradeModel.match_time.desc())
        )
        result = await self.session.execute(stmt)
        return [h for h in result.scalars().all() if h and h.strip()]
