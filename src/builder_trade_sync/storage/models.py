"""SQLAlchemy models for persistent storage.

This module defines the database schema for synced builder trades and
the singleton sync-state row.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SYNC_STATE_ID = 1
UNKNOWN_WALLET = "unknown"

JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TradeModel(Base):
    """Builder-attributed trade as returned by the CLOB builder trades feed."""

    __tablename__ = "builder_trades"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    builder_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    wallet_address: Mapped[str] = mapped_column(
        Text, nullable=False, default=UNKNOWN_WALLET
    )
    market: Mapped[str | None] = mapped_column(Text, nullable=True)
    asset_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    side: Mapped[str | None] = mapped_column(Text, nullable=True)
    size_usdc: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False, default=Decimal("0"))
    match_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_json: Mapped[Any] = mapped_column(JsonType, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_builder_trades_match_time", "match_time"),
        Index("idx_builder_trades_wallet", "wallet_address"),
        Index("idx_builder_trades_market", "market"),
    )


class SyncStateModel(Base):
    """Single-row sync watermark (id is always SYNC_STATE_ID)."""

    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SYNC_STATE_ID)
    last_synced_match_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_synced_cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
