"""Storage layer - Database schema and repositories."""

from builder_trade_sync.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from builder_trade_sync.storage.models import Base, SyncStateModel, TradeModel
from builder_trade_sync.storage.repos import (
    SyncStateDTO,
    SyncStateRepository,
    TradeDTO,
    TradeFilters,
    TradeQueryRepository,
    TradeRepository,
    TradeSummary,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "SyncStateDTO",
    "SyncStateModel",
    "SyncStateRepository",
    "TradeDTO",
    "TradeFilters",
    "TradeModel",
    "TradeQueryRepository",
    "TradeRepository",
    "TradeSummary",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
