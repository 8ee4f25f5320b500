"""Builder trade feed ingestion - client, retry, mapping and sync loop."""

from builder_trade_sync.ingestor.clob_client import BuilderClobClient
from builder_trade_sync.ingestor.errors import (
    FailureInfo,
    FeedAuthError,
    FeedError,
    FeedTransientError,
    FeedUnknownError,
    describe_failure,
    is_auth_failure,
)
from builder_trade_sync.ingestor.models import BuilderTradesPage, ConnectionStatus, SyncReport
from builder_trade_sync.ingestor.retry import RetryPolicy
from builder_trade_sync.ingestor.trade_sync import (
    BuilderAuthError,
    SyncRunState,
    TradeSyncError,
    TradeSynchronizer,
)

__all__ = [
    "BuilderAuthError",
    "BuilderClobClient",
    "BuilderTradesPage",
    "ConnectionStatus",
    "FailureInfo",
    "FeedAuthError",
    "FeedError",
    "FeedTransientError",
    "FeedUnknownError",
    "RetryPolicy",
    "SyncReport",
    "SyncRunState",
    "TradeSyncError",
    "TradeSynchronizer",
    "describe_failure",
    "is_auth_failure",
]
