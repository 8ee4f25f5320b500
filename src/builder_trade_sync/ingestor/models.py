"""Data models for the ingestor module."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class BuilderTradesPage:
    """One page of the builder trades feed."""

    trades: tuple[dict[str, Any], ...]
    next_cursor: str = ""
    count: int = 0
    limit: int = 0

    @classmethod
    def from_response(cls, resp: Any) -> "BuilderTradesPage":
        """Create a page from a py-clob-client builder trades response.

        Accepts either the paginated dict shape (``trades``/``data`` plus
        ``next_cursor``) or a bare list of trades.
        """
        if isinstance(resp, list):
            return cls(trades=tuple(t for t in resp if isinstance(t, dict)), count=len(resp))
        if not isinstance(resp, dict):
            raise ValueError("Unexpected builder trades response shape")

        items = resp.get("trades")
        if items is None:
            items = resp.get("data")
        trades = tuple(t for t in (items or []) if isinstance(t, dict))
        return cls(
            trades=trades,
            next_cursor=str(resp.get("next_cursor") or ""),
            count=int(resp.get("count") or 0),
            limit=int(resp.get("limit") or 0),
        )


@dataclass(frozen=True)
class ConnectionStatus:
    """Result of a builder connectivity check."""

    connected: bool
    host: str
    mode: str = "builder"
    error: str | None = None
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"connected": self.connected, "mode": self.mode, "host": self.host}
        if self.error is not None:
            data["error"] = self.error
        if self.correlation_id is not None:
            data["correlationId"] = self.correlation_id
        return data


@dataclass(frozen=True)
class SyncReport:
    """Outcome of a successful sync run."""

    fetched: int
    upserted: int
    pages: int
    last_synced_match_time: datetime | None
    last_synced_cursor: str | None
    last_run_at: datetime | None
    skipped: int = field(default=0)

    @property
    def message(self) -> str:
        if self.fetched == 0:
            return "Sync completed: 0 builder trades returned."
        return "Sync completed."
