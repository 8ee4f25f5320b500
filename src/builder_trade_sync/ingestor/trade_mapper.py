"""Pure mapping from raw builder trade records to storable rows.

No I/O happens here. Every function tolerates missing or malformed fields:
a record without a usable id maps to ``None`` and the caller skips it.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from builder_trade_sync.storage.models import UNKNOWN_WALLET
from builder_trade_sync.storage.repos import TradeDTO

# Epoch strings with at most this many digits are seconds, longer ones milliseconds.
EPOCH_SECONDS_MAX_DIGITS = 10


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def normalize_trade_id(trade: dict[str, Any]) -> str:
    """String form of the trade id, trimmed; ``""`` means unusable."""
    raw = trade.get("id")
    if raw is None:
        return ""
    return str(raw).strip()


def resolve_wallet(trade: dict[str, Any]) -> str:
    """First non-empty of maker, owner, builder; otherwise ``"unknown"``."""
    for key in ("maker", "owner", "builder"):
        value = trade.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return UNKNOWN_WALLET


def _parse_epoch(raw: str) -> datetime | None:
    try:
        number = int(raw)
        millis = number * 1000 if len(raw) <= EPOCH_SECONDS_MAX_DIGITS else number
        return datetime.fromtimestamp(millis / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_date_string(raw: str) -> datetime | None:
    text = raw[:-1] + "+00:00" if raw[-1] in "Zz" else raw
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_match_time(value: Any) -> datetime | None:
    """Parse an epoch (seconds or milliseconds) or ISO-like timestamp.

    Purely numeric strings are epochs, disambiguated by digit count. Anything
    else, or an epoch that does not map to a valid instant, goes through ISO
    date parsing. Unparseable input yields ``None``.
    """
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    if raw.isascii() and raw.isdigit():
        parsed = _parse_epoch(raw)
        if parsed is not None:
            return parsed
    return _parse_date_string(raw)


def normalize_size_usdc(value: Any) -> Decimal:
    """Finite decimal size; anything else becomes zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        size = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not size.is_finite():
        return Decimal("0")
    return size


def deep_copy_payload(trade: dict[str, Any]) -> Any:
    """Copy the raw record through a JSON round-trip."""
    return json.loads(json.dumps(trade, default=str))


def to_trade_dto(trade: dict[str, Any]) -> TradeDTO | None:
    """Map a raw builder trade to a TradeDTO, or ``None`` when it has no usable id."""
    trade_id = normalize_trade_id(trade)
    if not trade_id:
        return None
    return TradeDTO(
        id=trade_id,
        builder_api_key=_optional_str(trade.get("builder")),
        wallet_address=resolve_wallet(trade),
        market=_optional_str(trade.get("market")),
        asset_id=_optional_str(trade.get("assetId")),
        side=_optional_str(trade.get("side")),
        size_usdc=normalize_size_usdc(trade.get("sizeUsdc")),
        match_time=parse_match_time(trade.get("matchTime")),
        transaction_hash=_optional_str(trade.get("transactionHash")),
        raw_json=deep_copy_payload(trade),
    )
