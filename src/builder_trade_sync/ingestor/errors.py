"""Failure taxonomy for the builder trade feed.

Errors raised by ``py_clob_client`` are translated into the tagged variants
below at the feed-client boundary. ``describe_failure`` still accepts any
exception so storage and unexpected failures can be summarized the same way.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
UNKNOWN_ERROR_MESSAGE = "Unknown builder request error"

_STATUS_IN_MESSAGE = re.compile(r"\b([45]\d\d)\b")
_AUTH_MESSAGE_PATTERNS = (
    re.compile(r"invalid api key", re.IGNORECASE),
    re.compile(r"builder key auth failed", re.IGNORECASE),
)


class FeedError(Exception):
    """Base exception for builder feed failures."""

    def __init__(self, message: str, *, status: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.data = data


class FeedTransientError(FeedError):
    """Retryable failure (408/429/5xx, network errors)."""


class FeedAuthError(FeedError):
    """Credential or signature rejection by the feed."""


class FeedUnknownError(FeedError):
    """Any other failure raised by the feed."""


@dataclass(frozen=True)
class FailureInfo:
    """Log-safe summary of a failure."""

    status: int | None
    message: str
    data: str | None = None

    def log_line(self) -> str:
        line = f"status={self.status if self.status is not None else 'unknown'} message={self.message}"
        if self.data:
            line += f" data={self.data}"
        return line


def extract_status(error: object) -> int | None:
    """Get an HTTP-like status from a failure, if one can be found."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    message = str(error) if isinstance(error, BaseException) else getattr(error, "message", None)
    if isinstance(message, str):
        match = _STATUS_IN_MESSAGE.search(message)
        if match:
            return int(match.group(1))
    return None


def extract_message(error: object) -> str:
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return UNKNOWN_ERROR_MESSAGE


def _serialize(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return None


def extract_response_data(error: object) -> str | None:
    """Get the serialized response body carried by a failure; never raises."""
    if isinstance(error, FeedError):
        return _serialize(error.data)
    try:
        response = getattr(error, "response", None)
        data = getattr(response, "data", None) if response is not None else None
        if data is None:
            # PolyApiException keeps the decoded body on error_msg.
            data = getattr(error, "error_msg", None)
        return _serialize(data)
    except Exception:
        return None


def describe_failure(error: object) -> FailureInfo:
    return FailureInfo(
        status=extract_status(error),
        message=extract_message(error),
        data=extract_response_data(error),
    )


def is_auth_failure(info: FailureInfo) -> bool:
    """Classify a failure summary as a builder authentication failure."""
    if info.status == 401:
        return True
    return any(pattern.search(info.message) for pattern in _AUTH_MESSAGE_PATTERNS)


def is_retryable(error: object) -> bool:
    """Retry on the transient status set, or when no status can be found."""
    status = extract_status(error)
    return status is None or status in RETRYABLE_STATUS_CODES


def classify_status(status: int | None, message: str, data: Any = None) -> FeedError:
    """Build the tagged feed error for a failure seen at the client boundary."""
    info = FailureInfo(status=status, message=message)
    if is_auth_failure(info):
        return FeedAuthError(message, status=status, data=data)
    if status is None or status in RETRYABLE_STATUS_CODES:
        return FeedTransientError(message, status=status, data=data)
    return FeedUnknownError(message, status=status, data=data)
