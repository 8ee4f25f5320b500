"""Wrapper around py-clob-client for the builder trades feed.

Library failures are translated into the tagged ``FeedError`` variants at
this boundary so callers never inspect ``PolyApiException`` directly.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from py_builder_signing_sdk.config import BuilderApiKeyCreds, BuilderConfig
from py_clob_client.client import ClobClient as BaseClobClient
from py_clob_client.endpoints import GET_BUILDER_TRADES
from py_clob_client.exceptions import PolyApiException
from py_clob_client.http_helpers.helpers import add_query_trade_params
from py_clob_client.http_helpers.helpers import get as http_get

from builder_trade_sync.config import BuilderSettings
from builder_trade_sync.ingestor.errors import (
    FeedError,
    FeedTransientError,
    classify_status,
    extract_status,
)
from builder_trade_sync.ingestor.models import BuilderTradesPage

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://clob.polymarket.com"
DEFAULT_CHAIN_ID = 137
# Cursor the CLOB expects for the first page.
FIRST_PAGE_CURSOR = "MA=="


def _secret(value: Any) -> str:
    if value is None:
        return ""
    return value.get_secret_value() if hasattr(value, "get_secret_value") else str(value)


class BuilderClobClient:
    """Builder-authenticated CLOB client.

    Blocking calls; async callers run them via ``asyncio.to_thread``.

    Example:
        >>> client = BuilderClobClient.from_settings(settings.builder)
        >>> page = client.get_builder_trades_page()
        >>> page.next_cursor
    """

    def __init__(
        self,
        *,
        api_key: str,
        secret: str,
        passphrase: str,
        host: str = DEFAULT_HOST,
        chain_id: int = DEFAULT_CHAIN_ID,
    ) -> None:
        """Initialize the builder client.

        Args:
            api_key: Builder API key.
            secret: Builder API secret.
            passphrase: Builder API passphrase.
            host: CLOB API endpoint URL.
            chain_id: Chain ID (Polygon=137).
        """
        self._host = host
        self._chain_id = chain_id
        builder_config = BuilderConfig(
            local_builder_creds=BuilderApiKeyCreds(
                key=api_key,
                secret=secret,
                passphrase=passphrase,
            )
        )
        self._client = BaseClobClient(host, chain_id=chain_id, builder_config=builder_config)

        logger.info("Initialized BuilderClobClient with host=%s", host)

    @classmethod
    def from_settings(cls, settings: BuilderSettings) -> BuilderClobClient:
        return cls(
            api_key=_secret(settings.api_key),
            secret=_secret(settings.secret),
            passphrase=_secret(settings.passphrase),
            host=settings.clob_host,
            chain_id=settings.chain_id,
        )

    @property
    def host(self) -> str:
        return self._host

    def _translate(self, e: Exception, action: str) -> FeedError:
        if isinstance(e, FeedError):
            return e
        if isinstance(e, PolyApiException):
            status = getattr(e, "status_code", None)
            if not isinstance(status, int):
                status = extract_status(e)
            return classify_status(status, f"{action}: {e}", getattr(e, "error_msg", None))
        # Network-level failures (connection reset, timeouts) carry no status.
        return FeedTransientError(f"{action}: {e}", status=extract_status(e))

    def get_builder_trades_page(self, cursor: str | None = None) -> BuilderTradesPage:
        """Fetch one page of builder trades with a single signed request.

        ``ClobClient.get_builder_trades`` walks every page itself, so the
        request is built here from the same helpers and the page's
        ``next_cursor`` is handed back to the caller.

        Args:
            cursor: Pagination cursor from the previous page; None for the first page.

        Raises:
            FeedAuthError: Builder credentials were rejected.
            FeedTransientError: Retryable failure.
            FeedUnknownError: Any other failure with a known status.
        """
        try:
            headers = self._client._get_builder_headers("GET", GET_BUILDER_TRADES, None)
            url = add_query_trade_params(
                f"{self._client.host}{GET_BUILDER_TRADES}", None, cursor or FIRST_PAGE_CURSOR
            )
            resp = http_get(url, headers=headers)
        except Exception as e:
            raise self._translate(e, "Failed to fetch builder trades") from e

        try:
            page = BuilderTradesPage.from_response(resp)
        except ValueError as e:
            raise classify_status(None, str(e)) from e
        logger.debug("Fetched builder trades page: %d trades, next_cursor=%r", len(page.trades), page.next_cursor)
        return page

    def get_server_time(self) -> int:
        """Get the CLOB server time as epoch seconds."""
        try:
            result = self._client.get_server_time()
        except Exception as e:
            raise self._translate(e, "Failed to get server time") from e
        return int(result)

    def clock_skew_seconds(self) -> int | None:
        """Absolute difference between local and server clocks; None if unavailable."""
        try:
            server_epoch = self.get_server_time()
        except Exception as e:
            logger.debug("Clock skew measurement failed: %s", e)
            return None
        return abs(server_epoch - int(time.time()))
