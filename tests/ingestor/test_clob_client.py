"""Tests for the builder CLOB client wrapper."""

from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from py_clob_client.exceptions import PolyApiException

from builder_trade_sync.config import BuilderSettings
from builder_trade_sync.ingestor.clob_client import BuilderClobClient
from builder_trade_sync.ingestor.errors import (
    FeedAuthError,
    FeedTransientError,
    FeedUnknownError,
)
from builder_trade_sync.ingestor.models import BuilderTradesPage

HOST = "https://clob.example"
# HMAC secrets are urlsafe base64.
SECRET = "c2VjcmV0LWtleQ=="


def _api_error(status: int | None, message: str) -> PolyApiException:
    error = PolyApiException(error_msg=message)
    error.status_code = status
    return error


def _cursor(url: str) -> str:
    return parse_qs(urlparse(url).query)["next_cursor"][0]


@pytest.fixture
def http_get():
    with patch("builder_trade_sync.ingestor.clob_client.http_get") as mock_get:
        yield mock_get


@pytest.fixture
def client() -> BuilderClobClient:
    return BuilderClobClient(api_key="key", secret=SECRET, passphrase="pass", host=HOST)


class TestBuilderClobClientInit:
    """Tests for client construction."""

    def test_builder_config_attached(self, client: BuilderClobClient) -> None:
        assert client.host == HOST
        assert client._client.can_builder_auth()

    def test_from_settings_unwraps_secrets(self) -> None:
        settings = BuilderSettings(
            POLY_BUILDER_API_KEY="k",
            POLY_BUILDER_SECRET=SECRET,
            POLY_BUILDER_PASSPHRASE="p",
            CLOB_HOST=HOST,
        )

        client = BuilderClobClient.from_settings(settings)

        creds = client._client.builder_config.local_builder_creds
        assert (creds.key, creds.secret, creds.passphrase) == ("k", SECRET, "p")
        assert client.host == HOST

    def test_blank_credentials_rejected(self) -> None:
        with pytest.raises(ValueError):
            BuilderClobClient(api_key="", secret=SECRET, passphrase="pass")


class TestGetBuilderTradesPage:
    """Tests for single-page fetching."""

    def test_first_page_single_request(self, client, http_get: MagicMock) -> None:
        http_get.return_value = {
            "data": [{"id": "a"}, {"id": "b"}],
            "next_cursor": "C1",
            "count": 2,
            "limit": 100,
        }

        page = client.get_builder_trades_page()

        http_get.assert_called_once()
        url = http_get.call_args.args[0]
        assert url.startswith(f"{HOST}/builder/trades?")
        assert _cursor(url) == "MA=="
        assert isinstance(page, BuilderTradesPage)
        assert [t["id"] for t in page.trades] == ["a", "b"]
        assert page.next_cursor == "C1"
        assert page.limit == 100

    def test_cursor_in_query_and_next_cursor_passed_through(
        self, client, http_get: MagicMock
    ) -> None:
        http_get.return_value = {"data": [{"id": "c"}], "next_cursor": "C2"}

        page = client.get_builder_trades_page("C1")

        http_get.assert_called_once()
        assert _cursor(http_get.call_args.args[0]) == "C1"
        assert page.next_cursor == "C2"

    def test_one_request_per_call(self, client, http_get: MagicMock) -> None:
        pages = {
            "MA==": {"data": [{"id": "a"}], "next_cursor": "C1"},
            "C1": {"data": [{"id": "b"}], "next_cursor": "C2"},
            "C2": {"data": [{"id": "c"}], "next_cursor": "LTE="},
        }
        http_get.side_effect = lambda url, headers=None: pages[_cursor(url)]

        first = client.get_builder_trades_page(None)
        second = client.get_builder_trades_page(first.next_cursor)

        assert [_cursor(c.args[0]) for c in http_get.call_args_list] == ["MA==", "C1"]
        assert [t["id"] for t in first.trades] == ["a"]
        assert [t["id"] for t in second.trades] == ["b"]
        assert second.next_cursor == "C2"

    def test_signed_builder_headers(self, client, http_get: MagicMock) -> None:
        http_get.return_value = {"data": [], "next_cursor": "LTE="}

        client.get_builder_trades_page()

        headers = http_get.call_args.kwargs["headers"]
        assert headers["POLY_BUILDER_API_KEY"] == "key"
        assert headers["POLY_BUILDER_PASSPHRASE"] == "pass"
        assert headers["POLY_BUILDER_SIGNATURE"]

    def test_list_response(self, client, http_get: MagicMock) -> None:
        http_get.return_value = [{"id": "a"}, "junk"]

        page = client.get_builder_trades_page()

        assert page.trades == ({"id": "a"},)
        assert page.next_cursor == ""

    def test_unexpected_shape_is_transient(self, client, http_get: MagicMock) -> None:
        http_get.return_value = "<html>"

        with pytest.raises(FeedTransientError):
            client.get_builder_trades_page()

    def test_401_becomes_auth_error(self, client, http_get: MagicMock) -> None:
        http_get.side_effect = _api_error(401, "Unauthorized")

        with pytest.raises(FeedAuthError) as exc_info:
            client.get_builder_trades_page()

        assert exc_info.value.status == 401
        assert exc_info.value.data == "Unauthorized"

    def test_503_becomes_transient_error(self, client, http_get: MagicMock) -> None:
        http_get.side_effect = _api_error(503, "unavailable")

        with pytest.raises(FeedTransientError) as exc_info:
            client.get_builder_trades_page()

        assert exc_info.value.status == 503

    def test_404_becomes_unknown_error(self, client, http_get: MagicMock) -> None:
        http_get.side_effect = _api_error(404, "not found")

        with pytest.raises(FeedUnknownError):
            client.get_builder_trades_page()

    def test_network_error_is_transient(self, client, http_get: MagicMock) -> None:
        http_get.side_effect = ConnectionError("reset")

        with pytest.raises(FeedTransientError) as exc_info:
            client.get_builder_trades_page()

        assert exc_info.value.status is None


class TestClockSkew:
    """Tests for server time and skew measurement."""

    def test_get_server_time(self, client) -> None:
        with patch("py_clob_client.client.get", return_value="1700000000"):
            assert client.get_server_time() == 1700000000

    def test_skew_is_absolute(self, client) -> None:
        with (
            patch("py_clob_client.client.get", return_value=1700000000),
            patch("builder_trade_sync.ingestor.clob_client.time.time", return_value=1700000042.7),
        ):
            assert client.clock_skew_seconds() == 42

    def test_skew_none_on_failure(self, client) -> None:
        with patch("py_clob_client.client.get", side_effect=ConnectionError("down")):
            assert client.clock_skew_seconds() is None
