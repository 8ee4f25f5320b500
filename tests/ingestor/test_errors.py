"""Tests for failure description and auth classification."""

from types import SimpleNamespace

import pytest
from py_clob_client.exceptions import PolyApiException

from builder_trade_sync.ingestor.errors import (
    UNKNOWN_ERROR_MESSAGE,
    FailureInfo,
    FeedAuthError,
    FeedTransientError,
    FeedUnknownError,
    classify_status,
    describe_failure,
    extract_status,
    is_auth_failure,
    is_retryable,
)


class _ResponseError(Exception):
    def __init__(self, message: str, data: object) -> None:
        super().__init__(message)
        self.response = SimpleNamespace(data=data)


class TestExtractStatus:
    """Tests for status extraction."""

    def test_status_attribute(self) -> None:
        assert extract_status(FeedTransientError("boom", status=503)) == 503

    def test_status_code_attribute(self) -> None:
        error = PolyApiException(error_msg="Unauthorized")
        error.status_code = 401
        assert extract_status(error) == 401

    def test_sniffed_from_message(self) -> None:
        assert extract_status(RuntimeError("Request failed with status code 429")) == 429

    def test_ignores_codes_outside_range(self) -> None:
        assert extract_status(RuntimeError("took 200 ms over 3000 rows")) is None

    def test_no_status(self) -> None:
        assert extract_status(RuntimeError("connection reset")) is None


class TestDescribeFailure:
    """Tests for the log-safe failure summary."""

    def test_message_and_dict_data(self) -> None:
        info = describe_failure(_ResponseError("bad request 400", {"error": "nope"}))

        assert info.status == 400
        assert info.message == "bad request 400"
        assert info.data == '{"error": "nope"}'

    def test_string_data_kept(self) -> None:
        info = describe_failure(_ResponseError("oops", "plain body"))
        assert info.data == "plain body"

    def test_unserializable_data_is_dropped(self) -> None:
        info = describe_failure(_ResponseError("oops", {"when": object()}))
        assert info.data is None

    def test_non_exception_gets_generic_message(self) -> None:
        info = describe_failure("not an exception")

        assert info.message == UNKNOWN_ERROR_MESSAGE
        assert info.status is None
        assert info.data is None

    def test_feed_error_data(self) -> None:
        info = describe_failure(FeedAuthError("denied", status=401, data={"error": "x"}))
        assert info.data == '{"error": "x"}'

    def test_log_line(self) -> None:
        line = FailureInfo(status=None, message="boom", data="body").log_line()
        assert line == "status=unknown message=boom data=body"


class TestIsAuthFailure:
    """Tests for auth classification."""

    def test_401_is_auth(self) -> None:
        assert is_auth_failure(FailureInfo(status=401, message="Unauthorized"))

    @pytest.mark.parametrize(
        "message",
        ["Invalid API key", "error: invalid api key provided", "Builder key auth failed"],
    )
    def test_message_patterns(self, message: str) -> None:
        assert is_auth_failure(FailureInfo(status=400, message=message))

    def test_503_is_not_auth(self) -> None:
        assert not is_auth_failure(FailureInfo(status=503, message="Service Unavailable"))


class TestRetryability:
    """Tests for the retryable status set."""

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_transient_statuses(self, status: int) -> None:
        assert is_retryable(FeedTransientError("x", status=status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 501])
    def test_terminal_statuses(self, status: int) -> None:
        assert not is_retryable(FeedUnknownError("x", status=status))

    def test_unknown_status_is_retryable(self) -> None:
        assert is_retryable(RuntimeError("socket closed"))


class TestClassifyStatus:
    """Tests for building tagged feed errors."""

    def test_auth(self) -> None:
        assert isinstance(classify_status(401, "Unauthorized"), FeedAuthError)

    def test_auth_by_message(self) -> None:
        assert isinstance(classify_status(400, "Invalid api key"), FeedAuthError)

    def test_transient(self) -> None:
        error = classify_status(502, "Bad Gateway")
        assert isinstance(error, FeedTransientError)
        assert error.status == 502

    def test_missing_status_is_transient(self) -> None:
        assert isinstance(classify_status(None, "timeout"), FeedTransientError)

    def test_other(self) -> None:
        assert isinstance(classify_status(404, "Not Found"), FeedUnknownError)
