"""Error classification and option structs"""
import httpx
import pytest

from subfetch.options import ChainConfig, MergeConfig, RetryConfig, ServiceConfig
from subfetch.subtitles.errors import (
    ErrorCode,
    FetchError,
    error_from_exception,
    error_from_status,
    is_retryable_message,
    parse_retry_after,
)

URL = "https://example.com/a.vtt"


@pytest.mark.parametrize("status,code,retryable", [
    (404, ErrorCode.NOT_FOUND, False),
    (401, ErrorCode.UNAUTHORIZED, False),
    (403, ErrorCode.FORBIDDEN, False),
    (429, ErrorCode.RATE_LIMITED, True),
    (503, ErrorCode.SERVICE_UNAVAILABLE, True),
    (500, ErrorCode.HTTP_ERROR, True),
    (408, ErrorCode.HTTP_ERROR, True),
    (418, ErrorCode.HTTP_ERROR, False),
])
def test_error_from_status(status, code, retryable):
    error = error_from_status(status, URL)

    assert error.code == code
    assert error.retryable is retryable
    assert error.http_status == status
    assert error.is_http


@pytest.mark.parametrize("exc,code", [
    (httpx.ConnectTimeout("connect timed out"), ErrorCode.TIMEOUT),
    (TimeoutError(), ErrorCode.TIMEOUT),
    (httpx.ConnectError("refused"), ErrorCode.NETWORK_ERROR),
    (ConnectionResetError("reset by peer"), ErrorCode.NETWORK_ERROR),
    (RuntimeError("request blocked by CORS policy"), ErrorCode.CORS_ERROR),
    (RuntimeError("the operation was aborted"), ErrorCode.TIMEOUT),
    (ValueError("something odd"), ErrorCode.UNKNOWN_ERROR),
])
def test_error_from_exception(exc, code):
    error = error_from_exception(exc, URL)

    assert error.code == code
    assert error.cause.startswith(type(exc).__name__)


def test_classified_flags():
    cors = error_from_exception(RuntimeError("cross-origin request denied"), URL)

    assert cors.is_blocked_origin
    assert not cors.retryable
    assert not cors.is_http


def test_retry_after_parsing():
    assert parse_retry_after("12") == 12.0
    assert parse_retry_after(" 1.5 ") == 1.5
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert parse_retry_after(None) is None


def test_retryable_message_keywords():
    assert is_retryable_message("Connection interrupted")
    assert not is_retryable_message("bad syntax")


def test_error_dict_round_trip_tolerates_unknown_codes():
    error = FetchError(ErrorCode.PROXY_ERROR, "relay down", retryable=True, http_status=502)

    assert FetchError.from_dict(error.to_dict()) == error
    assert FetchError.from_dict({"code": "MARTIAN"}).code == ErrorCode.UNKNOWN_ERROR


def test_retry_config_validation():
    with pytest.raises(ValueError):
        RetryConfig(max_attempts=0)
    with pytest.raises(ValueError):
        RetryConfig(jitter=0.5)
    assert RetryConfig(retry_on=[429, 503]).is_retryable_status(429)
    assert not RetryConfig(retry_on=[429]).is_retryable_status(500)
    assert RetryConfig().is_retryable_status(502)


def test_overrides_are_merged_once():
    base = MergeConfig()
    tuned = base.with_overrides({"max_gap": 0.5})

    assert tuned.max_gap == 0.5
    assert base.max_gap == 2.0
    assert base.with_overrides(None) is base
    with pytest.raises(ValueError):
        base.with_overrides({"gap": 1})


def test_service_config_defaults():
    config = ServiceConfig()

    assert config.default_timeout == 30.0
    assert config.max_file_size == 10 * 1024 * 1024
    assert config.chain == ChainConfig()
    assert config.chain.strategies == ("extension", "background", "content_script", "direct")
    assert config.to_dict()["retry"]["max_attempts"] == 3
