"""
Subtitle Fetch Errors

Classified error taxonomy shared by the fetch primitive, the retrieval
strategy chain and the orchestrating service. Every failure path resolves
to a FetchError with a policy-fixed ``retryable`` flag.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorCode(str, Enum):
    """Error codes surfaced to callers"""
    INVALID_URL = "INVALID_URL"
    CONFIG_ERROR = "CONFIG_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CORS_ERROR = "CORS_ERROR"  # Blocked origin
    HTTP_ERROR = "HTTP_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    PROXY_ERROR = "PROXY_ERROR"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# HTTP_ERROR specializations
HTTP_ERROR_CODES = frozenset({
    ErrorCode.HTTP_ERROR,
    ErrorCode.NOT_FOUND,
    ErrorCode.UNAUTHORIZED,
    ErrorCode.FORBIDDEN,
    ErrorCode.RATE_LIMITED,
    ErrorCode.SERVICE_UNAVAILABLE,
})

# Codes that are never retried, whatever the layer
PERMANENT_ERROR_CODES = frozenset({
    ErrorCode.INVALID_URL,
    ErrorCode.CONFIG_ERROR,
    ErrorCode.NOT_FOUND,
    ErrorCode.UNAUTHORIZED,
    ErrorCode.FORBIDDEN,
    ErrorCode.CORS_ERROR,
    ErrorCode.VALIDATION_ERROR,
    ErrorCode.PARSE_ERROR,
})

RETRYABLE_KEYWORDS = ("network", "timeout", "aborted", "connection", "interrupted")


@dataclass(frozen=True)
class FetchError:
    """A classified failure"""
    code: ErrorCode
    message: str
    retryable: bool = False
    http_status: Optional[int] = None
    retry_after: Optional[float] = None  # Seconds, from Retry-After
    cause: Optional[str] = None

    @property
    def is_http(self) -> bool:
        return self.code in HTTP_ERROR_CODES

    @property
    def is_blocked_origin(self) -> bool:
        return self.code == ErrorCode.CORS_ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "http_status": self.http_status,
            "retry_after": self.retry_after,
            "cause": self.cause,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FetchError":
        try:
            code = ErrorCode(data.get("code", ErrorCode.UNKNOWN_ERROR.value))
        except ValueError:
            code = ErrorCode.UNKNOWN_ERROR
        return cls(
            code=code,
            message=data.get("message") or "Unknown error",
            retryable=bool(data.get("retryable", False)),
            http_status=data.get("http_status"),
            retry_after=data.get("retry_after"),
            cause=data.get("cause"),
        )


class SubtitleFetchException(Exception):
    """Raised inside the retrieval layers, carries a classified FetchError"""

    def __init__(self, error: FetchError):
        super().__init__(error.message)
        self.error = error


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds"""
    if not value:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None


def error_from_status(
    status: int,
    url: str,
    reason: str = "",
    retry_after: Optional[float] = None
) -> FetchError:
    """
    Map an HTTP status to a classified error.

    404 -> NOT_FOUND, 401 -> UNAUTHORIZED, 403 -> FORBIDDEN,
    429 -> RATE_LIMITED (retryable, with hint), 503 -> SERVICE_UNAVAILABLE,
    other >= 500 and 408 -> HTTP_ERROR (retryable), other 4xx -> HTTP_ERROR.
    """
    detail = f"HTTP {status}: {reason}".rstrip(": ")

    if status == 404:
        return FetchError(ErrorCode.NOT_FOUND, f"Subtitle file not found: {url}",
                          retryable=False, http_status=status, cause=detail)
    if status == 401:
        return FetchError(ErrorCode.UNAUTHORIZED, f"Unauthorized access to: {url}",
                          retryable=False, http_status=status, cause=detail)
    if status == 403:
        return FetchError(ErrorCode.FORBIDDEN, f"Access forbidden to: {url}",
                          retryable=False, http_status=status, cause=detail)
    if status == 429:
        return FetchError(ErrorCode.RATE_LIMITED, f"Rate limited while fetching: {url}",
                          retryable=True, http_status=status, retry_after=retry_after,
                          cause=detail)
    if status == 503:
        return FetchError(ErrorCode.SERVICE_UNAVAILABLE, f"Service unavailable: {url}",
                          retryable=True, http_status=status, retry_after=retry_after,
                          cause=detail)
    if status >= 500 or status == 408:
        return FetchError(ErrorCode.HTTP_ERROR, f"{detail} while fetching: {url}",
                          retryable=True, http_status=status, cause=detail)
    return FetchError(ErrorCode.HTTP_ERROR, f"{detail} while fetching: {url}",
                      retryable=False, http_status=status, cause=detail)


def is_retryable_message(message: str) -> bool:
    """Keyword classifier for low-level faults"""
    message = message.lower()
    return any(keyword in message for keyword in RETRYABLE_KEYWORDS)


def error_from_exception(exc: BaseException, url: str) -> FetchError:
    """
    Convert a low-level fault into a classified error.

    Args:
        exc: The exception raised by the transport or a collaborator
        url: URL being fetched (for the message)

    Returns:
        FetchError
    """
    if isinstance(exc, SubtitleFetchException):
        return exc.error

    cause = f"{type(exc).__name__}: {exc}"
    message = str(exc).lower()

    if isinstance(exc, (httpx.TimeoutException, TimeoutError)) or "timeout" in message \
            or "aborted" in message:
        return FetchError(ErrorCode.TIMEOUT, f"Request timeout while fetching: {url}",
                          retryable=True, cause=cause)

    if "cors" in message or "cross-origin" in message or "blocked origin" in message:
        return FetchError(ErrorCode.CORS_ERROR, f"CORS error while fetching: {url}",
                          retryable=False, cause=cause)

    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError, ConnectionError)) \
            or is_retryable_message(message):
        return FetchError(ErrorCode.NETWORK_ERROR, f"Network error while fetching: {url}",
                          retryable=True, cause=cause)

    return FetchError(ErrorCode.UNKNOWN_ERROR, f"Failed to fetch: {exc}",
                      retryable=False, cause=cause)
