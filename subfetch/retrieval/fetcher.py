"""
Resilient Fetch Primitive

Wraps one HTTP GET with a cancellation timeout, a bounded retry loop with
exponential backoff and jitter, and error classification.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

import httpx
from loguru import logger

from ..config import settings
from ..options import RetryConfig
from ..subtitles.errors import (
    ErrorCode,
    FetchError,
    SubtitleFetchException,
    error_from_exception,
    error_from_status,
    parse_retry_after,
)

ClientFactory = Callable[[float], httpx.AsyncClient]
Sleep = Callable[[float], Awaitable[None]]

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "Mozilla/5.0 (compatible; subfetch/1.0)"
SUBTITLE_ACCEPT = "text/vtt, application/x-subrip, text/xml, application/xml, text/plain, */*;q=0.8"


def get_httpx_client_kwargs(timeout: float = DEFAULT_TIMEOUT) -> dict:
    """Get httpx client kwargs including proxy if configured"""
    kwargs = {"timeout": timeout, "follow_redirects": True}
    if settings.PROXY_URL:
        kwargs["proxy"] = settings.PROXY_URL
        logger.debug(f"Using proxy: {settings.PROXY_URL}")
    return kwargs


def default_client_factory(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(**get_httpx_client_kwargs(timeout))


def build_request_headers(
    headers: Optional[Dict[str, str]] = None,
    language: Optional[str] = None
) -> Dict[str, str]:
    """Default subtitle request headers, overridden by caller headers"""
    result = {
        "Accept": SUBTITLE_ACCEPT,
        "Accept-Language": f"{language},en;q=0.8" if language else "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "User-Agent": USER_AGENT,
    }
    result.update(headers or {})
    return result


def compute_backoff_delay(
    attempt: int,
    retry: RetryConfig,
    rng: Optional[random.Random] = None
) -> float:
    """
    Delay in seconds before the given attempt (attempt > 1).

    Exponential: min(base * multiplier^(attempt-2), max) plus up to
    ``retry.jitter`` of uniform jitter. Linear: min(base * attempt, max).
    """
    if attempt <= 1:
        return 0.0

    if retry.exponential_backoff:
        delay = min(retry.base_delay * retry.backoff_multiplier ** (attempt - 2), retry.max_delay)
        rng = rng or random
        return delay + rng.uniform(0, retry.jitter * delay)

    return min(retry.base_delay * attempt, retry.max_delay)


@dataclass
class FetchResponse:
    """Raw content plus the response headers callers care about"""
    content: str
    status: int
    content_type: Optional[str] = None
    content_length: int = 0
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


class ResilientFetcher:
    """
    HTTP fetch with timeout, retries and classified errors.

    Usage:
        fetcher = ResilientFetcher(retry=RetryConfig(max_attempts=3))
        response = await fetcher.fetch(url, timeout=15.0)
    """

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        retry: Optional[RetryConfig] = None,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        self.client_factory = client_factory or default_client_factory
        self.retry = retry or RetryConfig()
        self.timeout = timeout
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        retry: Optional[RetryConfig] = None,
        language: Optional[str] = None
    ) -> FetchResponse:
        """
        Fetch a URL, retrying transient failures.

        Args:
            url: Absolute http(s) URL
            headers: Extra request headers
            timeout: Per-attempt timeout in seconds
            retry: Retry policy override
            language: Language hint for Accept-Language

        Returns:
            FetchResponse

        Raises:
            SubtitleFetchException: After the last attempt, with the classified error
        """
        retry = retry or self.retry
        timeout = timeout or self.timeout
        request_headers = build_request_headers(headers, language)
        last_error: Optional[FetchError] = None

        for attempt in range(1, retry.max_attempts + 1):
            if attempt > 1:
                delay = compute_backoff_delay(attempt, retry, self._rng)
                logger.debug(f"Retrying {url} in {delay:.2f}s (attempt {attempt}/{retry.max_attempts})")
                await self._sleep(delay)

            try:
                return await asyncio.wait_for(
                    self._request(url, request_headers, timeout),
                    timeout=timeout
                )
            except SubtitleFetchException as e:
                last_error = e.error
                should_retry = (
                    last_error.http_status is not None
                    and retry.is_retryable_status(last_error.http_status)
                )
            except asyncio.TimeoutError:
                last_error = FetchError(
                    ErrorCode.TIMEOUT,
                    f"Request timeout after {timeout}s: {url}",
                    retryable=True,
                )
                should_retry = True
            except Exception as e:
                last_error = error_from_exception(e, url)
                should_retry = last_error.retryable

            if not should_retry:
                logger.debug(f"Not retrying {url}: {last_error.code.value}")
                break
            logger.warning(
                f"Fetch attempt {attempt}/{retry.max_attempts} failed for {url}: {last_error.message}"
            )

        raise SubtitleFetchException(last_error)

    async def _request(self, url: str, headers: Dict[str, str], timeout: float) -> FetchResponse:
        async with self.client_factory(timeout) as client:
            response = await client.get(url, headers=headers)

        if not response.is_success:
            raise SubtitleFetchException(error_from_status(
                response.status_code,
                url,
                response.reason_phrase,
                parse_retry_after(response.headers.get("retry-after")),
            ))

        content = response.text
        try:
            content_length = int(response.headers.get("content-length", ""))
        except ValueError:
            content_length = len(response.content)

        return FetchResponse(
            content=content,
            status=response.status_code,
            content_type=response.headers.get("content-type"),
            content_length=content_length,
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
            url=str(response.url),
            headers=dict(response.headers),
        )
