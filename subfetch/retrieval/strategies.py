"""
Retrieval Strategies

Each strategy is one cross-origin access mechanism. Strategies never raise
for classified failures; they return a RetrievalAttempt carrying the error.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

from loguru import logger

from ..options import RetryConfig
from ..subtitles.errors import ErrorCode, FetchError, SubtitleFetchException
from .channel import ChannelRequest, RetrievalChannel
from .fetcher import ResilientFetcher

SINGLE_ATTEMPT = RetryConfig(max_attempts=1)

BROWSER_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/vtt,text/plain,application/xml,text/xml,*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

MINIMAL_HEADERS = {
    "Accept": "*/*",
}

PROXY_HEADERS = {
    "Accept": "text/plain,application/json,*/*",
}


@dataclass
class RetrievalOptions:
    timeout: float = 30.0  # Seconds
    headers: Dict[str, str] = field(default_factory=dict)
    language: Optional[str] = None


@dataclass
class RetrievalAttempt:
    """Outcome of one strategy"""
    strategy: str
    success: bool
    data: Optional[str] = None
    error: Optional[FetchError] = None
    status_code: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    duration: float = 0.0  # Seconds

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "status_code": self.status_code,
            "duration": self.duration,
        }


class RetrievalStrategy(ABC):
    """Abstract base class for retrieval strategies"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier"""
        pass

    @abstractmethod
    async def execute(self, url: str, options: RetrievalOptions) -> RetrievalAttempt:
        """Fetch the URL once with this mechanism"""
        pass

    def _failure(self, error: FetchError, started: float) -> RetrievalAttempt:
        return RetrievalAttempt(
            strategy=self.name,
            success=False,
            error=error,
            status_code=error.http_status,
            duration=time.monotonic() - started,
        )


class HttpStrategy(RetrievalStrategy):
    """In-process HTTP fetch with a fixed header profile"""

    def __init__(self, name: str, fetcher: ResilientFetcher, headers: Optional[Dict[str, str]] = None):
        self._name = name
        self.fetcher = fetcher
        self.headers = dict(headers or {})

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, url: str, options: RetrievalOptions) -> RetrievalAttempt:
        started = time.monotonic()
        headers = {**self.headers, **options.headers}
        try:
            response = await self.fetcher.fetch(
                url,
                headers=headers,
                timeout=options.timeout,
                retry=SINGLE_ATTEMPT,
                language=options.language,
            )
        except SubtitleFetchException as e:
            return self._failure(e.error, started)

        return RetrievalAttempt(
            strategy=self.name,
            success=True,
            data=response.content,
            status_code=response.status,
            headers=response.headers,
            duration=time.monotonic() - started,
        )


class ChannelStrategy(RetrievalStrategy):
    """Delegates the fetch to a privileged retrieval channel"""

    def __init__(self, name: str, channel: RetrievalChannel, retry_channel_failure: bool = True):
        self._name = name
        self.channel = channel
        self.retry_channel_failure = retry_channel_failure

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, url: str, options: RetrievalOptions) -> RetrievalAttempt:
        started = time.monotonic()
        request = ChannelRequest(
            url=url,
            headers=dict(options.headers),
            timeout=options.timeout,
            language=options.language,
        )
        try:
            response = await self.channel.request(request)
        except Exception as e:
            logger.debug(f"Channel {self.channel.name} failed for strategy {self.name}: {e}")
            return self._failure(FetchError(
                ErrorCode.CHANNEL_ERROR,
                f"Retrieval channel '{self.channel.name}' communication failed",
                retryable=self.retry_channel_failure,
                cause=f"{type(e).__name__}: {e}",
            ), started)

        if response.success:
            return RetrievalAttempt(
                strategy=self.name,
                success=True,
                data=response.data or "",
                status_code=response.status_code,
                headers=response.headers,
                duration=time.monotonic() - started,
            )

        error = response.error or FetchError(
            ErrorCode.CHANNEL_ERROR,
            f"Retrieval channel '{self.channel.name}' returned no error detail",
            retryable=self.retry_channel_failure,
            http_status=response.status_code,
        )
        return self._failure(error, started)


class ProxyStrategy(RetrievalStrategy):
    """Fetch through a relay: {endpoint}?url=<encoded target>"""

    def __init__(self, fetcher: ResilientFetcher, endpoint: Optional[str] = None):
        self.fetcher = fetcher
        self.endpoint = endpoint

    @property
    def name(self) -> str:
        return "proxy"

    async def execute(self, url: str, options: RetrievalOptions) -> RetrievalAttempt:
        started = time.monotonic()
        if not self.endpoint:
            return self._failure(FetchError(
                ErrorCode.CONFIG_ERROR, "Proxy endpoint not configured", retryable=False
            ), started)

        proxy_url = f"{self.endpoint}?url={quote(url, safe='')}"
        try:
            response = await self.fetcher.fetch(
                proxy_url,
                headers={**PROXY_HEADERS, **options.headers},
                timeout=options.timeout,
                retry=SINGLE_ATTEMPT,
                language=options.language,
            )
        except SubtitleFetchException as e:
            error = e.error
            if error.http_status is not None:
                error = FetchError(
                    ErrorCode.PROXY_ERROR,
                    f"Proxy failed: HTTP {error.http_status}",
                    retryable=error.http_status >= 500,
                    http_status=error.http_status,
                    cause=error.message,
                )
            return self._failure(error, started)

        return RetrievalAttempt(
            strategy=self.name,
            success=True,
            data=response.content,
            status_code=response.status,
            headers=response.headers,
            duration=time.monotonic() - started,
        )
