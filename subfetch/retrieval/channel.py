"""
Privileged Retrieval Channel

A structured request/response RPC to a collaborator that can fetch on our
behalf from a more privileged context. Two implementations:
- LocalRetrievalChannel: performs the fetch in-process
- HttpRetrievalChannel: posts to a remote fetch endpoint (/api/channel/fetch)
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import httpx
from loguru import logger

from ..options import RetryConfig
from ..subtitles.errors import FetchError, SubtitleFetchException
from .fetcher import ClientFactory, ResilientFetcher, get_httpx_client_kwargs

CHANNEL_PATH = "/api/channel/fetch"


class RetrievalChannelError(Exception):
    """The channel itself could not be reached or answered garbage"""
    pass


@dataclass
class ChannelRequest:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "headers": dict(self.headers),
            "timeout": self.timeout,
            "language": self.language,
        }


@dataclass
class ChannelResponse:
    success: bool
    data: Optional[str] = None
    error: Optional[FetchError] = None
    status_code: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error.to_dict() if self.error else None,
            "status_code": self.status_code,
            "headers": dict(self.headers),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelResponse":
        error = data.get("error")
        return cls(
            success=bool(data.get("success")),
            data=data.get("data"),
            error=FetchError.from_dict(error) if isinstance(error, dict) else None,
            status_code=data.get("status_code"),
            headers=dict(data.get("headers") or {}),
        )


class RetrievalChannel(Protocol):
    """Anything that answers a ChannelRequest"""

    @property
    def name(self) -> str:
        ...

    async def request(self, request: ChannelRequest) -> ChannelResponse:
        ...


class LocalRetrievalChannel:
    """Fetches in-process with a single attempt per request"""

    def __init__(self, fetcher: Optional[ResilientFetcher] = None, name: str = "local"):
        self.fetcher = fetcher or ResilientFetcher(retry=RetryConfig(max_attempts=1))
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def request(self, request: ChannelRequest) -> ChannelResponse:
        try:
            response = await self.fetcher.fetch(
                request.url,
                headers=request.headers,
                timeout=request.timeout,
                retry=RetryConfig(max_attempts=1),
                language=request.language,
            )
        except SubtitleFetchException as e:
            return ChannelResponse(success=False, error=e.error, status_code=e.error.http_status)

        return ChannelResponse(
            success=True,
            data=response.content,
            status_code=response.status,
            headers=response.headers,
        )


class HttpRetrievalChannel:
    """Delegates the fetch to a remote privileged fetch endpoint"""

    def __init__(
        self,
        base_url: str,
        client_factory: Optional[ClientFactory] = None,
        name: str = "http"
    ):
        self.endpoint = base_url.rstrip("/") + CHANNEL_PATH
        self.client_factory = client_factory or (
            lambda timeout: httpx.AsyncClient(**get_httpx_client_kwargs(timeout))
        )
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def request(self, request: ChannelRequest) -> ChannelResponse:
        try:
            async with self.client_factory(request.timeout) as client:
                response = await client.post(self.endpoint, json=request.to_dict())
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Retrieval channel {self.endpoint} failed: {e}")
            raise RetrievalChannelError(f"Channel request failed: {e}") from e

        if not isinstance(payload, dict):
            raise RetrievalChannelError("Channel returned a malformed response")
        return ChannelResponse.from_dict(payload)
