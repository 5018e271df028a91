"""Shared fakes for the subfetch tests"""
from typing import Callable, List, Optional

import httpx
import pytest

from subfetch.retrieval.chain import ChainResult
from subfetch.retrieval.strategies import RetrievalAttempt, RetrievalOptions, RetrievalStrategy
from subfetch.subtitles.errors import FetchError


class SleepRecorder:
    """Drop-in for asyncio.sleep that records delays instead of waiting"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeStrategy(RetrievalStrategy):
    def __init__(self, name: str, data: Optional[str] = None, error: Optional[FetchError] = None,
                 exc: Optional[Exception] = None):
        self._name = name
        self.data = data
        self.error = error
        self.exc = exc
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def execute(self, url: str, options: RetrievalOptions) -> RetrievalAttempt:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        if self.error is not None:
            return RetrievalAttempt(strategy=self.name, success=False, error=self.error,
                                    status_code=self.error.http_status)
        return RetrievalAttempt(strategy=self.name, success=True, data=self.data, status_code=200)


class FakeChain:
    """Returns queued ChainResults; the last one repeats"""

    def __init__(self, *results: ChainResult):
        self.results = list(results)
        self.calls = 0
        self.urls: List[str] = []

    async def fetch(self, url: str, options: Optional[RetrievalOptions] = None) -> ChainResult:
        self.calls += 1
        self.urls.append(url)
        index = min(self.calls - 1, len(self.results) - 1)
        return self.results[index]


def chain_success(data: str, strategy: str = "extension") -> ChainResult:
    return ChainResult(success=True, strategy=strategy, data=data, status_code=200)


def chain_failure(error: FetchError, strategy: str = "direct") -> ChainResult:
    return ChainResult(success=False, strategy=strategy, error=error)


def mock_client_factory(handler: Callable[[httpx.Request], httpx.Response]):
    """httpx client factory backed by a MockTransport"""
    def factory(timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)
    return factory


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


SAMPLE_VTT = "WEBVTT\n\n1\n00:00:01.000 --> 00:00:02.500\nHello world\n"

TWO_SRT_CLOSE = (
    "1\n00:00:01,000 --> 00:00:03,000\nHello\n\n"
    "2\n00:00:03,200 --> 00:00:05,000\nworld\n"
)

TWO_SRT_APART = (
    "1\n00:00:01,000 --> 00:00:03,000\nHello.\n\n"
    "2\n00:00:08,000 --> 00:00:10,000\nWorld.\n"
)
