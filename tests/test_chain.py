"""Strategy chain fallback rules and the concrete strategies"""
import asyncio
import json

import httpx
import pytest

from subfetch.options import ChainConfig, RetryConfig
from subfetch.retrieval.chain import RetrievalChain, build_default_chain
from subfetch.retrieval.channel import (
    CHANNEL_PATH,
    ChannelRequest,
    ChannelResponse,
    HttpRetrievalChannel,
    LocalRetrievalChannel,
    RetrievalChannelError,
)
from subfetch.retrieval.fetcher import ResilientFetcher
from subfetch.retrieval.strategies import (
    ChannelStrategy,
    HttpStrategy,
    ProxyStrategy,
    RetrievalOptions,
)
from subfetch.subtitles.errors import ErrorCode, FetchError

from conftest import SAMPLE_VTT, FakeStrategy, mock_client_factory

URL = "https://example.com/captions.vtt"

CORS = FetchError(ErrorCode.CORS_ERROR, "blocked origin", retryable=False)
NOT_FOUND = FetchError(ErrorCode.NOT_FOUND, "gone", retryable=False, http_status=404)
UNAVAILABLE = FetchError(ErrorCode.SERVICE_UNAVAILABLE, "busy", retryable=True, http_status=503)


def _run(chain, url=URL, options=None):
    return asyncio.run(chain.fetch(url, options))


def test_first_success_wins():
    a = FakeStrategy("a", data=SAMPLE_VTT)
    b = FakeStrategy("b", data="other")
    result = _run(RetrievalChain([a, b]))

    assert result.success
    assert result.strategy == "a"
    assert result.data == SAMPLE_VTT
    assert b.calls == 0


def test_permanent_error_stops_the_chain():
    a = FakeStrategy("a", error=NOT_FOUND)
    b = FakeStrategy("b", data=SAMPLE_VTT)
    result = _run(RetrievalChain([a, b]))

    assert not result.success
    assert result.error.code == ErrorCode.NOT_FOUND
    assert result.status_code == 404
    assert b.calls == 0
    assert result.strategies_tried == ["a"]


def test_blocked_origin_falls_through():
    a = FakeStrategy("a", error=CORS)
    b = FakeStrategy("b", data=SAMPLE_VTT)
    result = _run(RetrievalChain([a, b]))

    assert result.success
    assert result.strategy == "b"
    assert result.strategies_tried == ["a", "b"]


def test_blocked_origin_stops_when_fallthrough_disabled():
    a = FakeStrategy("a", error=CORS)
    b = FakeStrategy("b", data=SAMPLE_VTT)
    result = _run(RetrievalChain([a, b], ChainConfig(retry_on_cors_error=False)))

    assert not result.success
    assert result.error.code == ErrorCode.CORS_ERROR
    assert b.calls == 0


def test_retryable_failure_moves_on():
    a = FakeStrategy("a", error=UNAVAILABLE)
    b = FakeStrategy("b", data=SAMPLE_VTT)

    assert _run(RetrievalChain([a, b])).strategy == "b"


def test_raising_strategy_is_logged_and_skipped():
    a = FakeStrategy("a", exc=RuntimeError("kaboom"))
    b = FakeStrategy("b", data=SAMPLE_VTT)
    result = _run(RetrievalChain([a, b]))

    assert result.success
    assert result.attempts[0].error.code == ErrorCode.UNKNOWN_ERROR
    assert "kaboom" in result.attempts[0].error.cause


def test_all_blocked_is_terminal_and_not_retryable():
    strategies = [FakeStrategy(name, error=CORS) for name in ("a", "b", "c")]
    result = _run(RetrievalChain(strategies))

    assert not result.success
    assert result.error.code == ErrorCode.CORS_ERROR
    assert result.error.message == "All retrieval strategies failed"
    assert not result.error.retryable
    assert all(s.calls == 1 for s in strategies)


def test_transient_exhaustion_is_terminal():
    network = FetchError(ErrorCode.NETWORK_ERROR, "connection reset", retryable=True)
    a = FakeStrategy("a", error=network)
    b = FakeStrategy("b", error=UNAVAILABLE)
    result = _run(RetrievalChain([a, b]))

    assert result.error.code == ErrorCode.CORS_ERROR
    assert not result.error.retryable
    assert result.error.cause == "busy"


def test_empty_chain_is_rejected():
    with pytest.raises(ValueError):
        RetrievalChain([])


def test_default_chain_order_follows_config():
    config = ChainConfig(strategies=("direct", "proxy", "background"), proxy_endpoint="https://relay.test/p")
    chain = build_default_chain(config)

    assert chain.strategy_names == ["direct", "proxy", "background"]

    default_chain = build_default_chain()
    assert default_chain.strategy_names == ["extension", "background", "content_script", "direct"]


def test_unknown_strategy_name_rejected():
    with pytest.raises(ValueError):
        ChainConfig(strategies=("extension", "teleport"))


def test_http_strategy_classifies_status():
    factory = mock_client_factory(lambda request: httpx.Response(404))
    strategy = HttpStrategy("direct", ResilientFetcher(client_factory=factory))

    attempt = asyncio.run(strategy.execute(URL, RetrievalOptions(timeout=5.0)))

    assert not attempt.success
    assert attempt.error.code == ErrorCode.NOT_FOUND
    assert attempt.status_code == 404


def test_http_strategy_makes_a_single_attempt():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(500)

    fetcher = ResilientFetcher(client_factory=mock_client_factory(handler), retry=RetryConfig(max_attempts=5))
    attempt = asyncio.run(HttpStrategy("extension", fetcher).execute(URL, RetrievalOptions()))

    assert attempt.error.retryable
    assert len(requests) == 1


def test_proxy_without_endpoint_is_config_error():
    strategy = ProxyStrategy(ResilientFetcher(), endpoint=None)
    attempt = asyncio.run(strategy.execute(URL, RetrievalOptions()))

    assert attempt.error.code == ErrorCode.CONFIG_ERROR
    assert not attempt.error.retryable


def test_proxy_encodes_target_and_maps_status():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(502)

    fetcher = ResilientFetcher(client_factory=mock_client_factory(handler))
    strategy = ProxyStrategy(fetcher, endpoint="https://relay.test/fetch")
    attempt = asyncio.run(strategy.execute(URL, RetrievalOptions()))

    assert seen[0].params["url"] == URL
    assert attempt.error.code == ErrorCode.PROXY_ERROR
    assert attempt.error.retryable
    assert attempt.error.http_status == 502


class _BrokenChannel:
    name = "broken"

    async def request(self, request):
        raise RetrievalChannelError("pipe closed")


class _SilentChannel:
    name = "silent"

    async def request(self, request):
        return ChannelResponse(success=False, status_code=500)


def test_channel_strategy_communication_failure():
    retrying = ChannelStrategy("background", _BrokenChannel(), retry_channel_failure=True)
    final = ChannelStrategy("content_script", _BrokenChannel(), retry_channel_failure=False)

    first = asyncio.run(retrying.execute(URL, RetrievalOptions()))
    second = asyncio.run(final.execute(URL, RetrievalOptions()))

    assert first.error.code == ErrorCode.CHANNEL_ERROR
    assert first.error.retryable
    assert not second.error.retryable


def test_channel_strategy_failure_without_detail():
    attempt = asyncio.run(ChannelStrategy("background", _SilentChannel()).execute(URL, RetrievalOptions()))

    assert attempt.error.code == ErrorCode.CHANNEL_ERROR
    assert attempt.status_code == 500


def test_local_channel_fetches_in_process():
    factory = mock_client_factory(lambda request: httpx.Response(200, text=SAMPLE_VTT))
    channel = LocalRetrievalChannel(ResilientFetcher(client_factory=factory), name="background")

    response = asyncio.run(channel.request(ChannelRequest(url=URL)))

    assert response.success
    assert response.data == SAMPLE_VTT
    assert channel.name == "background"


def test_http_channel_round_trip():
    bodies = []

    def handler(request):
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={
            "success": False,
            "error": {"code": "NOT_FOUND", "message": "gone", "http_status": 404},
            "status_code": 404,
        })

    channel = HttpRetrievalChannel("http://helper.local/", client_factory=mock_client_factory(handler))
    response = asyncio.run(channel.request(ChannelRequest(url=URL, timeout=5.0, language="fr")))

    path, body = bodies[0]
    assert path == CHANNEL_PATH
    assert body["url"] == URL
    assert body["language"] == "fr"
    assert not response.success
    assert response.error.code == ErrorCode.NOT_FOUND


def test_http_channel_transport_failure_raises():
    channel = HttpRetrievalChannel(
        "http://helper.local",
        client_factory=mock_client_factory(lambda request: httpx.Response(500)),
    )

    with pytest.raises(RetrievalChannelError):
        asyncio.run(channel.request(ChannelRequest(url=URL)))
