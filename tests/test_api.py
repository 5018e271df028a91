"""HTTP API endpoints"""
import httpx
import pytest
from fastapi.testclient import TestClient

from subfetch.api.main import app
from subfetch.options import ServiceConfig
from subfetch.retrieval.channel import LocalRetrievalChannel
from subfetch.retrieval.fetcher import ResilientFetcher
from subfetch.service import SubtitleFetchingService
from subfetch.subtitles.errors import ErrorCode, FetchError

from conftest import SAMPLE_VTT, FakeChain, SleepRecorder, chain_failure, chain_success, mock_client_factory

URL = "https://example.com/captions.vtt"


@pytest.fixture
def make_client():
    """Build a TestClient around a service backed by the given chain"""
    opened = []

    def factory(*results):
        app.state.service = SubtitleFetchingService(
            ServiceConfig(), chain=FakeChain(*results), sleep=SleepRecorder()
        )
        fetcher = ResilientFetcher(
            client_factory=mock_client_factory(lambda request: httpx.Response(200, text=SAMPLE_VTT))
        )
        app.state.channel = LocalRetrievalChannel(fetcher, name="api")
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield factory

    for client in opened:
        client.__exit__(None, None, None)
    app.state.service = None
    app.state.channel = None


def test_health(make_client):
    client = make_client(chain_success(SAMPLE_VTT))
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_fetch_success(make_client):
    client = make_client(chain_success(SAMPLE_VTT))
    response = client.post("/api/subtitles/fetch", json={"url": URL})

    assert response.status_code == 200
    body = response.json()
    assert body["success"]
    assert body["subtitle_file"]["format"] == "webvtt"
    assert body["subtitle_file"]["segments"][0]["text"] == "Hello world"


@pytest.mark.parametrize("results,payload,status,code", [
    ((chain_success(SAMPLE_VTT),), {"url": "ftp://nope"}, 400, "INVALID_URL"),
    ((chain_failure(FetchError(ErrorCode.NOT_FOUND, "gone", http_status=404)),), {"url": URL}, 404, "NOT_FOUND"),
    ((chain_success("WEBVTT\n"),), {"url": URL}, 422, "PARSE_ERROR"),
    ((chain_failure(FetchError(ErrorCode.CORS_ERROR, "All retrieval strategies failed")),),
     {"url": URL}, 502, "CORS_ERROR"),
])
def test_fetch_failures_map_to_status(make_client, results, payload, status, code):
    client = make_client(*results)
    response = client.post("/api/subtitles/fetch", json=payload)

    assert response.status_code == status
    assert response.json()["error"]["code"] == code


def test_metrics_and_cache_clear(make_client):
    client = make_client(chain_success(SAMPLE_VTT))
    client.post("/api/subtitles/fetch", json={"url": URL})

    metrics = client.get("/api/metrics").json()
    assert metrics["total_requests"] == 1
    assert metrics["cache"]["entries"] == 1

    assert client.post("/api/cache/clear").json() == {"success": True}
    assert client.get("/api/metrics").json()["cache"]["entries"] == 0


def test_channel_fetch(make_client):
    client = make_client(chain_success(SAMPLE_VTT))
    response = client.post("/api/channel/fetch", json={"url": URL, "timeout": 5.0})

    assert response.status_code == 200
    body = response.json()
    assert body["success"]
    assert body["data"] == SAMPLE_VTT


def test_channel_fetch_validation(make_client):
    client = make_client(chain_success(SAMPLE_VTT))

    assert client.post("/api/channel/fetch", json={"url": "file:///etc/passwd"}).status_code == 400
    assert client.post("/api/channel/fetch", json={"url": URL, "timeout": 0.1}).status_code == 422
