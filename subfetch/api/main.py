"""
FastAPI Backend for subfetch

Exposes the subtitle fetching service over HTTP and doubles as the
privileged fetch endpoint used by HttpRetrievalChannel.
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .. import __version__
from ..config import settings
from ..retrieval.channel import ChannelRequest, LocalRetrievalChannel
from ..service import FetchRequest, SubtitleFetchingService, create_subtitle_fetching_service
from ..subtitles.errors import ErrorCode

# HTTP status per failure code; anything else is a bad gateway
ERROR_STATUS = {
    ErrorCode.INVALID_URL: 400,
    ErrorCode.CONFIG_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 413,
    ErrorCode.PARSE_ERROR: 422,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.TIMEOUT: 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - build the service at startup"""
    logger.info("Starting subfetch API...")

    if getattr(app.state, "service", None) is None:
        app.state.service = create_subtitle_fetching_service()
    if getattr(app.state, "channel", None) is None:
        app.state.channel = LocalRetrievalChannel(name="api")
    logger.info("Subtitle fetching service ready")

    yield

    logger.info("Shutting down subfetch API...")
    await app.state.service.clear_cache()
    logger.info("Shutdown complete")


# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title="subfetch API",
    description="Subtitle retrieval, parsing and merging",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)


# === Pydantic Models ===

class FetchSubtitlesRequest(BaseModel):
    """Request to fetch and parse a subtitle file"""
    url: str = Field(..., description="Subtitle URL (http/https)")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    timeout: Optional[float] = Field(None, description="Timeout in seconds (>= 1.0)")
    retry: Optional[Dict[str, Any]] = Field(None, description="Retry option overrides")
    parser: Optional[Dict[str, Any]] = Field(None, description="Parser option overrides")
    merge: Optional[Dict[str, Any]] = Field(None, description="Merge option overrides")
    cache_key: Optional[str] = Field(None, description="Explicit cache key")
    format: Optional[str] = Field(None, description="Format hint: webvtt, srt, youtube_xml, ttml, ...")
    language: Optional[str] = Field(None, description="Language hint")
    use_cache: bool = Field(True, description="Look up and store in the cache")


class ChannelFetchRequest(BaseModel):
    """Privileged fetch request"""
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(30.0, ge=1.0)
    language: Optional[str] = None


def get_service(request: Request) -> SubtitleFetchingService:
    return request.app.state.service


# === Endpoints ===

@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "version": __version__
    }


@app.post("/api/subtitles/fetch")
@limiter.limit(settings.API_RATE_LIMIT)
async def fetch_subtitles(request: Request, fetch_request: FetchSubtitlesRequest):
    """Fetch, parse and merge subtitles"""
    service = get_service(request)
    result = await service.fetch_subtitles(FetchRequest(**fetch_request.model_dump()))

    if result.success:
        return result.to_dict()

    status = ERROR_STATUS.get(result.error.code, 502)
    return JSONResponse(status_code=status, content=result.to_dict())


@app.get("/api/metrics")
async def get_metrics(request: Request):
    return get_service(request).get_metrics()


@app.post("/api/cache/clear")
async def clear_cache(request: Request):
    cleared = await get_service(request).clear_cache()
    return {"success": cleared}


@app.post("/api/channel/fetch")
@limiter.limit(settings.API_RATE_LIMIT)
async def channel_fetch(request: Request, channel_request: ChannelFetchRequest):
    """Fetch a URL on behalf of a remote retrieval chain"""
    parsed = urlparse(channel_request.url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status_code=400, detail="Only http(s) URLs can be fetched")

    response = await request.app.state.channel.request(ChannelRequest(
        url=channel_request.url,
        headers=channel_request.headers,
        timeout=channel_request.timeout,
        language=channel_request.language,
    ))
    return response.to_dict()
