"""
Subtitle Fetching Service

Orchestrates one request through:
VALIDATE -> CACHE_LOOKUP -> RETRIEVE -> size guard -> PARSE -> MERGE
-> BUILD_FILE -> CACHE_STORE -> RETURN

Every failure resolves to a classified FetchError inside a FetchResult.
"""
import asyncio
import hashlib
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from loguru import logger

from .cache import MemorySubtitleCache, SubtitleCache
from .config import Settings, settings as default_settings
from .metrics import ServiceMetrics
from .options import MergeConfig, ParserConfig, RetryConfig, ServiceConfig
from .retrieval.chain import RetrievalChain, build_default_chain
from .retrieval.channel import HttpRetrievalChannel
from .retrieval.fetcher import ResilientFetcher, Sleep
from .retrieval.retry import RetryService
from .retrieval.strategies import RetrievalOptions
from .subtitles.errors import ErrorCode, FetchError, SubtitleFetchException
from .subtitles.merger import MergeWarning, SegmentMerger
from .subtitles.models import (
    CacheInfo,
    FileMetadata,
    SourceInfo,
    SubtitleFile,
    SubtitleFormat,
    SubtitleSegment,
)
from .subtitles.parser import SubtitleParser

MIN_TIMEOUT = 1.0  # Seconds
MAX_OUTER_ATTEMPTS = 2  # The whole chain is retried at most once more

LANGUAGE_CODE = re.compile(r'^([a-z]{2})', re.IGNORECASE)


@dataclass
class FetchRequest:
    """Subtitle fetch request"""
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None  # Seconds, at least 1.0
    retry: Optional[Dict[str, Any]] = None   # RetryConfig overrides
    parser: Optional[Dict[str, Any]] = None  # ParserConfig overrides
    merge: Optional[Dict[str, Any]] = None   # MergeConfig overrides
    cache_key: Optional[str] = None
    format: Optional[str] = None    # Format hint, skips detection
    language: Optional[str] = None  # Language hint
    use_cache: bool = True


@dataclass
class FetchResult:
    """Subtitle fetch result"""
    success: bool
    subtitle_file: Optional[SubtitleFile] = None
    error: Optional[FetchError] = None
    from_cache: bool = False
    fetch_time: float = 0.0  # Seconds
    response_size: int = 0   # Bytes
    strategy: Optional[str] = None
    attempts: int = 0
    request_id: Optional[str] = None
    merge_warnings: List[MergeWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "subtitle_file": self.subtitle_file.to_dict() if self.subtitle_file else None,
            "error": self.error.to_dict() if self.error else None,
            "from_cache": self.from_cache,
            "fetch_time": self.fetch_time,
            "response_size": self.response_size,
            "strategy": self.strategy,
            "attempts": self.attempts,
            "request_id": self.request_id,
            "merge_warnings": [
                {"code": w.code, "message": w.message, "segment_ids": list(w.segment_ids),
                 "severity": w.severity}
                for w in self.merge_warnings
            ],
        }


@dataclass
class _RequestPlan:
    """Per-request configuration, resolved once during validation"""
    timeout: float
    retry: RetryConfig
    parser: ParserConfig
    merge: MergeConfig
    cache_key: str


@dataclass
class _Retrieved:
    content: str
    strategy: Optional[str]
    attempts: int


def _url_hash(url: str) -> str:
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


def generate_cache_key(url: str) -> str:
    return f"subtitle_{_url_hash(url)}"


def generate_file_id(url: str) -> str:
    return f"subtitle_{_url_hash(url)}_{int(time.time() * 1000)}"


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def extract_language_code(language: str) -> str:
    match = LANGUAGE_CODE.match(language or "")
    return match.group(1).lower() if match else "en"


def is_auto_generated(url: str) -> bool:
    return "kind=asr" in url or "auto" in url


class SubtitleFetchingService:
    """
    Fetches, parses and merges subtitles with caching, retries and metrics.

    Usage:
        service = create_subtitle_fetching_service()
        result = await service.fetch_subtitles(FetchRequest(url=url))
        if result.success:
            segments = result.subtitle_file.segments
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        chain: Optional[RetrievalChain] = None,
        fetcher: Optional[ResilientFetcher] = None,
        cache: Optional[SubtitleCache] = None,
        parser: Optional[SubtitleParser] = None,
        merger_factory: Optional[Callable[[MergeConfig], SegmentMerger]] = None,
        metrics: Optional[ServiceMetrics] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self.config = config or ServiceConfig()
        self._sleep = sleep

        self.fetcher = fetcher or ResilientFetcher(
            retry=self.config.retry, timeout=self.config.default_timeout, sleep=sleep
        )
        if not self.config.enable_chain:
            chain = None
        elif chain is None:
            chain = build_default_chain(self.config.chain)
        self.chain = chain
        if not self.config.enable_cache:
            cache = None
        elif cache is None:
            cache = MemorySubtitleCache(ttl=self.config.cache_ttl)
        self.cache = cache
        self.parser = parser or SubtitleParser(self.config.parser)
        self.merger_factory = merger_factory or SegmentMerger
        self.metrics = metrics or ServiceMetrics(self.config.metrics_window)

        logger.info(
            f"SubtitleFetchingService initialized "
            f"(chain={'on' if self.chain else 'off'}, cache={'on' if self.cache else 'off'}, "
            f"merge={'on' if self.config.enable_merging else 'off'})"
        )

    # ==================== Public API ====================

    async def fetch_subtitles(self, request: FetchRequest) -> FetchResult:
        """
        Fetch subtitles for one request.

        Args:
            request: FetchRequest

        Returns:
            FetchResult (never raises)
        """
        started = time.monotonic()
        request_id = generate_request_id()
        logger.info(f"[{request_id}] Fetching subtitles: {request.url}")
        self._record(lambda m: m.record_request())

        try:
            return await self._run(request, request_id, started)
        except Exception as e:
            logger.exception(f"[{request_id}] Unexpected failure: {e}")
            return self._failure(FetchError(
                ErrorCode.UNKNOWN_ERROR,
                f"Subtitle fetch failed: {e}",
                cause=f"{type(e).__name__}: {e}",
            ), request_id, started)

    def get_metrics(self) -> Dict[str, Any]:
        snapshot = self.metrics.snapshot()
        stats = getattr(self.cache, "stats", None)
        if callable(stats):
            snapshot["cache"] = stats()
        return snapshot

    async def clear_cache(self) -> bool:
        if self.cache is None:
            return False
        try:
            return await self.cache.clear()
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")
            return False

    async def reset(self) -> None:
        """Clear the cache and reset metrics"""
        await self.clear_cache()
        self.metrics.reset()
        logger.info("Service reset complete")

    # ==================== Pipeline ====================

    async def _run(self, request: FetchRequest, request_id: str, started: float) -> FetchResult:
        try:
            plan = self._validate(request)
        except SubtitleFetchException as e:
            logger.warning(f"[{request_id}] Invalid request: {e.error.message}")
            return self._failure(e.error, request_id, started)

        use_cache = self.cache is not None and request.use_cache
        if use_cache:
            cached = await self._cache_lookup(plan.cache_key, request_id)
            if cached is not None:
                result = FetchResult(
                    success=True,
                    subtitle_file=cached,
                    from_cache=True,
                    fetch_time=time.monotonic() - started,
                    response_size=cached.cache_info.size if cached.cache_info else 0,
                    request_id=request_id,
                )
                self._record(lambda m: m.record_success(result.fetch_time, cached.format.value))
                return result

        try:
            retrieved = await self._retrieve(request, plan, request_id)
        except SubtitleFetchException as e:
            return self._failure(e.error, request_id, started)

        content = retrieved.content
        response_size = len(content.encode("utf-8"))
        logger.debug(f"[{request_id}] Fetched {response_size} bytes via {retrieved.strategy or 'fetcher'}")

        if response_size > self.config.max_file_size:
            return self._failure(FetchError(
                ErrorCode.VALIDATION_ERROR,
                f"File size {response_size} exceeds maximum {self.config.max_file_size}",
            ), request_id, started, response_size)

        try:
            parse_result = self.parser.parse(content, plan.parser)
        except Exception as e:
            logger.exception(f"[{request_id}] Parser raised: {e}")
            return self._failure(FetchError(
                ErrorCode.PARSE_ERROR, f"Parse error: {e}", cause=f"{type(e).__name__}: {e}"
            ), request_id, started, response_size)

        if not parse_result.success:
            return self._failure(FetchError(
                ErrorCode.PARSE_ERROR, parse_result.error_message
            ), request_id, started, response_size)

        segments = parse_result.segments
        merge_warnings: List[MergeWarning] = []
        if self.config.enable_merging and len(segments) > 1:
            merge_result = self.merger_factory(plan.merge).merge(segments)
            logger.debug(
                f"[{request_id}] Merged {merge_result.original_count} -> {merge_result.merged_count} segments"
            )
            segments = merge_result.segments
            merge_warnings = merge_result.warnings

        subtitle_file = self._build_file(
            request, segments, parse_result.detected_format or SubtitleFormat.PLAIN_TEXT,
            parse_result.metadata, len(parse_result.warnings), retrieved.strategy, response_size,
        )

        if use_cache:
            await self._cache_store(plan.cache_key, subtitle_file, request_id)

        fetch_time = time.monotonic() - started
        logger.info(
            f"[{request_id}] Successfully parsed {len(subtitle_file.segments)} segments "
            f"({subtitle_file.format.value}, {fetch_time:.2f}s)"
        )
        self._record(lambda m: m.record_success(fetch_time, subtitle_file.format.value, retrieved.strategy))

        return FetchResult(
            success=True,
            subtitle_file=subtitle_file,
            fetch_time=fetch_time,
            response_size=response_size,
            strategy=retrieved.strategy,
            attempts=retrieved.attempts,
            request_id=request_id,
            merge_warnings=merge_warnings,
        )

    def _validate(self, request: FetchRequest) -> _RequestPlan:
        if not request.url:
            raise SubtitleFetchException(FetchError(ErrorCode.INVALID_URL, "URL is required"))

        parsed = urlparse(request.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise SubtitleFetchException(FetchError(
                ErrorCode.INVALID_URL, f"Invalid URL format: {request.url}"
            ))

        if request.timeout is not None and request.timeout < MIN_TIMEOUT:
            raise SubtitleFetchException(FetchError(
                ErrorCode.CONFIG_ERROR, "Timeout must be at least 1000ms"
            ))

        try:
            retry = self.config.retry.with_overrides(request.retry)
            parser = self.config.parser.with_overrides(request.parser)
            if request.format:
                parser = parser.with_overrides({"format_hint": request.format})
            merge = self.config.merge.with_overrides(request.merge)
        except (TypeError, ValueError) as e:
            raise SubtitleFetchException(FetchError(
                ErrorCode.CONFIG_ERROR, f"Invalid configuration override: {e}"
            ))

        return _RequestPlan(
            timeout=request.timeout or self.config.default_timeout,
            retry=retry,
            parser=parser,
            merge=merge,
            cache_key=request.cache_key or generate_cache_key(request.url),
        )

    async def _retrieve(self, request: FetchRequest, plan: _RequestPlan, request_id: str) -> _Retrieved:
        if self.chain is None:
            retry = plan.retry if self.config.enable_retry else plan.retry.with_overrides({"max_attempts": 1})
            response = await self.fetcher.fetch(
                request.url,
                headers=request.headers,
                timeout=plan.timeout,
                retry=retry,
                language=request.language,
            )
            return _Retrieved(content=response.content, strategy=None, attempts=1)

        options = RetrievalOptions(timeout=plan.timeout, headers=dict(request.headers),
                                   language=request.language)
        max_attempts = min(plan.retry.max_attempts, MAX_OUTER_ATTEMPTS) if self.config.enable_retry else 1
        retry_service = RetryService(plan.retry.with_overrides({"max_attempts": max_attempts}),
                                     sleep=self._sleep)

        async def run_chain(attempt: int):
            logger.debug(f"[{request_id}] Attempt {attempt}")
            chain_result = await self.chain.fetch(request.url, options)
            if not chain_result.success:
                raise SubtitleFetchException(chain_result.error)
            return chain_result

        outcome = await retry_service.execute(run_chain)
        if not outcome.success:
            raise SubtitleFetchException(outcome.error)

        return _Retrieved(
            content=outcome.result.data or "",
            strategy=outcome.result.strategy,
            attempts=len(outcome.attempts),
        )

    def _build_file(
        self,
        request: FetchRequest,
        segments: List[SubtitleSegment],
        fmt: SubtitleFormat,
        parse_metadata: Dict[str, Any],
        warning_count: int,
        strategy: Optional[str],
        size: int
    ) -> SubtitleFile:
        now = time.time()
        language = request.language or parse_metadata.get("language") or "unknown"

        cache_info = None
        if request.cache_key:
            cache_info = CacheInfo(
                cache_key=request.cache_key,
                cached_at=now,
                expires_at=now + self.config.cache_ttl,
                size=size,
            )

        return SubtitleFile(
            id=generate_file_id(request.url),
            segments=tuple(segments),
            metadata=FileMetadata(
                format=fmt,
                language=language,
                language_code=extract_language_code(language),
                segment_count=len(segments),
                source=SourceInfo(
                    type="youtube",
                    url=request.url,
                    is_auto_generated=is_auto_generated(request.url),
                    fetched_at=now,
                    strategy=strategy,
                ),
                warning_count=warning_count,
                extra={k: v for k, v in parse_metadata.items() if k not in ("language", "segment_count")},
            ),
            cache_info=cache_info,
        )

    # ==================== Cache ====================

    async def _cache_lookup(self, key: str, request_id: str) -> Optional[SubtitleFile]:
        try:
            entry = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"[{request_id}] Cache check failed: {e}")
            entry = None

        self._record(lambda m: m.record_cache(entry is not None))
        if entry is None:
            logger.debug(f"[{request_id}] Cache miss: {key}")
            return None
        logger.info(f"[{request_id}] Cache hit: {key}")
        return entry.file

    async def _cache_store(self, key: str, subtitle_file: SubtitleFile, request_id: str) -> None:
        try:
            await self.cache.set(key, subtitle_file)
            logger.debug(f"[{request_id}] Cached result: {key}")
        except Exception as e:
            logger.warning(f"[{request_id}] Cache storage failed: {e}")

    # ==================== Helpers ====================

    def _failure(
        self,
        error: FetchError,
        request_id: str,
        started: float,
        response_size: int = 0
    ) -> FetchResult:
        fetch_time = time.monotonic() - started
        logger.error(f"[{request_id}] Fetch failed: {error.code.value} {error.message}")
        self._record(lambda m: m.record_failure(fetch_time, error.code.value))
        return FetchResult(
            success=False,
            error=error,
            fetch_time=fetch_time,
            response_size=response_size,
            request_id=request_id,
        )

    def _record(self, update: Callable[[ServiceMetrics], None]) -> None:
        if not self.config.enable_metrics:
            return
        try:
            update(self.metrics)
        except Exception as e:
            logger.debug(f"Metrics update failed: {e}")


# ==================== Composition root ====================

def create_subtitle_fetching_service(settings: Optional[Settings] = None, config: Optional[ServiceConfig] = None,
                                     **components) -> SubtitleFetchingService:
    """
    Build a service from settings.

    Args:
        settings: Settings instance (defaults to the module-level settings)
        config: Explicit ServiceConfig, overrides settings
        **components: Collaborators passed to SubtitleFetchingService
            (chain, fetcher, cache, parser, merger_factory, metrics, sleep)

    Returns:
        SubtitleFetchingService
    """
    settings = settings or default_settings
    config = config or settings.to_service_config()

    if "chain" not in components and config.enable_chain:
        channels = {}
        if settings.CHANNEL_URL:
            channels["background"] = HttpRetrievalChannel(settings.CHANNEL_URL, name="background")
        components["chain"] = build_default_chain(config.chain, channels=channels)

    if "cache" not in components and config.enable_cache:
        components["cache"] = MemorySubtitleCache(settings.CACHE_MAX_ENTRIES, config.cache_ttl)

    return SubtitleFetchingService(config, **components)


def create_production_service(settings: Optional[Settings] = None, **components) -> SubtitleFetchingService:
    """Service tuned for production: 15s timeout, 5MB ceiling"""
    settings = settings or default_settings
    base = settings.to_service_config()
    config = base.with_overrides({
        "default_timeout": 15.0,
        "max_file_size": 5 * 1024 * 1024,
        "chain": base.chain.with_overrides({"timeout": 15.0}),
    })
    return create_subtitle_fetching_service(settings, config=config, **components)


def create_development_service(settings: Optional[Settings] = None, **components) -> SubtitleFetchingService:
    """Service without caching, for iterating on parsers"""
    settings = settings or default_settings
    config = settings.to_service_config().with_overrides({"enable_cache": False})
    return create_subtitle_fetching_service(settings, config=config, **components)
