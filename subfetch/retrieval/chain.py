"""
Retrieval Strategy Chain

Tries ordered access strategies for one URL:
- success: return immediately
- blocked-origin failure (when allowed): fall over to the next strategy
- any other non-retryable failure: stop, the permanent error is the result
- unexpected exception: log and continue with the next strategy
- all exhausted: terminal CORS_ERROR, retryable only if the last failure was transient
"""
import time
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from loguru import logger

from ..options import ChainConfig
from ..subtitles.errors import ErrorCode, FetchError
from .channel import LocalRetrievalChannel, RetrievalChannel
from .fetcher import ClientFactory, ResilientFetcher
from .strategies import (
    BROWSER_HEADERS,
    MINIMAL_HEADERS,
    ChannelStrategy,
    HttpStrategy,
    ProxyStrategy,
    RetrievalAttempt,
    RetrievalOptions,
    RetrievalStrategy,
)


@dataclass
class ChainResult:
    success: bool
    strategy: Optional[str] = None
    data: Optional[str] = None
    error: Optional[FetchError] = None
    status_code: Optional[int] = None
    headers: Dict[str, str] = field(default_factory=dict)
    attempts: List[RetrievalAttempt] = field(default_factory=list)
    duration: float = 0.0

    @property
    def strategies_tried(self) -> List[str]:
        return [a.strategy for a in self.attempts]


class RetrievalChain:
    """
    Ordered fallback over retrieval strategies.

    Usage:
        chain = build_default_chain(ChainConfig())
        result = await chain.fetch(url, RetrievalOptions(timeout=15.0))
    """

    def __init__(self, strategies: Sequence[RetrievalStrategy], config: Optional[ChainConfig] = None):
        if not strategies:
            raise ValueError("RetrievalChain needs at least one strategy")
        self.strategies = list(strategies)
        self.config = config or ChainConfig()

    @property
    def strategy_names(self) -> List[str]:
        return [s.name for s in self.strategies]

    async def fetch(self, url: str, options: Optional[RetrievalOptions] = None) -> ChainResult:
        options = options or RetrievalOptions(timeout=self.config.timeout)
        started = time.monotonic()
        attempts: List[RetrievalAttempt] = []
        last_error: Optional[FetchError] = None

        logger.info(f"Fetching {url} via strategies: {', '.join(self.strategy_names)}")

        for strategy in self.strategies:
            logger.debug(f"Trying retrieval strategy: {strategy.name}")
            try:
                attempt = await strategy.execute(url, options)
            except Exception as e:
                logger.error(f"Retrieval strategy {strategy.name} raised: {e}")
                attempts.append(RetrievalAttempt(
                    strategy=strategy.name,
                    success=False,
                    error=FetchError(
                        ErrorCode.UNKNOWN_ERROR,
                        f"Strategy {strategy.name} raised unexpectedly",
                        cause=f"{type(e).__name__}: {e}",
                    ),
                ))
                continue

            attempts.append(attempt)

            if attempt.success:
                logger.info(
                    f"Strategy {strategy.name} succeeded for {url} "
                    f"({len(attempt.data or '')} chars, {attempt.duration:.2f}s)"
                )
                return ChainResult(
                    success=True,
                    strategy=strategy.name,
                    data=attempt.data,
                    status_code=attempt.status_code,
                    headers=attempt.headers,
                    attempts=attempts,
                    duration=time.monotonic() - started,
                )

            error = attempt.error or FetchError(
                ErrorCode.UNKNOWN_ERROR, f"Strategy {strategy.name} failed without detail"
            )
            last_error = error
            logger.warning(f"Strategy {strategy.name} failed: {error.code.value} {error.message}")

            if error.is_blocked_origin and self.config.retry_on_cors_error:
                continue

            if not error.retryable:
                logger.info(f"Non-retryable error from {strategy.name}, stopping strategy attempts")
                return ChainResult(
                    success=False,
                    strategy=strategy.name,
                    error=error,
                    status_code=attempt.status_code,
                    attempts=attempts,
                    duration=time.monotonic() - started,
                )

        logger.error(f"All {len(self.strategies)} retrieval strategies failed for {url}")
        return ChainResult(
            success=False,
            strategy=self.strategies[-1].name,
            error=FetchError(
                ErrorCode.CORS_ERROR,
                "All retrieval strategies failed",
                retryable=False,
                cause=last_error.message if last_error else None,
            ),
            attempts=attempts,
            duration=time.monotonic() - started,
        )


def build_default_chain(
    config: Optional[ChainConfig] = None,
    client_factory: Optional[ClientFactory] = None,
    channels: Optional[Mapping[str, RetrievalChannel]] = None
) -> RetrievalChain:
    """
    Compose the configured strategies in order.

    Args:
        config: Chain options (strategy order, proxy endpoint)
        client_factory: httpx client factory shared by the HTTP strategies
        channels: Channel per strategy name ("background", "content_script");
            missing entries use an in-process channel

    Returns:
        RetrievalChain
    """
    config = config or ChainConfig()
    channels = dict(channels or {})
    fetcher = ResilientFetcher(client_factory=client_factory, timeout=config.timeout)

    def channel_for(name: str) -> RetrievalChannel:
        return channels.get(name) or LocalRetrievalChannel(fetcher, name=name)

    builders = {
        "extension": lambda: HttpStrategy("extension", fetcher, BROWSER_HEADERS),
        "background": lambda: ChannelStrategy("background", channel_for("background"),
                                              retry_channel_failure=True),
        "content_script": lambda: ChannelStrategy("content_script", channel_for("content_script"),
                                                  retry_channel_failure=False),
        "proxy": lambda: ProxyStrategy(fetcher, config.proxy_endpoint),
        "direct": lambda: HttpStrategy("direct", fetcher, MINIMAL_HEADERS),
    }
    return RetrievalChain([builders[name]() for name in config.strategies], config)
