"""
Subtitle Retrieval Module

Provides:
- Resilient HTTP fetch with timeout, backoff and classified errors
- Ordered cross-origin strategy chain with fail-fast on permanent errors
- Privileged retrieval channel (in-process or over HTTP)
- Generic async retry service
"""
from .fetcher import FetchResponse, ResilientFetcher, compute_backoff_delay
from .retry import RetryAttempt, RetryOutcome, RetryService
from .channel import (
    ChannelRequest,
    ChannelResponse,
    HttpRetrievalChannel,
    LocalRetrievalChannel,
    RetrievalChannel,
    RetrievalChannelError,
)
from .strategies import (
    ChannelStrategy,
    HttpStrategy,
    ProxyStrategy,
    RetrievalAttempt,
    RetrievalOptions,
    RetrievalStrategy,
)
from .chain import ChainResult, RetrievalChain, build_default_chain

__all__ = [
    "FetchResponse",
    "ResilientFetcher",
    "compute_backoff_delay",
    "RetryAttempt",
    "RetryOutcome",
    "RetryService",
    "ChannelRequest",
    "ChannelResponse",
    "HttpRetrievalChannel",
    "LocalRetrievalChannel",
    "RetrievalChannel",
    "RetrievalChannelError",
    "ChannelStrategy",
    "HttpStrategy",
    "ProxyStrategy",
    "RetrievalAttempt",
    "RetrievalOptions",
    "RetrievalStrategy",
    "ChainResult",
    "RetrievalChain",
    "build_default_chain",
]
