"""
Pipeline Options

Immutable configuration structs with documented defaults. Partial overrides
are merged once, at construction time, through ``with_overrides``.
"""
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, FrozenSet, Optional, Tuple


MERGE_STRATEGIES = ("time", "speaker", "content")
CHAIN_STRATEGIES = ("extension", "background", "content_script", "proxy", "direct")


class _Overridable:
    """Mixin: build a new instance from a partial override mapping"""

    def with_overrides(self, overrides: Optional[Dict[str, Any]] = None):
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(
                f"Unknown {type(self).__name__} option(s): {', '.join(sorted(unknown))}"
            )
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RetryConfig(_Overridable):
    """Retry and backoff policy"""
    max_attempts: int = 3
    base_delay: float = 1.0    # Seconds
    max_delay: float = 10.0    # Seconds
    backoff_multiplier: float = 2.0
    exponential_backoff: bool = True
    jitter: float = 0.1        # Up to 10% of the delay
    retry_on: Optional[FrozenSet[int]] = None  # None: retry on status >= 500

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if not 0 <= self.jitter <= 0.1:
            raise ValueError("jitter must be within [0, 0.1]")
        if self.retry_on is not None and not isinstance(self.retry_on, frozenset):
            object.__setattr__(self, "retry_on", frozenset(self.retry_on))

    def is_retryable_status(self, status: int) -> bool:
        if self.retry_on is None:
            return status >= 500
        return status in self.retry_on


@dataclass(frozen=True)
class ParserConfig(_Overridable):
    """Dialect parser options"""
    strict: bool = False  # Any warning fails the parse
    preserve_formatting: bool = True  # Keep inline markup in segment text
    encoding: str = "utf-8"
    format_hint: Optional[str] = None  # Skip detection when set


@dataclass(frozen=True)
class MergeConfig(_Overridable):
    """Segment merger options"""
    max_gap: float = 2.0        # Seconds
    min_duration: float = 0.5   # Seconds
    max_duration: float = 10.0  # Seconds
    strategy: str = "time"      # time, speaker, content
    preserve_speakers: bool = True
    max_text_length: int = 200  # Advisory warning threshold

    def __post_init__(self):
        if self.strategy not in MERGE_STRATEGIES:
            raise ValueError(
                f"Unknown merge strategy '{self.strategy}' (expected one of {MERGE_STRATEGIES})"
            )
        if self.max_gap < 0 or self.min_duration < 0 or self.max_duration <= 0:
            raise ValueError("Merge thresholds must be non-negative")


@dataclass(frozen=True)
class ChainConfig(_Overridable):
    """Retrieval strategy chain options"""
    strategies: Tuple[str, ...] = ("extension", "background", "content_script", "direct")
    timeout: float = 30.0  # Seconds, per network call
    retry_on_cors_error: bool = True  # Fall over to the next strategy on blocked origin
    proxy_endpoint: Optional[str] = None

    def __post_init__(self):
        strategies = tuple(self.strategies)
        for name in strategies:
            if name not in CHAIN_STRATEGIES:
                raise ValueError(f"Unknown retrieval strategy '{name}'")
        object.__setattr__(self, "strategies", strategies)


@dataclass(frozen=True)
class ServiceConfig(_Overridable):
    """Orchestrating service options"""
    enable_cache: bool = True
    enable_retry: bool = True
    enable_merging: bool = True
    enable_chain: bool = True
    enable_metrics: bool = True
    default_timeout: float = 30.0  # Seconds
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    metrics_window: int = 100
    cache_ttl: float = 24 * 60 * 60  # Seconds
    retry: RetryConfig = field(default_factory=RetryConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
