"""
Service Metrics

Rolling counters for the fetching service. Recording never raises and
nothing reads these values to make decisions.
"""
from collections import Counter, deque
from typing import Any, Deque, Dict, Optional


class ServiceMetrics:
    """Counts per outcome, error code, format and strategy plus a latency window"""

    def __init__(self, window: int = 100):
        self.window = window
        self.reset()

    def reset(self) -> None:
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.error_counts: Counter = Counter()
        self.format_counts: Counter = Counter()
        self.strategy_counts: Counter = Counter()
        self._latencies: Deque[float] = deque(maxlen=self.window)

    def record_request(self) -> None:
        self.total_requests += 1

    def record_cache(self, hit: bool) -> None:
        if hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    def record_success(self, latency: float, fmt: Optional[str] = None,
                       strategy: Optional[str] = None) -> None:
        self.successful_requests += 1
        self._latencies.append(latency)
        if fmt:
            self.format_counts[fmt] += 1
        if strategy:
            self.strategy_counts[strategy] += 1

    def record_failure(self, latency: float, error_code: str) -> None:
        self.failed_requests += 1
        self._latencies.append(latency)
        self.error_counts[error_code] += 1

    @property
    def average_latency(self) -> float:
        """Moving average over the last ``window`` requests, seconds"""
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    def snapshot(self) -> Dict[str, Any]:
        lookups = self.cache_hits + self.cache_misses
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cache_hit_rate": self.cache_hits / lookups if lookups else 0.0,
            "average_latency": self.average_latency,
            "errors_by_code": dict(self.error_counts),
            "formats": dict(self.format_counts),
            "strategies": dict(self.strategy_counts),
        }
