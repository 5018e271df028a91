"""
Subtitle Cache

Cache collaborator contract plus a bounded in-memory implementation.
The fetching service treats every cache failure as a miss or a no-op.
"""
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from loguru import logger

from .subtitles.models import SubtitleFile


@dataclass
class CacheEntry:
    key: str
    file: SubtitleFile
    created_at: float
    expires_at: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SubtitleCache(Protocol):
    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    async def set(self, key: str, file: SubtitleFile) -> bool:
        ...

    async def clear(self) -> bool:
        ...


class MemorySubtitleCache:
    """
    LRU cache of parsed subtitle files.

    Entries expire after ``ttl`` seconds; when full, the least recently
    used entry is evicted.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key}")
            return None

        self._entries.move_to_end(key)
        entry.hits += 1
        self.hits += 1
        return entry

    async def set(self, key: str, file: SubtitleFile) -> bool:
        now = self._clock()
        self._entries[key] = CacheEntry(key=key, file=file, created_at=now, expires_at=now + self.ttl)
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Cache full, evicted: {evicted}")
        return True

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> bool:
        self._entries.clear()
        return True

    def stats(self) -> Dict[str, float]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hits / total if total else 0.0,
        }
