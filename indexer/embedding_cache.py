"""In-memory TTL cache for query and document embeddings."""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

DEFAULT_TTL = 3600.0
DEFAULT_MAX_SIZE = 1000


@dataclass
class CacheEntry:
    value: List[float]
    inserted_at: float


class EmbeddingCache:
    """Text -> vector cache with a fixed TTL and FIFO eviction.

    An entry is a hit while ``now - inserted_at < ttl``. Expired entries are
    reported as misses but stay in place until evicted or overwritten. When the
    cache is full a write evicts exactly one entry, the oldest inserted.

    Args:
        ttl: Entry lifetime in seconds
        max_size: Maximum number of entries
        clock: Time source returning seconds, ``time.monotonic`` by default
    """

    def __init__(self, ttl: float = DEFAULT_TTL, max_size: int = DEFAULT_MAX_SIZE,
                 clock: Optional[Callable[[], float]] = None):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock or time.monotonic
        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, text: str) -> Optional[List[float]]:
        with self._lock:
            entry = self._entries.get(text)
            if entry is not None and self._clock() - entry.inserted_at < self.ttl:
                self.hits += 1
                return entry.value
            self.misses += 1
            return None

    def put(self, text: str, vector: List[float]) -> None:
        with self._lock:
            if text in self._entries:
                # Re-insert so the refreshed entry moves to the back of the queue
                del self._entries[text]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[text] = CacheEntry(value=list(vector), inserted_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return text in self._entries

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def stats(self) -> Dict[str, Union[int, float]]:
        with self._lock:
            return {
                'size': len(self._entries),
                'max_size': self.max_size,
                'hits': self.hits,
                'misses': self.misses,
                'hit_rate': self.hit_rate,
            }

    def clear(self) -> None:
        """Drop all entries and reset the counters."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
