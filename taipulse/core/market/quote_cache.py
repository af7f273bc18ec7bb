import time
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from taipulse.config import settings
from taipulse.utils.metrics import cache_lookups_total


@dataclass
class QuoteCacheEntry:
    data: Any
    timestamp: float


class QuoteCache:
    """Short-TTL live quote memo keyed by (provider, symbol)."""

    def __init__(self, ttl_seconds: float = settings.QUOTE_CACHE_TTL_SECONDS,
                 time_fn: Callable[[], float] = time.time):
        self.ttl = ttl_seconds
        self._time = time_fn
        self._entries: Dict[Tuple[str, str], QuoteCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, provider: str, symbol: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get((provider, symbol))

        if entry is not None and self._time() - entry.timestamp < self.ttl:
            cache_lookups_total.labels(tier="quote", result="hit").inc()
            return entry.data

        cache_lookups_total.labels(tier="quote", result="miss").inc()
        return None

    def put(self, provider: str, symbol: str, data: Any) -> None:
        with self._lock:
            self._entries[(provider, symbol)] = QuoteCacheEntry(data=data, timestamp=self._time())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
