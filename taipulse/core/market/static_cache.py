import time
import logging
import threading
from typing import Callable, Dict, Optional

from taipulse.config import settings
from taipulse.core.market.market_clock import MarketClock
from taipulse.schemas.analysis import StaticAnalysisData
from taipulse.utils.metrics import cache_lookups_total

logger = logging.getLogger(__name__)


class StaticAnalysisCache:
    """
    Long-lived per-symbol store for the expensive aggregate bundle
    (history, chips, fundamentals, market context).

    An entry expires when:
      1. it is older than the absolute TTL (4h), or
      2. it was built on a different local calendar day, or
      3. the settlement hour has passed since it was built
         (post-close institutional flow is only published after 15:00).
    """

    def __init__(self, clock: Optional[MarketClock] = None,
                 ttl_seconds: float = settings.STATIC_CACHE_TTL_SECONDS,
                 time_fn: Callable[[], float] = time.time):
        self.clock = clock or MarketClock()
        self.ttl = ttl_seconds
        self._time = time_fn
        self._entries: Dict[str, StaticAnalysisData] = {}
        self._lock = threading.Lock()

    def is_expired(self, timestamp: float, now: Optional[float] = None) -> bool:
        now = self._time() if now is None else now

        if now - timestamp > self.ttl:
            return True

        local_now = self.clock.to_market_time(now)
        local_entry = self.clock.to_market_time(timestamp)

        if local_now.date() != local_entry.date():
            return True

        if self.clock.crossed_settlement(local_entry, local_now):
            return True

        return False

    def get(self, symbol: str) -> Optional[StaticAnalysisData]:
        """Returns the entry only while it is still valid."""
        with self._lock:
            entry = self._entries.get(symbol)

        if entry is None:
            cache_lookups_total.labels(tier="static", result="miss").inc()
            return None
        if self.is_expired(entry.timestamp):
            cache_lookups_total.labels(tier="static", result="expired").inc()
            return None

        cache_lookups_total.labels(tier="static", result="hit").inc()
        return entry

    def put(self, symbol: str, data: StaticAnalysisData) -> None:
        with self._lock:
            current = self._entries.get(symbol)
            # Last writer wins unless it is older than what we hold
            if current is not None and current.timestamp > data.timestamp:
                logger.debug(f"Ignoring stale static bundle for {symbol}")
                return
            self._entries[symbol] = data

    def invalidate(self, symbol: str) -> None:
        with self._lock:
            self._entries.pop(symbol, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
