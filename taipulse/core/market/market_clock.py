import time
from datetime import datetime
from typing import Optional
import pytz

from taipulse.config import settings


class MarketClock:
    """
    Single local-time authority for the exchange.
    Every session/date comparison goes through to_market_time() so UTC and
    local timestamps are never mixed.
    """

    def __init__(self, timezone: str = settings.MARKET_TIMEZONE,
                 settlement_hour: int = settings.SETTLEMENT_HOUR):
        self.tz = pytz.timezone(timezone)
        self.settlement_hour = settlement_hour

    def to_market_time(self, timestamp: float) -> datetime:
        return datetime.fromtimestamp(timestamp, self.tz)

    def now(self, timestamp: Optional[float] = None) -> datetime:
        return self.to_market_time(time.time() if timestamp is None else timestamp)

    def today_str(self, timestamp: Optional[float] = None) -> str:
        return self.now(timestamp).strftime("%Y-%m-%d")

    def is_after_settlement(self, dt: datetime) -> bool:
        return dt.hour >= self.settlement_hour

    def crossed_settlement(self, created: datetime, now: datetime) -> bool:
        """True when `now` is past settlement but `created` was before it."""
        return self.is_after_settlement(now) and not self.is_after_settlement(created)
