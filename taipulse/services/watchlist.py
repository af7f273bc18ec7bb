import logging
import threading
from typing import Dict, Iterable, List, Optional, Union

from taipulse.constants import SECTOR_MAP, ETF_SECTOR_NAME
from taipulse.core.analytics.scoring import js_round
from taipulse.schemas.analysis import AnalysisDetail, MarketPulse, SectorSnapshot, StockSnapshot

logger = logging.getLogger(__name__)

SYNC_FIELDS = ("price", "change", "change_percent", "score", "action")


class WatchlistStore:
    """
    In-memory copies of every place a symbol can be displayed: the user
    watchlist, the daily picks and the latest pulse sectors.

    A symbol refreshed through a full analysis is flagged `is_detailed`
    and keeps its deep result when a later shallow pulse is merged in.
    Persistence of the watchlist is left to the caller.
    """

    def __init__(self, stocks: Optional[Iterable[StockSnapshot]] = None):
        self.stocks: List[StockSnapshot] = list(stocks or [])
        self.daily_picks: List[StockSnapshot] = []
        self.pulse = MarketPulse()
        self._lock = threading.Lock()

    @property
    def sectors(self) -> List[SectorSnapshot]:
        return self.pulse.sectors

    # ------------------------------------------------------------------
    # WATCHLIST EDITING
    # ------------------------------------------------------------------
    def contains(self, sid: str) -> bool:
        with self._lock:
            return any(s.id == sid for s in self.stocks)

    def add(self, snapshot: StockSnapshot) -> bool:
        with self._lock:
            if any(s.id == snapshot.id for s in self.stocks):
                return False
            self.stocks.append(snapshot)
        logger.info(f"Added {snapshot.id} ({snapshot.name}) to watchlist")
        return True

    def remove(self, sid: str) -> bool:
        with self._lock:
            before = len(self.stocks)
            self.stocks = [s for s in self.stocks if s.id != sid]
            return len(self.stocks) < before

    def move(self, sid: str, direction: str) -> bool:
        """Swap with the neighbour above ("up") or below ("down")."""
        with self._lock:
            idx = next((i for i, s in enumerate(self.stocks) if s.id == sid), -1)
            target = idx - 1 if direction == "up" else idx + 1
            if idx == -1 or target < 0 or target >= len(self.stocks):
                return False
            self.stocks[idx], self.stocks[target] = self.stocks[target], self.stocks[idx]
            return True

    def set_daily_picks(self, picks: Iterable[StockSnapshot]) -> None:
        with self._lock:
            self.daily_picks = list(picks)

    # ------------------------------------------------------------------
    # SYNC
    # ------------------------------------------------------------------
    def sync_stock(self, sid: str, update: Union[AnalysisDetail, StockSnapshot, Dict]) -> None:
        """Writes a fresh result into every copy of `sid` and marks it detailed."""
        if isinstance(update, AnalysisDetail):
            update = StockSnapshot.from_detail(update)
        if isinstance(update, StockSnapshot):
            update = {k: getattr(update, k) for k in SYNC_FIELDS}
        changes = {k: v for k, v in update.items() if k in SYNC_FIELDS}
        changes["is_detailed"] = True

        def apply(items: List[StockSnapshot]) -> List[StockSnapshot]:
            return [s.model_copy(update=changes) if s.id == sid else s for s in items]

        with self._lock:
            self.stocks = apply(self.stocks)
            self.daily_picks = apply(self.daily_picks)

            sectors = []
            for sector in self.pulse.sectors:
                if not any(s.id == sid for s in sector.stocks):
                    sectors.append(sector)
                    continue
                stocks = apply(sector.stocks)
                score = js_round(sum(s.score for s in stocks) / len(stocks))
                sectors.append(sector.model_copy(update={"stocks": stocks, "score": score}))
            self.pulse = self.pulse.model_copy(update={"sectors": sectors})

    def merge_pulse(self, pulse: MarketPulse) -> MarketPulse:
        """
        Replaces the stored pulse, keeping the deep result of any symbol
        already marked detailed (in the old sector or the watchlist).
        """
        with self._lock:
            old_sectors = {sec.name: sec for sec in self.pulse.sectors}
            watch = {s.id: s for s in self.stocks}

            merged = []
            for sector in pulse.sectors:
                old = {s.id: s for s in old_sectors[sector.name].stocks} if sector.name in old_sectors else {}
                stocks = []
                for fresh in sector.stocks:
                    existing = old.get(fresh.id) or watch.get(fresh.id)
                    if existing is not None and existing.is_detailed:
                        stocks.append(existing.model_copy(update={"is_detailed": True}))
                    else:
                        stocks.append(fresh)
                merged.append(sector.model_copy(update={"stocks": stocks}))

            self.pulse = pulse.model_copy(update={"sectors": merged})
            return self.pulse

    def pending_deep_scan_ids(self, pulse: Optional[MarketPulse] = None) -> List[str]:
        """Unique non-ETF pulse symbols not yet detailed in the watchlist."""
        pulse = pulse or self.pulse
        etf_ids = set(SECTOR_MAP.get(ETF_SECTOR_NAME, []))
        with self._lock:
            detailed = {s.id for s in self.stocks if s.is_detailed}

        seen = set()
        pending = []
        for sector in pulse.sectors:
            for s in sector.stocks:
                if s.id in seen:
                    continue
                seen.add(s.id)
                if s.id not in etf_ids and s.id not in detailed:
                    pending.append(s.id)
        return pending
