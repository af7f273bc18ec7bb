# taipulse/core/analytics/scoring.py

import math
import logging
from dataclasses import dataclass
from typing import Optional, List

from taipulse.schemas.analysis import ScoreResult, Action, ReasonCode

logger = logging.getLogger(__name__)


@dataclass
class ScoreInputs:
    price: float
    change_percent: float
    ma20: Optional[float] = None
    ma60: Optional[float] = None
    avg_vol5: Optional[float] = None
    volume: Optional[float] = None
    roe: Optional[float] = None
    pe: Optional[float] = None
    trust_5d: Optional[float] = None
    foreign_5d: Optional[float] = None
    trust_streak: int = 0
    market_below_ma20: bool = False


def js_round(value: float) -> int:
    """Half-up rounding (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


class ScoringEngine:
    """
    Heuristic 0-100 score.
    Baseline 50; every triggered rule adds a fixed weight and a reason code.
    """

    def __init__(self):
        self.BASELINE = 50

        # Momentum (change %)
        self.HEALTHY_RALLY_LOW = 3.0
        self.HEALTHY_RALLY_HIGH = 7.0
        self.SELLOFF_PCT = -4.0

        self.VOLUME_BREAKOUT_RATIO = 1.5
        self.OVERHEAT_BIAS_PCT = 10.0

        # Institutional flow (thousand-share lots, 5 days)
        self.TRUST_STRONG = 500
        self.TRUST_STREAK_DAYS = 3
        self.FOREIGN_STRONG = 2000

        self.HIGH_ROE = 15.0
        self.PE_CEILING = 20.0

        # Action bands (lower bounds)
        self.BANDS = [
            (80, Action.STRONG_BUY),
            (65, Action.LEAN_LONG),
            (45, Action.NEUTRAL),
            (25, Action.DEFENSIVE),
        ]

    def calculate_score(self, p: ScoreInputs) -> ScoreResult:
        score = self.BASELINE
        reasons: List[ReasonCode] = []

        # 1. Momentum
        if self.HEALTHY_RALLY_LOW < p.change_percent < self.HEALTHY_RALLY_HIGH:
            score += 8
            reasons.append(ReasonCode.HEALTHY_RALLY)
        elif p.change_percent >= self.HEALTHY_RALLY_HIGH:
            score += 5
            reasons.append(ReasonCode.OVEREXTENDED_RALLY)
        elif p.change_percent < self.SELLOFF_PCT:
            score -= 8
            reasons.append(ReasonCode.SELLING_PRESSURE)

        # 2. Volume
        if p.volume and p.avg_vol5 and p.volume > p.avg_vol5 * self.VOLUME_BREAKOUT_RATIO:
            score += 5
            reasons.append(ReasonCode.VOLUME_BREAKOUT)

        # 3. Moving averages
        if p.ma20:
            if p.price > p.ma20:
                score += 10
                reasons.append(ReasonCode.ABOVE_MA20)
            else:
                score -= 10
                reasons.append(ReasonCode.BELOW_MA20)

            if p.ma60 and p.price > p.ma20 and p.ma20 > p.ma60:
                score += 10
                reasons.append(ReasonCode.BULLISH_ALIGNMENT)

            bias = (p.price - p.ma20) / p.ma20 * 100
            if bias > self.OVERHEAT_BIAS_PCT:
                score -= 5
                reasons.append(ReasonCode.OVERHEATED)

        # 4. Chip flow (missing data counts as flat)
        trust = p.trust_5d if p.trust_5d is not None else 0
        foreign = p.foreign_5d if p.foreign_5d is not None else 0

        if trust > self.TRUST_STRONG:
            score += 15
            reasons.append(ReasonCode.TRUST_ACCUMULATION)
        elif p.trust_streak >= self.TRUST_STREAK_DAYS:
            score += 8
            reasons.append(ReasonCode.TRUST_STREAK)
        elif trust < -self.TRUST_STRONG:
            score -= 12
            reasons.append(ReasonCode.TRUST_DISTRIBUTION)

        if foreign > self.FOREIGN_STRONG:
            score += 8
            reasons.append(ReasonCode.FOREIGN_INFLOW)
        elif foreign < -self.FOREIGN_STRONG:
            score -= 8
            reasons.append(ReasonCode.FOREIGN_OUTFLOW)

        # 5. Fundamentals
        if p.roe and p.roe >= self.HIGH_ROE:
            score += 8
            reasons.append(ReasonCode.HIGH_ROE)
        if p.pe is not None and 0 < p.pe < self.PE_CEILING:
            score += 7
            reasons.append(ReasonCode.REASONABLE_VALUATION)

        # 6. Breadth
        if p.market_below_ma20:
            score -= 5
            reasons.append(ReasonCode.WEAK_MARKET)

        final_score = min(100, max(0, js_round(score)))
        return ScoreResult(
            score=final_score,
            action=self.action_for(final_score),
            reasons=reasons or [ReasonCode.INSUFFICIENT_SIGNAL],
        )

    def action_for(self, score: int) -> Action:
        for floor, action in self.BANDS:
            if score >= floor:
                return action
        return Action.AVOID
