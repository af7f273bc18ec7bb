from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from taipulse.constants import DEFAULT_SECTOR_NAME

# ======================================================
# SECTION 1: ENUMS
# ======================================================

class AnalysisMode(str, Enum):
    FULL = "full"    # always refetch static data
    FAST = "fast"    # cache if valid, else fetch once
    PULSE = "pulse"  # cache if valid, else zeroed bundle

class TrendStatus(str, Enum):
    BULLISH_ALIGNED = "BULLISH_ALIGNED"
    BEARISH_ALIGNED = "BEARISH_ALIGNED"
    PULLBACK = "PULLBACK"
    REBOUND = "REBOUND"
    CHOPPY = "CHOPPY"

class Action(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    LEAN_LONG = "LEAN_LONG"
    NEUTRAL = "NEUTRAL"
    DEFENSIVE = "DEFENSIVE"
    AVOID = "AVOID"

    @property
    def label(self) -> str:
        return ACTION_LABELS[self]

class ReasonCode(str, Enum):
    HEALTHY_RALLY = "HEALTHY_RALLY"
    OVEREXTENDED_RALLY = "OVEREXTENDED_RALLY"
    SELLING_PRESSURE = "SELLING_PRESSURE"
    VOLUME_BREAKOUT = "VOLUME_BREAKOUT"
    ABOVE_MA20 = "ABOVE_MA20"
    BELOW_MA20 = "BELOW_MA20"
    BULLISH_ALIGNMENT = "BULLISH_ALIGNMENT"
    OVERHEATED = "OVERHEATED"
    TRUST_ACCUMULATION = "TRUST_ACCUMULATION"
    TRUST_STREAK = "TRUST_STREAK"
    TRUST_DISTRIBUTION = "TRUST_DISTRIBUTION"
    FOREIGN_INFLOW = "FOREIGN_INFLOW"
    FOREIGN_OUTFLOW = "FOREIGN_OUTFLOW"
    HIGH_ROE = "HIGH_ROE"
    REASONABLE_VALUATION = "REASONABLE_VALUATION"
    WEAK_MARKET = "WEAK_MARKET"
    INSUFFICIENT_SIGNAL = "INSUFFICIENT_SIGNAL"

    @property
    def label(self) -> str:
        return REASON_LABELS[self]

ACTION_LABELS: Dict[Action, str] = {
    Action.STRONG_BUY: "強力買進",
    Action.LEAN_LONG: "偏多操作",
    Action.NEUTRAL: "中性觀望",
    Action.DEFENSIVE: "保守避險",
    Action.AVOID: "建議觀望",
}

REASON_LABELS: Dict[ReasonCode, str] = {
    ReasonCode.HEALTHY_RALLY: "健康拉抬區間",
    ReasonCode.OVEREXTENDED_RALLY: "強勢但防回檔",
    ReasonCode.SELLING_PRESSURE: "短線跌勢轉重",
    ReasonCode.VOLUME_BREAKOUT: "爆量攻擊訊號",
    ReasonCode.ABOVE_MA20: "站上月線關鍵位",
    ReasonCode.BELOW_MA20: "跌破月線轉弱",
    ReasonCode.BULLISH_ALIGNMENT: "多頭排列格局",
    ReasonCode.OVERHEATED: "短線過熱警示",
    ReasonCode.TRUST_ACCUMULATION: "投信大舉佈局",
    ReasonCode.TRUST_STREAK: "投信連續買超",
    ReasonCode.TRUST_DISTRIBUTION: "投信連番撤出",
    ReasonCode.FOREIGN_INFLOW: "外資趨勢偏多",
    ReasonCode.FOREIGN_OUTFLOW: "外資趨勢偏空",
    ReasonCode.HIGH_ROE: "高ROE品質保證",
    ReasonCode.REASONABLE_VALUATION: "估值仍在成長區",
    ReasonCode.WEAK_MARKET: "大盤疲弱拖累",
    ReasonCode.INSUFFICIENT_SIGNAL: "盤勢待確認",
}

# ======================================================
# SECTION 2: INTERNAL ENGINE DATA (Dataclasses)
# ======================================================

@dataclass(frozen=True)
class OHLCV:
    open: float
    high: float
    low: float
    close: float
    volume: float
    date: str = ""

@dataclass
class LiveQuote:
    id: str
    price: float
    change: float
    change_percent: float
    volume: float
    name: str
    market: Optional[str] = None

@dataclass
class BollingerBands:
    upper: float
    mid: float
    lower: float
    bandwidth: float

@dataclass
class TechIndicatorSet:
    rsi: float
    bbands: Optional[BollingerBands]
    ma20: Optional[float]
    ma60: Optional[float]
    trend_status: TrendStatus

@dataclass
class KeyLevels:
    recent_high: float
    recent_low: float
    high_vol_price: float

@dataclass
class PeerPerformance:
    name: str
    change: float

@dataclass
class IndexPerformance:
    twii_change: float = 0.0
    nasdaq_change: float = 0.0
    sox_change: float = 0.0

@dataclass
class SectorPerformance:
    sector_name: str = DEFAULT_SECTOR_NAME
    avg_change: float = 0.0
    peers: List[PeerPerformance] = field(default_factory=list)

@dataclass
class MarketContext:
    index_performance: IndexPerformance = field(default_factory=IndexPerformance)
    sector_performance: SectorPerformance = field(default_factory=SectorPerformance)

@dataclass
class StaticAnalysisData:
    """
    Everything that does not move intraday for one symbol.
    Replaced wholesale on refetch, never patched.
    """
    history: List[OHLCV] = field(default_factory=list)
    per_data: List[Dict[str, Any]] = field(default_factory=list)
    chip_data: List[Dict[str, Any]] = field(default_factory=list)
    financial_analysis: List[Dict[str, Any]] = field(default_factory=list)
    rev_data: List[Dict[str, Any]] = field(default_factory=list)
    market_below_ma20: bool = False
    market_context: MarketContext = field(default_factory=MarketContext)
    timestamp: float = 0.0

    @classmethod
    def default(cls) -> "StaticAnalysisData":
        """Zeroed bundle used when pulse mode has nothing cached"""
        return cls()

@dataclass
class ScoreResult:
    score: int
    action: Action
    reasons: List[ReasonCode]

    @property
    def reason_labels(self) -> List[str]:
        return [r.label for r in self.reasons]

@dataclass
class ChipSummary:
    trust_5d: Optional[int]     # thousand-share lots, None = no data
    foreign_5d: Optional[int]
    trust_streak: int

@dataclass
class Valuation:
    pe: Optional[float]
    pbr: Optional[float]
    dividend_yield: float

@dataclass
class Strategy:
    entry: float
    stop_loss: Any              # price, or a text instruction for value holds
    take_profit: float
    desc: str

@dataclass
class Forecasts:
    est_month_rev: str
    est_annual_return: str
    market_sentiment: int

@dataclass
class PricePoint:
    date: str
    price: float
    ma20: Optional[float] = None
    ma60: Optional[float] = None

# ======================================================
# SECTION 3: PUBLIC RESULT MODELS (Pydantic)
# ======================================================

class PriceInfo(BaseModel):
    price: float
    change: float
    change_percent: float

class AnalysisSection(BaseModel):
    score: int
    action: Action
    reasons: List[ReasonCode]
    strategy_mom: Strategy
    strategy_val: Strategy

class Fundamentals(BaseModel):
    pe: Optional[float] = None
    pbr: Optional[float] = None
    roe: Optional[float] = None
    roe_estimated: bool = False
    dividend_yield: Optional[float] = None
    profit_margin: Optional[float] = None
    volume: float = 0.0
    ma20: Optional[float] = None
    ma60: Optional[float] = None

class AdvancedTech(BaseModel):
    daily: TechIndicatorSet
    weekly: TechIndicatorSet
    daily_stream: str
    weekly_stream: str
    key_levels: KeyLevels

class AnalysisDetail(BaseModel):
    """Composite result. Rebuilt on every request, never cached."""
    id: str
    name: str
    price_info: PriceInfo
    analysis: AnalysisSection
    fundamentals: Fundamentals
    advanced_tech: AdvancedTech
    market_context: MarketContext
    chips: ChipSummary
    bias: float
    history: List[PricePoint]
    forecasts: Forecasts

class StockSnapshot(BaseModel):
    id: str
    name: str
    price: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    score: int = 50
    action: Action = Action.NEUTRAL
    is_detailed: bool = False

    @classmethod
    def from_detail(cls, detail: AnalysisDetail, is_detailed: bool = False) -> "StockSnapshot":
        return cls(
            id=detail.id,
            name=detail.name,
            price=detail.price_info.price,
            change=detail.price_info.change,
            change_percent=detail.price_info.change_percent,
            score=detail.analysis.score,
            action=detail.analysis.action,
            is_detailed=is_detailed,
        )

class SectorSnapshot(BaseModel):
    name: str
    score: int = 50
    stocks: List[StockSnapshot] = Field(default_factory=list)

class MarketTrend(BaseModel):
    name: str
    value: float
    change_percent: float

class MarketPulse(BaseModel):
    trends: List[MarketTrend] = Field(default_factory=list)
    sectors: List[SectorSnapshot] = Field(default_factory=list)
    recommendations: List[StockSnapshot] = Field(default_factory=list)
    warning: str = ""
    scan_status: str = ""
