"""
Portfolio & Analysis Models

Typed records shared by the analysis engines, the portfolio engine and the API.
Field names are snake_case in Python and camelCase on the wire (JSON backups,
API responses), so a backup written by the frontend loads without translation.
"""
from typing import List, Literal, Optional, Tuple, Union

import pandas as pd
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

import config

Trend = Literal["UP", "DOWN", "SIDEWAYS"]
VolumeFlow = Literal["ACCUMULATION", "DISTRIBUTION", "NEUTRAL"]
SignalKind = Literal["BULLISH", "BEARISH", "WARNING"]
FlowStatus = Literal[
    "STRONG_ACCUMULATION", "ACCUMULATION", "NEUTRAL", "DISTRIBUTION", "STRONG_DISTRIBUTION"
]
Confidence = Literal["HIGH", "MEDIUM", "LOW"]
Pattern = Literal["ABSORPTION", "MARKUP", "DISTRIBUTION_CEILING", "SHAKEOUT", "BREAKOUT"]
WarningLevel = Literal["SAFE", "CAUTION", "DANGER"]
RiskTolerance = Literal["CONSERVATIVE", "MODERATE", "AGGRESSIVE"]
TransactionType = Literal["BUY", "SELL"]
Action = Literal["STRONG_BUY", "BUY", "HOLD", "REDUCE", "SELL", "TAKE_PROFIT"]
Urgency = Literal["IMMEDIATE", "SOON", "WATCH", "NONE"]
PositionHealth = Literal["EXCELLENT", "GOOD", "WARNING", "DANGER"]
Priority = Literal["HIGH", "MEDIUM", "LOW"]


def normalize_symbol(ticker: str) -> str:
    """Bare upper-case IDX code, e.g. ' bbca.jk ' -> 'BBCA'."""
    clean = ticker.replace('★', '').replace('⭐', '').strip().upper()
    if clean.endswith(config.TICKER_SUFFIX):
        clean = clean[:-len(config.TICKER_SUFFIX)]
    return clean


class CamelModel(BaseModel):
    """Base model: camelCase aliases, population by either name."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==================== MARKET DATA ====================

class PriceSeries(CamelModel):
    """Daily OHLCV bars, oldest first. Immutable for the duration of an analysis run."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    closes: Tuple[float, ...]
    highs: Tuple[float, ...]
    lows: Tuple[float, ...]
    opens: Tuple[float, ...]
    volumes: Tuple[float, ...]

    @model_validator(mode="after")
    def _check_lengths(self):
        n = len(self.closes)
        for name in ("highs", "lows", "opens", "volumes"):
            if len(getattr(self, name)) != n:
                raise ValueError(f"{name} has {len(getattr(self, name))} entries, expected {n}")
        return self

    def __len__(self) -> int:
        return len(self.closes)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "PriceSeries":
        """Build from a DataFrame with lowercase open/high/low/close/volume columns."""
        return cls(
            closes=tuple(float(v) for v in df["close"]),
            highs=tuple(float(v) for v in df["high"]),
            lows=tuple(float(v) for v in df["low"]),
            opens=tuple(float(v) for v in df["open"]),
            volumes=tuple(float(v) for v in df["volume"]),
        )


class Indicators(CamelModel):
    rsi: float
    ma5: float
    ma20: float
    ma60: float
    atr: float
    volume_change_percent: float
    trend: Trend
    volume_flow: VolumeFlow
    support: float
    resistance: float
    price_position: float


class FlowSignal(CamelModel):
    kind: SignalKind
    name: str
    description: str
    weight: int


class FlowAnalysis(CamelModel):
    score: int = 50
    status: FlowStatus = "NEUTRAL"
    signals: List[FlowSignal] = Field(default_factory=list)
    confidence: Confidence = "LOW"
    pattern: Optional[Pattern] = None
    days_since_pattern_start: int = 0
    warning_level: WarningLevel = "SAFE"


class StockSnapshot(CamelModel):
    """Per-symbol market view: latest price plus the derived analyses."""
    symbol: str
    name: str = ""
    current_price: float
    change: float = 0.0
    change_percent: float = 0.0
    indicators: Optional[Indicators] = None
    flow: Optional[FlowAnalysis] = None


# ==================== PORTFOLIO INPUTS ====================

class Transaction(CamelModel):
    id: Optional[str] = None
    symbol: str
    type: TransactionType = "BUY"
    lots: int = Field(gt=0)
    price: float = Field(gt=0, validation_alias=AliasChoices("price", "buyPrice"))
    timestamp: Optional[str] = Field(default=None, validation_alias=AliasChoices("timestamp", "date"))

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        v = normalize_symbol(v)
        if not v:
            raise ValueError("symbol is required")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v):
        # Legacy backups carry no type: treat as BUY
        return "BUY" if v in (None, "") else v


class UserSettings(CamelModel):
    total_capital: float = Field(ge=0)
    max_allocation_per_stock: float = Field(ge=0, le=100)
    risk_tolerance: RiskTolerance = "MODERATE"
    take_profit_target: float = Field(gt=0)
    stop_loss_target: float = Field(gt=0)


class Position(CamelModel):
    symbol: str
    total_lots: int = 0
    avg_price: float = 0.0
    cost_basis: float = 0.0


# ==================== OUTPUTS ====================

class Suggestion(CamelModel):
    action: Action = "HOLD"
    urgency: Urgency = "NONE"
    reason: str = "Data not available."
    analysis_summary: str = "Insufficient data."
    warning_flags: List[str] = Field(default_factory=list)
    is_near_exit: bool = False
    trend: Optional[Trend] = None
    flow_score: Optional[int] = None
    flow_status: Optional[str] = None


class PriceLevel(CamelModel):
    price: float = 0
    percent_from_current: float = 0
    reason: str = "N/A"


class AddZone(CamelModel):
    price: float
    lots: int
    reason: str
    priority: Priority


class SellStep(CamelModel):
    trigger_condition: str
    price: float
    lots_to_sell: Union[int, Literal["ALL"]]
    percent_of_position: float
    reason: str


class TradingPlan(CamelModel):
    position_health: PositionHealth = "WARNING"
    stop_loss: PriceLevel = Field(default_factory=PriceLevel)
    take_profit1: PriceLevel = Field(default_factory=PriceLevel)
    take_profit2: PriceLevel = Field(default_factory=PriceLevel)
    take_profit3: PriceLevel = Field(default_factory=PriceLevel)
    add_zones: List[AddZone] = Field(default_factory=list)
    sell_strategy: List[SellStep] = Field(default_factory=list)
    risk_reward_ratio: float = 0
    max_downside: float = 0
    max_upside: float = 0
    immediate_action: str = "Data not available"
    short_term_plan: str = "Waiting for data"
    notes: str = ""


class PortfolioItem(CamelModel):
    symbol: str
    total_lots: int
    avg_price: float
    current_price: float
    market_value: float
    cost_basis: float
    unrealized_pl: float = Field(alias="unrealizedPL")
    unrealized_pl_percent: float = Field(alias="unrealizedPLPercent")
    allocation_percent: float
    indicators: Optional[Indicators] = None
    flow: Optional[FlowAnalysis] = None
    suggestion: Suggestion
    trading_plan: TradingPlan


class PortfolioSummary(CamelModel):
    total_market_value: float
    total_cost: float
    total_pl: float = Field(alias="totalPL")
    total_pl_percent: float = Field(alias="totalPLPercent")
    cash_remaining: float


class OpportunityResult(CamelModel):
    symbol: str
    current_price: float
    flow: Optional[FlowAnalysis] = None
    indicators: Optional[Indicators] = None
    suggestion: Suggestion
    trading_plan: TradingPlan
    rank_score: int


class BackupPayload(CamelModel):
    transactions: List[Transaction] = Field(default_factory=list)
    settings: UserSettings
    export_date: Optional[str] = None
    version: str = "1.0"
