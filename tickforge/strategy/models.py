"""Strategy data models — typed representations for strategy outputs."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MACDValue:
    """Moving-average convergence/divergence reading."""

    value: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class EMAPair:
    ema20: float
    ema50: float


@dataclass(frozen=True)
class Bands:
    """Bollinger envelope around the trailing mean."""

    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class Stochastic:
    k: float
    d: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Technical state of a price window at one point in time."""

    rsi: float
    macd: MACDValue
    ema: EMAPair
    bands: Bands
    stochastic: Stochastic
    atr: float
    trend: str  # "BULLISH", "BEARISH" or "NEUTRAL"


@dataclass(frozen=True)
class Pattern:
    """Trend-streak classification of the trailing window."""

    name: str  # "STRONG_UPTREND", "STRONG_DOWNTREND" or "RANGING"
    strength: float


@dataclass(frozen=True)
class DigitPrediction:
    """A digit considered "due" by mean reversion."""

    digit: int
    confidence: float
    reason: str


@dataclass(frozen=True)
class DigitAnalysis:
    """Frequency statistics over a digit window."""

    frequency: list[int]
    hot_digits: list[int]
    cold_digits: list[int]
    even_odd_ratio: float
    prediction: Optional[DigitPrediction] = None


@dataclass(frozen=True)
class Decision:
    """Contract type and confidence chosen by the scorer."""

    contract_type: str
    confidence: float
    reason: str


@dataclass(frozen=True)
class Signal:
    """A proposed trade, consumed immediately by the execution controller."""

    symbol: str
    contract_type: str
    confidence: float
    indicators: IndicatorSnapshot
    timestamp: float
    reason: str = ""
