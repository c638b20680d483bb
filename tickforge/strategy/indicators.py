"""Technical indicators — RSI, EMA, MACD, Bollinger Bands, Stochastic. Pure functions, no I/O.

Unlike candle-based indicators these work on a bare tick price list and
never raise on short history: each falls back to a neutral reading so a
freshly started stream can be scored without special-casing.
"""

import math

from tickforge.strategy.models import (
    Bands,
    EMAPair,
    IndicatorSnapshot,
    MACDValue,
    Stochastic,
)


def calculate_rsi(prices: list[float], period: int = 14) -> float:
    """Relative Strength Index over the trailing *period* changes.

    Uses simple (not Wilder-smoothed) averages of gains and losses.
    Returns 50 with fewer than ``period + 1`` prices and 100 when the
    window has no losses.
    """
    if len(prices) < period + 1:
        return 50.0

    gains = 0.0
    losses = 0.0
    for i in range(len(prices) - period, len(prices)):
        change = prices[i] - prices[i - 1]
        if change > 0:
            gains += change
        else:
            losses += -change

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_ema(prices: list[float], period: int) -> float:
    """Latest Exponential Moving Average value.

    Seeded with the SMA of the first *period* prices, then
    ``EMA = price × k + EMA_prev × (1 - k)`` with ``k = 2 / (period + 1)``.
    Returns the last price when history is shorter than *period*.
    """
    if not prices:
        return 0.0
    if len(prices) < period:
        return prices[-1]

    k = 2.0 / (period + 1)
    ema = sum(prices[:period]) / period
    for price in prices[period:]:
        ema = price * k + ema * (1 - k)
    return ema


def calculate_macd(prices: list[float]) -> MACDValue:
    """EMA(12) − EMA(26).

    No MACD history is kept between calls, so the signal line is the MACD
    value itself and the histogram is always zero.
    """
    macd_line = calculate_ema(prices, 12) - calculate_ema(prices, 26)
    signal_line = macd_line
    return MACDValue(
        value=macd_line,
        signal=signal_line,
        histogram=macd_line - signal_line,
    )


def calculate_bollinger(
    prices: list[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> Bands:
    """Bollinger Bands over the trailing *period* prices.

    Middle = SMA, Upper/Lower = middle ± *std_dev* × σ (population).
    All three collapse onto the last price when history is short.
    """
    if not prices:
        return Bands(upper=0.0, middle=0.0, lower=0.0)
    if len(prices) < period:
        current = prices[-1]
        return Bands(upper=current, middle=current, lower=current)

    window = prices[-period:]
    middle = sum(window) / period
    variance = sum((p - middle) ** 2 for p in window) / period
    sigma = math.sqrt(variance)
    return Bands(
        upper=middle + std_dev * sigma,
        middle=middle,
        lower=middle - std_dev * sigma,
    )


def _percent_k(window: list[float]) -> float:
    highest = max(window)
    lowest = min(window)
    if highest == lowest:
        return 50.0
    return (window[-1] - lowest) / (highest - lowest) * 100.0


def calculate_stochastic(
    prices: list[float],
    period: int = 14,
    smoothing: int = 3,
) -> Stochastic:
    """Stochastic oscillator on tick prices.

    %K is where the last price sits inside the trailing high/low range
    (0–100).  %D is the SMA of the last *smoothing* %K readings when there
    is enough history, otherwise it equals %K.  A flat range or short
    history reads 50.
    """
    if len(prices) < period:
        return Stochastic(k=50.0, d=50.0)

    k = _percent_k(prices[-period:])
    if len(prices) < period + smoothing - 1:
        return Stochastic(k=k, d=k)

    readings = [
        _percent_k(prices[len(prices) - period - offset: len(prices) - offset])
        for offset in range(smoothing)
    ]
    return Stochastic(k=k, d=sum(readings) / smoothing)


def calculate_range_volatility(prices: list[float]) -> float:
    """Single-step range proxy: ``|p[-1] − p[-2]|``."""
    if len(prices) < 2:
        return 0.0
    return abs(prices[-1] - prices[-2])


# ── Snapshot ─────────────────────────────────────────────────────────────


def classify_trend(
    price: float,
    rsi: float,
    macd: MACDValue,
    ema: EMAPair,
    bands: Bands,
    stochastic: Stochastic,
) -> str:
    """BULLISH on a majority (≥3 of 5) of bullish sub-signals, else BEARISH."""
    bullish = sum([
        ema.ema20 > ema.ema50,
        macd.histogram > 0,
        50 < rsi < 70,
        price > bands.middle,
        stochastic.k > stochastic.d,
    ])
    return "BULLISH" if bullish >= 3 else "BEARISH"


def analyze_market(prices: list[float]) -> IndicatorSnapshot:
    """Compute every indicator over *prices* and tag the trend."""
    rsi = calculate_rsi(prices)
    macd = calculate_macd(prices)
    ema = EMAPair(
        ema20=calculate_ema(prices, 20),
        ema50=calculate_ema(prices, 50),
    )
    bands = calculate_bollinger(prices)
    stochastic = calculate_stochastic(prices)
    atr = calculate_range_volatility(prices)
    if prices:
        trend = classify_trend(prices[-1], rsi, macd, ema, bands, stochastic)
    else:
        trend = "NEUTRAL"

    return IndicatorSnapshot(
        rsi=rsi,
        macd=macd,
        ema=ema,
        bands=bands,
        stochastic=stochastic,
        atr=atr,
        trend=trend,
    )
