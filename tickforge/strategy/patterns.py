"""Pattern statistics over price and digit windows — pure functions."""

import math
from typing import Callable, Optional, Sequence, TypeVar

from tickforge.strategy.models import DigitAnalysis, DigitPrediction, Pattern

T = TypeVar("T")

HOT_FACTOR = 1.3
COLD_FACTOR = 0.7


def detect_support_resistance(
    prices: list[float],
    lookback: int = 50,
) -> tuple[float, float]:
    """Return ``(support, resistance)`` as the 20th/80th percentile.

    Percentiles are read by index (``floor(n × q)``) from the sorted
    trailing *lookback* prices.
    """
    recent = sorted(prices[-lookback:])
    if not recent:
        return 0.0, 0.0
    n = len(recent)
    support = recent[math.floor(n * 0.2)]
    resistance = recent[min(n - 1, math.floor(n * 0.8))]
    return support, resistance


def calculate_volatility(prices: list[float]) -> float:
    """Population standard deviation of consecutive percentage returns."""
    returns = [
        (prices[i] - prices[i - 1]) / prices[i - 1]
        for i in range(1, len(prices))
        if prices[i - 1] != 0
    ]
    if not returns:
        return 0.0
    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance)


def _block_extremes(recent: list[float], block: int) -> list[tuple[float, float]]:
    return [
        (max(recent[i:i + block]), min(recent[i:i + block]))
        for i in range(0, len(recent), block)
    ]


def detect_pattern(
    prices: list[float],
    lookback: int = 20,
    block: int = 4,
) -> Pattern:
    """Classify the trailing window by comparing successive 4-tick blocks.

    ≥3 higher-high and ≥2 higher-low transitions → ``STRONG_UPTREND``;
    ≥3 lower-high and ≥2 lower-low transitions → ``STRONG_DOWNTREND``;
    anything else is ``RANGING``.
    """
    recent = prices[-lookback:]
    blocks = _block_extremes(recent, block)

    higher_highs = higher_lows = lower_highs = lower_lows = 0
    for (prev_high, prev_low), (high, low) in zip(blocks, blocks[1:]):
        if high > prev_high:
            higher_highs += 1
        elif high < prev_high:
            lower_highs += 1
        if low > prev_low:
            higher_lows += 1
        elif low < prev_low:
            lower_lows += 1

    if higher_highs >= 3 and higher_lows >= 2:
        return Pattern(name="STRONG_UPTREND", strength=85)
    if lower_highs >= 3 and lower_lows >= 2:
        return Pattern(name="STRONG_DOWNTREND", strength=85)
    return Pattern(name="RANGING", strength=50)


def analyze_digit_frequency(digits: list[int]) -> DigitAnalysis:
    """Per-digit counts, hot/cold sets, even share and a "due" digit.

    A digit is hot above 1.3× the average count and cold below 0.7×.
    When the hottest and coldest counts differ by 3 or more, the
    least-frequent digit is predicted with confidence
    ``min(85, 55 + gap × 5)``, provided at least one digit is cold.
    """
    frequency = [0] * 10
    for d in digits:
        frequency[d] += 1

    if not digits:
        return DigitAnalysis(
            frequency=frequency,
            hot_digits=[],
            cold_digits=[],
            even_odd_ratio=0.0,
        )

    average = len(digits) / 10
    hot = [d for d, count in enumerate(frequency) if count > average * HOT_FACTOR]
    cold = [d for d, count in enumerate(frequency) if count < average * COLD_FACTOR]
    even_ratio = sum(1 for d in digits if d % 2 == 0) / len(digits)

    coldest = min(range(10), key=lambda d: frequency[d])
    hottest = max(range(10), key=lambda d: frequency[d])
    gap = frequency[hottest] - frequency[coldest]

    prediction: Optional[DigitPrediction] = None
    if gap >= 3 and cold:
        prediction = DigitPrediction(
            digit=coldest,
            confidence=min(85, 55 + gap * 5),
            reason=(
                f"Digit {coldest} is due ({frequency[coldest]} vs "
                f"{frequency[hottest]} for digit {hottest})"
            ),
        )

    return DigitAnalysis(
        frequency=frequency,
        hot_digits=hot,
        cold_digits=cold,
        even_odd_ratio=even_ratio,
        prediction=prediction,
    )


def trailing_streak(items: Sequence[T], key: Callable[[T], object]) -> int:
    """Length of the run at the end of *items* sharing the last item's key."""
    if not items:
        return 0
    last = key(items[-1])
    streak = 0
    for item in reversed(items):
        if key(item) != last:
            break
        streak += 1
    return streak


def ticks_since(digits: Sequence[int], digit: int) -> int:
    """Ticks since *digit* last appeared (``len(digits)`` if never)."""
    for age, d in enumerate(reversed(digits)):
        if d == digit:
            return age
    return len(digits)
