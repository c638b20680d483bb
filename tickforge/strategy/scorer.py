"""Signal scoring — pure heuristics, no I/O.

Each contract family runs an ordered list of heuristic layers over the
price and digit windows.  The first layer that fires picks the contract
type and confidence; when none fires there is no trade.  Confidence is
always clamped to ``[0, policy.max_confidence]``.

Every numeric threshold lives in ``ScoringPolicy`` so the rules can be
tuned without touching the layer logic.
"""

from dataclasses import dataclass
from typing import Optional

from tickforge.models.trade_config import TradeConfig
from tickforge.strategy.indicators import analyze_market
from tickforge.strategy.models import Decision, IndicatorSnapshot
from tickforge.strategy.patterns import (
    analyze_digit_frequency,
    calculate_volatility,
    detect_pattern,
    detect_support_resistance,
    ticks_since,
    trailing_streak,
)


@dataclass(frozen=True)
class ScoringPolicy:
    """Tunable thresholds for every scoring layer."""

    max_confidence: float = 95.0
    high_volatility: float = 0.001

    # Rise/Fall
    directional_min_prices: int = 50
    directional_entry: float = 70.0
    pattern_weight: float = 0.2
    sr_bonus: float = 12.0
    momentum_lookback: int = 3
    volatility_penalty: float = 5.0
    volatility_bonus: float = 3.0
    trend_alignment_bonus: float = 8.0
    short_trend_ticks: int = 5
    medium_trend_ticks: int = 20

    # Even/Odd
    parity_min_digits: int = 30
    parity_window: int = 40
    parity_recent: int = 10
    even_high: float = 0.56
    even_low: float = 0.24
    parity_confirm_bonus: float = 5.0
    parity_streak: int = 5
    parity_bias_high: float = 0.68
    parity_bias_low: float = 0.32

    # Over/Under
    barrier_min_digits: int = 40
    barrier_window: int = 50
    barrier_recent: int = 15
    barrier_streak: int = 7
    high_volatility_factor: float = 1.08
    low_volatility_factor: float = 0.95

    # Matches/Differs
    match_min_digits: int = 30
    match_window: int = 40
    match_recent: int = 12
    overdue_ticks: int = 30
    differ_baseline: float = 85.0


DIRECTIONAL_WEIGHTS: dict[str, float] = {
    "rsi": 20,
    "macd": 20,
    "ema": 20,
    "bands": 15,
    "stochastic": 15,
    "trend": 10,
}


def directional_confidence(
    indicators: IndicatorSnapshot,
    price: float,
    direction: str,
) -> float:
    """Weighted indicator agreement (0–100) with a rise or fall hypothesis.

    Args:
        indicators: Snapshot of the current window.
        price: Latest price.
        direction: ``"up"`` or ``"down"``.
    """
    if direction not in ("up", "down"):
        raise ValueError(f"direction must be 'up' or 'down', got '{direction}'")

    w = DIRECTIONAL_WEIGHTS
    rsi = indicators.rsi
    stoch = indicators.stochastic
    bands = indicators.bands
    score = 0.0

    if direction == "up":
        if 40 < rsi < 70:
            score += w["rsi"]
        if indicators.macd.value > 0:
            score += w["macd"]
        if indicators.ema.ema20 > indicators.ema.ema50:
            score += w["ema"]
        if bands.middle < price < bands.upper:
            score += w["bands"]
        if stoch.k > stoch.d and stoch.k < 80:
            score += w["stochastic"]
        if indicators.trend == "BULLISH":
            score += w["trend"]
    else:
        if 30 < rsi < 60:
            score += w["rsi"]
        if indicators.macd.value < 0:
            score += w["macd"]
        if indicators.ema.ema20 < indicators.ema.ema50:
            score += w["ema"]
        if bands.lower < price < bands.middle:
            score += w["bands"]
        if stoch.k < stoch.d and stoch.k > 20:
            score += w["stochastic"]
        if indicators.trend == "BEARISH":
            score += w["trend"]

    return min(100.0, score)


class SignalScorer:
    """Turns price/digit windows into a ``Decision`` or ``None``.

    ``last_insight`` holds a small dict describing the most recent
    evaluation (family, layer hit or skip reason) for status reporting.
    """

    def __init__(self, policy: Optional[ScoringPolicy] = None) -> None:
        self.policy = policy or ScoringPolicy()
        self.last_insight: dict = {}

    def score(
        self,
        prices: list[float],
        digits: list[int],
        config: TradeConfig,
    ) -> Optional[Decision]:
        """Evaluate the family of ``config.contract_type``."""
        family = config.family
        self.last_insight = {"family": family}
        if family == "directional":
            decision = self.score_directional(prices)
        elif family == "parity":
            decision = self.score_parity(digits)
        elif family == "barrier":
            decision = self.score_barrier(prices, digits, config.barrier_digit)
        else:
            decision = self.score_match_differ(
                digits, config.barrier_digit, config.contract_type,
            )

        if decision is not None:
            self.last_insight["result"] = decision.contract_type
            self.last_insight["confidence"] = round(decision.confidence, 2)
            self.last_insight["reason"] = decision.reason
        return decision

    # ── Helpers ──────────────────────────────────────────────────────────

    def _decide(self, contract_type: str, confidence: float, reason: str) -> Decision:
        confidence = max(0.0, min(self.policy.max_confidence, confidence))
        return Decision(contract_type=contract_type, confidence=confidence, reason=reason)

    def _skip(self, result: str) -> Optional[Decision]:
        self.last_insight["result"] = result
        return None

    # ── Rise/Fall ────────────────────────────────────────────────────────

    def score_directional(self, prices: list[float]) -> Optional[Decision]:
        p = self.policy
        if len(prices) < p.directional_min_prices:
            return self._skip("insufficient_prices")

        indicators = analyze_market(prices)
        price = prices[-1]
        up = directional_confidence(indicators, price, "up")
        down = directional_confidence(indicators, price, "down")
        self.last_insight.update(base_up=up, base_down=down, trend=indicators.trend)

        pattern = detect_pattern(prices)
        bonus = pattern.strength * p.pattern_weight
        if pattern.name == "STRONG_UPTREND":
            up += bonus
            down -= bonus
        elif pattern.name == "STRONG_DOWNTREND":
            up -= bonus
            down += bonus

        support, resistance = detect_support_resistance(prices)
        momentum = price - prices[-1 - p.momentum_lookback]
        if price <= support and momentum > 0:
            up += p.sr_bonus
            down -= p.sr_bonus
        elif price >= resistance and momentum < 0:
            up -= p.sr_bonus
            down += p.sr_bonus

        if calculate_volatility(prices) > p.high_volatility:
            up -= p.volatility_penalty
            down -= p.volatility_penalty
        else:
            up += p.volatility_bonus
            down += p.volatility_bonus

        short_move = price - prices[-p.short_trend_ticks]
        medium_move = price - prices[-p.medium_trend_ticks]
        if short_move > 0 and medium_move > 0:
            up += p.trend_alignment_bonus
            down -= p.trend_alignment_bonus
        elif short_move < 0 and medium_move < 0:
            up -= p.trend_alignment_bonus
            down += p.trend_alignment_bonus

        self.last_insight.update(pattern=pattern.name, adjusted_up=up, adjusted_down=down)

        if up > down and up >= p.directional_entry:
            return self._decide("CALL", up, f"Rise score {up:.1f} ({pattern.name})")
        if down > up and down >= p.directional_entry:
            return self._decide("PUT", down, f"Fall score {down:.1f} ({pattern.name})")
        return self._skip("below_entry_threshold")

    # ── Even/Odd ─────────────────────────────────────────────────────────

    def score_parity(self, digits: list[int]) -> Optional[Decision]:
        p = self.policy
        if len(digits) < p.parity_min_digits:
            return self._skip("insufficient_digits")

        window = digits[-p.parity_window:]
        recent = window[-p.parity_recent:]
        even_share = sum(1 for d in window if d % 2 == 0) / len(window)
        recent_share = sum(1 for d in recent if d % 2 == 0) / len(recent)
        self.last_insight["even_share"] = round(even_share, 3)

        # Layer 1: window mean reversion
        if even_share > p.even_high:
            confidence = 70 + min(20.0, (even_share - p.even_high) * 100)
            if recent_share > 0.5:
                confidence += p.parity_confirm_bonus
            return self._decide(
                "DIGITODD", confidence, f"Even share {even_share:.0%} above {p.even_high:.0%}",
            )
        if even_share < p.even_low:
            confidence = 70 + min(20.0, (p.even_low - even_share) * 100)
            if recent_share < 0.5:
                confidence += p.parity_confirm_bonus
            return self._decide(
                "DIGITEVEN", confidence, f"Even share {even_share:.0%} below {p.even_low:.0%}",
            )

        # Layer 2: streak reversal
        streak = trailing_streak(window, key=lambda d: d % 2)
        if streak >= p.parity_streak:
            last_even = window[-1] % 2 == 0
            return self._decide(
                "DIGITODD" if last_even else "DIGITEVEN",
                62 + streak * 3,
                f"{streak}-tick {'even' if last_even else 'odd'} streak",
            )

        # Layer 3: whole-buffer bias
        ratio = analyze_digit_frequency(digits).even_odd_ratio
        if ratio > p.parity_bias_high:
            return self._decide(
                "DIGITODD", 66 + min(20.0, (ratio - p.parity_bias_high) * 100),
                f"Even/odd ratio {ratio:.2f}",
            )
        if ratio < p.parity_bias_low:
            return self._decide(
                "DIGITEVEN", 66 + min(20.0, (p.parity_bias_low - ratio) * 100),
                f"Even/odd ratio {ratio:.2f}",
            )
        return self._skip("no_parity_pattern")

    # ── Over/Under ───────────────────────────────────────────────────────

    def score_barrier(
        self,
        prices: list[float],
        digits: list[int],
        barrier: Optional[int],
    ) -> Optional[Decision]:
        p = self.policy
        if barrier is None:
            return self._skip("no_barrier")
        if len(digits) < p.barrier_min_digits:
            return self._skip("insufficient_digits")

        # OVER needs a digit above the barrier to exist, UNDER one below
        can_over = barrier <= 8
        can_under = barrier >= 1

        window = digits[-p.barrier_window:]
        recent = window[-p.barrier_recent:]
        recent_high = sum(1 for d in recent if d > barrier)
        recent_low = len(recent) - recent_high
        overall_high = sum(1 for d in window if d > barrier)
        overall_low = len(window) - overall_high
        self.last_insight.update(
            recent_high=recent_high,
            recent_low=recent_low,
            overall_high=overall_high,
            overall_low=overall_low,
        )

        # Layer 1: strong recent imbalance, scaled by volatility
        factor = (
            p.high_volatility_factor
            if calculate_volatility(prices) > p.high_volatility
            else p.low_volatility_factor
        )
        if can_over and recent_low > recent_high * 2:
            confidence = (70 + min(22.0, (recent_low - recent_high) * 3.5)) * factor
            return self._decide("DIGITOVER", confidence, "Recent digits crowded at or below barrier")
        if can_under and recent_high > recent_low * 2:
            confidence = (70 + min(22.0, (recent_high - recent_low) * 3.5)) * factor
            return self._decide("DIGITUNDER", confidence, "Recent digits crowded above barrier")

        # Layer 2: same-side streak reversal
        streak = trailing_streak(window, key=lambda d: d > barrier)
        if streak >= p.barrier_streak:
            last_high = window[-1] > barrier
            if last_high and can_under:
                return self._decide("DIGITUNDER", 68 + streak * 3, f"{streak}-tick streak above barrier")
            if not last_high and can_over:
                return self._decide("DIGITOVER", 68 + streak * 3, f"{streak}-tick streak below barrier")

        # Layer 3: overall imbalance confirmed by the recent window
        if can_over and overall_low > overall_high * 1.6 and recent_low >= recent_high:
            confidence = 66 + min(20.0, (overall_low - overall_high) * 2.5)
            return self._decide("DIGITOVER", confidence, "Window skewed at or below barrier")
        if can_under and overall_high > overall_low * 1.6 and recent_high >= recent_low:
            confidence = 66 + min(20.0, (overall_high - overall_low) * 2.5)
            return self._decide("DIGITUNDER", confidence, "Window skewed above barrier")

        # Layer 4: momentum and trend alignment
        indicators = analyze_market(prices)
        if (can_over and recent_high > recent_low
                and indicators.trend == "BULLISH" and indicators.rsi > 58):
            return self._decide(
                "DIGITOVER", 70 + (indicators.rsi - 58) * 0.6, "Bullish momentum above barrier",
            )
        if (can_under and recent_low > recent_high
                and indicators.trend == "BEARISH" and indicators.rsi < 42):
            return self._decide(
                "DIGITUNDER", 70 + (42 - indicators.rsi) * 0.6, "Bearish momentum below barrier",
            )

        # Layer 5: the "due" digit lies on one side of the barrier
        analysis = analyze_digit_frequency(window)
        prediction = analysis.prediction
        if prediction is not None:
            if prediction.digit > barrier and can_over:
                return self._decide("DIGITOVER", prediction.confidence, prediction.reason)
            if prediction.digit < barrier and can_under:
                return self._decide("DIGITUNDER", prediction.confidence, prediction.reason)

        # Layer 6: cold digits missing from the recent window
        cold_over = [d for d in analysis.cold_digits if d > barrier and d not in recent]
        cold_under = [d for d in analysis.cold_digits if d < barrier and d not in recent]
        if can_over and cold_over and len(cold_over) >= len(cold_under):
            return self._decide(
                "DIGITOVER", 64 + 3 * len(cold_over), f"Cold digits {cold_over} absent recently",
            )
        if can_under and cold_under:
            return self._decide(
                "DIGITUNDER", 64 + 3 * len(cold_under), f"Cold digits {cold_under} absent recently",
            )
        return self._skip("no_barrier_pattern")

    # ── Matches/Differs ──────────────────────────────────────────────────

    def score_match_differ(
        self,
        digits: list[int],
        target: Optional[int],
        contract_type: str,
    ) -> Optional[Decision]:
        p = self.policy
        if target is None:
            return self._skip("no_target_digit")
        if len(digits) < p.match_min_digits:
            return self._skip("insufficient_digits")

        window = digits[-p.match_window:]
        recent = window[-p.match_recent:]
        analysis = analyze_digit_frequency(window)
        count = analysis.frequency[target]
        average = len(window) / 10
        appearances = recent.count(target)
        run = trailing_streak(window, key=lambda d: d == target) if window[-1] == target else 0
        is_hot = target in analysis.hot_digits
        is_cold = target in analysis.cold_digits
        self.last_insight.update(
            target=target,
            count=count,
            recent_appearances=appearances,
            streak=run,
        )

        if contract_type == "DIGITMATCH":
            if is_hot and appearances >= 3:
                return self._decide(
                    "DIGITMATCH", 60 + (count - average) * 5 + appearances * 2,
                    f"Digit {target} hot with {appearances} recent hits",
                )
            if run >= 2:
                return self._decide(
                    "DIGITMATCH", 62 + run * 6, f"Digit {target} on a {run}-tick streak",
                )
            ranked = sorted(analysis.frequency, reverse=True)
            if count == ranked[0] and count > ranked[1] and count > average:
                return self._decide(
                    "DIGITMATCH", 60 + (count - ranked[1]) * 5,
                    f"Digit {target} is the hottest digit",
                )
            gap = ticks_since(window, target)
            if gap >= p.overdue_ticks:
                return self._decide(
                    "DIGITMATCH", 62 + min(20, gap - p.overdue_ticks),
                    f"Digit {target} absent for {gap} ticks",
                )
            return self._skip("no_match_pattern")

        if appearances >= 4:
            return self._decide(
                "DIGITDIFF", 80 + appearances * 2.5,
                f"Digit {target} appeared {appearances} times recently",
            )
        if is_hot and appearances >= 2:
            return self._decide(
                "DIGITDIFF", 82 + (count - average) * 2,
                f"Digit {target} hot with recent spike",
            )
        if run >= 2:
            return self._decide(
                "DIGITDIFF", 84 + run * 2, f"Digit {target} streak likely to break",
            )
        if not is_hot and not is_cold:
            return self._decide(
                "DIGITDIFF", p.differ_baseline, f"Digit {target} at neutral frequency",
            )
        return self._skip("no_differ_pattern")
