"""Deterministic tests for the signal scorer.

Digit windows are built from integer tick counts on R_50 (4 decimals) so
every price carries exactly the intended last digit.
"""

import random

import pytest

from tickforge.market.tick_buffer import TickBuffer
from tickforge.models.trade_config import TradeConfig
from tickforge.strategy.scorer import (
    DIRECTIONAL_WEIGHTS,
    ScoringPolicy,
    SignalScorer,
    directional_confidence,
)
from tickforge.strategy.indicators import analyze_market


# ── Helpers ──────────────────────────────────────────────────────────────


def _digit_prices(digits: list[int]) -> list[float]:
    """Slowly rising R_50 prices whose last quoted digit follows *digits*."""
    return [(10_000_000 + i * 10 + d) / 10_000 for i, d in enumerate(digits)]


def _windows(digits: list[int]) -> tuple[list[float], list[int]]:
    buf = TickBuffer()
    for price in _digit_prices(digits):
        buf.add_sample("R_50", price)
    return buf.prices("R_50"), buf.digits("R_50")


def _even_heavy_digits() -> list[int]:
    """60 digits, all even except 5 scattered odd ones."""
    digits = [(i * 2) % 10 for i in range(60)]
    for index in (3, 17, 29, 41, 52):
        digits[index] = 7
    return digits


def _score(contract_type: str, digits: list[int], barrier: str = "5"):
    prices, buffered = _windows(digits)
    config = TradeConfig(contract_type=contract_type, barrier=barrier)
    return SignalScorer().score(prices, buffered, config)


# ── Rise/Fall ────────────────────────────────────────────────────────────


class TestDirectional:
    def test_weights_sum_to_100(self):
        assert sum(DIRECTIONAL_WEIGHTS.values()) == 100

    def test_linear_uptrend_is_call(self):
        prices = [100 + 0.01 * i for i in range(60)]
        decision = SignalScorer().score(prices, [], TradeConfig(contract_type="CALL"))
        assert decision is not None
        assert decision.contract_type == "CALL"
        # base 55 + pattern 17 + calm market 3 + trend alignment 8
        assert decision.confidence == pytest.approx(83.0)

    def test_linear_downtrend_is_put(self):
        prices = [100 - 0.01 * i for i in range(60)]
        decision = SignalScorer().score(prices, [], TradeConfig(contract_type="CALL"))
        assert decision is not None
        assert decision.contract_type == "PUT"
        # base 65 (BEARISH tag included) + pattern 17 + calm market 3 + trend alignment 8
        assert decision.confidence == pytest.approx(93.0)

    def test_put_config_can_answer_call(self):
        prices = [100 + 0.01 * i for i in range(60)]
        decision = SignalScorer().score(prices, [], TradeConfig(contract_type="PUT"))
        assert decision.contract_type == "CALL"

    def test_flat_market_no_trade(self):
        scorer = SignalScorer()
        decision = scorer.score([100.0] * 60, [], TradeConfig(contract_type="CALL"))
        assert decision is None
        assert scorer.last_insight["result"] == "below_entry_threshold"

    def test_insufficient_prices(self):
        scorer = SignalScorer()
        prices = [100 + 0.01 * i for i in range(49)]
        assert scorer.score(prices, [], TradeConfig()) is None
        assert scorer.last_insight["result"] == "insufficient_prices"

    def test_base_confidence(self):
        prices = [100 + 0.01 * i for i in range(60)]
        snap = analyze_market(prices)
        assert directional_confidence(snap, prices[-1], "up") == 55
        # only the BEARISH trend tag (two bullish votes) favours a fall
        assert directional_confidence(snap, prices[-1], "down") == 10

    def test_invalid_direction(self):
        snap = analyze_market([1.0] * 60)
        with pytest.raises(ValueError, match="direction"):
            directional_confidence(snap, 1.0, "sideways")

    def test_entry_threshold_is_tunable(self):
        prices = [100 + 0.01 * i for i in range(60)]
        strict = SignalScorer(ScoringPolicy(directional_entry=90.0))
        assert strict.score(prices, [], TradeConfig()) is None


# ── Even/Odd ─────────────────────────────────────────────────────────────


class TestParity:
    def test_even_heavy_window_calls_odd(self):
        decision = _score("DIGITEVEN", _even_heavy_digits())
        assert decision is not None
        assert decision.contract_type == "DIGITODD"
        assert decision.confidence >= 70

    def test_odd_heavy_window_calls_even(self):
        digits = [2, 4, 6, 8, 0] + [1, 3, 5, 7, 9] * 7
        decision = _score("DIGITODD", digits)
        assert decision.contract_type == "DIGITEVEN"
        # 70 + (0.24 - 0.125) * 100 + 5 recent confirmation
        assert decision.confidence == pytest.approx(86.5)

    def test_streak_reversal(self):
        digits = [2 if i % 2 == 0 else 1 for i in range(35)] + [1, 3, 5, 7, 9]
        decision = _score("DIGITEVEN", digits)
        assert decision.contract_type == "DIGITEVEN"
        assert decision.confidence == pytest.approx(77.0)

    def test_whole_buffer_bias(self):
        digits = [4] * 60 + [1 if i % 2 == 0 else 2 for i in range(40)]
        decision = _score("DIGITEVEN", digits)
        assert decision.contract_type == "DIGITODD"
        assert decision.confidence == pytest.approx(78.0)

    def test_balanced_no_trade(self):
        digits = [1 if i % 2 == 0 else 2 for i in range(40)]
        assert _score("DIGITEVEN", digits) is None

    def test_insufficient_digits(self):
        assert _score("DIGITEVEN", [2] * 29) is None


# ── Over/Under ───────────────────────────────────────────────────────────


class TestBarrier:
    def test_recent_crowding_below_calls_over(self):
        digits = [(i * 3) % 10 for i in range(25)] + [0, 1, 2, 3, 4] * 3
        decision = _score("DIGITOVER", digits, barrier="5")
        assert decision is not None
        assert decision.contract_type == "DIGITOVER"
        assert decision.confidence >= 70

    def test_recent_crowding_above_calls_under(self):
        digits = [(i * 3) % 10 for i in range(25)] + [6, 7, 8, 9] * 4
        decision = _score("DIGITUNDER", digits, barrier="5")
        assert decision.contract_type == "DIGITUNDER"

    def test_barrier_nine_never_over(self):
        rng = random.Random(3)
        for _ in range(20):
            digits = [rng.randrange(9) for _ in range(60)]
            decision = _score("DIGITOVER", digits, barrier="9")
            assert decision is None or decision.contract_type == "DIGITUNDER"

    def test_barrier_zero_never_under(self):
        rng = random.Random(4)
        for _ in range(20):
            digits = [rng.randrange(1, 10) for _ in range(60)]
            decision = _score("DIGITUNDER", digits, barrier="0")
            assert decision is None or decision.contract_type == "DIGITOVER"

    def test_missing_barrier(self):
        scorer = SignalScorer()
        prices, digits = _windows([1] * 50)
        config = TradeConfig(contract_type="DIGITOVER", barrier=None)
        assert scorer.score(prices, digits, config) is None
        assert scorer.last_insight["result"] == "no_barrier"

    def test_insufficient_digits(self):
        assert _score("DIGITOVER", [0] * 39) is None


class TestBarrierLayers:
    """Each case keeps the 15-digit recent window near 8/7 so the
    crowding layer stays quiet.  Flat prices keep the momentum layer out
    of the way: RSI reads 100 with no bullish votes."""

    FLAT = [100.0] * 60

    def _barrier(self, prices, digits, barrier=5):
        return SignalScorer().score_barrier(prices, digits, barrier)

    def test_streak_above_barrier_calls_under(self):
        digits = [1, 7] * 17 + [1] + [0, 1, 2, 3, 0, 1, 2, 3] + [6, 7, 8, 9, 6, 7, 8]
        decision = self._barrier(self.FLAT, digits)
        assert decision.contract_type == "DIGITUNDER"
        # 68 + 7-tick streak * 3
        assert decision.confidence == pytest.approx(89.0)

    def test_window_skew_calls_over(self):
        digits = [0, 1, 2, 3, 4] * 7 + [0, 6, 1, 7, 2, 8, 3, 9, 4, 6, 5, 7, 0, 8, 1]
        decision = self._barrier(self.FLAT, digits)
        assert decision.contract_type == "DIGITOVER"
        # 43 low vs 7 high: 66 + min(20, 36 * 2.5)
        assert decision.confidence == pytest.approx(86.0)

    def test_bullish_momentum_calls_over(self):
        # +0.02 / -0.01 zig-zag ending on a rise: RSI 66.7, four bullish votes
        prices = [100.0]
        for i in range(1, 60):
            prices.append(prices[-1] + (0.02 if i % 2 else -0.01))
        snap = analyze_market(prices)
        assert snap.trend == "BULLISH"
        assert snap.rsi == pytest.approx(200 / 3)

        digits = [0, 6] * 17 + [0] + [6, 0, 7, 1, 8, 2, 9, 3, 6, 4, 7, 5, 8, 0, 9]
        decision = self._barrier(prices, digits)
        assert decision.contract_type == "DIGITOVER"
        # 70 + (66.67 - 58) * 0.6
        assert decision.confidence == pytest.approx(75.2)

    def test_due_digit_above_barrier_calls_over(self):
        low = [0, 1, 2, 3, 4, 5] * 4 + [0, 1]
        high = [6, 7, 9] * 8
        digits = [d for pair in zip(low, high) for d in pair] + low[24:]
        decision = self._barrier(self.FLAT, digits)
        assert decision.contract_type == "DIGITOVER"
        # digit 8 never seen, 8 behind the hottest: capped at 85
        assert decision.confidence == pytest.approx(85.0)
        assert "Digit 8 is due" in decision.reason

    def test_cold_digit_absent_recently_calls_over(self):
        # the due digit sits on the barrier itself, so only the cold 8 counts
        low = [0, 1, 2, 3, 4] * 5
        high = [6, 7, 9] * 8
        digits = [8] + [d for pair in zip(low, high) for d in pair] + low[24:]
        decision = self._barrier(self.FLAT, digits)
        assert decision.contract_type == "DIGITOVER"
        # 64 + 3 * one cold digit
        assert decision.confidence == pytest.approx(67.0)


# ── Matches/Differs ──────────────────────────────────────────────────────


class TestMatchDiffer:
    def _hot_seven(self) -> list[int]:
        return [0, 1, 2, 3, 4, 5, 6, 8, 9] * 3 + [7, 0, 7, 1, 7, 2, 7, 3, 7, 4, 7, 5, 7]

    def test_match_hot_digit(self):
        decision = _score("DIGITMATCH", self._hot_seven(), barrier="7")
        assert decision.contract_type == "DIGITMATCH"
        # 60 + (7 - 4) * 5 + 6 recent hits * 2
        assert decision.confidence == pytest.approx(87.0)

    def test_match_overdue_digit(self):
        digits = ([0, 1, 2, 3, 4, 5, 6, 8, 9] * 5)[:40]
        decision = _score("DIGITMATCH", digits, barrier="7")
        assert decision.contract_type == "DIGITMATCH"
        assert decision.confidence == pytest.approx(72.0)

    def test_match_active_streak(self):
        digits = [0, 1, 2, 3, 4, 5, 6, 8, 9] * 4 + [0, 1, 7, 7]
        decision = _score("DIGITMATCH", digits, barrier="7")
        assert decision.contract_type == "DIGITMATCH"
        # 62 + 2-tick run * 6
        assert decision.confidence == pytest.approx(74.0)

    def test_match_single_hottest_digit(self):
        # six early sevens, none in the recent window
        digits = [7] * 6 + [0, 1, 2, 3, 4, 5, 6, 8, 9] * 3 + [0, 1, 2, 3, 4, 5, 6]
        decision = _score("DIGITMATCH", digits, barrier="7")
        assert decision.contract_type == "DIGITMATCH"
        # 60 + (6 - 4) * 5
        assert decision.confidence == pytest.approx(70.0)

    def test_differ_hot_with_spike(self):
        digits = [7] * 5 + [0, 1, 2, 3, 4, 5, 6, 8, 9] * 3 + [0, 1, 7, 2, 3, 4, 7, 5]
        decision = _score("DIGITDIFF", digits, barrier="7")
        assert decision.contract_type == "DIGITDIFF"
        # 82 + (7 - 4) * 2
        assert decision.confidence == pytest.approx(88.0)

    def test_differ_streak_likely_to_break(self):
        digits = [0, 1, 2, 3, 4, 5, 6, 8, 9] * 4 + [0, 7, 7, 7]
        decision = _score("DIGITDIFF", digits, barrier="7")
        assert decision.contract_type == "DIGITDIFF"
        # 84 + 3-tick run * 2
        assert decision.confidence == pytest.approx(90.0)

    def test_differ_recent_spike(self):
        decision = _score("DIGITDIFF", self._hot_seven(), barrier="7")
        assert decision.contract_type == "DIGITDIFF"
        assert decision.confidence == pytest.approx(95.0)

    def test_differ_neutral_baseline(self):
        decision = _score("DIGITDIFF", list(range(10)) * 4, barrier="7")
        assert decision.contract_type == "DIGITDIFF"
        assert decision.confidence == pytest.approx(85.0)

    def test_requested_side_only(self):
        decision = _score("DIGITMATCH", list(range(10)) * 4, barrier="7")
        assert decision is None


# ── Range property ───────────────────────────────────────────────────────


@pytest.mark.parametrize("contract_type", [
    "CALL", "DIGITEVEN", "DIGITOVER", "DIGITMATCH", "DIGITDIFF",
])
def test_confidence_is_none_or_within_bounds(contract_type):
    rng = random.Random(contract_type)
    for _ in range(30):
        n = rng.randrange(20, 101)
        digits = [rng.randrange(10) for _ in range(n)]
        decision = _score(contract_type, digits, barrier=str(rng.randrange(10)))
        if decision is not None:
            assert 0.0 <= decision.confidence <= 95.0
