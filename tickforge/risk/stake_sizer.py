"""Stake sizing — pure math, no I/O.

Applies a single (non-compounding) martingale step after a loss and caps
the result at a confidence-dependent multiple of the base stake.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal


@dataclass(frozen=True)
class StakePolicy:
    """Cap tiers as ``(min_confidence, max_multiple_of_base)``, highest first."""

    cap_tiers: tuple[tuple[float, float], ...] = ((85.0, 8.0), (75.0, 6.0), (0.0, 5.0))

    def cap_multiple(self, confidence: float) -> float:
        for min_confidence, multiple in self.cap_tiers:
            if confidence >= min_confidence:
                return multiple
        return self.cap_tiers[-1][1]


@dataclass(frozen=True)
class StakePlan:
    """Sizing decision for one executed signal."""

    base_stake: float
    multiplier_applied: float
    capped_stake: float


def round_stake(amount: float) -> float:
    """Round half-up to cents; the API rejects more decimal places."""
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_stake(
    base_stake: float,
    consecutive_losses: int,
    martingale_multiplier: float,
    confidence: float = 0.0,
    policy: StakePolicy = StakePolicy(),
) -> StakePlan:
    """Size the next contract.

    Formula::

        stake = base × multiplier   if consecutive_losses > 0
              = base                otherwise
        stake = min(stake, base × cap_multiple(confidence))

    The multiplier is applied once, however long the losing run.

    Raises:
        ValueError: If *base_stake* is non-positive or
            *consecutive_losses* is negative.
    """
    if base_stake <= 0:
        raise ValueError(f"base_stake must be positive, got {base_stake}")
    if consecutive_losses < 0:
        raise ValueError(
            f"consecutive_losses must be >= 0, got {consecutive_losses}"
        )

    multiplier = martingale_multiplier if consecutive_losses > 0 else 1.0
    stake = base_stake * multiplier
    stake = min(stake, base_stake * policy.cap_multiple(confidence))
    return StakePlan(
        base_stake=base_stake,
        multiplier_applied=multiplier,
        capped_stake=round_stake(stake),
    )
