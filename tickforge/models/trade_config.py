"""Trade configuration dataclass.

Represents the settings of one trading session: which symbol to watch,
which contract family to trade, and the money-management limits.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv


CONTRACT_FAMILIES: dict[str, str] = {
    "CALL": "directional",
    "PUT": "directional",
    "DIGITEVEN": "parity",
    "DIGITODD": "parity",
    "DIGITOVER": "barrier",
    "DIGITUNDER": "barrier",
    "DIGITMATCH": "match_differ",
    "DIGITDIFF": "match_differ",
}

# Contract types whose buy request must carry a barrier digit
BARRIER_CONTRACTS = frozenset({"DIGITOVER", "DIGITUNDER", "DIGITMATCH", "DIGITDIFF"})


@dataclass(frozen=True)
class TradeConfig:
    """Configuration for a single trading session.

    ``contract_type`` selects the contract family that is scored; the
    scorer may answer with the opposite side of the same family.
    """

    symbol: str = "R_50"
    stake: float = 1.0
    contract_type: str = "CALL"
    duration: int = 5
    duration_unit: str = "t"
    confidence_threshold: float = 65.0
    take_profit: float = 20.0
    stop_loss: float = 20.0
    martingale_multiplier: float = 1.5
    barrier: Optional[str] = "5"
    currency: str = "USD"
    contracts_per_signal: int = 1

    def __post_init__(self) -> None:
        if self.contract_type not in CONTRACT_FAMILIES:
            raise ValueError(
                f"Unknown contract_type '{self.contract_type}'. "
                f"Available: {', '.join(CONTRACT_FAMILIES)}"
            )
        if self.stake <= 0:
            raise ValueError(f"stake must be positive, got {self.stake}")
        if self.duration <= 0:
            raise ValueError(f"duration must be positive, got {self.duration}")
        if self.martingale_multiplier < 1:
            raise ValueError(
                f"martingale_multiplier must be >= 1, got {self.martingale_multiplier}"
            )
        if self.contracts_per_signal < 1:
            raise ValueError(
                f"contracts_per_signal must be >= 1, got {self.contracts_per_signal}"
            )
        if self.barrier is not None and not (
            len(self.barrier) == 1 and self.barrier.isdigit()
        ):
            raise ValueError(f"barrier must be a single digit, got '{self.barrier}'")

    @property
    def family(self) -> str:
        """Contract family of ``contract_type``."""
        return CONTRACT_FAMILIES[self.contract_type]

    @property
    def barrier_digit(self) -> Optional[int]:
        """The barrier as an int, or ``None`` when unset."""
        if self.barrier is None:
            return None
        return int(self.barrier)

    def with_overrides(self, **overrides) -> "TradeConfig":
        """Return a copy with the non-``None`` *overrides* applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def load_trade_config(env_path: str | None = None) -> TradeConfig:
    """Build a ``TradeConfig`` from ``TRADE_*`` environment variables."""
    load_dotenv(dotenv_path=env_path)

    return TradeConfig(
        symbol=os.environ.get("TRADE_SYMBOL", "R_50"),
        stake=float(os.environ.get("TRADE_STAKE", "1.0")),
        contract_type=os.environ.get("TRADE_CONTRACT_TYPE", "CALL"),
        duration=int(os.environ.get("TRADE_DURATION", "5")),
        duration_unit=os.environ.get("TRADE_DURATION_UNIT", "t"),
        confidence_threshold=float(os.environ.get("TRADE_CONFIDENCE_THRESHOLD", "65")),
        take_profit=float(os.environ.get("TRADE_TAKE_PROFIT", "20")),
        stop_loss=float(os.environ.get("TRADE_STOP_LOSS", "20")),
        martingale_multiplier=float(os.environ.get("TRADE_MARTINGALE_MULTIPLIER", "1.5")),
        barrier=os.environ.get("TRADE_BARRIER", "5") or None,
        currency=os.environ.get("TRADE_CURRENCY", "USD"),
        contracts_per_signal=int(os.environ.get("TRADE_CONTRACTS_PER_SIGNAL", "1")),
    )
