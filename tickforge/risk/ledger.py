"""Session ledger — settled trades, loss streak and session P/L. No I/O.

Take-profit / stop-loss is evaluated against the ledger totals: the
session halts once realized profit reaches the take-profit target or the
accumulated loss reaches the stop-loss target.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TradeResult:
    """A settled contract."""

    id: str
    symbol: str
    contract_type: str
    stake: float
    profit: float
    result: str  # "WIN" or "LOSS"
    timestamp: float


class SessionLedger:
    """Running record of one trading session."""

    def __init__(self) -> None:
        self._results: list[TradeResult] = []
        self._consecutive_losses: int = 0
        self._session_profit: float = 0.0
        self._session_loss: float = 0.0

    # ── Mutation ─────────────────────────────────────────────────────────

    def record(self, result: TradeResult) -> None:
        """Append *result* and update the streak and P/L accumulators."""
        self._results.append(result)
        if result.result == "WIN":
            self._consecutive_losses = 0
            self._session_profit += result.profit
        else:
            self._consecutive_losses += 1
            self._session_loss += result.profit

    def clear(self) -> None:
        self._results = []
        self._consecutive_losses = 0
        self._session_profit = 0.0
        self._session_loss = 0.0

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def results(self) -> list[TradeResult]:
        """Settled trades, oldest first (a copy)."""
        return list(self._results)

    @property
    def consecutive_losses(self) -> int:
        return self._consecutive_losses

    @property
    def session_profit(self) -> float:
        """Sum of winning profits (≥ 0)."""
        return self._session_profit

    @property
    def session_loss(self) -> float:
        """Sum of losing profits (≤ 0)."""
        return self._session_loss

    @property
    def net(self) -> float:
        return self._session_profit + self._session_loss

    def take_profit_hit(self, target: float) -> bool:
        """``True`` when *target* > 0 and session profit has reached it."""
        return target > 0 and self._session_profit >= target

    def stop_loss_hit(self, target: float) -> bool:
        """``True`` when *target* > 0 and the loss magnitude has reached it."""
        return target > 0 and abs(self._session_loss) >= target

    def stats(self) -> dict:
        """Summary counts for the dashboard."""
        total = len(self._results)
        wins = sum(1 for r in self._results if r.result == "WIN")
        return {
            "total_trades": total,
            "wins": wins,
            "losses": total - wins,
            "win_rate": (wins / total) * 100 if total else 0.0,
            "total_profit": sum(r.profit for r in self._results),
            "consecutive_losses": self._consecutive_losses,
        }
