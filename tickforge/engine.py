"""TickForge — Trading engine (public surface).

Wires the tick buffer, the signal scorer and the execution controller
into the object the session runner and the status API talk to.
"""

import asyncio
import logging
from collections import deque
from typing import Optional, Union

from tickforge.broker.messages import ContractUpdate
from tickforge.events import SIGNAL_GENERATED, Event, EventBus
from tickforge.execution.clock import Clock
from tickforge.execution.controller import EngineState, ExecutionController, OpenContract
from tickforge.market.tick_buffer import TickBuffer
from tickforge.models.trade_config import TradeConfig
from tickforge.risk.ledger import SessionLedger, TradeResult
from tickforge.risk.stake_sizer import StakePlan, StakePolicy
from tickforge.strategy.indicators import analyze_market
from tickforge.strategy.models import Signal
from tickforge.strategy.scorer import ScoringPolicy, SignalScorer

logger = logging.getLogger("tickforge")

RECENT_EVENTS = 50


class TradingEngine:
    """One isolated trading session.

    Args:
        client: A ``DerivClient`` (or duck-type with ``buy_contract``).
        clock: Timer source for cooldowns and pacing.
        events: Event bus; a private one when omitted.
        scoring_policy: Thresholds for the signal scorer.
        stake_policy: Confidence-tier stake caps.
        cooldown_seconds: Quiet window after each executed signal.
        contract_pacing_seconds: Delay between buys of one batch.
    """

    def __init__(
        self,
        client,
        clock: Optional[Clock] = None,
        events: Optional[EventBus] = None,
        scoring_policy: Optional[ScoringPolicy] = None,
        stake_policy: Optional[StakePolicy] = None,
        cooldown_seconds: float = 15.0,
        contract_pacing_seconds: float = 0.5,
    ) -> None:
        self.events = events or EventBus()
        self.buffer = TickBuffer()
        self.scorer = SignalScorer(scoring_policy)
        self.ledger = SessionLedger()
        self.controller = ExecutionController(
            client,
            ledger=self.ledger,
            clock=clock,
            events=self.events,
            cooldown_seconds=cooldown_seconds,
            contract_pacing_seconds=contract_pacing_seconds,
            stake_policy=stake_policy,
        )
        self.last_signal: Optional[Signal] = None
        self._recent_events: deque[Event] = deque(maxlen=RECENT_EVENTS)
        self.events.on("*", self._recent_events.append)

    # ── Market data ──────────────────────────────────────────────────────

    def add_price_data(self, symbol: str, price: float, pip_size: Optional[int] = None) -> int:
        """Buffer one tick; returns its last digit."""
        return self.buffer.add_sample(symbol, price, pip_size)

    def generate_signal(self, symbol: str, config: TradeConfig) -> Optional[Signal]:
        """Score the buffered windows of *symbol* for ``config.contract_type``.

        Returns ``None`` when no layer fires or the confidence falls below
        ``config.confidence_threshold``.
        """
        prices = self.buffer.prices(symbol)
        digits = self.buffer.digits(symbol)
        decision = self.scorer.score(prices, digits, config)
        if decision is None:
            return None
        if decision.confidence < config.confidence_threshold:
            self.scorer.last_insight["result"] = "below_threshold"
            return None

        signal = Signal(
            symbol=symbol,
            contract_type=decision.contract_type,
            confidence=decision.confidence,
            indicators=analyze_market(prices),
            timestamp=self.controller.clock.now(),
            reason=decision.reason,
        )
        self.last_signal = signal
        logger.info(
            "Signal %s on %s | confidence %.0f%% | %s",
            signal.contract_type, symbol, signal.confidence, signal.reason,
        )
        self.events.emit(
            SIGNAL_GENERATED,
            symbol=symbol,
            contract_type=signal.contract_type,
            confidence=signal.confidence,
            reason=signal.reason,
        )
        return signal

    # ── Execution ────────────────────────────────────────────────────────

    def execute_trade(self, signal: Signal, config: TradeConfig) -> asyncio.Future:
        """Act on *signal*.

        Guards and the cooldown flag are applied before this returns; the
        buys themselves run in the returned future, which never raises.
        """
        return self.controller.submit(signal, config)

    def handle_contract_update(
        self, update: Union[ContractUpdate, dict],
    ) -> Optional[TradeResult]:
        """Settle a contract from a parsed push or a raw
        ``proposal_open_contract`` body."""
        if isinstance(update, dict):
            update = ContractUpdate(
                contract_id=str(update.get("contract_id", "")),
                underlying=str(update.get("underlying", "")),
                is_sold=bool(update.get("is_sold", 0)),
                profit=float(update.get("profit", 0.0)),
                payout=float(update.get("payout", 0.0)),
                status=str(update.get("status", "open")),
            )
        return self.controller.handle_contract_update(update)

    def check_take_profit_stop_loss(self, config: TradeConfig) -> bool:
        return self.controller.check_take_profit_stop_loss(config)

    def compute_stake(self, config: TradeConfig, confidence: float = 0.0) -> StakePlan:
        return self.controller.compute_stake(config, confidence)

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> bool:
        return self.controller.start()

    def stop(self) -> None:
        self.controller.stop()

    def reset(self) -> None:
        """Fresh session: buffers, open contracts, ledger, timers and halt."""
        self.buffer.clear()
        self.controller.reset()
        self.last_signal = None
        logger.info("Engine reset")

    def clear_history(self) -> None:
        """Drop settled trades and the session P/L; buffers are kept."""
        self.ledger.clear()

    @property
    def state(self) -> EngineState:
        return self.controller.state

    @property
    def active_contracts(self) -> dict[str, OpenContract]:
        return self.controller.active_contracts

    # ── Reporting ────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        return self.ledger.stats()

    def get_history(self) -> list[TradeResult]:
        """Settled trades, newest first."""
        return list(reversed(self.ledger.results))

    def get_session_profit_loss(self) -> dict:
        return {
            "profit": self.ledger.session_profit,
            "loss": self.ledger.session_loss,
            "net": self.ledger.net,
        }

    def recent_events(self) -> list[Event]:
        """Up to the last 50 engine events, newest first."""
        return list(reversed(self._recent_events))
