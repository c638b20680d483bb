"""Execution controller — arming, guards, stake sizing, batches, settlement.

State is derived from four flags rather than stored as one value::

    HALTED    take-profit / stop-loss crossed; cleared only by reset()
    IDLE      not armed (initial, or after stop()/reset())
    COOLDOWN  armed, inside the post-trade cooldown window
    ARMED     armed and ready to act on the next signal

The cooldown flag is raised synchronously inside ``submit()`` before the
batch coroutine is scheduled, so a second signal arriving while buys are
in flight is rejected by the guard instead of double-trading.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tickforge.broker.messages import BuyRequest, ContractUpdate
from tickforge.events import (
    COOLDOWN_ENDED,
    HALTED,
    TRADE_FAILED,
    TRADE_SETTLED,
    TRADE_SUBMITTED,
    EventBus,
)
from tickforge.execution.clock import AsyncioClock, Clock, TimerHandle
from tickforge.models.trade_config import TradeConfig
from tickforge.risk.ledger import SessionLedger, TradeResult
from tickforge.risk.stake_sizer import StakePlan, StakePolicy, calculate_stake
from tickforge.strategy.models import Signal

logger = logging.getLogger("tickforge")

# Settled pushes for contracts not yet registered (buy response still
# resuming) are parked here until the receipt lands.
MAX_UNMATCHED_SETTLEMENTS = 50


class EngineState(str, Enum):
    IDLE = "IDLE"
    ARMED = "ARMED"
    COOLDOWN = "COOLDOWN"
    HALTED = "HALTED"


@dataclass(frozen=True)
class OpenContract:
    """A contract bought and awaiting settlement."""

    contract_id: str
    symbol: str
    contract_type: str
    stake: float
    confidence: float
    payout: float
    opened_at: float


class ExecutionController:
    """Turns accepted signals into sequential buy batches.

    Args:
        client: A ``DerivClient`` (or duck-type with ``buy_contract``).
        ledger: Session ledger; a fresh one when omitted.
        clock: Timer source; ``AsyncioClock`` when omitted.
        events: Event bus for structured notifications.
        cooldown_seconds: Quiet window after each batch.
        contract_pacing_seconds: Delay between buys of one batch.
        stake_policy: Confidence-tier stake caps.
    """

    def __init__(
        self,
        client,
        ledger: Optional[SessionLedger] = None,
        clock: Optional[Clock] = None,
        events: Optional[EventBus] = None,
        cooldown_seconds: float = 15.0,
        contract_pacing_seconds: float = 0.5,
        stake_policy: Optional[StakePolicy] = None,
    ) -> None:
        self._client = client
        self.ledger = ledger or SessionLedger()
        self._clock = clock or AsyncioClock()
        self.events = events or EventBus()
        self._cooldown_seconds = cooldown_seconds
        self._pacing_seconds = contract_pacing_seconds
        self._stake_policy = stake_policy or StakePolicy()

        self._armed: bool = False
        self._halted: bool = False
        self._halt_reason: Optional[str] = None
        self._cooldown_active: bool = False
        self._cooldown_timer: Optional[TimerHandle] = None
        self._cooldown_until: Optional[float] = None
        self._open: dict[str, OpenContract] = {}
        self._unmatched: dict[str, ContractUpdate] = {}
        self._last_trade_at: Optional[float] = None
        self._generation: int = 0

    # ── State ────────────────────────────────────────────────────────────

    @property
    def state(self) -> EngineState:
        if self._halted:
            return EngineState.HALTED
        if not self._armed:
            return EngineState.IDLE
        if self._cooldown_active:
            return EngineState.COOLDOWN
        return EngineState.ARMED

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def halted(self) -> bool:
        return self._halted

    @property
    def halt_reason(self) -> Optional[str]:
        return self._halt_reason

    @property
    def cooldown_active(self) -> bool:
        return self._cooldown_active

    @property
    def cooldown_remaining(self) -> float:
        if not self._cooldown_active or self._cooldown_until is None:
            return 0.0
        return max(0.0, self._cooldown_until - self._clock.now())

    @property
    def last_trade_at(self) -> Optional[float]:
        return self._last_trade_at

    @property
    def active_contracts(self) -> dict[str, OpenContract]:
        return dict(self._open)

    def start(self) -> bool:
        """Arm the controller.  Refused while halted; ``reset()`` first."""
        if self._halted:
            logger.warning("Start refused — session halted (%s); reset first", self._halt_reason)
            return False
        self._armed = True
        logger.info("Trading armed")
        return True

    def stop(self) -> None:
        """Disarm.  In-flight buys and pending settlements still complete."""
        self._armed = False
        logger.info("Trading stopped")

    def reset(self) -> None:
        """Back to IDLE with an empty ledger and no timers."""
        self._generation += 1
        if self._cooldown_timer is not None:
            self._cooldown_timer.cancel()
        self._cooldown_timer = None
        self._cooldown_until = None
        self._cooldown_active = False
        self._armed = False
        self._halted = False
        self._halt_reason = None
        self._open.clear()
        self._unmatched.clear()
        self.ledger.clear()

    # ── Guards ───────────────────────────────────────────────────────────

    def check_take_profit_stop_loss(self, config: TradeConfig) -> bool:
        """Halt when a session threshold has been crossed.

        Returns ``True`` while the session is halted.  The ``halted`` event
        fires once, on the transition.
        """
        if self._halted:
            return True

        reason = None
        if self.ledger.take_profit_hit(config.take_profit):
            reason = "take_profit"
            logger.info(
                "Take profit reached: %.2f (target %.2f)",
                self.ledger.session_profit, config.take_profit,
            )
        elif self.ledger.stop_loss_hit(config.stop_loss):
            reason = "stop_loss"
            logger.info(
                "Stop loss reached: %.2f (limit %.2f)",
                self.ledger.session_loss, config.stop_loss,
            )
        if reason is None:
            return False

        self._halted = True
        self._halt_reason = reason
        self.events.emit(
            HALTED,
            reason=reason,
            session_profit=self.ledger.session_profit,
            session_loss=self.ledger.session_loss,
            net=self.ledger.net,
        )
        return True

    def admit(self, config: TradeConfig) -> bool:
        """Guard chain for a candidate signal: TP/SL, halted, cooldown."""
        if self.check_take_profit_stop_loss(config):
            logger.info("Trading paused — %s", self._halt_reason)
            return False
        if self._cooldown_active:
            logger.debug("Cooldown active, skipping signal")
            return False
        return True

    def compute_stake(self, config: TradeConfig, confidence: float = 0.0) -> StakePlan:
        return calculate_stake(
            config.stake,
            self.ledger.consecutive_losses,
            config.martingale_multiplier,
            confidence=confidence,
            policy=self._stake_policy,
        )

    # ── Execution ────────────────────────────────────────────────────────

    def submit(self, signal: Signal, config: TradeConfig) -> asyncio.Future:
        """Run the guards, raise the cooldown flag and schedule the batch.

        Everything before the returned future is created happens
        synchronously.  A rejected signal yields an already-completed
        future.
        """
        if not self.admit(config):
            done = asyncio.get_running_loop().create_future()
            done.set_result(None)
            return done

        self._cooldown_active = True
        plan = self.compute_stake(config, signal.confidence)
        return asyncio.ensure_future(self._run_batch(signal, config, plan, self._generation))

    async def _run_batch(
        self, signal: Signal, config: TradeConfig, plan: StakePlan, generation: int,
    ) -> None:
        count = max(1, config.contracts_per_signal)
        logger.info(
            "Executing %s on %s | stake %.2f x%d | confidence %.0f%%",
            signal.contract_type, signal.symbol, plan.capped_stake, count, signal.confidence,
        )
        try:
            for index in range(count):
                if index > 0:
                    await self._clock.sleep(self._pacing_seconds)
                if generation != self._generation:
                    logger.info("Session reset mid-batch, abandoning remaining buys")
                    return
                await self._buy_one(signal, config, plan.capped_stake)
        finally:
            if generation == self._generation:
                self._start_cooldown()

    async def _buy_one(self, signal: Signal, config: TradeConfig, stake: float) -> None:
        request = BuyRequest(
            amount=stake,
            contract_type=signal.contract_type,
            symbol=signal.symbol,
            duration=config.duration,
            duration_unit=config.duration_unit,
            currency=config.currency,
            barrier=config.barrier,
        )
        try:
            receipt = await self._client.buy_contract(request)
        except Exception as exc:
            logger.error("Trade execution failed: %s", exc)
            self.events.emit(
                TRADE_FAILED,
                symbol=signal.symbol,
                contract_type=signal.contract_type,
                stake=stake,
                error=str(exc),
            )
            return

        contract = OpenContract(
            contract_id=receipt.contract_id,
            symbol=signal.symbol,
            contract_type=signal.contract_type,
            stake=stake,
            confidence=signal.confidence,
            payout=receipt.payout,
            opened_at=self._clock.now(),
        )
        self._open[contract.contract_id] = contract
        self._last_trade_at = contract.opened_at
        logger.info("Contract %s opened | payout %.2f", contract.contract_id, receipt.payout)
        self.events.emit(
            TRADE_SUBMITTED,
            contract_id=contract.contract_id,
            symbol=contract.symbol,
            contract_type=contract.contract_type,
            stake=stake,
            payout=receipt.payout,
            confidence=signal.confidence,
        )

        parked = self._unmatched.pop(contract.contract_id, None)
        if parked is not None:
            self.handle_contract_update(parked)

    def _start_cooldown(self) -> None:
        if self._cooldown_timer is not None:
            self._cooldown_timer.cancel()
        self._cooldown_active = True
        self._cooldown_until = self._clock.now() + self._cooldown_seconds
        self._cooldown_timer = self._clock.call_later(self._cooldown_seconds, self._end_cooldown)

    def _end_cooldown(self) -> None:
        self._cooldown_timer = None
        self._cooldown_until = None
        self._cooldown_active = False
        logger.info("Cooldown ended")
        self.events.emit(COOLDOWN_ENDED)

    # ── Settlement ───────────────────────────────────────────────────────

    def handle_contract_update(self, update: ContractUpdate) -> Optional[TradeResult]:
        """Settle a tracked contract.  Unknown or still-open contracts are ignored."""
        contract = self._open.get(update.contract_id)
        if contract is None:
            if update.is_sold:
                self._park(update)
            return None
        if not update.is_sold:
            return None

        result = TradeResult(
            id=contract.contract_id,
            symbol=update.underlying or contract.symbol,
            contract_type=contract.contract_type,
            stake=contract.stake,
            profit=update.profit,
            result="WIN" if update.profit > 0 else "LOSS",
            timestamp=self._clock.now(),
        )
        del self._open[contract.contract_id]
        self.ledger.record(result)
        logger.info(
            "%s: %+.2f | session P/L %.2f",
            result.result, result.profit, self.ledger.net,
        )
        self.events.emit(
            TRADE_SETTLED,
            contract_id=result.id,
            symbol=result.symbol,
            contract_type=result.contract_type,
            stake=result.stake,
            profit=result.profit,
            result=result.result,
        )
        return result

    def _park(self, update: ContractUpdate) -> None:
        if len(self._unmatched) >= MAX_UNMATCHED_SETTLEMENTS:
            self._unmatched.pop(next(iter(self._unmatched)))
        self._unmatched[update.contract_id] = update
