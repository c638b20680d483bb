"""TickForge — session runner.

Connects the Deriv client to the trading engine: authorizes, subscribes
to balance, contract and tick pushes, and on every tick of the active
symbol runs the TP/SL check, the scorer and (when armed) execution.
"""

import asyncio
import logging
import time
from typing import Optional

from tickforge.broker.deriv_client import DerivClient
from tickforge.broker.errors import DerivError
from tickforge.broker.messages import BalanceUpdate, ContractUpdate, Tick
from tickforge.config import Config
from tickforge.engine import TradingEngine
from tickforge.events import HALTED, Event
from tickforge.execution.controller import EngineState
from tickforge.models.trade_config import TradeConfig

logger = logging.getLogger("tickforge.bot")


class TradingBot:
    """Owns one client/engine pair and the active trade configuration.

    Args:
        config: Connection and timing settings.
        trade_config: Initial trade parameters.
        client: Injected client; a ``DerivClient`` when omitted.
        engine: Injected engine; built around *client* when omitted.
    """

    def __init__(
        self,
        config: Config,
        trade_config: TradeConfig,
        client=None,
        engine: Optional[TradingEngine] = None,
    ) -> None:
        self._config = config
        self.trade_config = trade_config
        self.client = client or DerivClient(config)
        self.engine = engine or TradingEngine(
            self.client,
            cooldown_seconds=config.cooldown_seconds,
            contract_pacing_seconds=config.contract_pacing_seconds,
        )
        self.account_id: Optional[str] = None
        self.balance: Optional[float] = None
        self.currency: Optional[str] = None
        self.is_virtual: bool = True
        self.signal_status: str = "IDLE"
        self.started_at: Optional[float] = None
        self.last_tick_at: Optional[float] = None
        self._tick_symbol: Optional[str] = None
        self._trading: bool = False
        self._pending: set[asyncio.Future] = set()
        self.engine.events.on(HALTED, self._on_halted)

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def is_trading(self) -> bool:
        return self._trading

    @property
    def symbol(self) -> str:
        return self.trade_config.symbol

    def status(self) -> dict:
        """Snapshot for the status API and the console dashboard."""
        pl = self.engine.get_session_profit_loss()
        controller = self.engine.controller
        return {
            "connected": self.client.is_connected(),
            "account_id": self.account_id,
            "is_virtual": self.is_virtual,
            "balance": self.balance,
            "currency": self.currency,
            "running": self._trading,
            "state": self.engine.state.value,
            "signal_status": self.signal_status,
            "symbol": self.trade_config.symbol,
            "contract_type": self.trade_config.contract_type,
            "stake": self.trade_config.stake,
            "ticks_buffered": self.engine.buffer.size(self.trade_config.symbol),
            "open_contracts": len(self.engine.active_contracts),
            "cooldown_remaining": round(controller.cooldown_remaining, 1),
            "halt_reason": controller.halt_reason,
            "session_net": pl["net"],
            "last_tick_at": self.last_tick_at,
            "uptime_seconds": time.time() - self.started_at if self.started_at else 0.0,
        }

    # ── Connection ───────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Authorize, register push handlers and start the tick stream."""
        auth = await self.client.connect(self._config.deriv_api_token)
        self.account_id = auth.loginid
        self.balance = auth.balance
        self.currency = auth.currency
        self.is_virtual = auth.is_virtual
        self.started_at = time.time()
        logger.info(
            "Connected as %s (%s) — balance %.2f %s",
            auth.loginid, "demo" if auth.is_virtual else "REAL", auth.balance, auth.currency,
        )

        self.client.subscribe("balance", self._on_balance)
        self.client.subscribe("proposal_open_contract", self._on_contract)
        self.client.subscribe("tick", self._on_tick)
        try:
            await self.client.subscribe_balance()
        except DerivError as exc:
            logger.warning("Balance stream unavailable: %s", exc)
        await self._stream_symbol(self.trade_config.symbol)

    async def close(self) -> None:
        self._trading = False
        await self.client.disconnect()

    async def warm_up(self, count: int = 100) -> int:
        """Seed the buffer with recent history; returns ticks loaded."""
        symbol = self.trade_config.symbol
        try:
            history = await self.client.get_tick_history(symbol, count=count)
        except DerivError as exc:
            logger.warning("Tick history for %s unavailable: %s", symbol, exc)
            return 0
        for price in history.prices:
            self.engine.add_price_data(symbol, price, history.pip_size)
        logger.info("Warmed up %s with %d ticks", symbol, len(history.prices))
        return len(history.prices)

    async def _stream_symbol(self, symbol: str) -> None:
        if self._tick_symbol == symbol:
            return
        if self._tick_symbol is not None:
            await self.client.forget_ticks(self._tick_symbol)
        await self.client.subscribe_ticks(symbol)
        self._tick_symbol = symbol
        logger.info("Streaming ticks for %s", symbol)

    # ── Trading control ──────────────────────────────────────────────────

    async def start_trading(self) -> bool:
        """Fresh session on the configured symbol, then arm."""
        if not self.client.is_connected():
            logger.warning("Start refused — not connected")
            return False
        self.engine.reset()
        await self._stream_symbol(self.trade_config.symbol)
        await self.warm_up()
        self.engine.start()
        self._trading = True
        self.signal_status = "INITIALIZING"
        logger.info("Trading started on %s (%s)", self.symbol, self.trade_config.contract_type)
        return True

    def stop_trading(self) -> None:
        self._trading = False
        self.engine.stop()
        self.signal_status = "STOPPED"

    async def change_symbol(self, symbol: str) -> None:
        """Retarget the tick stream; only allowed while not trading."""
        if self._trading:
            raise RuntimeError("Stop trading before changing symbol")
        self.trade_config = self.trade_config.with_overrides(symbol=symbol)
        if self.client.is_connected():
            await self._stream_symbol(symbol)

    async def update_settings(self, **overrides) -> TradeConfig:
        """Apply partial trade-config overrides (symbol changes retarget).

        The update is all-or-nothing: a symbol change refused while trading
        leaves every other setting untouched.
        """
        if overrides.get("barrier") is not None:
            overrides["barrier"] = str(overrides["barrier"])
        if not overrides.get("symbol"):
            overrides.pop("symbol", None)
        updated = self.trade_config.with_overrides(**overrides)
        retarget = updated.symbol != self.trade_config.symbol
        if retarget and self._trading:
            raise RuntimeError("Stop trading before changing symbol")
        self.trade_config = updated
        if retarget and self.client.is_connected():
            await self._stream_symbol(updated.symbol)
        return self.trade_config

    # ── Push handlers ────────────────────────────────────────────────────

    def _on_balance(self, message) -> None:
        if isinstance(message, BalanceUpdate):
            self.balance = message.balance
            self.currency = message.currency or self.currency

    def _on_contract(self, message) -> None:
        if isinstance(message, ContractUpdate):
            self.engine.handle_contract_update(message)

    def _on_tick(self, message) -> None:
        if not isinstance(message, Tick):
            return
        config = self.trade_config
        if message.symbol != config.symbol:
            return
        self.last_tick_at = time.time()
        self.engine.add_price_data(message.symbol, message.quote, message.pip_size)
        if self._trading:
            self.analyze_and_trade()

    def analyze_and_trade(self) -> Optional[asyncio.Future]:
        """One decision cycle on the current buffer."""
        config = self.trade_config
        if self.engine.check_take_profit_stop_loss(config):
            return None
        if self.engine.state is not EngineState.ARMED:
            return None

        signal = self.engine.generate_signal(config.symbol, config)
        if signal is None:
            self.signal_status = "SCANNING"
            return None

        self.signal_status = f"{signal.contract_type} @ {signal.confidence:.0f}%"
        future = self.engine.execute_trade(signal, config)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    def _on_halted(self, event: Event) -> None:
        self._trading = False
        self.engine.stop()
        self.signal_status = "IDLE"
        net = event.payload.get("net", 0.0)
        logger.warning(
            "%s reached — session P/L %.2f, trading stopped automatically",
            "Take profit" if event.payload.get("reason") == "take_profit" else "Stop loss",
            net,
        )

    # ── Main loop ────────────────────────────────────────────────────────

    async def run_forever(self, poll_interval: float = 1.0) -> None:
        """Keep the session alive until the client gives up reconnecting."""
        while self.client.is_connected() or self.client.reconnecting:
            await asyncio.sleep(poll_interval)
        logger.error("Connection to Deriv lost and not recovered; stopping")
        self._trading = False
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
