"""Tests for the session runner — connection wiring, tick handling and
the automatic stop on take-profit / stop-loss."""

import asyncio

import pytest

from tickforge.bot import TradingBot
from tickforge.broker.errors import DerivAPIError
from tickforge.broker.messages import (
    AuthInfo,
    BalanceUpdate,
    BuyReceipt,
    ContractUpdate,
    Tick,
    TickHistory,
)
from tickforge.config import Config
from tickforge.engine import TradingEngine
from tickforge.execution.clock import ManualClock
from tickforge.models.trade_config import TradeConfig
from tickforge.risk.ledger import TradeResult


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> Config:
    defaults = dict(
        deriv_api_token="test-token",
        deriv_app_id="1089",
        deriv_endpoint="ws.derivws.com",
        log_level="WARNING",
        health_port=8080,
    )
    defaults.update(overrides)
    return Config(**defaults)


UPTREND = [100 + 0.01 * i for i in range(60)]


class FakeDerivClient:
    """Records subscriptions and buys; pushes are delivered with ``push``."""

    def __init__(self, history=None, is_virtual: bool = True) -> None:
        self.handlers: dict = {}
        self.tick_streams: list[str] = []
        self.forgotten: list[str] = []
        self.requests: list = []
        self.connected = False
        self.reconnecting = False
        self.history = history if history is not None else UPTREND
        self.history_error = None
        self.is_virtual = is_virtual

    async def connect(self, api_token):
        self.connected = True
        return AuthInfo(
            loginid="VRTC1234", balance=1000.0, currency="USD", is_virtual=self.is_virtual,
        )

    async def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    def subscribe(self, msg_type, handler):
        self.handlers[msg_type] = handler

    async def subscribe_balance(self):
        return {}

    async def subscribe_ticks(self, symbol):
        self.tick_streams.append(symbol)

    async def forget_ticks(self, symbol):
        self.forgotten.append(symbol)

    async def get_tick_history(self, symbol, count=100):
        if self.history_error is not None:
            raise self.history_error
        return TickHistory(symbol=symbol, prices=list(self.history), pip_size=4)

    async def buy_contract(self, request):
        self.requests.append(request)
        return BuyReceipt(
            contract_id=str(7000 + len(self.requests)),
            buy_price=request.amount,
            payout=round(request.amount * 1.95, 2),
        )

    def push(self, msg_type, message):
        self.handlers[msg_type](message)


def _bot(client=None, **trade_overrides):
    client = client or FakeDerivClient()
    clock = ManualClock()
    engine = TradingEngine(client, clock=clock)
    trade_config = TradeConfig(**{"symbol": "R_50", "contract_type": "CALL", **trade_overrides})
    return TradingBot(_make_config(), trade_config, client=client, engine=engine), client, clock


def _tick(price: float, symbol: str = "R_50") -> Tick:
    return Tick(symbol=symbol, quote=price, epoch=1_700_000_000, pip_size=4)


def _loss() -> TradeResult:
    return TradeResult(
        id="x", symbol="R_50", contract_type="CALL", stake=1.0,
        profit=-1.0, result="LOSS", timestamp=0.0,
    )


async def _drain() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


# ── Connection ───────────────────────────────────────────────────────────


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_records_account_and_streams(self):
        bot, client, _ = _bot()
        await bot.connect()

        assert bot.account_id == "VRTC1234"
        assert bot.balance == 1000.0
        assert bot.is_virtual is True
        assert set(client.handlers) == {"balance", "proposal_open_contract", "tick"}
        assert client.tick_streams == ["R_50"]

    @pytest.mark.asyncio
    async def test_status_snapshot(self):
        bot, _, _ = _bot()
        await bot.connect()
        status = bot.status()

        assert status["connected"] is True
        assert status["running"] is False
        assert status["state"] == "IDLE"
        assert status["symbol"] == "R_50"
        assert status["open_contracts"] == 0
        assert status["halt_reason"] is None

    @pytest.mark.asyncio
    async def test_balance_push_updates_balance(self):
        bot, client, _ = _bot()
        await bot.connect()
        client.push("balance", BalanceUpdate(balance=987.5, currency="USD"))
        assert bot.balance == 987.5

    @pytest.mark.asyncio
    async def test_close_disconnects(self):
        bot, client, _ = _bot()
        await bot.connect()
        await bot.close()
        assert not client.connected


# ── Ticks ────────────────────────────────────────────────────────────────


class TestTicks:
    @pytest.mark.asyncio
    async def test_other_symbols_are_ignored(self):
        bot, client, _ = _bot()
        await bot.connect()
        client.push("tick", _tick(1234.5, symbol="R_100"))
        client.push("tick", _tick(100.1234))

        assert bot.engine.buffer.size("R_100") == 0
        assert bot.engine.buffer.digits("R_50") == [4]
        assert bot.last_tick_at is not None

    @pytest.mark.asyncio
    async def test_ticks_buffered_but_not_traded_when_stopped(self):
        bot, client, _ = _bot()
        await bot.connect()
        for price in UPTREND:
            client.push("tick", _tick(price))
        await _drain()
        assert client.requests == []
        assert bot.status()["ticks_buffered"] == 60

    @pytest.mark.asyncio
    async def test_warm_up_failure_returns_zero(self):
        client = FakeDerivClient()
        client.history_error = DerivAPIError("MarketIsClosed", "This market is presently closed.")
        bot, _, _ = _bot(client)
        await bot.connect()
        assert await bot.warm_up() == 0


# ── Trading ──────────────────────────────────────────────────────────────


class TestTrading:
    @pytest.mark.asyncio
    async def test_start_refused_when_disconnected(self):
        bot, _, _ = _bot()
        assert await bot.start_trading() is False
        assert not bot.is_trading

    @pytest.mark.asyncio
    async def test_start_warms_up_and_arms(self):
        bot, _, _ = _bot()
        await bot.connect()
        assert await bot.start_trading() is True

        status = bot.status()
        assert status["running"] is True
        assert status["state"] == "ARMED"
        assert status["ticks_buffered"] == 60
        assert status["signal_status"] == "INITIALIZING"

    @pytest.mark.asyncio
    async def test_tick_triggers_trade(self):
        bot, client, _ = _bot()
        await bot.connect()
        await bot.start_trading()

        client.push("tick", _tick(100.60))
        await _drain()

        assert len(client.requests) == 1
        assert client.requests[0].contract_type == "CALL"
        assert bot.signal_status.startswith("CALL @ ")
        assert bot.engine.state.value == "COOLDOWN"

    @pytest.mark.asyncio
    async def test_settlement_push_reaches_ledger(self):
        bot, client, _ = _bot()
        await bot.connect()
        await bot.start_trading()
        client.push("tick", _tick(100.60))
        await _drain()

        client.push(
            "proposal_open_contract",
            ContractUpdate("7001", "R_50", is_sold=True, profit=0.95, payout=1.95, status="won"),
        )
        assert bot.engine.get_stats()["wins"] == 1

    @pytest.mark.asyncio
    async def test_take_profit_stops_trading(self):
        bot, client, clock = _bot(take_profit=0.5)
        await bot.connect()
        await bot.start_trading()
        client.push("tick", _tick(100.60))
        await _drain()
        client.push(
            "proposal_open_contract",
            ContractUpdate("7001", "R_50", is_sold=True, profit=0.95, payout=1.95, status="won"),
        )
        clock.advance(15.0)

        client.push("tick", _tick(100.61))
        await _drain()

        assert not bot.is_trading
        assert bot.status()["state"] == "HALTED"
        assert bot.status()["halt_reason"] == "take_profit"
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_restart_after_halt_starts_fresh(self):
        bot, client, _ = _bot(stop_loss=0.5)
        await bot.connect()
        await bot.start_trading()
        bot.engine.ledger.record(_loss())
        bot.analyze_and_trade()
        assert bot.engine.state.value == "HALTED"

        assert await bot.start_trading() is True
        assert bot.engine.state.value == "ARMED"
        assert bot.engine.get_history() == []

    @pytest.mark.asyncio
    async def test_stop_trading(self):
        bot, client, _ = _bot()
        await bot.connect()
        await bot.start_trading()
        bot.stop_trading()

        client.push("tick", _tick(100.60))
        await _drain()
        assert client.requests == []
        assert bot.signal_status == "STOPPED"


# ── Settings ─────────────────────────────────────────────────────────────


class TestSettings:
    @pytest.mark.asyncio
    async def test_change_symbol_retargets_stream(self):
        bot, client, _ = _bot()
        await bot.connect()
        await bot.change_symbol("R_100")

        assert bot.symbol == "R_100"
        assert client.forgotten == ["R_50"]
        assert client.tick_streams == ["R_50", "R_100"]

    @pytest.mark.asyncio
    async def test_change_symbol_refused_while_trading(self):
        bot, _, _ = _bot()
        await bot.connect()
        await bot.start_trading()
        with pytest.raises(RuntimeError, match="Stop trading"):
            await bot.change_symbol("R_100")

    @pytest.mark.asyncio
    async def test_update_settings_coerces_barrier(self):
        bot, _, _ = _bot()
        updated = await bot.update_settings(contract_type="DIGITOVER", barrier=3, stake=2.0)
        assert updated.barrier == "3"
        assert updated.contract_type == "DIGITOVER"
        assert bot.trade_config.stake == 2.0

    @pytest.mark.asyncio
    async def test_refused_symbol_change_applies_nothing(self):
        bot, client, _ = _bot()
        await bot.connect()
        await bot.start_trading()

        with pytest.raises(RuntimeError, match="Stop trading"):
            await bot.update_settings(stake=9.0, symbol="R_100")

        assert bot.trade_config.stake == 1.0
        assert bot.symbol == "R_50"
        assert client.tick_streams == ["R_50"]

    @pytest.mark.asyncio
    async def test_same_symbol_allowed_while_trading(self):
        bot, _, _ = _bot()
        await bot.connect()
        await bot.start_trading()
        updated = await bot.update_settings(stake=2.0, symbol="R_50")
        assert updated.stake == 2.0

    @pytest.mark.asyncio
    async def test_invalid_settings_leave_config_unchanged(self):
        bot, _, _ = _bot()
        with pytest.raises(ValueError):
            await bot.update_settings(stake=-1.0)
        assert bot.trade_config.stake == 1.0


# ── Main loop ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_forever_returns_when_link_is_gone():
    bot, client, _ = _bot()
    await bot.connect()
    await bot.start_trading()
    client.connected = False

    await asyncio.wait_for(bot.run_forever(poll_interval=0.01), timeout=1.0)

    assert not bot.is_trading
