"""Internal API routers — /status, /stats, /history, /session, /signals,
/settings and trading control endpoints.

No business logic.  Delegates to the ``TradingBot`` injected at startup.
"""

import dataclasses
import logging
from typing import Optional

from fastapi import APIRouter

from tickforge.models.trade_config import CONTRACT_FAMILIES

logger = logging.getLogger("tickforge")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_bot = None  # Set via configure_routers()

_EDITABLE_SETTINGS = (
    "symbol",
    "stake",
    "contract_type",
    "duration",
    "duration_unit",
    "confidence_threshold",
    "take_profit",
    "stop_loss",
    "martingale_multiplier",
    "barrier",
    "contracts_per_signal",
)


def configure_routers(bot=None) -> None:
    """Inject the session runner.

    Args:
        bot: A ``TradingBot`` instance (or duck-type for tests).
    """
    global _bot  # noqa: PLW0603
    _bot = bot


def _no_bot() -> dict:
    return {"status": "error", "errors": ["No trading bot configured"]}


# ── Read-only views ──────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Connection, account and engine state."""
    if _bot is None:
        return {"connected": False, "running": False, "state": "IDLE"}
    return _bot.status()


@router.get("/stats")
async def get_stats():
    if _bot is None:
        return _no_bot()
    return _bot.engine.get_stats()


@router.get("/history")
async def get_history(limit: Optional[int] = None):
    """Settled trades, newest first."""
    if _bot is None:
        return []
    history = _bot.engine.get_history()
    if limit is not None:
        history = history[:max(0, limit)]
    return [dataclasses.asdict(t) for t in history]


@router.get("/session")
async def get_session():
    """Session P/L, open contracts and the scorer's last evaluation."""
    if _bot is None:
        return _no_bot()
    engine = _bot.engine
    return {
        **engine.get_session_profit_loss(),
        "state": engine.state.value,
        "active_contracts": [
            dataclasses.asdict(c) for c in engine.active_contracts.values()
        ],
        "last_insight": dict(engine.scorer.last_insight),
    }


@router.get("/signals")
async def get_signals():
    """Recent engine events (signals, trades, settlements, halts)."""
    if _bot is None:
        return []
    return [
        {"name": e.name, "timestamp": e.timestamp, **e.payload}
        for e in _bot.engine.recent_events()
    ]


# ── Settings ─────────────────────────────────────────────────────────────


@router.get("/settings")
async def get_settings():
    if _bot is None:
        return _no_bot()
    return dataclasses.asdict(_bot.trade_config)


@router.put("/settings")
async def put_settings(body: dict):
    """Apply partial trade settings.  Validation errors leave them unchanged."""
    if _bot is None:
        return _no_bot()

    unknown = sorted(set(body) - set(_EDITABLE_SETTINGS))
    if unknown:
        return {"status": "error", "errors": [f"Unknown setting: {k}" for k in unknown]}
    contract_type = body.get("contract_type")
    if contract_type is not None and contract_type not in CONTRACT_FAMILIES:
        return {"status": "error", "errors": [f"Unsupported contract_type: {contract_type}"]}

    try:
        updated = await _bot.update_settings(**body)
    except (ValueError, TypeError, RuntimeError) as exc:
        return {"status": "error", "errors": [str(exc)]}

    logger.info("Settings updated: %s", body)
    return {"status": "ok", **dataclasses.asdict(updated)}


# ── Control actions ──────────────────────────────────────────────────────


@router.post("/trading/start")
async def start_trading():
    if _bot is None:
        return _no_bot()
    if not await _bot.start_trading():
        return {"status": "error", "errors": ["Not connected to Deriv"]}
    logger.info("Trading started via API.")
    return {"status": "started", "symbol": _bot.symbol}


@router.post("/trading/stop")
async def stop_trading():
    if _bot is None:
        return _no_bot()
    _bot.stop_trading()
    logger.info("Trading stopped via API.")
    return {"status": "stopped"}


@router.post("/reset")
async def reset_engine():
    """Stop trading and start a fresh session."""
    if _bot is None:
        return _no_bot()
    _bot.stop_trading()
    _bot.engine.reset()
    logger.info("Engine reset via API.")
    return {"status": "reset"}


@router.post("/history/clear")
async def clear_history():
    if _bot is None:
        return _no_bot()
    _bot.engine.clear_history()
    return {"status": "cleared"}
