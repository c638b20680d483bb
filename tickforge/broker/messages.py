"""Broker message models — typed representations of Deriv API v3 messages.

Inbound messages are parsed by their ``msg_type`` discriminator into one of
the dataclasses below.  Anything the client does not model explicitly comes
back as ``GenericResponse`` so callers still see the raw payload.
"""

from dataclasses import dataclass, field
from typing import Optional, Union

from tickforge.models.trade_config import BARRIER_CONTRACTS


@dataclass(frozen=True)
class AuthInfo:
    """Account details returned by ``authorize``."""

    loginid: str
    balance: float
    currency: str
    email: str = ""
    is_virtual: bool = True


@dataclass(frozen=True)
class Tick:
    """A single price update for a symbol."""

    symbol: str
    quote: float
    epoch: int
    pip_size: Optional[int] = None
    subscription_id: Optional[str] = None


@dataclass(frozen=True)
class BalanceUpdate:
    """Account balance push."""

    balance: float
    currency: str


@dataclass(frozen=True)
class BuyReceipt:
    """Response to a ``buy`` request."""

    contract_id: str
    buy_price: float
    payout: float
    longcode: str = ""
    start_time: int = 0


@dataclass(frozen=True)
class ContractUpdate:
    """Lifecycle push for an open contract (``proposal_open_contract``)."""

    contract_id: str
    underlying: str
    is_sold: bool
    profit: float
    payout: float
    status: str = "open"


@dataclass(frozen=True)
class TickHistory:
    """Response to ``ticks_history`` with ``style=ticks``."""

    symbol: str
    prices: list[float] = field(default_factory=list)
    times: list[int] = field(default_factory=list)
    pip_size: Optional[int] = None


@dataclass(frozen=True)
class APIErrorMessage:
    """An inbound message carrying an ``error`` object."""

    msg_type: str
    code: str
    message: str


@dataclass(frozen=True)
class GenericResponse:
    """Any message type without a dedicated model."""

    msg_type: str
    payload: dict


Message = Union[
    AuthInfo,
    Tick,
    BalanceUpdate,
    BuyReceipt,
    ContractUpdate,
    TickHistory,
    APIErrorMessage,
    GenericResponse,
]


@dataclass(frozen=True)
class BuyRequest:
    """Parameters of a stake-based contract purchase."""

    amount: float
    contract_type: str
    symbol: str
    duration: int
    duration_unit: str
    currency: str = "USD"
    basis: str = "stake"
    barrier: Optional[str] = None

    def to_payload(self) -> dict:
        """Build the ``buy`` request body (subscribed to contract updates)."""
        parameters = {
            "amount": self.amount,
            "basis": self.basis,
            "contract_type": self.contract_type,
            "currency": self.currency,
            "duration": self.duration,
            "duration_unit": self.duration_unit,
            "symbol": self.symbol,
        }
        if self.contract_type in BARRIER_CONTRACTS:
            parameters["barrier"] = self.barrier if self.barrier is not None else "5"
        return {
            "buy": 1,
            "price": self.amount,
            "parameters": parameters,
            "subscribe": 1,
        }


# ── Parsers ──────────────────────────────────────────────────────────────


def _parse_authorize(data: dict) -> AuthInfo:
    auth = data["authorize"]
    return AuthInfo(
        loginid=str(auth.get("loginid", "")),
        balance=float(auth.get("balance", 0.0)),
        currency=str(auth.get("currency", "")),
        email=str(auth.get("email", "")),
        is_virtual=bool(auth.get("is_virtual", 1)),
    )


def _parse_tick(data: dict) -> Tick:
    tick = data["tick"]
    pip_size = tick.get("pip_size")
    return Tick(
        symbol=tick["symbol"],
        quote=float(tick["quote"]),
        epoch=int(tick.get("epoch", 0)),
        pip_size=int(pip_size) if pip_size is not None else None,
        subscription_id=(data.get("subscription") or {}).get("id"),
    )


def _parse_balance(data: dict) -> BalanceUpdate:
    bal = data["balance"]
    return BalanceUpdate(
        balance=float(bal.get("balance", 0.0)),
        currency=str(bal.get("currency", "")),
    )


def _parse_buy(data: dict) -> BuyReceipt:
    buy = data["buy"]
    return BuyReceipt(
        contract_id=str(buy["contract_id"]),
        buy_price=float(buy.get("buy_price", 0.0)),
        payout=float(buy.get("payout", 0.0)),
        longcode=str(buy.get("longcode", "")),
        start_time=int(buy.get("start_time", 0)),
    )


def _parse_contract(data: dict) -> ContractUpdate:
    poc = data["proposal_open_contract"]
    return ContractUpdate(
        contract_id=str(poc.get("contract_id", "")),
        underlying=str(poc.get("underlying", "")),
        is_sold=bool(poc.get("is_sold", 0)),
        profit=float(poc.get("profit", 0.0)),
        payout=float(poc.get("payout", 0.0)),
        status=str(poc.get("status", "open")),
    )


def _parse_history(data: dict) -> TickHistory:
    history = data["history"]
    pip_size = data.get("pip_size")
    return TickHistory(
        symbol=str((data.get("echo_req") or {}).get("ticks_history", "")),
        prices=[float(p) for p in history.get("prices", [])],
        times=[int(t) for t in history.get("times", [])],
        pip_size=int(pip_size) if pip_size is not None else None,
    )


_PARSERS = {
    "authorize": _parse_authorize,
    "tick": _parse_tick,
    "balance": _parse_balance,
    "buy": _parse_buy,
    "proposal_open_contract": _parse_contract,
    "history": _parse_history,
}


def parse_message(data: dict) -> Message:
    """Turn a decoded inbound JSON object into a typed message."""
    msg_type = str(data.get("msg_type", ""))
    if "error" in data:
        error = data["error"] or {}
        return APIErrorMessage(
            msg_type=msg_type,
            code=str(error.get("code", "UnknownError")),
            message=str(error.get("message", "")),
        )
    parser = _PARSERS.get(msg_type)
    if parser is None or msg_type not in data:
        return GenericResponse(msg_type=msg_type, payload=data)
    return parser(data)
