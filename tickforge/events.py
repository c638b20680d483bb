"""Structured engine events.

The engine emits named events (``signal_generated``, ``trade_submitted``,
``trade_failed``, ``trade_settled``, ``halted``, ``cooldown_ended``) that
the status API and tests subscribe to.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

logger = logging.getLogger("tickforge")

SIGNAL_GENERATED = "signal_generated"
TRADE_SUBMITTED = "trade_submitted"
TRADE_FAILED = "trade_failed"
TRADE_SETTLED = "trade_settled"
HALTED = "halted"
COOLDOWN_ENDED = "cooldown_ended"


@dataclass(frozen=True)
class Event:
    name: str
    payload: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out of events to registered handlers.

    A handler subscribed to ``"*"`` receives every event.  A failing
    handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def on(self, name: str, handler: EventHandler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def off(self, name: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, name: str, **payload) -> Event:
        event = Event(name=name, payload=payload)
        for handler in self._handlers.get(name, []) + self._handlers.get("*", []):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler for '%s' failed", name)
        return event
