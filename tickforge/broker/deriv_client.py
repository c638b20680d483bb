"""Deriv WebSocket API v3 async client.

Owns the single persistent connection to Deriv.  Outbound requests are
tagged with a ``req_id`` and resolved when the matching response arrives;
unsolicited pushes (ticks, balance, contract updates) are fanned out to
per-``msg_type`` subscribers.  A dropped link is re-established with a
bounded number of attempts, re-authorizing and re-issuing the stream
subscriptions that were active before the drop.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from tickforge.broker.errors import (
    DerivAPIError,
    DerivConnectionError,
    DerivTimeoutError,
)
from tickforge.broker.messages import (
    AuthInfo,
    BuyReceipt,
    BuyRequest,
    Message,
    Tick,
    TickHistory,
    parse_message,
)
from tickforge.config import Config

logger = logging.getLogger("tickforge.client")

PushHandler = Callable[[Message], None]
Connector = Callable[[str], Awaitable]
Sleeper = Callable[[float], Awaitable[None]]


class DerivClient:
    """Async client multiplexing requests and pushes over one WebSocket.

    Args:
        config: Application configuration (URL, timeouts, reconnect bound).
        connector: Coroutine factory returning an open socket for a URL.
            Defaults to ``websockets.connect``.
        sleep: Awaitable delay used between reconnect attempts.
    """

    def __init__(
        self,
        config: Config,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self._config = config
        self._url = config.ws_url
        self._connector = connector or websockets.connect
        self._sleep = sleep or asyncio.sleep
        self._max_reconnect_attempts = config.reconnect_max_attempts
        self._reconnect_delay = config.reconnect_delay_seconds
        self._request_timeout = config.request_timeout_seconds

        self._ws = None
        self._api_token: str = ""
        self._request_id: int = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._subscribers: dict[str, PushHandler] = {}
        self._stream_requests: dict[str, dict] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closing: bool = False
        self._reconnecting: bool = False
        self._auth_info: Optional[AuthInfo] = None

    # ── Connection lifecycle ─────────────────────────────────────────────

    @property
    def auth_info(self) -> Optional[AuthInfo]:
        """Account details from the most recent successful authorize."""
        return self._auth_info

    def is_connected(self) -> bool:
        """``True`` while the socket is open and being read."""
        return self._ws is not None

    @property
    def reconnecting(self) -> bool:
        return self._reconnecting

    async def connect(self, api_token: str) -> AuthInfo:
        """Open the connection and authorize with *api_token*."""
        self._api_token = api_token
        self._closing = False
        await self._open()
        logger.info(
            "Connected to Deriv API as %s (%s %.2f)",
            self._auth_info.loginid,
            self._auth_info.currency,
            self._auth_info.balance,
        )
        return self._auth_info

    async def _open(self) -> None:
        ws = await self._connector(self._url)
        self._ws = ws
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        try:
            response = await self.send({"authorize": self._api_token})
        except Exception:
            if self._ws is ws:
                self._ws = None
            await self._close_socket(ws)
            raise
        self._auth_info = parse_message(response)

    async def disconnect(self) -> None:
        """Close the connection for good; no reconnection is attempted."""
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        ws = self._ws
        self._ws = None
        if ws is not None:
            await self._close_socket(ws)
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
        self._reader_task = None
        self._fail_pending(DerivConnectionError("Client disconnected"))
        self._subscribers.clear()
        self._stream_requests.clear()
        logger.info("Disconnected from Deriv API")

    async def _close_socket(self, ws) -> None:
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Error while closing socket: %s", exc)

    # ── Inbound ──────────────────────────────────────────────────────────

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except ValueError:
                    logger.warning("Dropping undecodable message: %.80s", raw)
                    continue
                if not isinstance(data, dict):
                    logger.warning("Dropping non-object message: %.80s", raw)
                    continue
                self._dispatch(data)
        except ConnectionClosed as exc:
            logger.warning("Deriv connection closed: %s", exc)
        except (OSError, WebSocketException) as exc:
            logger.warning("Deriv connection failed: %s", exc)
        finally:
            if self._ws is ws:
                self._ws = None
                self._fail_pending(DerivConnectionError("Connection lost"))
                reconnect = not self._closing and not self._reconnecting
                if reconnect:
                    self._reconnecting = True
                await self._close_socket(ws)
                if reconnect:
                    self._reconnect_task = asyncio.create_task(self._reconnect())

    def _dispatch(self, data: dict) -> None:
        """Route one inbound message to its subscriber and/or resolver."""
        msg_type = data.get("msg_type")
        try:
            message = parse_message(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Dropping malformed '%s' message: %r", msg_type, exc)
            message = None

        handler = self._subscribers.get(msg_type) if msg_type else None
        if handler is not None and message is not None:
            try:
                handler(message)
            except Exception:
                logger.exception("Subscriber for '%s' raised", msg_type)

        req_id = data.get("req_id")
        if req_id is None:
            return
        future = self._pending.pop(req_id, None)
        if future is None or future.done():
            return
        if "error" in data:
            error = data["error"]
            future.set_exception(
                DerivAPIError.from_payload(error if isinstance(error, dict) else {})
            )
        else:
            future.set_result(data)

    def _fail_pending(self, exc: Exception) -> None:
        pending = self._pending
        self._pending = {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)

    # ── Reconnection ─────────────────────────────────────────────────────

    async def _reconnect(self) -> None:
        """Retry the connection a bounded number of times."""
        self._reconnecting = True
        try:
            for attempt in range(1, self._max_reconnect_attempts + 1):
                logger.warning(
                    "Reconnecting to Deriv — attempt %d/%d in %.1fs",
                    attempt, self._max_reconnect_attempts, self._reconnect_delay,
                )
                await self._sleep(self._reconnect_delay)
                if self._closing:
                    return
                try:
                    await self._open()
                except (OSError, WebSocketException, DerivAPIError,
                        DerivConnectionError, DerivTimeoutError) as exc:
                    logger.warning("Reconnect attempt %d failed: %s", attempt, exc)
                    continue
                await self._restore_subscriptions()
                if self._ws is None:
                    continue
                logger.info("Reconnected to Deriv API after %d attempt(s)", attempt)
                return
            logger.error(
                "Giving up on Deriv after %d reconnect attempts",
                self._max_reconnect_attempts,
            )
        finally:
            self._reconnecting = False

    async def _restore_subscriptions(self) -> None:
        for key, request in list(self._stream_requests.items()):
            try:
                await self.send(dict(request))
                logger.info("Re-subscribed %s", key)
            except (DerivAPIError, DerivConnectionError, DerivTimeoutError) as exc:
                logger.warning("Could not re-subscribe %s: %s", key, exc)

    # ── Outbound ─────────────────────────────────────────────────────────

    async def send(self, request: dict) -> dict:
        """Send *request* and wait for the response carrying its ``req_id``.

        Raises:
            DerivConnectionError: the socket is not open or drops.
            DerivAPIError: the response carries an ``error`` object.
            DerivTimeoutError: no response within the request timeout.
        """
        ws = self._ws
        if ws is None:
            raise DerivConnectionError("WebSocket not connected")

        self._request_id += 1
        req_id = self._request_id
        payload = {**request, "req_id": req_id}

        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        try:
            await ws.send(json.dumps(payload))
        except ConnectionClosed as exc:
            self._pending.pop(req_id, None)
            raise DerivConnectionError(f"Send failed: {exc}") from exc

        try:
            return await asyncio.wait_for(future, timeout=self._request_timeout)
        except asyncio.TimeoutError as exc:
            self._pending.pop(req_id, None)
            raise DerivTimeoutError(
                f"No response to req_id {req_id} within {self._request_timeout:.0f}s"
            ) from exc

    def subscribe(self, msg_type: str, handler: PushHandler) -> None:
        """Register the persistent push handler for *msg_type*."""
        self._subscribers[msg_type] = handler

    def unsubscribe(self, msg_type: str) -> None:
        """Remove the push handler for *msg_type* (no-op if absent)."""
        self._subscribers.pop(msg_type, None)

    # ── API methods ──────────────────────────────────────────────────────

    async def subscribe_ticks(self, symbol: str) -> Tick:
        """Start the tick stream for *symbol*; returns the first tick."""
        request = {"ticks": symbol, "subscribe": 1}
        self._stream_requests[f"ticks:{symbol}"] = request
        response = await self.send(request)
        return parse_message(response)

    async def forget_ticks(self, symbol: str) -> None:
        """Stop re-subscribing *symbol* and drop all server tick streams."""
        self._stream_requests.pop(f"ticks:{symbol}", None)
        await self.forget_all("ticks")
        for key, request in list(self._stream_requests.items()):
            if key.startswith("ticks:"):
                await self.send(dict(request))

    async def subscribe_balance(self) -> dict:
        """Start balance pushes."""
        request = {"balance": 1, "subscribe": 1}
        self._stream_requests["balance"] = request
        return await self.send(request)

    async def forget_all(self, stream_type: str) -> dict:
        """Cancel every server-side stream of *stream_type*."""
        return await self.send({"forget_all": stream_type})

    async def buy_contract(self, request: BuyRequest) -> BuyReceipt:
        """Buy a contract; further updates arrive as contract pushes."""
        response = await self.send(request.to_payload())
        return parse_message(response)

    async def get_tick_history(self, symbol: str, count: int = 100) -> TickHistory:
        """Fetch the most recent *count* ticks for *symbol*."""
        response = await self.send({
            "ticks_history": symbol,
            "adjust_start_time": 1,
            "count": count,
            "end": "latest",
            "start": 1,
            "style": "ticks",
        })
        return parse_message(response)

    async def get_account_status(self) -> dict:
        return await self.send({"get_account_status": 1})

    async def get_active_symbols(self) -> dict:
        return await self.send({"active_symbols": "brief", "product_type": "basic"})

    async def get_contracts_for(self, symbol: str) -> dict:
        return await self.send({"contracts_for": symbol})
