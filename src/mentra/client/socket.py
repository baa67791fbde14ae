"""Notification socket client with reconnect.

Connects to /ws/notifications, dispatches incoming {type, data} messages
to listeners and reconnects after abnormal closes with exponential
backoff: the n-th attempt waits reconnect_delay * 2**(n-1) seconds. The
attempt counter resets once a connection opens. A normal close (1000) or
an explicit close() stops the client; after max_reconnect_attempts
failed attempts listeners receive "reconnect_failed".

Usage:
    socket = NotificationSocket("http://localhost:8000", token)
    socket.on("notification", lambda data: print(data["title"]))
    await socket.run()
"""

from __future__ import annotations

import asyncio
import inspect
import json
from collections import defaultdict
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = structlog.get_logger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

MESSAGE_TYPES = ("notification", "unread_count", "mark_read_response", "pong")

Listener = Callable[[Any], Any]
ConnectFactory = Callable[[str], Awaitable[Any]]


def socket_url(base_url: str, token: str) -> str:
    """ws(s):// URL of the notification socket for an http(s) base URL."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws/notifications?{urlencode({'token': token})}"


async def _default_connect(url: str) -> Any:
    return await websockets.connect(url)


class NotificationSocket:
    """Reconnecting client for the notification socket."""

    def __init__(
        self,
        base_url: str,
        token: str,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        connect_factory: ConnectFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.url = socket_url(base_url, token)
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.reconnect_attempts = 0
        self._connect = connect_factory or _default_connect
        self._sleep = sleep
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._connection: Any = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._connection is not None

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def on(self, message_type: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it.

        Besides the server message types, listeners may subscribe to
        connected, disconnected and reconnect_failed.
        """
        self._listeners[message_type].append(listener)
        return lambda: self.off(message_type, listener)

    def off(self, message_type: str, listener: Listener) -> None:
        if listener in self._listeners.get(message_type, []):
            self._listeners[message_type].remove(listener)

    async def _emit(self, message_type: str, data: Any) -> None:
        for listener in list(self._listeners.get(message_type, [])):
            result = listener(data)
            if inspect.isawaitable(result):
                await result

    # =========================================================================
    # CONNECTION LOOP
    # =========================================================================

    async def run(self) -> None:
        """Connect and dispatch messages until closed or out of attempts."""
        self._closed = False
        while not self._closed:
            try:
                connection = await self._connect(self.url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning("socket.connect_failed", attempt=self.reconnect_attempts, error=str(e))
                if not await self._wait_before_reconnect():
                    return
                continue

            self._connection = connection
            self.reconnect_attempts = 0
            logger.info("socket.connected")
            await self._emit("connected", {})

            code = await self._listen(connection)
            self._connection = None
            logger.info("socket.closed", code=code)
            await self._emit("disconnected", {"code": code})

            if self._closed or code == NORMAL_CLOSURE:
                return
            if not await self._wait_before_reconnect():
                return

    async def _listen(self, connection: Any) -> int:
        """Dispatch messages until the connection closes; returns the close code."""
        try:
            async for raw in connection:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("socket.invalid_message")
                    continue
                if isinstance(message, dict) and message.get("type"):
                    await self._emit(message["type"], message.get("data"))
        except ConnectionClosed as e:
            return e.rcvd.code if e.rcvd is not None else ABNORMAL_CLOSURE
        code = getattr(connection, "close_code", None)
        return code if code is not None else ABNORMAL_CLOSURE

    async def _wait_before_reconnect(self) -> bool:
        """Sleep for the next backoff delay; False once attempts are exhausted."""
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            logger.error("socket.reconnect_failed", attempts=self.reconnect_attempts)
            await self._emit("reconnect_failed", {"attempts": self.reconnect_attempts})
            return False

        self.reconnect_attempts += 1
        delay = self.reconnect_delay * 2 ** (self.reconnect_attempts - 1)
        logger.info(
            "socket.reconnecting",
            attempt=self.reconnect_attempts,
            max_attempts=self.max_reconnect_attempts,
            delay=delay,
        )
        await self._sleep(delay)
        return not self._closed

    async def close(self) -> None:
        """Close with a normal closure; no reconnect follows."""
        self._closed = True
        if self._connection is not None:
            await self._connection.close(code=NORMAL_CLOSURE)

    # =========================================================================
    # OUTGOING
    # =========================================================================

    async def send(self, message_type: str, data: Any = None) -> bool:
        """Send a message if connected; returns whether it was sent."""
        if self._connection is None:
            logger.warning("socket.send_while_disconnected", message_type=message_type)
            return False
        await self._connection.send(json.dumps({"type": message_type, "data": data or {}}))
        return True

    async def ping(self) -> bool:
        return await self.send("ping")

    async def mark_read(self, notification_id: str) -> bool:
        return await self.send("mark_read", {"notification_id": notification_id})
