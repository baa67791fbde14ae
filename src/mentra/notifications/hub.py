"""Open notification sockets per user.

Each user may hold several sockets (tabs, devices). Messages are pushed
to all of them; sockets that fail on send are dropped.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog
from fastapi import WebSocketDisconnect

logger = structlog.get_logger(__name__)


class MessageSocket(Protocol):
    async def send_json(self, data: Any) -> None: ...


def make_message(message_type: str, data: Any) -> dict[str, Any]:
    """Socket message envelope."""
    return {"type": message_type, "data": data}


class ConnectionHub:
    """Registry of open sockets, keyed by user ID."""

    def __init__(self):
        self._connections: dict[str, set[MessageSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, socket: MessageSocket) -> None:
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(socket)
        logger.info("notifications.socket_connected", user_id=user_id)

    async def disconnect(self, user_id: str, socket: MessageSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(socket)
            if not sockets:
                del self._connections[user_id]
        logger.info("notifications.socket_disconnected", user_id=user_id)

    async def send_to_user(self, user_id: str, message_type: str, data: Any) -> int:
        """Push a message to every socket of the user.

        Returns:
            Number of sockets the message reached
        """
        async with self._lock:
            sockets = list(self._connections.get(user_id, ()))

        delivered = 0
        for socket in sockets:
            try:
                await socket.send_json(make_message(message_type, data))
                delivered += 1
            except (RuntimeError, WebSocketDisconnect) as e:
                logger.warning("notifications.push_failed", user_id=user_id, error=str(e))
                await self.disconnect(user_id, socket)
        return delivered

    async def connection_count(self, user_id: str | None = None) -> int:
        async with self._lock:
            if user_id is not None:
                return len(self._connections.get(user_id, ()))
            return sum(len(s) for s in self._connections.values())

    async def connected_users(self) -> list[str]:
        async with self._lock:
            return list(self._connections)


# Global hub instance
_hub: ConnectionHub | None = None


def get_notification_hub() -> ConnectionHub:
    """Get the global connection hub."""
    global _hub
    if _hub is None:
        _hub = ConnectionHub()
    return _hub


def reset_notification_hub() -> None:
    """Reset the hub (for testing)."""
    global _hub
    _hub = None
