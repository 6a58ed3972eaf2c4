# chatrelay/client/controller.py

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional

from pydantic import BaseModel, Field

from chatrelay.client.connection import (
    ConnectionState,
    MessageCallback,
    NotConnectedError,
    RoomConnection,
)

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    # Gave up after max_attempts; only a fresh open() (page refresh) recovers
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


StatusCallback = Callable[[int, ConnectionStatus], None]


class ReconnectPolicy(BaseModel):
    max_attempts: int = Field(default=5, ge=0)
    delay: float = Field(default=2.0, ge=0)


class _Subscription(NamedTuple):
    user_id: int
    on_message: MessageCallback
    on_status: Optional[StatusCallback]


# ============================================================================
# CONNECTION CONTROLLER
# ============================================================================

class ConnectionController:
    """
    Keeps at most one logical connection per room and reconnects it.

    Data Structures:
        connections: room_id -> the RoomConnection currently owning the room
        attempts: room_id -> reconnect attempts since the last successful open
        statuses: room_id -> last status reported to the owner

    Reconnect policy:
        An unclean close schedules a brand-new RoomConnection after
        ``policy.delay`` seconds, replacing the old one. The attempt counter
        belongs to the room, not to the socket, so it keeps growing across
        replacements until an open resets it to zero. Once it reaches
        ``policy.max_attempts`` the room goes DISCONNECTED for good.

    ``cleanup`` cancels a pending reconnect timer and closes the socket with
    code 1000, so neither side reconnects or keeps a stale entry. Calling it
    twice, or for a room that was never opened, does nothing.

    Owned by whoever embeds the client; several controllers can coexist.
    """

    def __init__(
        self,
        url: str,
        policy: Optional[ReconnectPolicy] = None,
        connect: Optional[Callable[..., Any]] = None,
        connect_kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self.connections: Dict[int, RoomConnection] = {}
        self.attempts: Dict[int, int] = {}
        self.statuses: Dict[int, ConnectionStatus] = {}
        self._connect = connect
        self._connect_kwargs = connect_kwargs
        self._subscriptions: Dict[int, _Subscription] = {}
        self._timers: Dict[int, asyncio.TimerHandle] = {}

    def open(
        self,
        room_id: int,
        user_id: int,
        on_message: MessageCallback,
        on_status: Optional[StatusCallback] = None,
    ) -> RoomConnection:
        """Start a fresh logical connection for a room, tearing down any existing one."""
        self.cleanup(room_id)
        self._subscriptions[room_id] = _Subscription(user_id, on_message, on_status)
        self.attempts[room_id] = 0
        return self._spawn(room_id)

    def _spawn(self, room_id: int) -> Optional[RoomConnection]:
        self._timers.pop(room_id, None)
        subscription = self._subscriptions.get(room_id)
        if subscription is None:
            return None

        existing = self.connections.pop(room_id, None)
        if existing is not None:
            existing.close()

        connection = RoomConnection(
            self.url,
            room_id,
            subscription.user_id,
            on_message=subscription.on_message,
            on_open=self._handle_open,
            on_close=self._handle_close,
            connect=self._connect,
            connect_kwargs=self._connect_kwargs,
        )
        self.connections[room_id] = connection
        logger.info("Creating WebSocket connection [room %s]", room_id)
        self._emit(room_id, ConnectionStatus.CONNECTING)
        connection.start()
        return connection

    def _handle_open(self, connection: RoomConnection) -> None:
        if self.connections.get(connection.room_id) is not connection:
            return
        self.attempts[connection.room_id] = 0
        self._emit(connection.room_id, ConnectionStatus.CONNECTED)

    def _handle_close(self, connection: RoomConnection) -> None:
        room_id = connection.room_id
        if self.connections.get(room_id) is not connection:
            return  # replaced or cleaned up
        del self.connections[room_id]

        if connection.state is ConnectionState.CLOSED_CLEAN:
            self._emit(room_id, ConnectionStatus.CLOSED)
            return
        self.attempt_reconnect(room_id)

    def attempt_reconnect(self, room_id: int) -> bool:
        """
        Schedule the next connection for a room.

        Returns:
            True if a reconnect is pending, False if the room gave up (or
            was never opened)
        """
        if room_id not in self._subscriptions:
            return False
        if room_id in self._timers:
            return True

        attempts = self.attempts.get(room_id, 0)
        if attempts >= self.policy.max_attempts:
            logger.warning("Reached %d reconnect attempts [room %s], giving up", attempts, room_id)
            self._emit(room_id, ConnectionStatus.DISCONNECTED)
            return False

        self.attempts[room_id] = attempts + 1
        logger.info(
            "Reconnect attempt %d/%d [room %s] in %.1fs",
            attempts + 1,
            self.policy.max_attempts,
            room_id,
            self.policy.delay,
        )
        loop = asyncio.get_running_loop()
        self._timers[room_id] = loop.call_later(self.policy.delay, self._spawn, room_id)
        self._emit(room_id, ConnectionStatus.RECONNECTING)
        return True

    def cleanup(self, room_id: int) -> None:
        timer = self._timers.pop(room_id, None)
        if timer is not None:
            timer.cancel()
        self._subscriptions.pop(room_id, None)
        self.attempts.pop(room_id, None)
        self.statuses.pop(room_id, None)

        connection = self.connections.pop(room_id, None)
        if connection is not None:
            logger.info("Cleaning up WebSocket connection [room %s]", room_id)
            connection.close()

    def close_all(self) -> None:
        for room_id in set(self.connections) | set(self._timers) | set(self._subscriptions):
            self.cleanup(room_id)

    def is_open(self, room_id: int) -> bool:
        connection = self.connections.get(room_id)
        return connection is not None and connection.state is ConnectionState.OPEN

    def reconnect_pending(self, room_id: int) -> bool:
        return room_id in self._timers

    async def send(self, room_id: int, frame: Dict[str, Any]) -> None:
        connection = self.connections.get(room_id)
        if connection is None:
            raise NotConnectedError(f"Room {room_id} is not connected")
        await connection.send(frame)

    def _emit(self, room_id: int, status: ConnectionStatus) -> None:
        self.statuses[room_id] = status
        subscription = self._subscriptions.get(room_id)
        if subscription is None or subscription.on_status is None:
            return
        try:
            subscription.on_status(room_id, status)
        except Exception:
            logger.exception("Status callback failed [room %s]", room_id)
