# chatrelay/services/broadcaster.py

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import status

from chatrelay.services.room_registry import Connection, RoomRegistry

logger = logging.getLogger(__name__)

# ============================================================================
# BROADCAST DISPATCHER
# ============================================================================

class BroadcastDispatcher:
    """
    Fans a payload out to every connection currently tagged with a room.

    Delivery walks the room's members one by one in the order ``publish``
    is awaited, so messages accepted from one connection reach every member
    in accept order. Each write is bounded by ``send_timeout``: a slow or
    dead socket costs at most that long, is logged and dropped while the
    remaining members still get the payload.

    Dropping means two things: the connection leaves the registry at once,
    and its socket is closed with 1011 in a background task. The close ends
    the endpoint's receive loop and tells the client to reconnect, so no
    half-registered connection keeps sending.

    The sender is included unless its connection id is passed as
    ``exclude``; the client reconciles the echo with its optimistic copy.
    """

    def __init__(self, registry: RoomRegistry, send_timeout: float = 5.0) -> None:
        self.registry = registry
        self.send_timeout = send_timeout
        self._closing: Set[asyncio.Task] = set()

    async def publish(
        self,
        room_id: int,
        payload: Dict[str, Any],
        exclude: Optional[str] = None,
    ) -> int:
        """
        Deliver ``payload`` to the room's connections.

        Args:
            room_id: Target room
            payload: JSON-serialisable frame
            exclude: Connection id that must not receive the frame

        Returns:
            Number of connections the frame was written to
        """
        connections = [c for c in self.registry.members(room_id) if c.id != exclude]
        if not connections:
            logger.debug("[routing] Skipped broadcast: room=%s has 0 recipients", room_id)
            return 0

        logger.info("📨 Broadcasting %s to room %s: %d clients", payload.get("type"), room_id, len(connections))
        return await self._deliver(connections, payload)

    async def publish_all(self, payload: Dict[str, Any]) -> int:
        """Deliver ``payload`` to every open connection, joined or not."""
        return await self._deliver(list(self.registry.connections), payload)

    async def _deliver(self, connections, payload: Dict[str, Any]) -> int:
        delivered = 0
        failed = []
        for connection in connections:
            if await self._send(connection, payload):
                delivered += 1
            else:
                failed.append(connection)

        # Clean up failed connections
        for connection in failed:
            self.drop(connection)

        return delivered

    def drop(self, connection: Connection) -> None:
        """Forget a connection whose writes fail and close its socket in the background."""
        if not self.registry.remove(connection):
            return
        logger.warning("✗ Dropped %r after a failed write", connection)
        task = asyncio.get_running_loop().create_task(self._close(connection))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close(self, connection: Connection) -> None:
        try:
            await asyncio.wait_for(
                connection.close(code=status.WS_1011_INTERNAL_ERROR),
                timeout=self.send_timeout,
            )
        except Exception as e:
            logger.warning("Could not close dropped %r: %s", connection, e)

    async def _send(self, connection: Connection, payload: Dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(connection.send_json(payload), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.error("Send to %r timed out after %.1fs", connection, self.send_timeout)
        except Exception as e:
            logger.error("Send error to %r: %s", connection, e)
        return False
