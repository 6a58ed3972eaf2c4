# chatrelay/services/room_registry.py

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from chatrelay.services.auth_service import AuthSession

logger = logging.getLogger(__name__)


class Connection:
    """
    One accepted WebSocket plus the tags the chat core needs.

    ``room_id``/``user_id`` stay None until the first ``join`` frame. A
    connection belongs to at most one room; a later join overwrites the tag.
    ``session`` is the authenticated context decoded at upgrade time, if any.
    """

    def __init__(self, websocket: WebSocket, session: Optional[AuthSession] = None) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.session = session
        self.room_id: Optional[int] = None
        self.user_id: Optional[int] = None

    @property
    def joined(self) -> bool:
        return self.room_id is not None

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.websocket.send_json(payload)

    async def close(self, code: int = 1000) -> None:
        await self.websocket.close(code=code)

    def __repr__(self) -> str:
        return f"Connection(id={self.id[:8]}, room={self.room_id}, user={self.user_id})"


# ============================================================================
# ROOM REGISTRY
# ============================================================================

class RoomRegistry:
    """
    In-memory mapping of room id -> open connections tagged with that room.

    Owned by the application state and passed to whoever needs it, so tests
    can run several isolated registries side by side.

    Data Structures:
        connections: every open connection, joined or not
        rooms: room_id -> Set[Connection] currently tagged with the room
               Example: {3: {conn_a, conn_b}}

    Invariant:
        ``rooms[r]`` is exactly the set of open connections whose last join
        was room ``r``. Removal on close is immediate and idempotent, and a
        room key disappears with its last member.

    Only mutated from the event loop, so no locking.
    """

    def __init__(self) -> None:
        self.connections: Set[Connection] = set()
        self.rooms: Dict[int, Set[Connection]] = {}

    def register(self, connection: Connection) -> None:
        self.connections.add(connection)

    def tag(self, connection: Connection, room_id: int, user_id: int) -> Optional[int]:
        """
        Tag a registered connection with a room and user (last join wins).

        Returns:
            The room the connection was previously tagged with, if any
        """
        if connection not in self.connections:
            return None  # Connection already closed

        previous = connection.room_id
        if previous is not None and previous != room_id:
            self._discard_from_room(connection, previous)

        connection.room_id = room_id
        connection.user_id = user_id
        self.rooms.setdefault(room_id, set()).add(connection)
        return previous

    def remove(self, connection: Connection) -> bool:
        """Forget a connection entirely. Safe to call more than once."""
        if connection not in self.connections:
            return False
        self.connections.discard(connection)
        if connection.room_id is not None:
            self._discard_from_room(connection, connection.room_id)
        return True

    def _discard_from_room(self, connection: Connection, room_id: int) -> None:
        members = self.rooms.get(room_id)
        if members is None:
            return
        members.discard(connection)
        # Clean up empty rooms from memory
        if not members:
            del self.rooms[room_id]

    def members(self, room_id: int) -> List[Connection]:
        """Snapshot of a room's connections, safe to iterate while sockets close."""
        return list(self.rooms.get(room_id, ()))

    def member_count(self, room_id: int) -> int:
        return len(self.rooms.get(room_id, ()))

    def rooms_info(self) -> Dict[int, int]:
        """room_id -> member count for every room with at least one member."""
        return {room_id: len(members) for room_id, members in self.rooms.items()}
