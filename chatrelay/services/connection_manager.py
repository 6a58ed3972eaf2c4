# chatrelay/services/connection_manager.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, Union

from fastapi import WebSocket

from chatrelay.models.models import (
    ErrorEvent,
    JoinEvent,
    JoinFrame,
    MessageEvent,
    MessageFrame,
    inbound_frame_adapter,
)
from chatrelay.services.auth_service import AuthSession
from chatrelay.services.message_store import MessageStore
from chatrelay.services.room_registry import Connection, RoomRegistry

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(self, room_id: int, payload: Dict[str, Any], exclude: Optional[str] = None) -> Any:
        ...


# ============================================================================
# WEBSOCKET CONNECTION HANDLER
# ============================================================================

class ConnectionManager:
    """
    Per-socket lifecycle: accept, frame routing, disconnect.

    Frames on one connection are handled to completion (persistence write
    included) before the next one is read, which is what gives per-sender
    ordering. Nothing here ever closes a socket because of a bad frame.

    Protocol (JSON text frames):
        join     {"type": "join", "roomId": 3, "userId": 7}
                 Tags the connection; other members get {"type": "join", ...}.
                 No acknowledgement to the joiner.
        message  {"type": "message", "roomId": 3, "userId": 7,
                  "messageType": "text", "content": "Hello", "clientId": "..."}
                 Persisted, then {"type": "message", "message": {...},
                 "clientId": "..."} goes to every member including the sender.

    Failure handling:
        - Malformed frame: logged and dropped
        - message before join: silently ignored
        - Persistence or publish failure, or userId not matching the
          socket's session: {"type": "error", "reason": "...", "clientId": "..."}
          to the sender only (clientId when the frame carried one)
        - Failed join notice: logged, the join still counts
        - Frames from a connection the dispatcher dropped: ignored
    """

    def __init__(
        self,
        registry: RoomRegistry,
        message_store: MessageStore,
        publisher: Publisher,
    ) -> None:
        self.registry = registry
        self.message_store = message_store
        self.publisher = publisher
        self.message_counter = 0

    async def connect(self, websocket: WebSocket, session: Optional[AuthSession] = None) -> Connection:
        await websocket.accept()
        connection = Connection(websocket, session=session)
        self.registry.register(connection)
        logger.info("✓ Connection %s opened. Total: %d", connection.id[:8], len(self.registry.connections))
        return connection

    def disconnect(self, connection: Connection) -> None:
        # No departure notice goes out; membership just shrinks.
        if self.registry.remove(connection):
            logger.info(
                "✗ Connection %s (user %s, room %s) closed. Total: %d",
                connection.id[:8],
                connection.user_id,
                connection.room_id,
                len(self.registry.connections),
            )

    async def handle_frame(self, connection: Connection, raw: Union[str, bytes]) -> None:
        if connection not in self.registry.connections:
            # Dropped by the dispatcher, its socket is being closed
            logger.debug("Ignored frame from dropped %r", connection)
            return

        try:
            frame = inbound_frame_adapter.validate_json(raw)
        except ValueError as e:
            # ValidationError covers bad JSON, unknown types and missing fields
            logger.warning("Dropped malformed frame on %r: %s", connection, e)
            return

        if isinstance(frame, JoinFrame):
            await self.join(connection, frame)
        elif isinstance(frame, MessageFrame):
            await self.message(connection, frame)

    async def join(self, connection: Connection, frame: JoinFrame) -> None:
        if not await self._identity_ok(connection, frame.user_id):
            return

        previous = self.registry.tag(connection, frame.room_id, frame.user_id)
        if previous is not None and previous != frame.room_id:
            logger.info("↪ User %s switched room %s -> %s", frame.user_id, previous, frame.room_id)
        logger.info(
            "→ User %s joined room %s (%d members)",
            frame.user_id,
            frame.room_id,
            self.registry.member_count(frame.room_id),
        )

        notice = JoinEvent(room_id=frame.room_id, user_id=frame.user_id)
        try:
            await self.publisher.publish(frame.room_id, notice.to_wire(), exclude=connection.id)
        except Exception as e:
            # The join itself stands; only the notice to the others is lost
            logger.error("Failed to publish join notice for room %s: %s", frame.room_id, e)

    async def message(self, connection: Connection, frame: MessageFrame) -> None:
        if not connection.joined:
            logger.debug("Ignored message from %r: connection never joined a room", connection)
            return
        if not await self._identity_ok(connection, frame.user_id, client_id=frame.client_id):
            return

        room_id = connection.room_id
        if frame.room_id is not None and frame.room_id != room_id:
            logger.debug("Frame roomId %s differs from joined room %s, using joined room", frame.room_id, room_id)

        try:
            stored = await self.message_store.create_message(
                room_id=room_id,
                user_id=frame.user_id,
                content=frame.content,
                message_type=frame.message_type,
            )
        except Exception as e:
            logger.exception("Failed to persist message for room %s: %s", room_id, e)
            await self._send_error(connection, "Message could not be saved", frame.client_id)
            return

        self.message_counter += 1
        logger.info("Message %d sent in room %s by user %s", stored.id, room_id, frame.user_id)

        event = MessageEvent(message=stored, client_id=frame.client_id)
        try:
            await self.publisher.publish(room_id, event.to_wire())
        except Exception as e:
            logger.exception("Failed to publish message %d to room %s: %s", stored.id, room_id, e)
            await self._send_error(connection, "Message could not be delivered", frame.client_id)

    async def _identity_ok(self, connection: Connection, user_id: int, client_id: Optional[str] = None) -> bool:
        session = connection.session
        if session is None or session.user_id == user_id:
            return True
        logger.warning("Frame userId %s does not match session user %s on %r", user_id, session.user_id, connection)
        await self._send_error(connection, "userId does not match the authenticated session", client_id)
        return False

    async def _send_error(self, connection: Connection, reason: str, client_id: Optional[str] = None) -> None:
        try:
            await connection.send_json(ErrorEvent(reason=reason, client_id=client_id).to_wire())
        except Exception as e:
            logger.error("Could not deliver error frame to %r: %s", connection, e)
