# chatrelay/services/message_store.py
from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Dict, List

from chatrelay.models.models import ChatMessage, MessageKind
from chatrelay.services.room_manager import RoomManager

logger = logging.getLogger(__name__)


class RoomNotFoundError(LookupError):
    """Raised when a message targets a room the room manager doesn't know."""

    def __init__(self, room_id: int) -> None:
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class MessageStore:
    """
    In-process message persistence.

    Assigns ids (monotonic, process-wide) and UTC timestamps on accept, like
    the relational store would. The async signatures match a real database
    client so callers await it the same way.
    """

    def __init__(self, room_manager: RoomManager) -> None:
        self.room_manager = room_manager
        self._messages: Dict[int, List[ChatMessage]] = {}
        self._ids = itertools.count(1)

    async def create_message(
        self,
        room_id: int,
        user_id: int,
        content: str,
        message_type: MessageKind = "text",
    ) -> ChatMessage:
        if self.room_manager.get_room(room_id) is None:
            raise RoomNotFoundError(room_id)

        message = ChatMessage(
            id=next(self._ids),
            room_id=room_id,
            user_id=user_id,
            type=message_type,
            content=content,
            created_at=datetime.now(timezone.utc),
        )
        self._messages.setdefault(room_id, []).append(message)
        logger.debug("Stored message %d in room %d", message.id, room_id)
        return message

    async def recent_messages(self, room_id: int, limit: int = 50) -> List[ChatMessage]:
        """Most recent ``limit`` messages of a room, newest first."""
        if limit <= 0:
            return []
        messages = self._messages.get(room_id, [])
        ordered = sorted(messages, key=lambda m: (m.created_at, m.id), reverse=True)
        return ordered[:limit]

    def count(self) -> int:
        return sum(len(messages) for messages in self._messages.values())
