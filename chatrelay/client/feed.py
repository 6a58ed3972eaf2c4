# chatrelay/client/feed.py

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ValidationError

from chatrelay.models.models import (
    ChatMessage,
    ErrorEvent,
    JoinEvent,
    MessageEvent,
    MessageKind,
    outbound_frame_adapter,
)

logger = logging.getLogger(__name__)

EntryRole = Literal["system", "user", "other"]
MessageId = Union[int, str]


class FeedEntry(BaseModel):
    """One rendered line of the chat view."""

    id: MessageId
    room_id: int
    user_id: int
    role: EntryRole
    message_type: MessageKind = "text"
    content: str
    created_at: datetime
    client_id: Optional[str] = None
    # Optimistic copy still waiting for the server echo
    pending: bool = False


class MessageFeed:
    """
    The de-duplicated list of messages one room view shows.

    Every entry, whatever its origin (history page, server echo, optimistic
    local copy, system notice), passes the same gate: its id is checked
    against ``processed_ids`` and dropped if already seen, otherwise
    recorded and appended.

    Optimistic sends get a local id (``local-<clientId>``) and are parked in
    ``pending`` under their correlation id. When the server echo comes back
    with the same ``clientId`` the parked entry takes over the server id in
    place instead of a second entry being appended. Echoes without a
    ``clientId`` fall back to the plain id check.
    """

    def __init__(self, room_id: int, self_user_id: int) -> None:
        self.room_id = room_id
        self.self_user_id = self_user_id
        self.entries: List[FeedEntry] = []
        self.processed_ids: Set[MessageId] = set()
        self.pending: Dict[str, FeedEntry] = {}

    def __len__(self) -> int:
        return len(self.entries)

    def clear(self) -> None:
        self.entries = []
        self.processed_ids = set()
        self.pending = {}

    def _role(self, user_id: int) -> EntryRole:
        return "user" if user_id == self.self_user_id else "other"

    def _apply(self, entry: FeedEntry) -> bool:
        if entry.id in self.processed_ids:
            logger.debug("Skipping already processed message %s", entry.id)
            return False
        self.processed_ids.add(entry.id)
        self.entries.append(entry)
        return True

    # ------------------------------------------------------------------
    # history
    # ------------------------------------------------------------------

    def hydrate(self, history: Iterable[ChatMessage]) -> int:
        """
        Reset the view from a history page.

        ``history`` is what the REST endpoint returns: newest first. It is
        rendered oldest first.

        Returns:
            Number of entries rendered
        """
        self.clear()
        for message in reversed(list(history)):
            self._apply(self._from_message(message))
        logger.info("Hydrated room %s with %d messages", self.room_id, len(self.entries))
        return len(self.entries)

    # ------------------------------------------------------------------
    # server frames
    # ------------------------------------------------------------------

    def apply_message(self, message: ChatMessage, client_id: Optional[str] = None) -> bool:
        """
        Apply a persisted message.

        Returns:
            True if a new entry was appended
        """
        if client_id is not None and client_id in self.pending:
            self._reconcile(self.pending.pop(client_id), message)
            return False
        return self._apply(self._from_message(message))

    def _reconcile(self, entry: FeedEntry, message: ChatMessage) -> None:
        if message.id in self.processed_ids:
            # The server copy is already on screen (history refetch raced the echo)
            self.entries = [e for e in self.entries if e is not entry]
            self.processed_ids.discard(entry.id)
            return
        self.processed_ids.discard(entry.id)
        self.processed_ids.add(message.id)
        entry.id = message.id
        entry.created_at = message.created_at
        entry.pending = False

    def handle_frame(self, frame: Dict[str, Any]) -> bool:
        """
        Route one parsed server frame.

        Returns:
            True if the visible list grew, or shrank because a rejected
            send was retracted
        """
        try:
            event = outbound_frame_adapter.validate_python(frame)
        except ValidationError as e:
            logger.warning("Ignoring unexpected frame %s: %s", frame.get("type"), e.errors(include_url=False)[:1])
            return False

        if isinstance(event, MessageEvent):
            if event.message.room_id != self.room_id:
                return False
            return self.apply_message(event.message, client_id=event.client_id)
        if isinstance(event, JoinEvent):
            if event.user_id == self.self_user_id or event.room_id != self.room_id:
                return False
            return self.add_system("A new member joined the chat room", key=f"join-{event.user_id}")
        if isinstance(event, ErrorEvent):
            logger.warning("Server error in room %s: %s", self.room_id, event.reason)
            if event.client_id is not None:
                # The send was refused, so its optimistic copy must go
                return self.retract(event.client_id)
        return False

    # ------------------------------------------------------------------
    # local entries
    # ------------------------------------------------------------------

    def add_local(self, content: str, message_type: MessageKind = "text") -> FeedEntry:
        """Render an optimistic copy of a message the user is sending."""
        client_id = uuid.uuid4().hex
        entry = FeedEntry(
            id=f"local-{client_id}",
            room_id=self.room_id,
            user_id=self.self_user_id,
            role="user",
            message_type=message_type,
            content=content,
            created_at=datetime.now(timezone.utc),
            client_id=client_id,
            pending=True,
        )
        self._apply(entry)
        self.pending[client_id] = entry
        return entry

    def retract(self, client_id: str) -> bool:
        """Drop an optimistic entry whose send failed."""
        entry = self.pending.pop(client_id, None)
        if entry is None:
            return False
        self.entries = [e for e in self.entries if e is not entry]
        self.processed_ids.discard(entry.id)
        return True

    def outbound_frame(self, entry: FeedEntry) -> Dict[str, Any]:
        return {
            "type": "message",
            "roomId": self.room_id,
            "userId": self.self_user_id,
            "messageType": entry.message_type,
            "content": entry.content,
            "clientId": entry.client_id,
        }

    def add_system(self, content: str, key: str = "system", at: Optional[float] = None) -> bool:
        """Append a client-side notice with an id derived from the timestamp."""
        timestamp = time.time() if at is None else at
        entry = FeedEntry(
            id=f"system-{key}-{int(timestamp * 1000)}",
            room_id=self.room_id,
            user_id=0,
            role="system",
            content=content,
            created_at=datetime.fromtimestamp(timestamp, tz=timezone.utc),
        )
        return self._apply(entry)

    def _from_message(self, message: ChatMessage) -> FeedEntry:
        return FeedEntry(
            id=message.id,
            room_id=message.room_id,
            user_id=message.user_id,
            role=self._role(message.user_id),
            message_type=message.type,
            content=message.content,
            created_at=message.created_at,
        )
