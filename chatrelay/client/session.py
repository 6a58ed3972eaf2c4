# chatrelay/client/session.py

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from chatrelay.client.connection import NotConnectedError
from chatrelay.client.controller import ConnectionController, ConnectionStatus
from chatrelay.client.feed import FeedEntry, MessageFeed
from chatrelay.client.history import HistoryClient
from chatrelay.models.models import MessageKind

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


class ChatRoomSession:
    """
    Everything one open chat room view needs.

    ``start`` loads the history page, seeds the feed with it and opens the
    room's connection; ``send`` renders an optimistic copy and transmits;
    ``close`` tears the connection down cleanly. User-facing problems go to
    ``notify`` as short transient texts; ``on_change`` fires whenever the
    visible list changes.
    """

    def __init__(
        self,
        room_id: int,
        user_id: int,
        controller: ConnectionController,
        history: HistoryClient,
        nickname: str = "You",
        history_limit: int = 50,
        notify: Optional[Notifier] = None,
        on_change: Optional[Callable[[MessageFeed], None]] = None,
    ) -> None:
        self.room_id = room_id
        self.user_id = user_id
        self.nickname = nickname
        self.history_limit = history_limit
        self.controller = controller
        self.history = history
        self.feed = MessageFeed(room_id, user_id)
        self.status: Optional[ConnectionStatus] = None
        self.disconnected = False
        self._notify = notify
        self._on_change = on_change
        self._join_announced = False

    @property
    def connected(self) -> bool:
        return self.controller.is_open(self.room_id)

    async def start(self) -> None:
        try:
            messages = await self.history.get_messages(self.room_id, limit=self.history_limit)
        except httpx.HTTPError as e:
            logger.error("Could not load history for room %s: %s", self.room_id, e)
            self._tell("Could not load earlier messages")
            messages = []
        self.feed.hydrate(messages)
        self._changed()

        self.disconnected = False
        self.controller.open(self.room_id, self.user_id, self._handle_frame, self._handle_status)

    async def send(self, content: str, message_type: MessageKind = "text") -> Optional[FeedEntry]:
        """
        Send a message and show it immediately.

        Returns:
            The optimistic entry, or None for blank input

        Raises:
            NotConnectedError: the room's socket isn't open
        """
        if not content.strip():
            return None
        if not self.connected:
            self._tell("Cannot send right now, reconnecting…")
            raise NotConnectedError(f"Room {self.room_id} is not connected")

        entry = self.feed.add_local(content, message_type)
        try:
            await self.controller.send(self.room_id, self.feed.outbound_frame(entry))
        except Exception:
            self.feed.retract(entry.client_id)
            self._tell("Message could not be sent, please try again")
            raise
        self._changed()
        return entry

    def close(self) -> None:
        self.controller.cleanup(self.room_id)

    def _handle_frame(self, frame: Dict[str, Any]) -> None:
        if frame.get("type") == "error":
            self._tell(str(frame.get("reason", "Something went wrong")))
        if self.feed.handle_frame(frame) or frame.get("type") == "message":
            self._changed()

    def _handle_status(self, room_id: int, status: ConnectionStatus) -> None:
        self.status = status
        if status is ConnectionStatus.CONNECTED:
            # Once per open socket
            if not self._join_announced:
                self._join_announced = True
                if self.feed.add_system(f"{self.nickname} joined the chat room", key=f"join-{self.user_id}"):
                    self._changed()
        elif status is ConnectionStatus.RECONNECTING:
            self._join_announced = False
            self._tell("Connection problem, trying to reconnect")
        elif status is ConnectionStatus.DISCONNECTED:
            self._join_announced = False
            self.disconnected = True
            self._tell("Disconnected, please refresh")

    def _tell(self, text: str) -> None:
        if self._notify is not None:
            self._notify(text)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.feed)
