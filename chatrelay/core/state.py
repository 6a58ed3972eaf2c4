# chatrelay/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from chatrelay.core.config import Settings
from chatrelay.services.broadcaster import BroadcastDispatcher
from chatrelay.services.connection_manager import ConnectionManager
from chatrelay.services.message_store import MessageStore
from chatrelay.services.redis_pub_sub import AsyncRedisPubSubService
from chatrelay.services.room_manager import RoomManager
from chatrelay.services.room_registry import RoomRegistry


class AppState:
    """
    Everything one running instance owns.

    Built once per application (see ``create_app``) and reachable through
    ``app.state.chat``; nothing here is a module-level singleton, so every
    test can build its own.
    """

    def __init__(self, settings: Settings, room_manager: Optional[RoomManager] = None) -> None:
        self.settings = settings
        self.room_manager = room_manager or RoomManager(settings.ROOMS_FILE)
        self.message_store = MessageStore(self.room_manager)
        self.registry = RoomRegistry()
        self.dispatcher = BroadcastDispatcher(self.registry, send_timeout=settings.SEND_TIMEOUT_SECONDS)

        self.redis_service: Optional[AsyncRedisPubSubService] = None
        if settings.BROADCAST_BACKEND == "redis":
            self.redis_service = AsyncRedisPubSubService(settings.redis_url, self.dispatcher)

        self.connection_manager = ConnectionManager(
            registry=self.registry,
            message_store=self.message_store,
            publisher=self.redis_service or self.dispatcher,
        )

        # Metrics
        self.app_start_time: datetime = datetime.now(timezone.utc)

    @property
    def message_counter(self) -> int:
        return self.connection_manager.message_counter
