# chatrelay/services/room_manager.py
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

from chatrelay.models.models import ChatRoom, CreateRoomRequest, UpdateRoomRequest

logger = logging.getLogger(__name__)

DEFAULT_ROOMS = [
    {
        "name": "Morning Tea",
        "description": "Relaxed everyday conversation practice",
        "topic": "daily life",
    },
    {
        "name": "Travel English",
        "description": "Phrases for airports, hotels and restaurants",
        "topic": "travel",
    },
]

# ============================================================================
# ROOM PERSISTENCE MANAGER
# ============================================================================
class RoomManager:
    """
    Manages chat room metadata with optional file-based persistence.

    Rooms are keyed by an integer id handed out in creation order. When a
    ``rooms_file`` is given the whole mapping is rewritten after every
    create/update so rooms survive restarts; with ``rooms_file=None`` rooms
    only live in memory (tests, throwaway instances).

    Storage Format (rooms.json):
        {
            "1": {
                "id": 1,
                "name": "Morning Tea",
                "description": "Relaxed everyday conversation practice",
                "topic": "daily life",
                "image_url": null,
                "created_at": "2025-11-30T20:00:00Z"
            }
        }

    Usage:
        room_manager = RoomManager("rooms.json")
        room = room_manager.create_room(CreateRoomRequest(name="Garden Club"))
        all_rooms = room_manager.list_rooms()
    """

    def __init__(self, rooms_file: Optional[str] = None, create_defaults: bool = True):
        self.rooms_file = rooms_file or None
        self.rooms: Dict[int, ChatRoom] = {}
        self._create_defaults = create_defaults
        self.load_rooms()

    @property
    def next_id(self) -> int:
        return max(self.rooms, default=0) + 1

    def load_rooms(self) -> None:
        """
        Load rooms from persistent storage.

        If the file doesn't exist or fails to load, default rooms are created.
        """
        if self.rooms_file and os.path.exists(self.rooms_file):
            try:
                with open(self.rooms_file, "r") as f:
                    data = json.load(f)
                self.rooms = {int(k): ChatRoom.model_validate(v) for k, v in data.items()}
                logger.info("✓ Loaded %d rooms from %s", len(self.rooms), self.rooms_file)
                return
            except (OSError, ValueError) as e:
                logger.error("Load error for %s: %s", self.rooms_file, e)
                self.rooms = {}

        if self._create_defaults:
            self.create_default_rooms()

    def save_rooms(self) -> None:
        """Persist rooms to file. No-op for in-memory managers."""
        if not self.rooms_file:
            return
        try:
            data = {str(k): v.model_dump(mode="json") for k, v in self.rooms.items()}
            with open(self.rooms_file, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error("Save error for %s: %s", self.rooms_file, e)

    def create_default_rooms(self) -> None:
        for rd in DEFAULT_ROOMS:
            self.create_room(CreateRoomRequest(**rd), persist=False)
        self.save_rooms()
        logger.info("✓ Created %d default rooms", len(DEFAULT_ROOMS))

    def create_room(self, request: CreateRoomRequest, persist: bool = True) -> ChatRoom:
        room = ChatRoom(
            id=self.next_id,
            name=request.name,
            description=request.description,
            topic=request.topic,
            image_url=request.image_url,
            created_at=datetime.now(timezone.utc),
        )
        self.rooms[room.id] = room
        if persist:
            self.save_rooms()
        logger.info("✓ Created room %d: %s", room.id, room.name)
        return room

    def update_room(self, room_id: int, update: UpdateRoomRequest) -> Optional[ChatRoom]:
        """
        Apply a partial update to a room.

        Returns:
            The updated room, or None if the room doesn't exist
        """
        room = self.rooms.get(room_id)
        if room is None:
            return None
        changes = update.model_dump(exclude_unset=True)
        # name and description are not nullable; an explicit null leaves them untouched
        for key in ("name", "description"):
            if key in changes and changes[key] is None:
                del changes[key]
        updated = room.model_copy(update=changes)
        self.rooms[room_id] = updated
        self.save_rooms()
        logger.info("✓ Updated room %d (%s)", room_id, ", ".join(sorted(changes)) or "no fields")
        return updated

    def get_room(self, room_id: int) -> Optional[ChatRoom]:
        return self.rooms.get(room_id)

    def list_rooms(self) -> List[ChatRoom]:
        return [self.rooms[k] for k in sorted(self.rooms)]
