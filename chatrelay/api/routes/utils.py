# chatrelay/api/routes/utils.py

from __future__ import annotations

from fastapi import Request

from chatrelay.core.state import AppState
from chatrelay.models.models import RoomsUpdatedEvent


def get_state(request: Request) -> AppState:
    return request.app.state.chat


async def broadcast_room_list_update(state: AppState) -> int:
    """
    Notify all connected clients that the room list has changed.

    Sends "rooms_updated" with the full room list to every open WebSocket,
    joined or not. Used after room creation/update. Send failures are logged
    by the dispatcher and skipped.
    """
    event = RoomsUpdatedEvent(rooms=state.room_manager.list_rooms())
    return await state.dispatcher.publish_all(event.to_wire())
