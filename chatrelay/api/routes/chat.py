# chatrelay/api/routes/chat.py

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chatrelay.api.routes.utils import get_state
from chatrelay.core.state import AppState
from chatrelay.models.models import ChatMessage, ChatRoom

router = APIRouter(prefix="/api/chat", tags=["chat"])

# ============================================================================
# CHAT ROOM ENDPOINTS
# ============================================================================

@router.get("/rooms", response_model=List[ChatRoom])
async def list_rooms(state: AppState = Depends(get_state)):
    """List all chat rooms."""
    return state.room_manager.list_rooms()


@router.get("/rooms/{room_id}", response_model=ChatRoom)
async def get_room(room_id: int, state: AppState = Depends(get_state)):
    room = state.room_manager.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@router.get("/rooms/{room_id}/messages", response_model=List[ChatMessage])
async def get_room_messages(
    room_id: int,
    limit: Optional[int] = Query(default=None, ge=1),
    state: AppState = Depends(get_state),
):
    """
    Most recent messages of a room, newest first.

    Args:
        room_id: Room to read
        limit: Page size (default HISTORY_DEFAULT_LIMIT, capped at HISTORY_MAX_LIMIT)

    Raises:
        HTTPException: 404 if room not found
    """
    if not state.room_manager.get_room(room_id):
        raise HTTPException(status_code=404, detail="Room not found")

    settings = state.settings
    limit = min(limit or settings.HISTORY_DEFAULT_LIMIT, settings.HISTORY_MAX_LIMIT)
    return await state.message_store.recent_messages(room_id, limit)
