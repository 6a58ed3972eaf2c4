# chatrelay/api/routes/admin.py

from fastapi import APIRouter, Depends, HTTPException, status

from chatrelay.api.routes.utils import broadcast_room_list_update, get_state
from chatrelay.core.logging import get_logger
from chatrelay.core.state import AppState
from chatrelay.models.models import ChatRoom, CreateRoomRequest, UpdateRoomRequest
from chatrelay.services.auth_service import AuthSession, require_admin

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin/chat", tags=["admin"])


@router.post(
    "/rooms",
    response_model=ChatRoom,
    status_code=status.HTTP_201_CREATED,
)
async def create_room(
    request: CreateRoomRequest,
    session: AuthSession = Depends(require_admin),
    state: AppState = Depends(get_state),
):
    """
    Create a chat room.

    Raises:
        HTTPException: 400 if the name is blank, 401/403 without an admin session

    Side Effects:
        - Room saved to ROOMS_FILE (when configured)
        - "rooms_updated" pushed to every open WebSocket
    """
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Room name required")

    room = state.room_manager.create_room(request)
    logger.info("Admin %s created room %d", session.user_id, room.id)
    await broadcast_room_list_update(state)
    return room


@router.put("/rooms/{room_id}", response_model=ChatRoom)
async def update_room(
    room_id: int,
    request: UpdateRoomRequest,
    session: AuthSession = Depends(require_admin),
    state: AppState = Depends(get_state),
):
    if request.name is not None and not request.name.strip():
        raise HTTPException(status_code=400, detail="Room name required")

    room = state.room_manager.update_room(room_id, request)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")

    logger.info("Admin %s updated room %d", session.user_id, room_id)
    await broadcast_room_list_update(state)
    return room
