# chatrelay/api/websocket.py

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from chatrelay.core.state import AppState
from chatrelay.services.auth_service import session_from_cookies

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for room chat.

    Protocol:
    =========

    Client -> Server:
    -----------------
    Join Room (no acknowledgement):
        {"type": "join", "roomId": 3, "userId": 7}

    Send Message:
        {"type": "message", "roomId": 3, "userId": 7,
         "messageType": "text", "content": "Good morning!", "clientId": "c-1"}

    Server -> Client:
    -----------------
    Message (to every member, sender included):
        {"type": "message", "message": {"id": 42, "roomId": 3, "userId": 7,
         "type": "text", "content": "Good morning!", "createdAt": "..."},
         "clientId": "c-1"}

    Someone Joined (to the other members):
        {"type": "join", "roomId": 3, "userId": 9}

    Room List Updated:
        {"type": "rooms_updated", "rooms": [...]}

    Error (to the sender only):
        {"type": "error", "reason": "..."}

    Lifecycle:
    ==========
    1. Socket accepted, session cookie (if any) bound to the connection
    2. First "join" tags the connection with a room; later joins switch rooms
    3. On close or error the connection is dropped from the registry
    """
    state: AppState = websocket.app.state.chat
    session = session_from_cookies(websocket.cookies, state.settings)

    if session is None and state.settings.WS_REQUIRE_SESSION:
        logger.warning("Refusing WebSocket upgrade without a valid session")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = state.connection_manager
    connection = await manager.connect(websocket, session)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE))

            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""
            await manager.handle_frame(connection, data)

    except WebSocketDisconnect as e:
        logger.debug("Client %r went away with code %s", connection, e.code)
        manager.disconnect(connection)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        manager.disconnect(connection)
