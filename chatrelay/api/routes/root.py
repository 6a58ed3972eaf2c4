# chatrelay/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()

PROTOCOL = {
    "client": ["join", "message"],
    "server": ["message", "join", "error", "rooms_updated"],
    "normal_close_code": 1000,
}


@router.get("/")
async def root():
    """Service name, websocket protocol summary and where everything lives."""
    return {
        "message": "Chat Relay - English practice rooms",
        "version": "1.0",
        "protocol": PROTOCOL,
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/api/chat/rooms",
            "room": "/api/chat/rooms/{room_id}",
            "messages": "/api/chat/rooms/{room_id}/messages",
            "admin_rooms": "/api/admin/chat/rooms",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
