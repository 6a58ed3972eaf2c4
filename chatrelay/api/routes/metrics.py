# chatrelay/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from chatrelay.api.routes.utils import get_state
from chatrelay.core.state import AppState

router = APIRouter()

@router.get("/metrics")
async def get_metrics(state: AppState = Depends(get_state)):
    """
    Chat traffic and capacity numbers for this instance.

    The dispatcher writes to every member of a room one socket at a time,
    so ``busiest_room_members`` is the number to watch: it bounds how long a
    single broadcast can take.

    Example Response:
        {
            "total_messages": 1200,
            "uptime_hours": 5.5,
            "messages_per_second": 0.06,
            "concurrent_connections": 40,
            "joined_connections": 35,
            "total_rooms": 6,
            "active_rooms_with_members": 3,
            "busiest_room_members": 20,
            "rooms": {"1": 20, "2": 10, "5": 5},
            "broadcast_backend": "local"
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()

    if uptime_seconds > 0:
        messages_per_second = state.message_counter / uptime_seconds
    else:
        messages_per_second = 0

    rooms_info = state.registry.rooms_info()

    return {
        # Statistics
        "total_messages": state.message_counter,
        "stored_messages": state.message_store.count(),
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Capacity
        "concurrent_connections": len(state.registry.connections),
        "joined_connections": sum(rooms_info.values()),
        "total_rooms": len(state.room_manager.rooms),
        "active_rooms_with_members": len(rooms_info),
        "busiest_room_members": max(rooms_info.values(), default=0),
        "rooms": {str(room_id): count for room_id, count in rooms_info.items()},

        "broadcast_backend": state.settings.BROADCAST_BACKEND,
    }
