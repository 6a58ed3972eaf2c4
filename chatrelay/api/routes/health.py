# chatrelay/api/routes/health.py

from fastapi import APIRouter, Depends

from chatrelay.api.routes.utils import get_state
from chatrelay.core.state import AppState

router = APIRouter()

@router.get("/health")
async def health(state: AppState = Depends(get_state)):
    """
    Liveness plus a quick look at the relay.

    ``status`` turns "degraded" when the redis backend is configured but the
    relay has no live client; local sockets still work then, other instances
    just don't hear about them.
    """
    relay_ok = state.redis_service is None or state.redis_service.connected
    return {
        "status": "healthy" if relay_ok else "degraded",
        "broadcast_backend": state.settings.BROADCAST_BACKEND,
        "connections": len(state.registry.connections),
        "rooms": len(state.room_manager.rooms),
        "active_rooms_with_members": len(state.registry.rooms),
    }
