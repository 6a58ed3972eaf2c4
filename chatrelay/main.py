# chatrelay/main.py

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.api import websocket as websocket_module
from chatrelay.api.routes import admin, chat, health, metrics, root
from chatrelay.core.config import Settings, settings as default_settings
from chatrelay.core.logging import get_logger, setup_logging
from chatrelay.core.state import AppState

# Configure logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    state: AppState = app.state.chat
    logger.info("🚀 Application starting - broadcast backend: %s", state.settings.BROADCAST_BACKEND)

    listener: Optional[asyncio.Task] = None
    if state.redis_service is not None:
        await state.redis_service.connect()
        # Start subscriber in background
        listener = asyncio.create_task(state.redis_service.listen())

    yield

    if listener is not None:
        listener.cancel()
        try:
            await listener
        except asyncio.CancelledError:
            pass
    if state.redis_service is not None:
        await state.redis_service.close()
    logger.info("Application stopped")


def create_app(settings: Optional[Settings] = None, state: Optional[AppState] = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Chat Relay - English practice rooms", lifespan=lifespan)
    app.state.chat = state or AppState(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # REST routes
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(metrics.router)
    app.include_router(chat.router)
    app.include_router(admin.router)

    # WebSocket routes
    app.include_router(websocket_module.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chatrelay.main:app", host="0.0.0.0", port=8000)
