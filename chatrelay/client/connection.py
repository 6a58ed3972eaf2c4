# chatrelay/client/connection.py

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000


class NotConnectedError(RuntimeError):
    """Raised when sending on a room whose socket isn't open."""


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_CLEAN = "closed_clean"
    CLOSED_UNCLEAN = "closed_unclean"


MessageCallback = Callable[[Dict[str, Any]], None]


class RoomConnection:
    """
    One socket attempt for one room.

    Lifecycle:
        CONNECTING -> OPEN -> CLOSED_CLEAN | CLOSED_UNCLEAN

    On open a ``join`` frame is sent right away. Every inbound text frame
    is parsed as JSON and handed to ``on_message``; frames that don't parse
    are logged and dropped. A close with code 1000, or one we initiated via
    ``close()``, ends CLOSED_CLEAN; anything else (other codes, refused
    connection, handshake failure) ends CLOSED_UNCLEAN. ``on_close`` fires
    exactly once either way and the owner decides whether to reconnect.

    ``connect`` defaults to ``websockets.connect`` and can be swapped for a
    fake in tests.
    """

    def __init__(
        self,
        url: str,
        room_id: int,
        user_id: int,
        on_message: MessageCallback,
        on_open: Optional[Callable[["RoomConnection"], None]] = None,
        on_close: Optional[Callable[["RoomConnection"], None]] = None,
        connect: Optional[Callable[..., Any]] = None,
        connect_kwargs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.room_id = room_id
        self.user_id = user_id
        self.state = ConnectionState.CONNECTING
        self.close_code: Optional[int] = None

        self._on_message = on_message
        self._on_open = on_open
        self._on_close = on_close
        self._connect = connect or websockets.connect
        self._connect_kwargs = connect_kwargs or {}
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._close_task: Optional[asyncio.Task] = None

    @property
    def closing(self) -> bool:
        return self._closing

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def run(self) -> None:
        code: Optional[int] = None
        try:
            async with self._connect(self.url, **self._connect_kwargs) as ws:
                self._ws = ws
                if self._closing:
                    # cleanup() raced the handshake
                    await ws.close(code=NORMAL_CLOSURE, reason="Cleanup")
                else:
                    await self._serve(ws)
                code = ws.close_code
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.warning("WebSocket to %s failed [room %s]: %s", self.url, self.room_id, e)
        finally:
            self._ws = None
            self.close_code = code
            if self._closing or code == NORMAL_CLOSURE:
                self.state = ConnectionState.CLOSED_CLEAN
            else:
                self.state = ConnectionState.CLOSED_UNCLEAN
            logger.info("WebSocket closed [room %s] code=%s state=%s", self.room_id, code, self.state.value)
            if self._on_close is not None:
                self._on_close(self)

    async def _serve(self, ws) -> None:
        self.state = ConnectionState.OPEN
        logger.info("WebSocket open [room %s]", self.room_id)
        if self._on_open is not None:
            self._on_open(self)

        try:
            await ws.send(json.dumps({"type": "join", "roomId": self.room_id, "userId": self.user_id}))
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed:
            pass

    def _dispatch(self, raw) -> None:
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error("Could not parse frame [room %s]: %s", self.room_id, e)
            return
        if not isinstance(data, dict):
            logger.error("Ignoring non-object frame [room %s]: %r", self.room_id, data)
            return
        try:
            self._on_message(data)
        except Exception:
            logger.exception("Message callback failed [room %s]", self.room_id)

    async def send(self, frame: Dict[str, Any]) -> None:
        if self.state is not ConnectionState.OPEN or self._ws is None or self._closing:
            raise NotConnectedError(f"Room {self.room_id} is not connected")
        await self._ws.send(json.dumps(frame))

    def close(self) -> None:
        """Close with code 1000. Safe to call repeatedly."""
        if self._closing:
            return
        self._closing = True
        if self._ws is not None:
            self._close_task = asyncio.ensure_future(self._ws.close(code=NORMAL_CLOSURE, reason="Cleanup"))
            self._close_task.add_done_callback(self._log_close_result)
        elif self._task is not None and not self._task.done():
            # Still handshaking
            self._task.cancel()

    def _log_close_result(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Closing WebSocket failed [room %s]: %s", self.room_id, error)
