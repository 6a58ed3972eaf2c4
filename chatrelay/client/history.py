# chatrelay/client/history.py

from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from pydantic import TypeAdapter

from chatrelay.models.models import ChatMessage, ChatRoom

logger = logging.getLogger(__name__)

_rooms = TypeAdapter(List[ChatRoom])
_messages = TypeAdapter(List[ChatMessage])


class HistoryClient:
    """
    Thin async client for the chat REST endpoints.

    The session cookie, when given, is sent with every request. Pass an
    ``httpx.AsyncClient`` to share a connection pool, or a ``transport`` to
    route requests somewhere other than the network.
    """

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        cookie_name: str = "session_token",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cookies = {cookie_name: session_token} if session_token else None
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=base_url, cookies=cookies, timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "HistoryClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def list_rooms(self) -> List[ChatRoom]:
        response = await self.client.get("/api/chat/rooms")
        response.raise_for_status()
        return _rooms.validate_python(response.json())

    async def get_room(self, room_id: int) -> ChatRoom:
        response = await self.client.get(f"/api/chat/rooms/{room_id}")
        response.raise_for_status()
        return ChatRoom.model_validate(response.json())

    async def get_messages(self, room_id: int, limit: int = 50) -> List[ChatMessage]:
        """Most recent ``limit`` messages, newest first, exactly as the server sends them."""
        response = await self.client.get(f"/api/chat/rooms/{room_id}/messages", params={"limit": limit})
        response.raise_for_status()
        messages = _messages.validate_python(response.json())
        logger.debug("Fetched %d messages for room %s", len(messages), room_id)
        return messages
