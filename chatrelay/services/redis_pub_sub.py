# chatrelay/services/redis_pub_sub.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

from chatrelay.services.broadcaster import BroadcastDispatcher

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "room:"


class AsyncRedisPubSubService:
    """
    Cross-instance relay for accepted frames.

    ``publish`` has the same shape as ``BroadcastDispatcher.publish`` so the
    connection handler doesn't care which one it got. Every instance runs
    ``listen`` and hands each envelope to its own local dispatcher, which
    only knows the sockets connected to that instance.

    Envelope on channel ``room:{room_id}``:
        {"room_id": 3, "payload": {...}, "exclude": "<connection id>" | null}
    """

    def __init__(self, url: str, dispatcher: BroadcastDispatcher) -> None:
        self.url = url
        self.dispatcher = dispatcher
        self.client: Optional[redis.Redis] = None
        self.pubsub = None

    @property
    def connected(self) -> bool:
        return self.client is not None

    async def connect(self) -> None:
        """Establish async connection to Redis."""
        self.client = redis.from_url(self.url, decode_responses=True)
        await self.client.ping()
        logger.info("✓ Connected to Redis at %s", self.url.rsplit("@", 1)[-1])

    async def publish(self, room_id: int, payload: Dict[str, Any], exclude: Optional[str] = None) -> int:
        """Publish a frame for a room. Returns the number of subscribed instances."""
        envelope = {"room_id": room_id, "payload": payload, "exclude": exclude}
        receivers = await self.client.publish(f"{CHANNEL_PREFIX}{room_id}", json.dumps(envelope))
        logger.debug("📤 Published %s to Redis channel room:%s", payload.get("type"), room_id)
        return receivers

    async def handle_envelope(self, raw: str) -> None:
        try:
            envelope = json.loads(raw)
            room_id = int(envelope["room_id"])
            payload = envelope["payload"]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Redis envelope dropped: %s", e)
            return
        await self.dispatcher.publish(room_id, payload, exclude=envelope.get("exclude"))

    async def listen(self, pattern: str = f"{CHANNEL_PREFIX}*") -> None:
        """Subscribe to every room channel and forward to local sockets."""
        self.pubsub = self.client.pubsub()
        await self.pubsub.psubscribe(pattern)
        logger.info("✓ Subscribed to Redis pattern '%s'", pattern)

        async for message in self.pubsub.listen():
            if message["type"] not in ("message", "pmessage"):
                continue
            try:
                await self.handle_envelope(message["data"])
            except Exception as e:
                logger.error("Error processing Redis message: %s", e)

    async def close(self) -> None:
        """Close connections."""
        if self.pubsub:
            await self.pubsub.punsubscribe()
            await self.pubsub.aclose()
            self.pubsub = None
        if self.client:
            await self.client.aclose()
            self.client = None
        logger.info("Redis connection closed")
