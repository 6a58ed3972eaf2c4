# chatrelay/models/models.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

MessageKind = Literal["text", "voice", "image"]


class WireModel(BaseModel):
    """Base for everything that crosses the wire: camelCase outside, snake_case inside."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# REST MODELS
# ============================================================================

class ChatRoom(WireModel):
    id: int
    name: str
    description: str = ""
    topic: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime


class CreateRoomRequest(WireModel):
    name: str
    description: str = ""
    topic: Optional[str] = None
    image_url: Optional[str] = None


class UpdateRoomRequest(WireModel):
    name: Optional[str] = None
    description: Optional[str] = None
    topic: Optional[str] = None
    image_url: Optional[str] = None


class ChatMessage(WireModel):
    id: int
    room_id: int
    user_id: int
    type: MessageKind = "text"
    content: str
    created_at: datetime


# ============================================================================
# WEBSOCKET FRAMES (client -> server)
# ============================================================================

class JoinFrame(WireModel):
    type: Literal["join"]
    room_id: int
    user_id: int


class MessageFrame(WireModel):
    type: Literal["message"]
    room_id: Optional[int] = None
    user_id: int
    message_type: MessageKind = "text"
    content: str
    # Correlation id echoed back so the sender can reconcile its optimistic copy
    client_id: Optional[str] = None


InboundFrame = Annotated[Union[JoinFrame, MessageFrame], Field(discriminator="type")]

inbound_frame_adapter: TypeAdapter[Union[JoinFrame, MessageFrame]] = TypeAdapter(InboundFrame)


# ============================================================================
# WEBSOCKET FRAMES (server -> client)
# ============================================================================

class MessageEvent(WireModel):
    type: Literal["message"] = "message"
    message: ChatMessage
    client_id: Optional[str] = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class JoinEvent(WireModel):
    type: Literal["join"] = "join"
    room_id: int
    user_id: int


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    reason: str
    # Set when the error answers a message frame that carried one
    client_id: Optional[str] = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class RoomsUpdatedEvent(WireModel):
    type: Literal["rooms_updated"] = "rooms_updated"
    rooms: List[ChatRoom]


OutboundFrame = Annotated[
    Union[MessageEvent, JoinEvent, ErrorEvent, RoomsUpdatedEvent],
    Field(discriminator="type"),
]

outbound_frame_adapter: TypeAdapter[
    Union[MessageEvent, JoinEvent, ErrorEvent, RoomsUpdatedEvent]
] = TypeAdapter(OutboundFrame)
