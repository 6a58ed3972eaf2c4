"""Client side of the room chat: reconnecting connections and the de-duplicated message feed."""

from chatrelay.client.connection import ConnectionState, NotConnectedError, RoomConnection
from chatrelay.client.controller import ConnectionController, ConnectionStatus, ReconnectPolicy
from chatrelay.client.feed import FeedEntry, MessageFeed
from chatrelay.client.history import HistoryClient
from chatrelay.client.session import ChatRoomSession

__all__ = [
    "ChatRoomSession",
    "ConnectionController",
    "ConnectionState",
    "ConnectionStatus",
    "FeedEntry",
    "HistoryClient",
    "MessageFeed",
    "NotConnectedError",
    "ReconnectPolicy",
    "RoomConnection",
]
