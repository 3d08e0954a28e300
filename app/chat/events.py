"""
Typed realtime events.

Presence, room membership, ingestion and the scheduler never talk to sockets
directly. They produce RealtimeEvent values describing what happened and who
should hear about it; chat.fanout.DeliveryFanout turns those into channel-layer
messages, and chat.consumers.ChatConsumer serializes them to clients as

    {"type": "<event name>", "data": {...payload...}}

Audiences:
    EVERYONE   - every connected socket (presence transitions)
    ROOM       - sockets currently joined to a room
    CONNECTION - a single socket (greeting, occupancy replay, errors)
    USER       - every socket of one user that is NOT inside ``room_id``
                 (new-message notifications for absent recipients)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventName:
    """Wire names of server-to-client events."""

    INITIAL_ONLINE_USERS = "initialOnlineUsers"
    USER_STATUS = "userStatus"
    USER_LAST_SEEN = "userLastSeen"
    USER_IN_ROOM = "userInRoom"
    CHAT_MESSAGE = "chatMessage"
    NEW_MESSAGE_NOTIFICATION = "newMessageNotification"
    ROOM_MESSAGES_READ = "roomMessagesRead"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    MESSAGE_EDITED = "messageEdited"
    MESSAGE_REACTED = "messageReacted"
    MESSAGE_STARRED = "messageStarred"
    MESSAGE_DELETED = "messageDeleted"
    ERROR = "error"


class ClientEvent:
    """Wire names of client-to-server events."""

    JOIN_ROOM = "joinChatRoom"
    LEAVE_ROOM = "leaveChatRoom"
    SEND_MESSAGE = "sendChatMessage"
    MARK_ROOM_READ = "markRoomRead"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"


class PresenceStatus:
    ONLINE = "Online"
    OFFLINE = "Offline"


class Audience(str, Enum):
    EVERYONE = "everyone"
    ROOM = "room"
    CONNECTION = "connection"
    USER = "user"


@dataclass(frozen=True)
class RealtimeEvent:
    """
    One event addressed to one audience.

    Attributes:
        name: Wire name (see EventName)
        payload: JSON-serializable body
        audience: Who receives it
        room_id: Target room (ROOM) or the room the recipient must be
            outside of (USER)
        user_id: Target user (USER)
        channel_name: Target socket (CONNECTION)
        exclude_user_id: Skip every socket of this user (ROOM)
        exclude_channel: Skip this one socket (ROOM)
    """

    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    audience: Audience = Audience.EVERYONE
    room_id: int | None = None
    user_id: int | None = None
    channel_name: str | None = None
    exclude_user_id: int | None = None
    exclude_channel: str | None = None

    @classmethod
    def to_everyone(cls, name: str, payload: dict) -> RealtimeEvent:
        return cls(name=name, payload=payload, audience=Audience.EVERYONE)

    @classmethod
    def to_room(
        cls,
        room_id: int,
        name: str,
        payload: dict,
        exclude_user_id: int | None = None,
        exclude_channel: str | None = None,
    ) -> RealtimeEvent:
        return cls(
            name=name,
            payload=payload,
            audience=Audience.ROOM,
            room_id=room_id,
            exclude_user_id=exclude_user_id,
            exclude_channel=exclude_channel,
        )

    @classmethod
    def to_connection(cls, channel_name: str, name: str, payload: dict) -> RealtimeEvent:
        return cls(
            name=name,
            payload=payload,
            audience=Audience.CONNECTION,
            channel_name=channel_name,
        )

    @classmethod
    def to_absent_user(
        cls, user_id: int, room_id: int, name: str, payload: dict
    ) -> RealtimeEvent:
        return cls(
            name=name,
            payload=payload,
            audience=Audience.USER,
            user_id=user_id,
            room_id=room_id,
        )


# =============================================================================
# Payload builders
# =============================================================================


def user_status(user_id: int, status: str) -> dict:
    return {"userId": user_id, "status": status}


def user_last_seen(user_id: int, last_seen) -> dict:
    return {"userId": user_id, "lastSeen": last_seen.isoformat()}


def user_in_room(room_id: int, user_id: int, in_room: bool) -> dict:
    return {"roomId": room_id, "userId": user_id, "inRoom": in_room}


def room_user(room_id: int, user_id: int) -> dict:
    """Payload shared by roomMessagesRead, typing and stopTyping."""
    return {"roomId": room_id, "userId": user_id}
