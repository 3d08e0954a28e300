"""
WebSocket consumer for the chat application.

One socket per client. The socket sees presence for everyone and joins
rooms explicitly; runtime state lives in the injected RealtimeHub.

Consumers:
    ChatConsumer: Presence, room occupancy, messaging and typing

Authentication:
    JWTAuthMiddleware attaches the user to self.scope["user"]. Anonymous
    sockets are accepted: they receive presence events and
    initialOnlineUsers but cannot join rooms, send or type.

Channel Groups:
    chat_presence       every socket (userStatus, userLastSeen)
    chat_user_<id>      every socket of one user (newMessageNotification)
    chat_room_<id>      sockets that joined the room

Frames:
    client -> server    {"type": "joinChatRoom", "roomId": 1}
                        {"type": "leaveChatRoom", "roomId": 1}
                        {"type": "sendChatMessage", "roomId": 1, "text": "Hi",
                         "parent": 7, "location": {"lat", "lng", "name"}}
                        {"type": "markRoomRead", "roomId": 1}
                        {"type": "typing", "roomId": 1}
                        {"type": "stopTyping", "roomId": 1}
    server -> client    {"type": "<event name>", "data": {...}}
                        {"type": "error", "error": "...", "error_code": "..."}
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from chat import events
from chat.constants import REALTIME_CONFIG
from chat.events import ClientEvent, EventName
from chat.fanout import DeliveryFanout
from chat.middleware import SUBPROTOCOL
from chat.presence import get_hub
from chat.services import MessageService, RoomService

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for realtime chat.

    Args:
        hub: RealtimeHub to register with (defaults to the process hub)
        resolver: Link preview resolver passed to message ingestion

    Attributes:
        user_id: Authenticated user's id, or None for anonymous sockets
        joined_rooms: Rooms this socket is currently viewing
    """

    resolver = None

    def __init__(self, *args, hub=None, resolver=None, **kwargs):
        super().__init__(*args, **kwargs)
        self._hub = hub
        self.resolver = resolver
        self.user_id: int | None = None
        self.joined_rooms: set[int] = set()

    @property
    def hub(self):
        if self._hub is None:
            self._hub = get_hub()
        return self._hub

    @property
    def user(self):
        return self.scope.get("user")

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self):
        """
        Accept the socket, subscribe it to presence (and its user group when
        authenticated), then register it with the hub.
        """
        user = self.user
        if user is not None and user.is_authenticated:
            self.user_id = user.id

        subprotocols = self.scope.get("subprotocols") or []
        await self.accept(subprotocol=SUBPROTOCOL if SUBPROTOCOL in subprotocols else None)

        await self.channel_layer.group_add(REALTIME_CONFIG.PRESENCE_GROUP, self.channel_name)
        if self.user_id is not None:
            await self.channel_layer.group_add(
                DeliveryFanout.user_group(self.user_id), self.channel_name
            )

        await self.hub.connect(self.channel_name, self.user_id)
        logger.info(f"Socket {self.channel_name} connected (user {self.user_id or 'anonymous'})")

    async def disconnect(self, close_code):
        """Leave every group, then let the hub emit leave/offline events."""
        for room_id in list(self.joined_rooms):
            await self.channel_layer.group_discard(
                DeliveryFanout.room_group(room_id), self.channel_name
            )
        await self.channel_layer.group_discard(REALTIME_CONFIG.PRESENCE_GROUP, self.channel_name)
        if self.user_id is not None:
            await self.channel_layer.group_discard(
                DeliveryFanout.user_group(self.user_id), self.channel_name
            )

        await self.hub.disconnect(self.channel_name)
        self.joined_rooms.clear()
        logger.info(f"Socket {self.channel_name} disconnected (code {close_code})")

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------

    async def receive_json(self, content, **kwargs):
        """
        Dispatch a client frame by its "type".

        Unknown types get an error frame; they never close the socket.
        """
        event_type = content.get("type") if isinstance(content, dict) else None
        handlers = {
            ClientEvent.JOIN_ROOM: self.handle_join_room,
            ClientEvent.LEAVE_ROOM: self.handle_leave_room,
            ClientEvent.SEND_MESSAGE: self.handle_send_message,
            ClientEvent.MARK_ROOM_READ: self.handle_mark_room_read,
            ClientEvent.TYPING: self.handle_typing,
            ClientEvent.STOP_TYPING: self.handle_typing,
        }

        handler = handlers.get(event_type)
        if handler is None:
            logger.warning(f"Unknown socket event type {event_type!r} from {self.channel_name}")
            await self.send_error(f"Unknown event type: {event_type}", "UNKNOWN_EVENT")
            return

        await handler(content)

    async def handle_join_room(self, content):
        """
        Start viewing a room. Participants only.

        Other viewers get userInRoom(inRoom=true); this socket gets one
        userInRoom per user already in the room.
        """
        room_id = await self._require_room(content)
        if room_id is None:
            return

        result = await database_sync_to_async(RoomService.get_room_for_participant)(
            room_id, self.user
        )
        if not result:
            await self.send_result_error(result)
            return

        await self.channel_layer.group_add(DeliveryFanout.room_group(room_id), self.channel_name)
        self.joined_rooms.add(room_id)
        await self.hub.join(room_id, self.channel_name, self.user_id)

    async def handle_leave_room(self, content):
        room_id = await self._require_room(content)
        if room_id is None or room_id not in self.joined_rooms:
            return

        await self.hub.leave(room_id, self.channel_name)
        self.joined_rooms.discard(room_id)
        await self.channel_layer.group_discard(
            DeliveryFanout.room_group(room_id), self.channel_name
        )

    async def handle_send_message(self, content):
        """
        Send a message through the ingestion pipeline.

        The sender is always the authenticated user; a senderId that names
        someone else is rejected. On success nothing is sent back directly:
        the message arrives as chatMessage through the room group.
        """
        room_id = await self._require_room(content)
        if room_id is None:
            return
        if not await self._check_claimed_user(content.get("senderId")):
            return

        result = await MessageService.asend_message(
            room_id=room_id,
            sender=self.user,
            text=content.get("text") or "",
            parent_id=content.get("parent"),
            location=content.get("location"),
            hub=self.hub,
            resolver=self.resolver,
        )
        if not result:
            await self.send_result_error(result)

    async def handle_mark_room_read(self, content):
        room_id = await self._require_room(content)
        if room_id is None:
            return
        if not await self._check_claimed_user(content.get("userId")):
            return

        result = await database_sync_to_async(MessageService.mark_room_read)(
            room_id, self.user, fanout=self.hub.fanout
        )
        if not result:
            await self.send_result_error(result)

    async def handle_typing(self, content):
        """Relay typing / stopTyping to the rest of a room this socket is in."""
        room_id = await self._require_room(content)
        if room_id is None:
            return
        if room_id not in self.joined_rooms:
            await self.send_error("Join the room first", "NOT_IN_ROOM")
            return

        await self.hub.fanout.broadcast_to_room(
            room_id,
            content["type"],
            events.room_user(room_id, self.user_id),
            exclude_user_id=self.user_id,
        )

    # ------------------------------------------------------------------
    # Channel layer events
    # ------------------------------------------------------------------

    async def realtime_event(self, message):
        """
        Handle realtime.event messages from DeliveryFanout.

        Applies per-socket filtering carried in the message before sending
        {"type": event, "data": payload} to the client.
        """
        exclude_user_id = message.get("exclude_user_id")
        if exclude_user_id is not None and exclude_user_id == self.user_id:
            return
        if message.get("exclude_channel") == self.channel_name:
            return
        absent_from_room = message.get("absent_from_room")
        if absent_from_room is not None and absent_from_room in self.joined_rooms:
            return

        await self.send_json({"type": message["event"], "data": message["payload"]})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def send_error(self, error: str, error_code: str):
        await self.send_json({"type": EventName.ERROR, "error": error, "error_code": error_code})

    async def send_result_error(self, result):
        await self.send_error(result.error, result.error_code)

    async def _require_room(self, content) -> int | None:
        """Authenticated user plus an integer roomId, or an error frame."""
        if self.user_id is None:
            await self.send_error("Authentication required", "NOT_AUTHENTICATED")
            return None
        try:
            return int(content.get("roomId"))
        except (TypeError, ValueError):
            await self.send_error("roomId is required", "VALIDATION_ERROR")
            return None

    async def _check_claimed_user(self, claimed_id) -> bool:
        if claimed_id is None or str(claimed_id) == str(self.user_id):
            return True
        logger.warning(f"User {self.user_id} claimed to act as {claimed_id}")
        await self.send_error("Sender does not match the authenticated user", "SENDER_MISMATCH")
        return False
