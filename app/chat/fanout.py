"""
Delivery fan-out over the Channels layer.

Translates RealtimeEvent values into channel-layer messages:

    EVERYONE   -> group "chat_presence" (every socket joins it on connect)
    ROOM       -> group "chat_room_<room_id>" (sockets join on joinChatRoom)
    USER       -> group "chat_user_<user_id>" (authenticated sockets join on connect)
    CONNECTION -> channel_layer.send(channel_name)

Filtering that depends on per-socket state (skip the sender, skip sockets
already inside the room) is carried in the message and applied by
ChatConsumer.realtime_event, so fan-out works the same from the ASGI
process, a REST request thread, or a Celery worker.

Delivery is best effort: a failed send is logged and never propagates back
into the operation that produced the event. Clients de-duplicate on the
message id carried in every payload.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from chat.constants import REALTIME_CONFIG
from chat.events import Audience, EventName, RealtimeEvent

logger = logging.getLogger(__name__)


class DeliveryFanout:
    """
    Publishes realtime events to connected sockets.

    Usage:
        fanout = DeliveryFanout()
        await fanout.broadcast_to_room(room.id, EventName.TYPING, payload,
                                       exclude_user_id=user.id)

        # From sync code (views, services, Celery tasks)
        fanout.publish_sync(
            DeliveryFanout.message_created_events(room.id, sender.id, participant_ids, payload)
        )
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    @staticmethod
    def room_group(room_id: int) -> str:
        return f"{REALTIME_CONFIG.ROOM_GROUP_PREFIX}_{room_id}"

    @staticmethod
    def user_group(user_id: int) -> str:
        return f"{REALTIME_CONFIG.USER_GROUP_PREFIX}_{user_id}"

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    @staticmethod
    def to_layer_message(event: RealtimeEvent) -> dict:
        """Build the channel-layer message handled by ChatConsumer.realtime_event."""
        message = {
            "type": REALTIME_CONFIG.HANDLER_TYPE,
            "event": event.name,
            "payload": event.payload,
        }
        if event.exclude_user_id is not None:
            message["exclude_user_id"] = event.exclude_user_id
        if event.exclude_channel:
            message["exclude_channel"] = event.exclude_channel
        if event.audience == Audience.USER:
            message["absent_from_room"] = event.room_id
        return message

    async def publish(self, event: RealtimeEvent) -> None:
        layer = self.channel_layer
        if layer is None:
            logger.debug(f"No channel layer configured; dropping {event.name}")
            return

        message = self.to_layer_message(event)
        try:
            if event.audience == Audience.CONNECTION:
                await layer.send(event.channel_name, message)
            elif event.audience == Audience.ROOM:
                await layer.group_send(self.room_group(event.room_id), message)
            elif event.audience == Audience.USER:
                await layer.group_send(self.user_group(event.user_id), message)
            else:
                await layer.group_send(REALTIME_CONFIG.PRESENCE_GROUP, message)
        except Exception:
            logger.exception(f"Failed to deliver {event.name} to {event.audience.value}")

    async def publish_many(self, events: Iterable[RealtimeEvent]) -> None:
        for event in events:
            await self.publish(event)

    def publish_sync(self, events: Iterable[RealtimeEvent]) -> None:
        """Publish from synchronous code (request threads, Celery tasks)."""
        events = list(events)
        if events:
            async_to_sync(self.publish_many)(events)

    # ------------------------------------------------------------------
    # Room and absent-user delivery
    # ------------------------------------------------------------------

    async def broadcast_to_room(
        self,
        room_id: int,
        event_name: str,
        payload: dict,
        exclude_user_id: int | None = None,
    ) -> None:
        """Deliver an event to every socket currently joined to the room."""
        await self.publish(
            RealtimeEvent.to_room(room_id, event_name, payload, exclude_user_id=exclude_user_id)
        )

    async def notify_absent(
        self,
        room_id: int,
        sender_id: int,
        recipient_ids: Iterable[int],
        message: dict,
    ) -> None:
        """Send newMessageNotification to recipients' sockets outside the room."""
        await self.publish_many(self.absent_events(room_id, sender_id, recipient_ids, message))

    @staticmethod
    def absent_events(
        room_id: int,
        sender_id: int,
        recipient_ids: Iterable[int],
        message: dict,
    ) -> list[RealtimeEvent]:
        return [
            RealtimeEvent.to_absent_user(
                user_id, room_id, EventName.NEW_MESSAGE_NOTIFICATION, message
            )
            for user_id in recipient_ids
            if user_id != sender_id
        ]

    @classmethod
    def message_created_events(
        cls,
        room_id: int,
        sender_id: int,
        participant_ids: Iterable[int],
        message: dict,
    ) -> list[RealtimeEvent]:
        """
        Events for a newly persisted message: the full message to the room,
        then a notification to each other participant not viewing it.
        """
        return [
            RealtimeEvent.to_room(room_id, EventName.CHAT_MESSAGE, message),
            *cls.absent_events(room_id, sender_id, participant_ids, message),
        ]
