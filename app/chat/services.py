"""
Chat system service layer.

This module provides the business logic for the realtime chat, encapsulating
all operations on chat requests, rooms, messages and scheduled messages.

Services:
    ChatRequestService: Ask a job poster to chat, accept or reject requests
    RoomService: Room lookup/creation, unread counts, participants' last seen
    MessageService: Message ingestion (send), history, edits, reactions,
        per-user and global deletion, stars, read receipts
    ScheduledMessageService: Queue messages for later and promote due ones

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - Unexpected failures raise exceptions
    - Every mutation that other participants can see is published through
      DeliveryFanout after it is persisted; publishing is best effort and
      never rolls the mutation back

Usage:
    from chat.services import MessageService, ScheduledMessageService

    # Send from a request thread or Celery task
    result = MessageService.send_message(room_id=room.id, sender=user, text="Hi!")
    if result.success:
        payload = result.data

    # Send from the socket consumer
    result = await MessageService.asend_message(room_id=room.id, sender=user,
                                                text="Hi!", hub=hub)

    # Promote due scheduled messages (Celery beat, once per interval)
    ScheduledMessageService.dispatch_due()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from channels.db import database_sync_to_async
from django.conf import settings
from django.db import DatabaseError
from django.db.models import Count
from django.utils import timezone

from core.services import BaseService, ServiceResult

from chat import attachments, events
from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG, SCHEDULER_CONFIG
from chat.events import EventName, RealtimeEvent
from chat.fanout import DeliveryFanout
from chat.link_preview import LinkPreviewResolver
from chat.models import (
    ChatRequest,
    ChatRequestStatus,
    ChatRoom,
    Message,
    MessageReaction,
    ScheduledMessage,
    ScheduledMessageStatus,
)
from chat.presence import get_hub
from jobs.models import Job

if TYPE_CHECKING:
    from authentication.models import User
    from chat.presence import RealtimeHub

logger = logging.getLogger(__name__)


def hydrated_messages():
    """Message queryset with everything the payload serializer touches."""
    return Message.objects.select_related(
        "sender__profile",
        "parent__sender__profile",
    ).prefetch_related(
        "read_by",
        "starred_by",
        "reactions__user__profile",
    )


def _to_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class MessageDraft:
    """A validated outgoing message that has not been persisted yet."""

    room: ChatRoom
    sender: User
    text: str
    parent: Message | None = None
    location: dict | None = None
    attachment: dict | None = None
    participant_ids: list = field(default_factory=list)


class ChatRequestService(BaseService):
    """
    Service for chat requests.

    A user asks the poster of a job to open a conversation. The poster accepts
    (a room is created) or rejects. Both steps notify the other side in-app
    and by email.

    Methods:
        create_request: Send a request to a job's poster
        respond: Accept or reject a received request
        list_received / list_sent / list_accepted: Request inboxes
    """

    @classmethod
    def create_request(
        cls,
        from_user: User,
        to_user_id,
        job_id,
    ) -> ServiceResult[ChatRequest]:
        """
        Send a chat request about a job to the user who posted it.

        Error codes:
            VALIDATION_ERROR: Missing ids, or the recipient is not the job's poster
            JOB_NOT_FOUND: Job does not exist
            REQUEST_PENDING: An identical request is still pending
        """
        to_user_id = _to_int(to_user_id)
        job_id = _to_int(job_id)
        if to_user_id is None or job_id is None:
            return ServiceResult.failure(
                "Job and recipient are required",
                error_code="VALIDATION_ERROR",
            )

        job = Job.objects.select_related("created_by").filter(pk=job_id).first()
        if job is None:
            return ServiceResult.failure("Job not found", error_code="JOB_NOT_FOUND")

        if job.created_by_id != to_user_id or to_user_id == from_user.id:
            return ServiceResult.failure(
                "Invalid job or recipient",
                error_code="VALIDATION_ERROR",
            )

        duplicate = ChatRequest.objects.filter(
            from_user=from_user,
            to_user_id=to_user_id,
            job=job,
            status=ChatRequestStatus.PENDING,
        ).exists()
        if duplicate:
            return ServiceResult.failure(
                "You already have a request pending",
                error_code="REQUEST_PENDING",
            )

        chat_request = ChatRequest.objects.create(
            from_user=from_user,
            to_user_id=to_user_id,
            job=job,
        )

        cls._notify(
            recipient=job.created_by,
            message=f"New chat request from {from_user.get_full_name()} for {job.title} job",
            link="/chats/requests",
            subject="New chat request",
        )

        cls.get_logger().info(
            f"User {from_user.id} requested chat with {to_user_id} about job {job.id}"
        )
        return ServiceResult.success(chat_request)

    @classmethod
    def respond(cls, user: User, request_id, action: str) -> ServiceResult[dict]:
        """
        Accept or reject a pending request addressed to ``user``.

        Accepting creates (or reuses) the room for the requester, the poster
        and the job, and notifies the requester.

        Returns:
            ServiceResult with {"request": ChatRequest, "room": ChatRoom | None}

        Error codes:
            INVALID_ACTION: action is not ACCEPTED/REJECTED, or already answered
            REQUEST_NOT_FOUND: No such request addressed to this user
        """
        if action not in (ChatRequestStatus.ACCEPTED, ChatRequestStatus.REJECTED):
            return ServiceResult.failure("Invalid action type", error_code="INVALID_ACTION")

        chat_request = (
            ChatRequest.objects.select_related("job", "from_user", "to_user")
            .filter(pk=_to_int(request_id), to_user=user)
            .first()
        )
        if chat_request is None:
            return ServiceResult.failure(
                "Chat request not found",
                error_code="REQUEST_NOT_FOUND",
            )

        if chat_request.status != ChatRequestStatus.PENDING:
            return ServiceResult.failure(
                "Chat request has already been answered",
                error_code="INVALID_ACTION",
            )

        room = None
        with cls.atomic():
            chat_request.status = action
            chat_request.save(update_fields=["status", "updated_at"])
            if action == ChatRequestStatus.ACCEPTED:
                room = RoomService.find_or_create(
                    chat_request.job, chat_request.from_user_id, chat_request.to_user_id
                )

        if room is not None:
            cls._notify(
                recipient=chat_request.from_user,
                message=(
                    f"{user.get_full_name()} has accepted your chat request "
                    f"for {chat_request.job.title} job"
                ),
                link=f"/chat/room/{room.id}",
                subject="Chat request accepted",
            )

        cls.get_logger().info(f"User {user.id} {action.lower()} chat request {chat_request.id}")
        return ServiceResult.success({"request": chat_request, "room": room})

    @classmethod
    def list_received(cls, user: User):
        return ChatRequest.objects.select_related("from_user__profile", "job").filter(
            to_user=user, status=ChatRequestStatus.PENDING
        )

    @classmethod
    def list_sent(cls, user: User):
        return ChatRequest.objects.select_related("to_user__profile", "job").filter(
            from_user=user, status=ChatRequestStatus.PENDING
        )

    @classmethod
    def list_accepted(cls, user: User):
        return ChatRequest.objects.select_related("to_user__profile", "job").filter(
            from_user=user, status=ChatRequestStatus.ACCEPTED
        )

    @classmethod
    def _notify(cls, recipient: User, message: str, link: str, subject: str) -> None:
        """In-app notification plus a fire-and-forget email."""
        from notifications.services import EmailNotifier, NotificationService

        NotificationService.create_notification(recipient=recipient, message=message, link=link)
        EmailNotifier.send(
            recipient.email,
            subject,
            f"{message}.\n\n{settings.FRONTEND_URL}{link}",
        )


class RoomService(BaseService):
    """
    Service for chat rooms.

    Methods:
        get_or_create_room: Room for (job, me, other user), created lazily
        list_rooms: Rooms the user participates in
        get_room_for_participant: Room lookup with access check
        last_seen: Other participants' last-seen times and online status
        unread_counts: Unread message count per room
    """

    @classmethod
    def find_or_create(cls, job: Job, user_id, other_user_id) -> ChatRoom:
        room = (
            ChatRoom.objects.filter(job=job, participants=user_id)
            .filter(participants=other_user_id)
            .first()
        )
        if room is None:
            room = ChatRoom.objects.create(job=job)
            room.participants.set([user_id, other_user_id])
            cls.get_logger().info(f"Created room {room.id} for job {job.id}")
        return room

    @classmethod
    def get_or_create_room(cls, user: User, job_id, other_user_id) -> ServiceResult[ChatRoom]:
        """
        Error codes:
            VALIDATION_ERROR: Missing ids or chatting with yourself
            JOB_NOT_FOUND: Job does not exist
            USER_NOT_FOUND: Other user does not exist
        """
        from authentication.models import User as UserModel

        job_id = _to_int(job_id)
        other_user_id = _to_int(other_user_id)
        if job_id is None or other_user_id is None:
            return ServiceResult.failure(
                "Job and other user are required",
                error_code="VALIDATION_ERROR",
            )
        if other_user_id == user.id:
            return ServiceResult.failure(
                "You cannot open a chat with yourself",
                error_code="VALIDATION_ERROR",
            )

        job = Job.objects.filter(pk=job_id).first()
        if job is None:
            return ServiceResult.failure("Job not found", error_code="JOB_NOT_FOUND")

        if not UserModel.objects.filter(pk=other_user_id).exists():
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")

        with cls.atomic():
            room = cls.find_or_create(job, user.id, other_user_id)
        return ServiceResult.success(room)

    @classmethod
    def list_rooms(cls, user: User):
        return (
            ChatRoom.objects.filter(participants=user)
            .select_related("job")
            .prefetch_related("participants__profile")
            .order_by("-created_at")
        )

    @classmethod
    def get_room_for_participant(cls, room_id, user: User) -> ServiceResult[ChatRoom]:
        """
        Error codes:
            ROOM_NOT_FOUND: Room does not exist
            NOT_PARTICIPANT: User is not in the room
        """
        room = ChatRoom.objects.filter(pk=_to_int(room_id)).first()
        if room is None:
            return ServiceResult.failure("Room not found", error_code="ROOM_NOT_FOUND")
        if not room.has_participant(user.id):
            return ServiceResult.failure(
                "You are not a participant in this room",
                error_code="NOT_PARTICIPANT",
            )
        return ServiceResult.success(room)

    @classmethod
    def last_seen(cls, room_id, user: User, hub: RealtimeHub | None = None) -> ServiceResult[dict]:
        """
        Last-seen times of the other participants.

        Returns:
            ServiceResult with {"lastSeen": {user_id: iso | None}, "online": [user_id]}
        """
        result = cls.get_room_for_participant(room_id, user)
        if not result:
            return result

        hub = hub or get_hub()
        others = result.data.participants.exclude(pk=user.id).values_list("pk", "last_seen")
        last_seen = {}
        online = []
        for other_id, seen in others:
            last_seen[str(other_id)] = seen.isoformat() if seen else None
            if hub.presence.is_online(other_id):
                online.append(other_id)

        return ServiceResult.success({"lastSeen": last_seen, "online": sorted(online)})

    @classmethod
    def unread_counts(cls, user: User) -> ServiceResult[dict]:
        """Unread, visible message count per room the user participates in."""
        rows = (
            Message.objects.filter(room__participants=user, is_deleted_for_everyone=False)
            .exclude(read_by=user)
            .exclude(deleted_for=user)
            .values("room_id")
            .annotate(count=Count("id"))
            .order_by()
        )
        return ServiceResult.success({str(row["room_id"]): row["count"] for row in rows})


class MessageService(BaseService):
    """
    Service for message operations.

    Ingestion (send_message / asend_message):
        1. Validate: room exists, sender participates, body or attachment
           present, parent (if any) is a message in the same room
        2. Enrich: link preview for the first URL in the body (bounded,
           single attempt, never fails the send)
        3. Under the room's lock: read the room's current occupants, persist
           the message with read_by = sender + occupants, then publish
           chatMessage to the room and newMessageNotification to absent
           participants

    Holding the room lock across persist-then-publish keeps a room's
    chatMessage stream in persistence order and guarantees read-by seeding
    happens before the first broadcast.
    """

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_location(location) -> dict | None:
        """A location is kept only when lat, lng and name are all present."""
        if not isinstance(location, dict):
            return None
        lat, lng, name = location.get("lat"), location.get("lng"), location.get("name")
        if lat in (None, "") or lng in (None, "") or not name:
            return None
        try:
            return {"lat": float(lat), "lng": float(lng), "name": str(name)[:255]}
        except (TypeError, ValueError):
            return None

    @classmethod
    def validate_outgoing(
        cls,
        room_id,
        sender: User,
        text: str | None = "",
        parent_id=None,
        location: dict | None = None,
        has_attachment: bool = False,
    ) -> ServiceResult[MessageDraft]:
        """
        Check an outgoing message before anything is stored.

        Error codes:
            ROOM_NOT_FOUND: Room does not exist
            NOT_PARTICIPANT: Sender is not in the room
            EMPTY_MESSAGE: No text and no attachment
            VALIDATION_ERROR: Text too long
            PARENT_NOT_FOUND: Parent is not a message in this room
        """
        result = RoomService.get_room_for_participant(room_id, sender)
        if not result:
            return result
        room = result.data

        text = (text or "").strip()
        if not text and not has_attachment:
            return ServiceResult.failure(
                "Message cannot be empty",
                error_code="EMPTY_MESSAGE",
            )
        if len(text) > MESSAGE_CONFIG.MAX_TEXT_LENGTH:
            return ServiceResult.failure(
                f"Message exceeds {MESSAGE_CONFIG.MAX_TEXT_LENGTH} characters",
                error_code="VALIDATION_ERROR",
            )

        parent = None
        if parent_id not in (None, ""):
            parent = Message.objects.filter(pk=_to_int(parent_id), room=room).first()
            if parent is None:
                return ServiceResult.failure(
                    "Parent message not found in this room",
                    error_code="PARENT_NOT_FOUND",
                )

        return ServiceResult.success(
            MessageDraft(
                room=room,
                sender=sender,
                text=text,
                parent=parent,
                location=cls.normalize_location(location),
                participant_ids=room.participant_ids(),
            )
        )

    @classmethod
    def send_message(
        cls,
        room_id,
        sender: User,
        text: str | None = "",
        parent_id=None,
        location: dict | None = None,
        attachment=None,
        hub: RealtimeHub | None = None,
        resolver: LinkPreviewResolver | None = None,
    ) -> ServiceResult[dict]:
        """
        Send a message from synchronous code (REST views, tasks).

        Args:
            room_id: Target room
            sender: Authenticated author
            text: Body text (optional when an attachment is given)
            parent_id: Message being replied to
            location: {"lat", "lng", "name"}
            attachment: Uploaded file stored through chat.attachments
            hub: Realtime state used for read-by seeding (defaults to the process hub)
            resolver: Link preview resolver

        Returns:
            ServiceResult with the hydrated message payload
        """
        validation = cls.validate_outgoing(
            room_id, sender, text, parent_id, location, has_attachment=attachment is not None
        )
        if not validation:
            return validation
        draft = validation.data

        if attachment is not None:
            uploaded = attachments.upload(attachment)
            if not uploaded:
                return uploaded
            draft.attachment = uploaded.data

        preview = (resolver or LinkPreviewResolver()).resolve(draft.text)
        return cls.persist_and_publish(draft, preview, hub or get_hub())

    @classmethod
    async def asend_message(
        cls,
        room_id,
        sender: User,
        text: str | None = "",
        parent_id=None,
        location: dict | None = None,
        hub: RealtimeHub | None = None,
        resolver: LinkPreviewResolver | None = None,
    ) -> ServiceResult[dict]:
        """
        Send a message from the event loop (socket consumer).

        The link preview is fetched without holding any lock or database
        connection, so a slow page never stalls other rooms.
        """
        validation = await database_sync_to_async(cls.validate_outgoing)(
            room_id, sender, text, parent_id, location
        )
        if not validation:
            return validation
        draft = validation.data

        preview = await (resolver or LinkPreviewResolver()).aresolve(draft.text)
        return await database_sync_to_async(cls.persist_and_publish)(
            draft, preview, hub or get_hub()
        )

    @classmethod
    def persist_and_publish(
        cls,
        draft: MessageDraft,
        preview: dict | None,
        hub: RealtimeHub,
    ) -> ServiceResult[dict]:
        room_id = draft.room.id
        sender_id = draft.sender.id

        with hub.room_lock(room_id):
            present = (hub.rooms.occupants(room_id) & set(draft.participant_ids)) - {sender_id}
            try:
                with cls.atomic():
                    message = Message.objects.create(
                        room=draft.room,
                        sender=draft.sender,
                        text=draft.text,
                        parent=draft.parent,
                        preview=preview,
                        **cls._location_fields(draft.location),
                        **cls._attachment_fields(draft.attachment),
                    )
                    message.read_by.add(sender_id, *present)
                    ChatRoom.objects.filter(pk=room_id).update(updated_at=message.created_at)
            except DatabaseError as e:
                if draft.attachment:
                    attachments.destroy(draft.attachment["id"])
                return cls.handle_exception(e, f"Failed to persist message in room {room_id}")

            payload = cls.serialize(message)
            hub.fanout.publish_sync(
                DeliveryFanout.message_created_events(
                    room_id, sender_id, draft.participant_ids, payload
                )
            )

        cls.get_logger().debug(
            f"User {sender_id} sent message {message.id} to room {room_id} "
            f"(read by {len(present)} present)"
        )
        return ServiceResult.success(payload)

    @staticmethod
    def _location_fields(location: dict | None) -> dict:
        if not location:
            return {}
        return {
            "location_lat": location["lat"],
            "location_lng": location["lng"],
            "location_name": location["name"],
        }

    @staticmethod
    def _attachment_fields(attachment: dict | None) -> dict:
        if not attachment:
            return {}
        return {
            "attachment_url": attachment["url"],
            "attachment_id": attachment["id"],
            "attachment_name": attachment["name"],
            "attachment_content_type": attachment["content_type"],
        }

    @classmethod
    def serialize(cls, message: Message) -> dict:
        """Hydrated payload: sender profile, parent summary, reactions, read-by."""
        from chat.serializers import MessageSerializer

        message = hydrated_messages().get(pk=message.pk)
        return MessageSerializer(message).data

    # ------------------------------------------------------------------
    # History and read receipts
    # ------------------------------------------------------------------

    @classmethod
    def _mark_read(cls, room: ChatRoom, user: User) -> int:
        unread_ids = list(
            room.messages.filter(is_deleted_for_everyone=False)
            .exclude(read_by=user)
            .exclude(deleted_for=user)
            .values_list("id", flat=True)
        )
        through = Message.read_by.through
        through.objects.bulk_create(
            [through(message_id=message_id, user_id=user.id) for message_id in unread_ids],
            ignore_conflicts=True,
        )
        return len(unread_ids)

    @classmethod
    def mark_room_read(
        cls,
        room_id,
        user: User,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[int]:
        """
        Mark every visible message in the room as read by ``user`` and tell
        the room (roomMessagesRead).

        Returns:
            ServiceResult with the number of newly read messages
        """
        result = RoomService.get_room_for_participant(room_id, user)
        if not result:
            return result
        room = result.data

        marked = cls._mark_read(room, user)
        (fanout or DeliveryFanout()).publish_sync(
            [
                RealtimeEvent.to_room(
                    room.id, EventName.ROOM_MESSAGES_READ, events.room_user(room.id, user.id)
                )
            ]
        )
        cls.get_logger().debug(f"User {user.id} read {marked} messages in room {room.id}")
        return ServiceResult.success(marked)

    @classmethod
    def list_messages(
        cls,
        room_id,
        user: User,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[list]:
        """
        Visible history for ``user``, newest first.

        Opening the history marks it read and publishes roomMessagesRead.
        Messages deleted for this user or for everyone are excluded.
        """
        result = cls.mark_room_read(room_id, user, fanout=fanout)
        if not result:
            return result

        from chat.serializers import MessageSerializer

        messages = (
            hydrated_messages()
            .filter(room_id=room_id, is_deleted_for_everyone=False)
            .exclude(deleted_for=user)
            .order_by("-created_at")[: MESSAGE_CONFIG.MAX_HISTORY]
        )
        return ServiceResult.success(MessageSerializer(messages, many=True).data)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @classmethod
    def _get_message_for_participant(cls, message_id, user: User) -> ServiceResult[Message]:
        message = Message.objects.select_related("room").filter(pk=_to_int(message_id)).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")
        if not message.room.has_participant(user.id):
            return ServiceResult.failure(
                "You are not a participant in this room",
                error_code="NOT_PARTICIPANT",
            )
        return ServiceResult.success(message)

    @classmethod
    def _publish_to_room(
        cls,
        room_id: int,
        event_name: str,
        payload: dict,
        fanout: DeliveryFanout | None,
    ) -> None:
        (fanout or DeliveryFanout()).publish_sync(
            [RealtimeEvent.to_room(room_id, event_name, payload)]
        )

    @classmethod
    def edit_message(
        cls,
        user: User,
        message_id,
        text: str,
        now: datetime | None = None,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[dict]:
        """
        Change a message's text within the edit window.

        Error codes:
            EMPTY_MESSAGE: New text is blank
            MESSAGE_NOT_FOUND: Message does not exist
            NOT_AUTHOR: Only the sender may edit
            MESSAGE_DELETED: Message was deleted for everyone
            EDIT_WINDOW_EXPIRED: More than the edit window since creation
        """
        text = (text or "").strip()
        if not text:
            return ServiceResult.failure("Message cannot be empty", error_code="EMPTY_MESSAGE")

        message = Message.objects.filter(pk=_to_int(message_id)).first()
        if message is None:
            return ServiceResult.failure("Message not found", error_code="MESSAGE_NOT_FOUND")

        if message.sender_id != user.id:
            return ServiceResult.failure(
                "You can only edit your own messages",
                error_code="NOT_AUTHOR",
            )

        if message.is_deleted_for_everyone:
            return ServiceResult.failure(
                "Cannot edit deleted messages",
                error_code="MESSAGE_DELETED",
            )

        if not message.is_editable(now or timezone.now()):
            minutes = MESSAGE_CONFIG.EDIT_TIME_LIMIT_SECONDS // 60
            return ServiceResult.failure(
                f"Edit window expired ({minutes} minutes)",
                error_code="EDIT_WINDOW_EXPIRED",
            )

        message.text = text
        message.edited = True
        message.save(update_fields=["text", "edited", "updated_at"])

        payload = cls.serialize(message)
        cls._publish_to_room(message.room_id, EventName.MESSAGE_EDITED, payload, fanout)

        cls.get_logger().info(f"User {user.id} edited message {message.id}")
        return ServiceResult.success(payload)

    @staticmethod
    def _validate_emoji(emoji) -> bool:
        if not isinstance(emoji, str) or not emoji.strip():
            return False
        return len(emoji.strip()) <= REACTION_CONFIG.MAX_EMOJI_LENGTH

    @classmethod
    def react(
        cls,
        user: User,
        message_id,
        emoji: str,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[dict]:
        """
        Set the user's reaction on a message, replacing any previous one.

        Error codes:
            INVALID_EMOJI: Blank or too long
            MESSAGE_NOT_FOUND / NOT_PARTICIPANT
            MESSAGE_DELETED: Message was deleted for everyone
        """
        if not cls._validate_emoji(emoji):
            return ServiceResult.failure("Invalid emoji", error_code="INVALID_EMOJI")

        result = cls._get_message_for_participant(message_id, user)
        if not result:
            return result
        message = result.data

        if message.is_deleted_for_everyone:
            return ServiceResult.failure(
                "Cannot react to deleted messages",
                error_code="MESSAGE_DELETED",
            )

        MessageReaction.objects.update_or_create(
            message=message,
            user=user,
            defaults={"emoji": emoji.strip()},
        )

        payload = cls.serialize(message)
        cls._publish_to_room(message.room_id, EventName.MESSAGE_REACTED, payload, fanout)
        return ServiceResult.success(payload)

    @classmethod
    def remove_reaction(
        cls,
        user: User,
        message_id,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[dict]:
        """
        Remove the user's reaction (no-op when there is none).

        Error codes:
            MESSAGE_NOT_FOUND / NOT_PARTICIPANT
            MESSAGE_DELETED: Message was deleted for everyone
        """
        result = cls._get_message_for_participant(message_id, user)
        if not result:
            return result
        message = result.data

        if message.is_deleted_for_everyone:
            return ServiceResult.failure(
                "Cannot change reactions on deleted messages",
                error_code="MESSAGE_DELETED",
            )

        MessageReaction.objects.filter(message=message, user=user).delete()

        payload = cls.serialize(message)
        cls._publish_to_room(message.room_id, EventName.MESSAGE_REACTED, payload, fanout)
        return ServiceResult.success(payload)

    @classmethod
    def delete_for_me(cls, user: User, message_id) -> ServiceResult[None]:
        """Hide a message from the user's own history."""
        result = cls._get_message_for_participant(message_id, user)
        if not result:
            return result

        result.data.deleted_for.add(user)
        return ServiceResult.success(None)

    @classmethod
    def delete_for_everyone(
        cls,
        user: User,
        message_id,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[None]:
        """
        Hide a message for all participants. Sender only.

        Error codes:
            MESSAGE_NOT_FOUND / NOT_PARTICIPANT
            NOT_AUTHOR: Only the sender may delete for everyone
        """
        result = cls._get_message_for_participant(message_id, user)
        if not result:
            return result
        message = result.data

        if message.sender_id != user.id:
            return ServiceResult.failure(
                "You can only delete your own messages for everyone",
                error_code="NOT_AUTHOR",
            )

        if not message.is_deleted_for_everyone:
            message.is_deleted_for_everyone = True
            message.save(update_fields=["is_deleted_for_everyone", "updated_at"])

        cls._publish_to_room(
            message.room_id,
            EventName.MESSAGE_DELETED,
            {"messageId": message.id, "roomId": message.room_id},
            fanout,
        )
        cls.get_logger().info(f"User {user.id} deleted message {message.id} for everyone")
        return ServiceResult.success(None)

    @classmethod
    def clear_chat(cls, user: User, room_id) -> ServiceResult[int]:
        """Hide every message in the room from the user's own history."""
        result = RoomService.get_room_for_participant(room_id, user)
        if not result:
            return result

        message_ids = list(
            result.data.messages.exclude(deleted_for=user).values_list("id", flat=True)
        )
        through = Message.deleted_for.through
        through.objects.bulk_create(
            [through(message_id=message_id, user_id=user.id) for message_id in message_ids],
            ignore_conflicts=True,
        )
        return ServiceResult.success(len(message_ids))

    @classmethod
    def star(
        cls,
        user: User,
        message_id,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[dict]:
        return cls._set_star(user, message_id, True, fanout)

    @classmethod
    def unstar(
        cls,
        user: User,
        message_id,
        fanout: DeliveryFanout | None = None,
    ) -> ServiceResult[dict]:
        return cls._set_star(user, message_id, False, fanout)

    @classmethod
    def _set_star(cls, user, message_id, starred, fanout) -> ServiceResult[dict]:
        result = cls._get_message_for_participant(message_id, user)
        if not result:
            return result
        message = result.data

        if message.is_deleted_for_everyone:
            return ServiceResult.failure(
                "Cannot star deleted messages",
                error_code="MESSAGE_DELETED",
            )

        if starred:
            message.starred_by.add(user)
        else:
            message.starred_by.remove(user)

        payload = cls.serialize(message)
        cls._publish_to_room(message.room_id, EventName.MESSAGE_STARRED, payload, fanout)
        return ServiceResult.success(payload)


class ScheduledMessageService(BaseService):
    """
    Service for scheduled messages.

    State Flow:
        PENDING -> SENT (dispatch_due, then removed)
        PENDING -> CANCELLED (cancel, then removed)

    Only PENDING entries are editable, cancellable or dispatchable.
    """

    @classmethod
    def create(
        cls,
        user: User,
        room_id,
        text: str,
        send_at: datetime | None,
        parent_id=None,
    ) -> ServiceResult[ScheduledMessage]:
        """
        Error codes:
            ROOM_NOT_FOUND / NOT_PARTICIPANT
            EMPTY_MESSAGE: Text is blank
            VALIDATION_ERROR: send_at missing
            PARENT_NOT_FOUND: Parent is not a message in this room
        """
        result = RoomService.get_room_for_participant(room_id, user)
        if not result:
            return result
        room = result.data

        text = (text or "").strip()
        if not text:
            return ServiceResult.failure("Text is required", error_code="EMPTY_MESSAGE")
        if send_at is None:
            return ServiceResult.failure("Send time is required", error_code="VALIDATION_ERROR")

        parent = None
        if parent_id not in (None, ""):
            parent = Message.objects.filter(pk=_to_int(parent_id), room=room).first()
            if parent is None:
                return ServiceResult.failure(
                    "Parent message not found in this room",
                    error_code="PARENT_NOT_FOUND",
                )

        scheduled = ScheduledMessage.objects.create(
            room=room,
            sender=user,
            text=text,
            parent=parent,
            send_at=send_at,
        )
        cls.get_logger().info(
            f"User {user.id} scheduled message {scheduled.id} for {send_at.isoformat()}"
        )
        return ServiceResult.success(scheduled)

    @classmethod
    def list_pending(cls, user: User, room_id) -> ServiceResult:
        """The user's own pending entries in a room, soonest first."""
        result = RoomService.get_room_for_participant(room_id, user)
        if not result:
            return result
        return ServiceResult.success(
            ScheduledMessage.objects.filter(
                room=result.data,
                sender=user,
                status=ScheduledMessageStatus.PENDING,
            ).order_by("send_at")
        )

    @classmethod
    def _get_own_pending(cls, user: User, scheduled_id) -> ServiceResult[ScheduledMessage]:
        """Fetch and lock the user's entry. Call inside cls.atomic()."""
        scheduled = (
            ScheduledMessage.objects.select_for_update()
            .filter(pk=_to_int(scheduled_id), sender=user)
            .first()
        )
        if scheduled is None:
            return ServiceResult.failure(
                "Scheduled message not found",
                error_code="SCHEDULED_NOT_FOUND",
            )
        if scheduled.status == ScheduledMessageStatus.SENT:
            return ServiceResult.failure(
                "Message has already been sent",
                error_code="ALREADY_SENT",
            )
        if scheduled.status == ScheduledMessageStatus.CANCELLED:
            return ServiceResult.failure(
                "Message has been cancelled",
                error_code="ALREADY_CANCELLED",
            )
        return ServiceResult.success(scheduled)

    @classmethod
    def update(
        cls,
        user: User,
        scheduled_id,
        text: str | None = None,
        send_at: datetime | None = None,
    ) -> ServiceResult[ScheduledMessage]:
        """
        Change text and/or send time of a pending entry. Owner only.

        Error codes:
            SCHEDULED_NOT_FOUND: No such entry owned by this user (or
                already promoted and removed)
            ALREADY_SENT / ALREADY_CANCELLED: Entry is in a terminal state
            EMPTY_MESSAGE: Text given but blank
        """
        if text is not None:
            text = text.strip()
            if not text:
                return ServiceResult.failure("Text is required", error_code="EMPTY_MESSAGE")

        with cls.atomic():
            result = cls._get_own_pending(user, scheduled_id)
            if not result:
                return result
            scheduled = result.data

            update_fields = ["updated_at"]
            if text is not None:
                scheduled.text = text
                update_fields.append("text")
            if send_at is not None:
                scheduled.send_at = send_at
                update_fields.append("send_at")
            scheduled.save(update_fields=update_fields)

        return ServiceResult.success(scheduled)

    @classmethod
    def cancel(cls, user: User, scheduled_id) -> ServiceResult[int]:
        """Withdraw a pending entry and remove it. Owner only."""
        with cls.atomic():
            result = cls._get_own_pending(user, scheduled_id)
            if not result:
                return result
            scheduled = result.data

            scheduled_pk = scheduled.pk
            scheduled.cancel()
            scheduled.save(update_fields=["status", "updated_at"])
            scheduled.delete()

        cls.get_logger().info(f"User {user.id} cancelled scheduled message {scheduled_pk}")
        return ServiceResult.success(scheduled_pk)

    @classmethod
    def dispatch_due(
        cls,
        now: datetime | None = None,
        hub: RealtimeHub | None = None,
    ) -> ServiceResult[dict]:
        """
        Promote every PENDING entry whose send time has passed.

        For each entry, in one transaction holding a row lock: re-read it,
        skip it unless still PENDING, create the real message (read by its
        sender only), mark the entry SENT and remove it. The message is
        published after commit, exactly like a live send. One entry failing
        never stops the others; it stays PENDING and is retried on the next
        tick. Entries cancelled after selection are skipped and not counted.

        The message row and the entry removal commit together, so an entry
        is stored at most once. A failure after commit but before the
        publish finishes loses only the live event; the message is still in
        history.

        Returns:
            ServiceResult with {"promoted": int, "failed": int}
        """
        now = now or timezone.now()
        hub = hub or get_hub()
        log = cls.get_logger()

        due = list(
            ScheduledMessage.objects.filter(
                status=ScheduledMessageStatus.PENDING,
                send_at__lte=now,
            ).order_by("send_at")[: SCHEDULER_CONFIG.BATCH_SIZE]
        )

        promoted = 0
        failed = 0
        for scheduled in due:
            try:
                message = cls._promote(scheduled, hub)
            except Exception:
                failed += 1
                log.exception(f"Failed to promote scheduled message {scheduled.pk}")
                continue
            if message is not None:
                promoted += 1

        if due:
            log.info(f"Scheduled dispatch: {promoted} promoted, {failed} failed")
        return ServiceResult.success({"promoted": promoted, "failed": failed})

    @classmethod
    def _promote(cls, scheduled: ScheduledMessage, hub: RealtimeHub) -> Message | None:
        """
        Promote one entry. Returns None when the entry was cancelled, sent
        or removed after the tick selected it.
        """
        room_id = scheduled.room_id
        participant_ids = list(
            ChatRoom.participants.through.objects.filter(chatroom_id=room_id).values_list(
                "user_id", flat=True
            )
        )

        with hub.room_lock(room_id):
            with cls.atomic():
                # Re-read under lock; the owner may have edited or cancelled it
                current = (
                    ScheduledMessage.objects.select_for_update()
                    .filter(pk=scheduled.pk, status=ScheduledMessageStatus.PENDING)
                    .first()
                )
                if current is None:
                    cls.get_logger().info(
                        f"Scheduled message {scheduled.pk} is no longer pending, skipped"
                    )
                    return None

                message = Message.objects.create(
                    room_id=room_id,
                    sender_id=current.sender_id,
                    text=current.text,
                    parent_id=current.parent_id,
                )
                message.read_by.add(current.sender_id)
                ChatRoom.objects.filter(pk=room_id).update(updated_at=message.created_at)

                current.mark_sent()
                current.save(update_fields=["status", "updated_at"])
                current.delete()

            payload = MessageService.serialize(message)
            hub.fanout.publish_sync(
                DeliveryFanout.message_created_events(
                    room_id, current.sender_id, participant_ids, payload
                )
            )

        cls.get_logger().info(f"Promoted scheduled message {scheduled.pk} to message {message.id}")
        return message
