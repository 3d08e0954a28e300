"""
Chat system models.

This module defines the persisted side of the realtime chat:
- ChatRequest: a user asks a job poster to open a conversation about a job
- ChatRoom: the participants of one conversation and the job it started from
- Message: an individual message with replies, read receipts, reactions,
  per-user deletion and stars
- MessageReaction: one (user, emoji) pair per message and user
- ScheduledMessage: a message queued for future delivery

Runtime state (who is online, who is viewing which room) is never stored
here; see chat.presence.

Design Decisions:
    - Messages are never physically removed: "delete for me" accumulates users
      in deleted_for, "delete for everyone" sets a flag.
    - A user holds at most one reaction per message; reacting again replaces it.
    - Scheduled messages are removed once promoted or cancelled; status exists
      so a half-finished promotion is never dispatched twice.
"""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.models import BaseModel
from chat.constants import MESSAGE_CONFIG


class ChatRequestStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    ACCEPTED = "ACCEPTED", "Accepted"
    REJECTED = "REJECTED", "Rejected"


class ScheduledMessageStatus(models.TextChoices):
    """
    Lifecycle of a scheduled message.

    PENDING: Waiting for its send time; editable and dispatchable
    SENT: Promoted into a real Message (terminal)
    CANCELLED: Withdrawn by its sender (terminal)
    """

    PENDING = "PENDING", "Pending"
    SENT = "SENT", "Sent"
    CANCELLED = "CANCELLED", "Cancelled"


class ChatRequest(BaseModel):
    """
    A request from one user to chat with a job's poster.

    Fields:
        from_user: Requester
        to_user: Job poster who accepts or rejects
        job: Job the conversation is about
        status: PENDING, ACCEPTED or REJECTED
    """

    from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_chat_requests",
    )
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="received_chat_requests",
    )
    job = models.ForeignKey(
        "jobs.Job",
        on_delete=models.CASCADE,
        related_name="chat_requests",
    )
    status = models.CharField(
        max_length=10,
        choices=ChatRequestStatus.choices,
        default=ChatRequestStatus.PENDING,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["to_user", "status"], name="chat_chatre_to_user_4b1e2a_idx"),
            models.Index(fields=["from_user", "status"], name="chat_chatre_from_us_9c3d7f_idx"),
        ]

    def __str__(self):
        return f"ChatRequest({self.from_user_id} -> {self.to_user_id}, {self.status})"


class ChatRoom(BaseModel):
    """
    A conversation between a fixed set of participants about one job.

    Only participants may send, read or join the room over the socket.
    Rooms are created lazily and never deleted.
    """

    participants = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="chat_rooms",
    )
    job = models.ForeignKey(
        "jobs.Job",
        on_delete=models.CASCADE,
        related_name="chat_rooms",
    )

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self):
        return f"ChatRoom(id={self.pk}, job={self.job_id})"

    def has_participant(self, user_id) -> bool:
        return self.participants.filter(pk=user_id).exists()

    def participant_ids(self) -> list:
        return list(self.participants.values_list("pk", flat=True))


class Message(BaseModel):
    """
    A chat message.

    Fields:
        room: Room the message belongs to
        sender: Author
        text: Body text (may be empty when an attachment is present)
        parent: Message this one replies to
        location_lat / location_lng / location_name: Optional shared location
        attachment_url / attachment_id / attachment_name / attachment_content_type:
            Optional single file uploaded to blob storage
        preview: Link preview snapshot {title, description, image, url}
        read_by: Users who have seen the message (sender included at creation)
        deleted_for: Users who removed the message from their own view
        is_deleted_for_everyone: Hidden for all participants
        edited: Text changed after sending
        starred_by: Users who starred the message
    """

    room = models.ForeignKey(
        ChatRoom,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_messages",
    )
    text = models.TextField(blank=True, max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH)
    parent = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
    )

    # Location
    location_lat = models.FloatField(null=True, blank=True)
    location_lng = models.FloatField(null=True, blank=True)
    location_name = models.CharField(max_length=255, blank=True)

    # Attachment
    attachment_url = models.CharField(max_length=1000, blank=True)
    attachment_id = models.CharField(
        max_length=500,
        blank=True,
        help_text="Blob storage key used to destroy the file",
    )
    attachment_name = models.CharField(max_length=255, blank=True)
    attachment_content_type = models.CharField(max_length=100, blank=True)

    preview = models.JSONField(null=True, blank=True)

    read_by = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="read_chat_messages",
        blank=True,
    )
    deleted_for = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="hidden_chat_messages",
        blank=True,
    )
    is_deleted_for_everyone = models.BooleanField(default=False)
    edited = models.BooleanField(default=False)
    starred_by = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="starred_chat_messages",
        blank=True,
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["room", "-created_at"], name="chat_messag_room_id_5e8a1c_idx"),
        ]

    def __str__(self):
        return f"Message(id={self.pk}, room={self.room_id}, sender={self.sender_id})"

    @property
    def has_location(self) -> bool:
        return self.location_lat is not None and self.location_lng is not None

    @property
    def has_attachment(self) -> bool:
        return bool(self.attachment_url)

    @property
    def edit_deadline(self):
        return self.created_at + timedelta(seconds=MESSAGE_CONFIG.EDIT_TIME_LIMIT_SECONDS)

    def is_editable(self, now=None) -> bool:
        """Whether the edit window is still open."""
        return (now or timezone.now()) <= self.edit_deadline


class MessageReaction(BaseModel):
    """
    A single user's emoji reaction to a message.

    The unique constraint enforces one reaction per user per message.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="reactions",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_reactions",
    )
    emoji = models.CharField(max_length=32)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_reaction_per_user_per_message",
            ),
        ]

    def __str__(self):
        return f"{self.emoji} by {self.user_id} on {self.message_id}"


class ScheduledMessage(BaseModel):
    """
    A message queued for delivery at send_at.

    State Flow:
        PENDING -> SENT (promoted by the dispatcher, then removed)
        PENDING -> CANCELLED (withdrawn by the sender, then removed)

    Fields:
        room: Target room
        sender: Author; the only user who may edit or cancel
        text: Body text
        parent: Optional message this will reply to
        send_at: Earliest delivery time
        status: Current FSM state
    """

    room = models.ForeignKey(
        ChatRoom,
        on_delete=models.CASCADE,
        related_name="scheduled_messages",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="scheduled_chat_messages",
    )
    text = models.TextField(max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH)
    parent = models.ForeignKey(
        Message,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="scheduled_replies",
    )
    send_at = models.DateTimeField(db_index=True)

    status = FSMField(
        default=ScheduledMessageStatus.PENDING,
        choices=ScheduledMessageStatus.choices,
        db_index=True,
        help_text="Current state of the scheduled message (managed by FSM)",
    )

    class Meta:
        ordering = ["send_at"]
        indexes = [
            models.Index(fields=["status", "send_at"], name="chat_schedu_status_7a2b9d_idx"),
        ]

    def __str__(self):
        return f"ScheduledMessage(id={self.pk}, {self.status}, send_at={self.send_at})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=ScheduledMessageStatus.PENDING,
        target=ScheduledMessageStatus.SENT,
    )
    def mark_sent(self):
        """
        Record promotion into a real message.

        Transition: PENDING -> SENT
        """

    @transition(
        field=status,
        source=ScheduledMessageStatus.PENDING,
        target=ScheduledMessageStatus.CANCELLED,
    )
    def cancel(self):
        """
        Withdraw the message before it is sent.

        Transition: PENDING -> CANCELLED
        """
