"""
Serializers for chat API.

This module provides serializers for the chat system:
- Message payload serializers (shared by REST responses and socket events)
- Room, chat request and scheduled message serializers
- Input serializers for each write endpoint

Serializer Hierarchy:
    MessageSerializer: Hydrated message (camelCase, same shape as chatMessage)
    ParentMessageSerializer: Summary of the message being replied to
    ReactionSerializer: One user's reaction

    ChatRoomSerializer: Room with job and participants
    ChatRequestSerializer: Request with both users and the job
    ScheduledMessageSerializer: Pending scheduled message

    *InputSerializer: Request body validation for write endpoints

Design Decisions:
    - Message payloads use the realtime wire casing (roomId, readBy, ...) so a
      client renders REST history and socket events with the same code
    - A parent deleted for everyone keeps its id but hides its text
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import UserSummarySerializer
from chat.constants import MESSAGE_CONFIG, REACTION_CONFIG
from chat.models import (
    ChatRequest,
    ChatRequestStatus,
    ChatRoom,
    Message,
    MessageReaction,
    ScheduledMessage,
)


# =============================================================================
# Message payload
# =============================================================================


class ReactionSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source="user_id", read_only=True)
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = MessageReaction
        fields = ["userId", "emoji", "user"]
        read_only_fields = fields


class ParentMessageSerializer(serializers.ModelSerializer):
    """Summary of a replied-to message: text, sender and time."""

    text = serializers.SerializerMethodField()
    sender = UserSummarySerializer(read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    isDeleted = serializers.BooleanField(source="is_deleted_for_everyone", read_only=True)

    class Meta:
        model = Message
        fields = ["id", "text", "sender", "createdAt", "isDeleted"]
        read_only_fields = fields

    def get_text(self, obj):
        return "" if obj.is_deleted_for_everyone else obj.text


class MessageSerializer(serializers.ModelSerializer):
    """
    Hydrated message payload.

    Output:
        {
            "id": 12, "roomId": 3, "text": "...",
            "sender": {"id", "full_name", "profile_photo"},
            "parent": {...} | null,
            "location": {"lat", "lng", "name"} | null,
            "attachment": {"url", "name", "contentType"} | null,
            "preview": {"title", "description", "image", "url"} | null,
            "readBy": [1, 2], "reactions": [...], "starredBy": [2],
            "edited": false, "isDeletedForEveryone": false,
            "createdAt": "...", "updatedAt": "..."
        }
    """

    roomId = serializers.IntegerField(source="room_id", read_only=True)
    sender = UserSummarySerializer(read_only=True)
    parent = ParentMessageSerializer(read_only=True)
    location = serializers.SerializerMethodField()
    attachment = serializers.SerializerMethodField()
    readBy = serializers.PrimaryKeyRelatedField(source="read_by", many=True, read_only=True)
    reactions = ReactionSerializer(many=True, read_only=True)
    starredBy = serializers.PrimaryKeyRelatedField(source="starred_by", many=True, read_only=True)
    isDeletedForEveryone = serializers.BooleanField(
        source="is_deleted_for_everyone", read_only=True
    )
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "roomId",
            "sender",
            "text",
            "parent",
            "location",
            "attachment",
            "preview",
            "readBy",
            "reactions",
            "starredBy",
            "edited",
            "isDeletedForEveryone",
            "createdAt",
            "updatedAt",
        ]
        read_only_fields = fields

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if instance.is_deleted_for_everyone:
            # Content is withheld once deleted for everyone
            data.update(text="", location=None, attachment=None, preview=None)
        return data

    def get_location(self, obj):
        if not obj.has_location:
            return None
        return {"lat": obj.location_lat, "lng": obj.location_lng, "name": obj.location_name}

    def get_attachment(self, obj):
        if not obj.has_attachment:
            return None
        return {
            "url": obj.attachment_url,
            "name": obj.attachment_name,
            "contentType": obj.attachment_content_type,
        }


# =============================================================================
# Rooms, requests, scheduled messages
# =============================================================================


class JobSummarySerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    title = serializers.CharField(read_only=True)


class ChatRoomSerializer(serializers.ModelSerializer):
    job = JobSummarySerializer(read_only=True)
    participants = UserSummarySerializer(many=True, read_only=True)

    class Meta:
        model = ChatRoom
        fields = ["id", "job", "participants", "created_at", "updated_at"]
        read_only_fields = fields


class ChatRequestSerializer(serializers.ModelSerializer):
    from_user = UserSummarySerializer(read_only=True)
    to_user = UserSummarySerializer(read_only=True)
    job = JobSummarySerializer(read_only=True)

    class Meta:
        model = ChatRequest
        fields = ["id", "from_user", "to_user", "job", "status", "created_at"]
        read_only_fields = fields


class ScheduledMessageSerializer(serializers.ModelSerializer):
    room_id = serializers.IntegerField(read_only=True)
    parent_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = ScheduledMessage
        fields = ["id", "room_id", "text", "parent_id", "send_at", "status", "created_at"]
        read_only_fields = fields


# =============================================================================
# Input serializers
# =============================================================================


class ChatRequestCreateSerializer(serializers.Serializer):
    to = serializers.IntegerField()
    job = serializers.IntegerField()


class ChatRequestRespondSerializer(serializers.Serializer):
    action = serializers.ChoiceField(
        choices=[ChatRequestStatus.ACCEPTED, ChatRequestStatus.REJECTED]
    )


class RoomCreateSerializer(serializers.Serializer):
    job_id = serializers.IntegerField()
    other_user_id = serializers.IntegerField()


class LocationSerializer(serializers.Serializer):
    lat = serializers.FloatField()
    lng = serializers.FloatField()
    name = serializers.CharField(max_length=255)


class MessageCreateSerializer(serializers.Serializer):
    """Body of POST rooms/{id}/messages/ (JSON or multipart)."""

    text = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH,
        trim_whitespace=False,
    )
    parent = serializers.IntegerField(required=False, allow_null=True)
    location = LocationSerializer(required=False, allow_null=True)
    attachment = serializers.FileField(required=False, allow_null=True)


class MessageEditSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH)


class ReactionCreateSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=REACTION_CONFIG.MAX_EMOJI_LENGTH)


class ScheduledMessageCreateSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH)
    send_at = serializers.DateTimeField()
    parent = serializers.IntegerField(required=False, allow_null=True)


class ScheduledMessageUpdateSerializer(serializers.Serializer):
    text = serializers.CharField(required=False, max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH)
    send_at = serializers.DateTimeField(required=False)
