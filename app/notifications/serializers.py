"""
Serializers for notification API.

Serializers:
    NotificationSerializer: Read-only notification details
    UnreadCountSerializer: Response for unread count endpoint
    CountResponseSerializer: Response for bulk read and clear endpoints
"""

from rest_framework import serializers

from notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "message", "link", "is_read", "created_at"]
        read_only_fields = fields


class UnreadCountSerializer(serializers.Serializer):
    unread_count = serializers.IntegerField(read_only=True)


class CountResponseSerializer(serializers.Serializer):
    count = serializers.IntegerField(read_only=True)
