"""
Django admin configuration for notification models.
"""

from django.contrib import admin

from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """Admin interface for Notification model."""

    list_display = ["id", "recipient", "short_message", "is_read", "created_at"]
    list_filter = ["is_read", "created_at"]
    search_fields = ["message", "recipient__email"]
    raw_id_fields = ["recipient"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-created_at"]

    @admin.display(description="Message")
    def short_message(self, obj):
        return obj.message[:60] + "..." if len(obj.message) > 60 else obj.message
