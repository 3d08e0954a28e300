"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Chat request review
- Room viewing
- Message moderation
- Scheduled message inspection
"""

from django.contrib import admin

from chat.models import ChatRequest, ChatRoom, Message, MessageReaction, ScheduledMessage


@admin.register(ChatRequest)
class ChatRequestAdmin(admin.ModelAdmin):
    """Admin interface for ChatRequest model."""

    list_display = ["id", "from_user", "to_user", "job", "status", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["from_user__email", "to_user__email", "job__title"]
    raw_id_fields = ["from_user", "to_user", "job"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(ChatRoom)
class ChatRoomAdmin(admin.ModelAdmin):
    """Admin interface for ChatRoom model."""

    list_display = ["id", "job", "created_at", "updated_at"]
    search_fields = ["job__title", "participants__email"]
    raw_id_fields = ["job"]
    filter_horizontal = ["participants"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-updated_at"]


class MessageReactionInline(admin.TabularInline):
    model = MessageReaction
    extra = 0
    raw_id_fields = ["user"]
    readonly_fields = ["created_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "room",
        "sender",
        "short_text",
        "edited",
        "is_deleted_for_everyone",
        "created_at",
    ]
    list_filter = ["edited", "is_deleted_for_everyone", "created_at"]
    search_fields = ["text", "sender__email"]
    raw_id_fields = ["room", "sender", "parent"]
    readonly_fields = ["created_at", "updated_at", "preview"]
    exclude = ["read_by", "deleted_for", "starred_by"]
    inlines = [MessageReactionInline]
    ordering = ["-created_at"]

    @admin.display(description="Text")
    def short_text(self, obj):
        return obj.text[:50] + "..." if len(obj.text) > 50 else obj.text

    actions = ["delete_for_everyone"]

    @admin.action(description="Delete selected messages for everyone")
    def delete_for_everyone(self, request, queryset):
        updated = queryset.update(is_deleted_for_everyone=True)
        self.message_user(request, f"{updated} messages deleted for everyone.")


@admin.register(ScheduledMessage)
class ScheduledMessageAdmin(admin.ModelAdmin):
    """Admin interface for ScheduledMessage model."""

    list_display = ["id", "room", "sender", "send_at", "status", "created_at"]
    list_filter = ["status", "send_at"]
    search_fields = ["text", "sender__email"]
    raw_id_fields = ["room", "sender", "parent"]
    readonly_fields = ["status", "created_at", "updated_at"]
    ordering = ["send_at"]
