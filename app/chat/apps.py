"""
Chat application configuration.

This app provides the realtime chat core:
- Chat requests and rooms tied to a job
- Message ingestion with link previews and read-by seeding
- Presence and room occupancy over WebSockets
- Scheduled messages promoted by Celery beat
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """
    Configuration for the chat application.

    Attributes:
        hub: Process-wide RealtimeHub (presence, room occupancy, fan-out).
            Created empty on startup; runtime state is never persisted.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def ready(self):
        from chat.presence import RealtimeHub

        self.hub = RealtimeHub()
