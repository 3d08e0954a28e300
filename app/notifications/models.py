"""
Notification models.

Design Decisions:
    - Notification inherits from BaseModel (timestamps, newest first)
    - The link is a frontend path, not an absolute URL
    - Notifications are removed with their recipient
"""

from django.conf import settings
from django.db import models

from core.models import BaseModel


class Notification(BaseModel):
    """
    An in-app notification shown to one user.

    Fields:
        recipient: User the notification is for
        message: Human-readable text
        link: Frontend path to open when the notification is clicked
        is_read: Whether the recipient has seen it
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    message = models.CharField(max_length=500)
    link = models.CharField(max_length=500, blank=True)
    is_read = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read"],
                name="notificatio_recipie_3f8c1a_idx",
            ),
        ]

    def __str__(self):
        return f"Notification({self.recipient_id}): {self.message[:40]}"
