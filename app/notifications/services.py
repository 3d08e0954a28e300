"""
Notification service layer.

This module provides the business logic for the notification system.

Services:
    NotificationService: In-app notification creation and read status
    EmailNotifier: Fire-and-forget email through the send_email task

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - Email is never sent inline: the Celery task owns retries and backoff

Usage:
    from notifications.services import EmailNotifier, NotificationService

    result = NotificationService.create_notification(
        recipient=user,
        message="Jane Doe has accepted your chat request for Plumber job",
        link="/chat/room/12",
    )

    # Mark as read
    result = NotificationService.mark_as_read(notification, user)

    # Queue an email (returns immediately)
    EmailNotifier.send(user.email, "Chat request accepted", body)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from notifications.models import Notification

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """
    Service for in-app notifications.

    Methods:
        create_notification: Store a notification for a user
        mark_as_read: Mark a single notification as read
        mark_all_as_read: Mark all user's unread notifications as read
        clear: Delete all of a user's notifications
    """

    @classmethod
    def create_notification(
        cls,
        recipient: User,
        message: str,
        link: str = "",
    ) -> ServiceResult[Notification]:
        """
        Create a new notification for a user.

        Args:
            recipient: User receiving the notification
            message: Text shown to the user
            link: Frontend path opened from the notification

        Returns:
            ServiceResult with created Notification

        Error codes:
            VALIDATION_ERROR: Message is blank
        """
        message = (message or "").strip()
        if not message:
            return ServiceResult.failure(
                "Notification message is required",
                error_code="VALIDATION_ERROR",
            )

        notification = Notification.objects.create(
            recipient=recipient,
            message=message[:500],
            link=link or "",
        )
        cls.get_logger().info(f"Created notification {notification.id} for user {recipient.id}")
        return ServiceResult.success(notification)

    @classmethod
    def mark_as_read(
        cls,
        notification: Notification,
        user: User,
    ) -> ServiceResult[Notification]:
        """
        Mark a single notification as read.

        Error codes:
            NOT_OWNER: User is not the notification's recipient
        """
        if notification.recipient_id != user.id:
            cls.get_logger().warning(
                f"User {user.id} attempted to mark notification {notification.id} "
                f"owned by {notification.recipient_id}"
            )
            return ServiceResult.failure(
                "Cannot mark notification you don't own",
                error_code="NOT_OWNER",
            )

        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])
            cls.get_logger().debug(f"Marked notification {notification.id} as read")

        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user: User) -> ServiceResult[int]:
        """
        Mark all user's unread notifications as read.

        Returns:
            ServiceResult with count of notifications marked as read
        """
        count = Notification.objects.filter(
            recipient=user,
            is_read=False,
        ).update(is_read=True)

        cls.get_logger().info(f"Marked {count} notifications as read for user {user.id}")
        return ServiceResult.success(count)

    @classmethod
    def clear(cls, user: User) -> ServiceResult[int]:
        """Delete every notification of the user."""
        count, _ = Notification.objects.filter(recipient=user).delete()
        cls.get_logger().info(f"Cleared {count} notifications for user {user.id}")
        return ServiceResult.success(count)

    @classmethod
    def unread_count(cls, user: User) -> int:
        return Notification.objects.filter(recipient=user, is_read=False).count()


class EmailNotifier(BaseService):
    """
    Outbound email.

    send() only enqueues notifications.tasks.send_email; delivery, retries
    and backoff happen in the worker. Callers never wait on SMTP and never
    see delivery errors.
    """

    @classmethod
    def send(cls, address: str, subject: str, body: str) -> ServiceResult[None]:
        """
        Queue an email.

        Returns:
            ServiceResult.success() once queued

        Error codes:
            VALIDATION_ERROR: No address
            ENQUEUE_FAILED: Broker unavailable
        """
        from notifications.tasks import send_email

        if not address:
            return ServiceResult.failure(
                "Email address is required",
                error_code="VALIDATION_ERROR",
            )

        try:
            send_email.delay(address, subject, body)
        except Exception as e:
            cls.get_logger().error(f"Failed to queue email '{subject}' to {address}: {e}")
            return ServiceResult.failure(
                "Email could not be queued",
                error_code="ENQUEUE_FAILED",
            )

        cls.get_logger().debug(f"Queued email '{subject}' to {address}")
        return ServiceResult.success(None)
