"""
Notifications app for in-app notifications and outbound email.

This app provides:
- Notification model for storing user notifications
- NotificationService for creating and managing notifications
- EmailNotifier for fire-and-forget email through Celery
- REST API for listing and managing notifications

Usage:
    from notifications.services import EmailNotifier, NotificationService

    result = NotificationService.create_notification(
        recipient=user,
        message="New chat request from Jane Doe for Plumber job",
        link="/chats/requests",
    )

    EmailNotifier.send(user.email, "New chat request", "...")
"""
