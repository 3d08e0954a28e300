"""
Celery tasks for notification delivery.

Tasks:
    send_email: Deliver one email through Django's email backend

Design:
    - Transient failures (SMTP errors, DeliveryError) are retried with
      exponential backoff: EMAIL_RETRY_BACKOFF_SECONDS, doubling each
      attempt, up to EMAIL_MAX_RETRIES
    - A missing address is a permanent failure and is not retried

Usage:
    from notifications.tasks import send_email

    # Called by EmailNotifier.send()
    send_email.delay("user@example.com", "Subject", "Body")
"""

from __future__ import annotations

import logging
from smtplib import SMTPException

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from core.exceptions import DeliveryError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(DeliveryError, SMTPException),
    retry_backoff=settings.EMAIL_RETRY_BACKOFF_SECONDS,
    retry_jitter=False,
    retry_kwargs={"max_retries": settings.EMAIL_MAX_RETRIES},
)
def send_email(self, address: str, subject: str, body: str) -> bool:
    """
    Send one email.

    Args:
        address: Recipient address
        subject: Subject line
        body: Plain-text body

    Returns:
        True if sent, False if skipped

    Raises:
        DeliveryError: The backend accepted no message (triggers retry)
    """
    if not address:
        logger.warning(f"Email '{subject}' skipped: no recipient address")
        return False

    logger.info(
        f"Sending email '{subject}' to {address} (attempt {self.request.retries + 1})"
    )

    sent = send_mail(
        subject,
        body,
        settings.DEFAULT_FROM_EMAIL,
        [address],
        fail_silently=False,
    )
    if not sent:
        raise DeliveryError(f"Email backend accepted no message for {address}")

    logger.info(f"Email '{subject}' sent to {address}")
    return True
