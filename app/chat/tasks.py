"""
Celery tasks for chat app.

This module defines the periodic task that promotes due scheduled messages
into the live chat stream. It is registered in CELERY_BEAT_SCHEDULE to run
every CHAT_SCHEDULER_INTERVAL_SECONDS.

Related files:
    - services.py: ScheduledMessageService.dispatch_due
    - models.py: ScheduledMessage

Usage:
    from chat.tasks import dispatch_scheduled_messages

    dispatch_scheduled_messages.delay()
"""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def dispatch_scheduled_messages() -> dict:
    """
    Periodic task to promote scheduled messages whose send time has passed.

    Entries that fail stay PENDING and are picked up by the next run; the
    task itself never retries.

    Returns:
        Dict with promoted and failed counts
    """
    from chat.services import ScheduledMessageService

    result = ScheduledMessageService.dispatch_due()
    counts = result.data or {"promoted": 0, "failed": 0}

    if counts["failed"]:
        logger.warning(
            f"Scheduled dispatch left {counts['failed']} entries pending for retry",
            extra=counts,
        )

    return counts
