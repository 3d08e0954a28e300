"""
Celery configuration for the JobHunt backend.

Celery runs two kinds of work for this project:
- Background tasks (outbound email with retry/backoff)
- Periodic tasks via celery beat (the scheduled chat message dispatcher)

Redis is both the message broker and the result backend. Tasks are
auto-discovered from every installed Django app's tasks.py, and the beat
schedule lives in settings.CELERY_BEAT_SCHEDULE.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
