# =============================================================================
# Chat Backend Configuration Package
# =============================================================================
# Settings, URL routing, the ASGI application (HTTP + chat WebSocket) and the
# Celery app that runs the scheduled message dispatcher and email delivery.
#
# The Celery app is imported here so its tasks register when Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
