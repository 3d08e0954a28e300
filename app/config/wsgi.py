"""
WSGI entry point.

Serves the REST API only. The chat WebSocket needs the ASGI application in
config/asgi.py, so production runs Uvicorn against that instead.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
