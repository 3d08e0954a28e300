"""
URL configuration for the JobHunt backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - JWT issuance and current user
        token/                     - Obtain access/refresh pair
        token/refresh/             - Refresh access token
        me/                        - Current user profile
    /api/v1/chat/                  - Chat endpoints
        requests/                  - Chat requests (send / received / sent / accepted)
        requests/{id}/respond/     - Accept or reject a request
        rooms/                     - Create-or-get / list rooms
        rooms/unread-counts/       - Unread message counts per room
        rooms/{id}/last-seen/      - Other participants' last seen
        rooms/{id}/messages/       - List (marks read) / send
        rooms/{id}/clear/          - Clear chat for current user
        messages/{id}/...          - edit, react, delete, star
        scheduled/rooms/{room_id}/ - Create / list scheduled messages
        scheduled/{id}/            - Update / cancel a scheduled message
    /api/v1/notifications/         - In-app notifications
    ws/chat/                       - Realtime chat socket (see chat.routing)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("chat/", include("chat.urls")),
    path("notifications/", include("notifications.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "JobHunt Admin"
admin.site.site_title = "JobHunt Admin Portal"
admin.site.index_title = "Welcome to the JobHunt Admin Portal"
