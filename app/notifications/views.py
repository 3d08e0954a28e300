"""
Views for notification API.

ViewSets:
    NotificationViewSet: ReadOnlyModelViewSet with actions for read status

Endpoints:
    GET    /api/v1/notifications/               - List my notifications
    GET    /api/v1/notifications/{id}/          - Notification detail
    GET    /api/v1/notifications/unread-count/  - Unread count
    POST   /api/v1/notifications/{id}/read/     - Mark one as read
    POST   /api/v1/notifications/read-all/      - Mark all as read
    DELETE /api/v1/notifications/clear/         - Delete all of mine
"""

from __future__ import annotations

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from notifications.models import Notification
from notifications.serializers import (
    CountResponseSerializer,
    NotificationSerializer,
    UnreadCountSerializer,
)
from notifications.services import NotificationService


@extend_schema_view(
    list=extend_schema(
        operation_id="list_notifications",
        summary="List notifications",
        description="Notifications for the authenticated user, newest first.",
        parameters=[
            OpenApiParameter(
                name="is_read",
                type=bool,
                location=OpenApiParameter.QUERY,
                description="Filter by read status (true/false)",
                required=False,
            ),
        ],
        tags=["Notifications"],
    ),
    retrieve=extend_schema(
        operation_id="get_notification",
        summary="Get notification",
        tags=["Notifications"],
    ),
)
class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for notification operations.

    Users only ever see their own notifications; another user's id is a 404.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user)

        is_read = self.request.query_params.get("is_read")
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() == "true")

        return queryset

    @extend_schema(
        operation_id="get_unread_notification_count",
        summary="Get unread notification count",
        responses={200: UnreadCountSerializer},
        tags=["Notifications"],
    )
    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        count = NotificationService.unread_count(request.user)
        return Response(UnreadCountSerializer({"unread_count": count}).data)

    @extend_schema(
        operation_id="mark_notification_read",
        summary="Mark notification as read",
        description="Idempotent: an already-read notification returns success.",
        request=None,
        responses={
            200: NotificationSerializer,
            404: OpenApiResponse(description="Notification not found"),
        },
        tags=["Notifications"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        notification = self.get_object()

        result = NotificationService.mark_as_read(notification, request.user)
        if not result.success:
            return Response(result.to_response(), status=result.http_status)

        return Response(self.get_serializer(result.data).data)

    @extend_schema(
        operation_id="mark_all_notifications_read",
        summary="Mark all notifications as read",
        request=None,
        responses={200: CountResponseSerializer},
        tags=["Notifications"],
    )
    @action(detail=False, methods=["post"], url_path="read-all")
    def read_all(self, request):
        result = NotificationService.mark_all_as_read(request.user)
        return Response(CountResponseSerializer({"count": result.data}).data)

    @extend_schema(
        operation_id="clear_notifications",
        summary="Delete all my notifications",
        responses={200: CountResponseSerializer},
        tags=["Notifications"],
    )
    @action(detail=False, methods=["delete"])
    def clear(self, request):
        result = NotificationService.clear(request.user)
        return Response(
            CountResponseSerializer({"count": result.data}).data,
            status=status.HTTP_200_OK,
        )
