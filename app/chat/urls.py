"""
URL configuration for chat API.

URL Structure:
    Chat requests:
        /requests/                          GET, POST
        /requests/sent/                     GET
        /requests/accepted/                 GET
        /requests/{id}/respond/             POST

    Rooms:
        /rooms/                             GET, POST
        /rooms/unread-counts/               GET
        /rooms/{id}/last-seen/              GET
        /rooms/{id}/messages/               GET, POST
        /rooms/{id}/clear/                  DELETE

    Messages:
        /messages/{id}/edit/                PATCH
        /messages/{id}/react/               PATCH, DELETE
        /messages/{id}/delete-for-me/       DELETE
        /messages/{id}/delete-for-everyone/ DELETE
        /messages/{id}/star/                PATCH
        /messages/{id}/unstar/              PATCH

    Scheduled messages:
        /scheduled/rooms/{room_id}/         GET, POST
        /scheduled/{id}/                    PATCH, DELETE

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import path

from chat.views import (
    AcceptedChatRequestListView,
    ChatRequestListCreateView,
    ChatRequestRespondView,
    ClearChatView,
    MessageDeleteForEveryoneView,
    MessageDeleteForMeView,
    MessageEditView,
    MessageReactionView,
    MessageStarView,
    RoomLastSeenView,
    RoomListCreateView,
    RoomMessagesView,
    RoomScheduledMessagesView,
    ScheduledMessageDetailView,
    SentChatRequestListView,
    UnreadCountsView,
)

app_name = "chat"

urlpatterns = [
    # Chat requests
    path("requests/", ChatRequestListCreateView.as_view(), name="request-list"),
    path("requests/sent/", SentChatRequestListView.as_view(), name="request-sent"),
    path("requests/accepted/", AcceptedChatRequestListView.as_view(), name="request-accepted"),
    path(
        "requests/<int:pk>/respond/",
        ChatRequestRespondView.as_view(),
        name="request-respond",
    ),
    # Rooms
    path("rooms/", RoomListCreateView.as_view(), name="room-list"),
    path("rooms/unread-counts/", UnreadCountsView.as_view(), name="room-unread-counts"),
    path("rooms/<int:pk>/last-seen/", RoomLastSeenView.as_view(), name="room-last-seen"),
    path("rooms/<int:pk>/messages/", RoomMessagesView.as_view(), name="room-messages"),
    path("rooms/<int:pk>/clear/", ClearChatView.as_view(), name="room-clear"),
    # Message actions
    path("messages/<int:pk>/edit/", MessageEditView.as_view(), name="message-edit"),
    path("messages/<int:pk>/react/", MessageReactionView.as_view(), name="message-react"),
    path(
        "messages/<int:pk>/delete-for-me/",
        MessageDeleteForMeView.as_view(),
        name="message-delete-for-me",
    ),
    path(
        "messages/<int:pk>/delete-for-everyone/",
        MessageDeleteForEveryoneView.as_view(),
        name="message-delete-for-everyone",
    ),
    path("messages/<int:pk>/star/", MessageStarView.as_view(), name="message-star"),
    path(
        "messages/<int:pk>/unstar/",
        MessageStarView.as_view(starred=False),
        name="message-unstar",
    ),
    # Scheduled messages
    path(
        "scheduled/rooms/<int:room_id>/",
        RoomScheduledMessagesView.as_view(),
        name="scheduled-list",
    ),
    path("scheduled/<int:pk>/", ScheduledMessageDetailView.as_view(), name="scheduled-detail"),
]
