"""
Views for chat API.

This module provides REST API endpoints for the chat system. Every mutation
goes through the service layer, which also publishes the matching realtime
event to connected sockets.

URL Structure:
    /api/v1/chat/requests/                         GET, POST
    /api/v1/chat/requests/sent/                    GET
    /api/v1/chat/requests/accepted/                GET
    /api/v1/chat/requests/{id}/respond/            POST
    /api/v1/chat/rooms/                            GET, POST
    /api/v1/chat/rooms/unread-counts/              GET
    /api/v1/chat/rooms/{id}/last-seen/             GET
    /api/v1/chat/rooms/{id}/messages/              GET, POST
    /api/v1/chat/rooms/{id}/clear/                 DELETE
    /api/v1/chat/messages/{id}/edit/               PATCH
    /api/v1/chat/messages/{id}/react/              PATCH, DELETE
    /api/v1/chat/messages/{id}/delete-for-me/      DELETE
    /api/v1/chat/messages/{id}/delete-for-everyone/ DELETE
    /api/v1/chat/messages/{id}/star/               PATCH
    /api/v1/chat/messages/{id}/unstar/             PATCH
    /api/v1/chat/scheduled/rooms/{room_id}/        GET, POST
    /api/v1/chat/scheduled/{id}/                   PATCH, DELETE

Design Decisions:
    - Service failures map to HTTP through ServiceResult.http_status
      (404 not found, 403 access denied, 400 otherwise)
    - Message bodies use the same payload as the chatMessage socket event
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.serializers import (
    ChatRequestCreateSerializer,
    ChatRequestRespondSerializer,
    ChatRequestSerializer,
    ChatRoomSerializer,
    MessageCreateSerializer,
    MessageEditSerializer,
    MessageSerializer,
    ReactionCreateSerializer,
    RoomCreateSerializer,
    ScheduledMessageCreateSerializer,
    ScheduledMessageSerializer,
    ScheduledMessageUpdateSerializer,
)
from chat.services import (
    ChatRequestService,
    MessageService,
    RoomService,
    ScheduledMessageService,
)


def failure_response(result) -> Response:
    return Response(result.to_response(), status=result.http_status)


# =============================================================================
# Chat requests
# =============================================================================


class ChatRequestListCreateView(APIView):
    """Pending requests addressed to me, and sending a new request."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_received_chat_requests",
        summary="List received chat requests",
        responses={200: ChatRequestSerializer(many=True)},
        tags=["Chat - Requests"],
    )
    def get(self, request):
        requests = ChatRequestService.list_received(request.user)
        return Response(ChatRequestSerializer(requests, many=True).data)

    @extend_schema(
        operation_id="create_chat_request",
        summary="Send a chat request to a job's poster",
        request=ChatRequestCreateSerializer,
        responses={
            201: ChatRequestSerializer,
            400: OpenApiResponse(description="Invalid job or recipient, or request pending"),
            404: OpenApiResponse(description="Job not found"),
        },
        tags=["Chat - Requests"],
    )
    def post(self, request):
        serializer = ChatRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatRequestService.create_request(
            from_user=request.user,
            to_user_id=serializer.validated_data["to"],
            job_id=serializer.validated_data["job"],
        )
        if not result:
            return failure_response(result)

        return Response(ChatRequestSerializer(result.data).data, status=status.HTTP_201_CREATED)


class SentChatRequestListView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_sent_chat_requests",
        summary="List my pending sent chat requests",
        responses={200: ChatRequestSerializer(many=True)},
        tags=["Chat - Requests"],
    )
    def get(self, request):
        requests = ChatRequestService.list_sent(request.user)
        return Response(ChatRequestSerializer(requests, many=True).data)


class AcceptedChatRequestListView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_accepted_chat_requests",
        summary="List my accepted chat requests",
        responses={200: ChatRequestSerializer(many=True)},
        tags=["Chat - Requests"],
    )
    def get(self, request):
        requests = ChatRequestService.list_accepted(request.user)
        return Response(ChatRequestSerializer(requests, many=True).data)


class ChatRequestRespondView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="respond_chat_request",
        summary="Accept or reject a chat request",
        description="Accepting creates the chat room and notifies the requester.",
        request=ChatRequestRespondSerializer,
        responses={200: OpenApiTypes.OBJECT, 404: OpenApiResponse(description="Not found")},
        tags=["Chat - Requests"],
    )
    def post(self, request, pk):
        serializer = ChatRequestRespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ChatRequestService.respond(
            user=request.user,
            request_id=pk,
            action=serializer.validated_data["action"],
        )
        if not result:
            return failure_response(result)

        room = result.data["room"]
        return Response(
            {
                "request": ChatRequestSerializer(result.data["request"]).data,
                "room": ChatRoomSerializer(room).data if room else None,
            }
        )


# =============================================================================
# Rooms
# =============================================================================


class RoomListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_chat_rooms",
        summary="List my chat rooms",
        responses={200: ChatRoomSerializer(many=True)},
        tags=["Chat - Rooms"],
    )
    def get(self, request):
        rooms = RoomService.list_rooms(request.user)
        return Response(ChatRoomSerializer(rooms, many=True).data)

    @extend_schema(
        operation_id="create_or_get_chat_room",
        summary="Create or get the room for a job and another user",
        request=RoomCreateSerializer,
        responses={200: ChatRoomSerializer},
        tags=["Chat - Rooms"],
    )
    def post(self, request):
        serializer = RoomCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RoomService.get_or_create_room(
            user=request.user,
            job_id=serializer.validated_data["job_id"],
            other_user_id=serializer.validated_data["other_user_id"],
        )
        if not result:
            return failure_response(result)

        return Response(ChatRoomSerializer(result.data).data)


class UnreadCountsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_unread_counts",
        summary="Unread message count per room",
        responses={200: OpenApiTypes.OBJECT},
        tags=["Chat - Rooms"],
    )
    def get(self, request):
        result = RoomService.unread_counts(request.user)
        return Response({"counts": result.data})


class RoomLastSeenView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_room_last_seen",
        summary="Other participants' last seen and online status",
        responses={200: OpenApiTypes.OBJECT},
        tags=["Chat - Rooms"],
    )
    def get(self, request, pk):
        result = RoomService.last_seen(pk, request.user)
        if not result:
            return failure_response(result)
        return Response(result.data)


class RoomMessagesView(APIView):
    """Room history (marks it read) and sending messages."""

    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    @extend_schema(
        operation_id="list_room_messages",
        summary="List room messages",
        description=(
            "Newest first. Excludes messages deleted for me or for everyone. "
            "Marks the room read and notifies the room (roomMessagesRead)."
        ),
        responses={200: MessageSerializer(many=True)},
        tags=["Chat - Messages"],
    )
    def get(self, request, pk):
        result = MessageService.list_messages(pk, request.user)
        if not result:
            return failure_response(result)
        return Response(result.data)

    @extend_schema(
        operation_id="send_room_message",
        summary="Send a message",
        description=(
            "Text and/or one attachment, optional reply parent and location. "
            "The message is broadcast to the room as chatMessage."
        ),
        request=MessageCreateSerializer,
        responses={
            201: MessageSerializer,
            400: OpenApiResponse(description="Empty message"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Room or parent not found"),
        },
        tags=["Chat - Messages"],
    )
    def post(self, request, pk):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = MessageService.send_message(
            room_id=pk,
            sender=request.user,
            text=data.get("text", ""),
            parent_id=data.get("parent"),
            location=data.get("location"),
            attachment=data.get("attachment"),
        )
        if not result:
            return failure_response(result)

        return Response(result.data, status=status.HTTP_201_CREATED)


class ClearChatView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="clear_chat",
        summary="Hide every message in the room from my history",
        responses={200: OpenApiTypes.OBJECT},
        tags=["Chat - Rooms"],
    )
    def delete(self, request, pk):
        result = MessageService.clear_chat(request.user, pk)
        if not result:
            return failure_response(result)
        return Response({"cleared": result.data})


# =============================================================================
# Message actions
# =============================================================================


class MessageEditView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="edit_message",
        summary="Edit message",
        description="Sender only, within 5 minutes of sending. Broadcasts messageEdited.",
        request=MessageEditSerializer,
        responses={
            200: MessageSerializer,
            400: OpenApiResponse(description="Edit window expired or message deleted"),
            403: OpenApiResponse(description="Not the sender"),
            404: OpenApiResponse(description="Message not found"),
        },
        tags=["Chat - Messages"],
    )
    def patch(self, request, pk):
        serializer = MessageEditSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.edit_message(request.user, pk, serializer.validated_data["text"])
        if not result:
            return failure_response(result)
        return Response(result.data)


class MessageReactionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="react_to_message",
        summary="Set my reaction (replaces any previous one)",
        request=ReactionCreateSerializer,
        responses={200: MessageSerializer},
        tags=["Chat - Messages"],
    )
    def patch(self, request, pk):
        serializer = ReactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.react(request.user, pk, serializer.validated_data["emoji"])
        if not result:
            return failure_response(result)
        return Response(result.data)

    @extend_schema(
        operation_id="remove_message_reaction",
        summary="Remove my reaction",
        responses={200: MessageSerializer},
        tags=["Chat - Messages"],
    )
    def delete(self, request, pk):
        result = MessageService.remove_reaction(request.user, pk)
        if not result:
            return failure_response(result)
        return Response(result.data)


class MessageDeleteForMeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="delete_message_for_me",
        summary="Hide a message from my history",
        responses={204: None},
        tags=["Chat - Messages"],
    )
    def delete(self, request, pk):
        result = MessageService.delete_for_me(request.user, pk)
        if not result:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MessageDeleteForEveryoneView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="delete_message_for_everyone",
        summary="Delete a message for everyone",
        description="Sender only. Broadcasts messageDeleted.",
        responses={204: None},
        tags=["Chat - Messages"],
    )
    def delete(self, request, pk):
        result = MessageService.delete_for_everyone(request.user, pk)
        if not result:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MessageStarView(APIView):
    permission_classes = [IsAuthenticated]
    starred = True

    @extend_schema(
        operation_id="star_message",
        summary="Star or unstar a message",
        responses={200: MessageSerializer},
        tags=["Chat - Messages"],
    )
    def patch(self, request, pk):
        if self.starred:
            result = MessageService.star(request.user, pk)
        else:
            result = MessageService.unstar(request.user, pk)
        if not result:
            return failure_response(result)
        return Response(result.data)


# =============================================================================
# Scheduled messages
# =============================================================================


class RoomScheduledMessagesView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_scheduled_messages",
        summary="List my pending scheduled messages in a room",
        responses={200: ScheduledMessageSerializer(many=True)},
        tags=["Chat - Scheduled"],
    )
    def get(self, request, room_id):
        result = ScheduledMessageService.list_pending(request.user, room_id)
        if not result:
            return failure_response(result)
        return Response(ScheduledMessageSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="create_scheduled_message",
        summary="Schedule a message",
        request=ScheduledMessageCreateSerializer,
        responses={201: ScheduledMessageSerializer},
        tags=["Chat - Scheduled"],
    )
    def post(self, request, room_id):
        serializer = ScheduledMessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ScheduledMessageService.create(
            user=request.user,
            room_id=room_id,
            text=data["text"],
            send_at=data["send_at"],
            parent_id=data.get("parent"),
        )
        if not result:
            return failure_response(result)

        return Response(
            ScheduledMessageSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class ScheduledMessageDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="update_scheduled_message",
        summary="Change text or send time of a pending scheduled message",
        request=ScheduledMessageUpdateSerializer,
        responses={200: ScheduledMessageSerializer},
        tags=["Chat - Scheduled"],
    )
    def patch(self, request, pk):
        serializer = ScheduledMessageUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ScheduledMessageService.update(
            request.user,
            pk,
            text=serializer.validated_data.get("text"),
            send_at=serializer.validated_data.get("send_at"),
        )
        if not result:
            return failure_response(result)
        return Response(ScheduledMessageSerializer(result.data).data)

    @extend_schema(
        operation_id="cancel_scheduled_message",
        summary="Cancel a pending scheduled message",
        responses={204: None},
        tags=["Chat - Scheduled"],
    )
    def delete(self, request, pk):
        result = ScheduledMessageService.cancel(request.user, pk)
        if not result:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
