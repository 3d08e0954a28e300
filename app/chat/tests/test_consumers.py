"""
WebSocket tests for ChatConsumer.

Each test drives real sockets through JWTAuthMiddleware and the in-memory
channel layer, with a fresh RealtimeHub per test. Tokens are minted in sync
fixtures because issuing one touches the database.
"""

import pytest
from channels.db import database_sync_to_async
from channels.testing import WebsocketCommunicator

from chat.consumers import ChatConsumer
from chat.events import EventName, PresenceStatus
from chat.middleware import JWTAuthMiddleware
from chat.models import Message
from chat.presence import RealtimeHub
from chat.tests.conftest import access_token_for

pytestmark = [pytest.mark.asyncio, pytest.mark.django_db(transaction=True)]


class NoPreview:
    async def aresolve(self, text):
        return None


@pytest.fixture
def live_hub(last_seen_writes):
    """Hub publishing through the configured (in-memory) channel layer."""
    return RealtimeHub(
        last_seen_writer=lambda user_id, when: last_seen_writes.append((user_id, when)),
    )


@pytest.fixture
def application(live_hub):
    return JWTAuthMiddleware(ChatConsumer.as_asgi(hub=live_hub, resolver=NoPreview()))


@pytest.fixture
def tokens(poster, applicant, outsider):
    return {user.id: access_token_for(user) for user in (poster, applicant, outsider)}


@pytest.fixture
def open_socket(application, tokens):
    """Connect a socket for a user (None for anonymous)."""

    async def _open(user=None):
        path = "/ws/chat/"
        if user is not None:
            path += f"?token={tokens[user.id]}"
        communicator = WebsocketCommunicator(application, path)
        connected, _ = await communicator.connect()
        assert connected
        return communicator

    return _open


async def next_frame(communicator, frame_type):
    """Skip frames until one of ``frame_type`` arrives."""
    while True:
        frame = await communicator.receive_json_from(timeout=2)
        if frame["type"] == frame_type:
            return frame


async def drain(communicator):
    """Read and discard every frame already delivered."""
    while not await communicator.receive_nothing(timeout=0.1):
        await communicator.receive_json_from()


async def join(communicator, room):
    await communicator.send_json_to({"type": "joinChatRoom", "roomId": room.id})


class TestConnect:
    async def test_anonymous_socket_sees_presence_only(self, open_socket):
        anonymous = await open_socket()

        greeting = await anonymous.receive_json_from()
        assert greeting == {"type": EventName.INITIAL_ONLINE_USERS, "data": {"userIds": []}}

        await anonymous.send_json_to({"type": "joinChatRoom", "roomId": 1})
        error = await anonymous.receive_json_from()
        assert error["type"] == EventName.ERROR
        assert error["error_code"] == "NOT_AUTHENTICATED"

        await anonymous.disconnect()

    async def test_invalid_token_is_anonymous(self, application):
        communicator = WebsocketCommunicator(application, "/ws/chat/?token=not-a-jwt")
        connected, _ = await communicator.connect()

        assert connected
        greeting = await communicator.receive_json_from()
        assert greeting["data"] == {"userIds": []}
        await communicator.disconnect()

    async def test_online_broadcast_and_greeting(self, open_socket, poster, applicant):
        poster_socket = await open_socket(poster)
        await drain(poster_socket)

        applicant_socket = await open_socket(applicant)

        status = await next_frame(poster_socket, EventName.USER_STATUS)
        assert status["data"] == {"userId": applicant.id, "status": PresenceStatus.ONLINE}
        greeting = await next_frame(applicant_socket, EventName.INITIAL_ONLINE_USERS)
        assert greeting["data"]["userIds"] == sorted([poster.id, applicant.id])

        await poster_socket.disconnect()
        await applicant_socket.disconnect()

    async def test_token_in_subprotocol(self, application, tokens, poster):
        communicator = WebsocketCommunicator(
            application, "/ws/chat/", subprotocols=["jwt", tokens[poster.id]]
        )
        connected, subprotocol = await communicator.connect()

        assert connected
        assert subprotocol == "jwt"
        greeting = await next_frame(communicator, EventName.INITIAL_ONLINE_USERS)
        assert greeting["data"]["userIds"] == [poster.id]
        await communicator.disconnect()


class TestRooms:
    async def test_join_announces_both_ways(self, open_socket, room, poster, applicant):
        poster_socket = await open_socket(poster)
        await join(poster_socket, room)
        await drain(poster_socket)

        applicant_socket = await open_socket(applicant)
        await drain(applicant_socket)
        await join(applicant_socket, room)

        announced = await next_frame(poster_socket, EventName.USER_IN_ROOM)
        assert announced["data"] == {"roomId": room.id, "userId": applicant.id, "inRoom": True}
        existing = await next_frame(applicant_socket, EventName.USER_IN_ROOM)
        assert existing["data"] == {"roomId": room.id, "userId": poster.id, "inRoom": True}

        await applicant_socket.send_json_to({"type": "leaveChatRoom", "roomId": room.id})
        left = await next_frame(poster_socket, EventName.USER_IN_ROOM)
        assert left["data"]["inRoom"] is False

        await poster_socket.disconnect()
        await applicant_socket.disconnect()

    async def test_outsider_cannot_join(self, open_socket, room, outsider):
        socket = await open_socket(outsider)
        await drain(socket)

        await join(socket, room)

        error = await next_frame(socket, EventName.ERROR)
        assert error["error_code"] == "NOT_PARTICIPANT"
        await socket.disconnect()


class TestMessaging:
    async def test_send_reaches_room_and_seeds_read_by(
        self, open_socket, room, poster, applicant
    ):
        poster_socket = await open_socket(poster)
        applicant_socket = await open_socket(applicant)
        await join(poster_socket, room)
        await join(applicant_socket, room)
        await drain(poster_socket)
        await drain(applicant_socket)

        await applicant_socket.send_json_to(
            {"type": "sendChatMessage", "roomId": room.id, "text": "Hello poster"}
        )

        received = await next_frame(poster_socket, EventName.CHAT_MESSAGE)
        echoed = await next_frame(applicant_socket, EventName.CHAT_MESSAGE)
        assert received == echoed
        assert received["data"]["text"] == "Hello poster"
        assert sorted(received["data"]["readBy"]) == sorted([poster.id, applicant.id])
        # The poster is viewing the room, so no out-of-room notification
        assert await poster_socket.receive_nothing(timeout=0.2)

        stored = await database_sync_to_async(Message.objects.get)()
        assert stored.sender_id == applicant.id

        await poster_socket.disconnect()
        await applicant_socket.disconnect()

    async def test_absent_participant_gets_notification(
        self, open_socket, room, poster, applicant
    ):
        poster_socket = await open_socket(poster)
        applicant_socket = await open_socket(applicant)
        await join(applicant_socket, room)
        await drain(poster_socket)
        await drain(applicant_socket)

        await applicant_socket.send_json_to(
            {"type": "sendChatMessage", "roomId": room.id, "text": "Ping"}
        )

        notification = await next_frame(poster_socket, EventName.NEW_MESSAGE_NOTIFICATION)
        assert notification["data"]["roomId"] == room.id
        assert notification["data"]["readBy"] == [applicant.id]

        await poster_socket.disconnect()
        await applicant_socket.disconnect()

    async def test_empty_message_is_rejected(self, open_socket, room, applicant):
        socket = await open_socket(applicant)
        await join(socket, room)
        await drain(socket)

        await socket.send_json_to({"type": "sendChatMessage", "roomId": room.id, "text": " "})

        error = await next_frame(socket, EventName.ERROR)
        assert error["error_code"] == "EMPTY_MESSAGE"
        assert not await database_sync_to_async(Message.objects.exists)()
        await socket.disconnect()

    async def test_sender_cannot_be_spoofed(self, open_socket, room, poster, applicant):
        socket = await open_socket(applicant)
        await join(socket, room)
        await drain(socket)

        await socket.send_json_to(
            {"type": "sendChatMessage", "roomId": room.id, "text": "Hi", "senderId": poster.id}
        )

        error = await next_frame(socket, EventName.ERROR)
        assert error["error_code"] == "SENDER_MISMATCH"
        await socket.disconnect()

    async def test_mark_room_read_broadcasts(self, open_socket, room, poster, applicant):
        poster_socket = await open_socket(poster)
        applicant_socket = await open_socket(applicant)
        await join(poster_socket, room)
        await join(applicant_socket, room)
        await drain(poster_socket)
        await drain(applicant_socket)

        await applicant_socket.send_json_to({"type": "markRoomRead", "roomId": room.id})

        read = await next_frame(poster_socket, EventName.ROOM_MESSAGES_READ)
        assert read["data"] == {"roomId": room.id, "userId": applicant.id}

        await poster_socket.disconnect()
        await applicant_socket.disconnect()


class TestTyping:
    async def test_typing_skips_the_typist(self, open_socket, room, poster, applicant):
        poster_socket = await open_socket(poster)
        applicant_socket = await open_socket(applicant)
        await join(poster_socket, room)
        await join(applicant_socket, room)
        await drain(poster_socket)
        await drain(applicant_socket)

        await applicant_socket.send_json_to({"type": "typing", "roomId": room.id})
        typing = await next_frame(poster_socket, EventName.TYPING)
        assert typing["data"] == {"roomId": room.id, "userId": applicant.id}

        await applicant_socket.send_json_to({"type": "stopTyping", "roomId": room.id})
        stopped = await next_frame(poster_socket, EventName.STOP_TYPING)
        assert stopped["data"]["userId"] == applicant.id

        assert await applicant_socket.receive_nothing(timeout=0.2)

        await poster_socket.disconnect()
        await applicant_socket.disconnect()

    async def test_typing_requires_joined_room(self, open_socket, room, applicant):
        socket = await open_socket(applicant)
        await drain(socket)

        await socket.send_json_to({"type": "typing", "roomId": room.id})

        error = await next_frame(socket, EventName.ERROR)
        assert error["error_code"] == "NOT_IN_ROOM"
        await socket.disconnect()


class TestProtocolErrors:
    async def test_unknown_event_keeps_socket_open(self, open_socket, room, applicant):
        socket = await open_socket(applicant)
        await drain(socket)

        await socket.send_json_to({"type": "dance"})
        error = await next_frame(socket, EventName.ERROR)
        assert error["error_code"] == "UNKNOWN_EVENT"

        await join(socket, room)
        await socket.send_json_to({"type": "typing", "roomId": room.id})
        assert await socket.receive_nothing(timeout=0.2)
        await socket.disconnect()

    async def test_missing_room_id(self, open_socket, applicant):
        socket = await open_socket(applicant)
        await drain(socket)

        await socket.send_json_to({"type": "joinChatRoom"})

        error = await next_frame(socket, EventName.ERROR)
        assert error["error_code"] == "VALIDATION_ERROR"
        await socket.disconnect()


class TestDisconnect:
    async def test_last_socket_goes_offline(
        self, open_socket, live_hub, last_seen_writes, room, poster, applicant
    ):
        poster_socket = await open_socket(poster)
        applicant_socket = await open_socket(applicant)
        await join(poster_socket, room)
        await join(applicant_socket, room)
        await drain(poster_socket)

        await applicant_socket.disconnect()

        left = await next_frame(poster_socket, EventName.USER_IN_ROOM)
        assert left["data"] == {"roomId": room.id, "userId": applicant.id, "inRoom": False}
        status = await next_frame(poster_socket, EventName.USER_STATUS)
        assert status["data"] == {"userId": applicant.id, "status": PresenceStatus.OFFLINE}
        last_seen = await next_frame(poster_socket, EventName.USER_LAST_SEEN)
        assert last_seen["data"]["userId"] == applicant.id

        await live_hub.drain()
        assert [user_id for user_id, _ in last_seen_writes] == [applicant.id]
        assert live_hub.presence.snapshot() == {poster.id}

        await poster_socket.disconnect()
        await live_hub.drain()

    async def test_second_tab_keeps_user_online(self, open_socket, live_hub, poster, applicant):
        poster_socket = await open_socket(poster)
        first_tab = await open_socket(applicant)
        second_tab = await open_socket(applicant)
        await drain(poster_socket)

        await first_tab.disconnect()

        assert await poster_socket.receive_nothing(timeout=0.2)
        assert live_hub.presence.is_online(applicant.id)

        await second_tab.disconnect()
        await poster_socket.disconnect()
        await live_hub.drain()
