"""
Unit tests for chat services.

Test Classes:
    TestChatRequestService: Requests to a job's poster, accept/reject
    TestRoomService: Room creation, access, last seen and unread counts
    TestMessageIngestion: send_message validation, enrichment, read-by seeding
        and fan-out
    TestMessageHistory: list_messages / mark_room_read
    TestMessageMutations: edit, react, delete, clear, star
"""

from datetime import timedelta

import pytest
from django.core import mail
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.utils import timezone
from freezegun import freeze_time

from chat.events import Audience, EventName
from chat.models import ChatRequest, ChatRequestStatus, ChatRoom, Message, MessageReaction
from chat.services import ChatRequestService, MessageService, RoomService
from chat.tests.factories import ChatRequestFactory, ChatRoomFactory, MessageFactory
from jobs.tests.factories import JobFactory
from notifications.models import Notification


class StubResolver:
    """Link preview resolver returning a canned preview for any URL."""

    def __init__(self, preview=None):
        self.preview = preview
        self.calls = []

    def resolve(self, text):
        self.calls.append(text)
        return self.preview if text and "http" in text else None

    async def aresolve(self, text):
        return self.resolve(text)


# =============================================================================
# Chat requests
# =============================================================================


class TestChatRequestService:
    def test_create_request_notifies_poster(self, db, applicant, poster, job):
        result = ChatRequestService.create_request(applicant, poster.id, job.id)

        assert result.success
        chat_request = result.data
        assert chat_request.status == ChatRequestStatus.PENDING
        assert chat_request.to_user == poster

        notification = Notification.objects.get(recipient=poster)
        assert "Plumber" in notification.message
        assert notification.link == "/chats/requests"
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == [poster.email]

    def test_recipient_must_be_job_poster(self, db, applicant, outsider, job):
        result = ChatRequestService.create_request(applicant, outsider.id, job.id)

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"

    def test_cannot_request_yourself(self, db, poster, job):
        result = ChatRequestService.create_request(poster, poster.id, job.id)

        assert result.error_code == "VALIDATION_ERROR"

    def test_unknown_job(self, db, applicant, poster):
        result = ChatRequestService.create_request(applicant, poster.id, 999999)

        assert result.error_code == "JOB_NOT_FOUND"
        assert result.http_status == 404

    def test_missing_ids(self, db, applicant):
        result = ChatRequestService.create_request(applicant, None, "abc")

        assert result.error_code == "VALIDATION_ERROR"

    def test_duplicate_pending_request(self, db, applicant, poster, job):
        ChatRequestService.create_request(applicant, poster.id, job.id)

        result = ChatRequestService.create_request(applicant, poster.id, job.id)

        assert result.error_code == "REQUEST_PENDING"
        assert ChatRequest.objects.count() == 1

    def test_accept_creates_room_and_notifies_requester(self, db, applicant, poster, job):
        chat_request = ChatRequestFactory(from_user=applicant, job=job)

        result = ChatRequestService.respond(poster, chat_request.id, ChatRequestStatus.ACCEPTED)

        assert result.success
        room = result.data["room"]
        assert set(room.participant_ids()) == {applicant.id, poster.id}
        assert room.job == job
        chat_request.refresh_from_db()
        assert chat_request.status == ChatRequestStatus.ACCEPTED

        notification = Notification.objects.get(recipient=applicant)
        assert notification.link == f"/chat/room/{room.id}"

    def test_accept_reuses_existing_room(self, db, applicant, poster, job, room):
        chat_request = ChatRequestFactory(from_user=applicant, job=job)

        result = ChatRequestService.respond(poster, chat_request.id, ChatRequestStatus.ACCEPTED)

        assert result.data["room"] == room
        assert ChatRoom.objects.count() == 1

    def test_reject_creates_no_room(self, db, applicant, poster, job):
        chat_request = ChatRequestFactory(from_user=applicant, job=job)

        result = ChatRequestService.respond(poster, chat_request.id, ChatRequestStatus.REJECTED)

        assert result.success
        assert result.data["room"] is None
        assert not ChatRoom.objects.exists()
        assert not Notification.objects.filter(recipient=applicant).exists()

    def test_only_recipient_can_respond(self, db, applicant, job):
        chat_request = ChatRequestFactory(from_user=applicant, job=job)

        result = ChatRequestService.respond(applicant, chat_request.id, ChatRequestStatus.ACCEPTED)

        assert result.error_code == "REQUEST_NOT_FOUND"

    def test_invalid_action(self, db, applicant, poster, job):
        chat_request = ChatRequestFactory(from_user=applicant, job=job)

        result = ChatRequestService.respond(poster, chat_request.id, "MAYBE")

        assert result.error_code == "INVALID_ACTION"

    def test_already_answered(self, db, applicant, poster, job):
        chat_request = ChatRequestFactory(
            from_user=applicant, job=job, status=ChatRequestStatus.REJECTED
        )

        result = ChatRequestService.respond(poster, chat_request.id, ChatRequestStatus.ACCEPTED)

        assert result.error_code == "INVALID_ACTION"

    def test_lists(self, db, applicant, poster, job):
        pending = ChatRequestFactory(from_user=applicant, job=job)
        accepted = ChatRequestFactory(
            from_user=applicant,
            job=JobFactory(created_by=poster),
            status=ChatRequestStatus.ACCEPTED,
        )

        assert list(ChatRequestService.list_received(poster)) == [pending]
        assert list(ChatRequestService.list_sent(applicant)) == [pending]
        assert list(ChatRequestService.list_accepted(applicant)) == [accepted]
        assert list(ChatRequestService.list_received(applicant)) == []


# =============================================================================
# Rooms
# =============================================================================


class TestRoomService:
    def test_get_or_create_room_is_idempotent(self, db, applicant, poster, job):
        first = RoomService.get_or_create_room(applicant, job.id, poster.id)
        second = RoomService.get_or_create_room(poster, job.id, applicant.id)

        assert first.success and second.success
        assert first.data == second.data
        assert ChatRoom.objects.count() == 1

    def test_separate_rooms_per_job(self, db, applicant, poster, job):
        other_job = JobFactory(created_by=poster)

        first = RoomService.get_or_create_room(applicant, job.id, poster.id)
        second = RoomService.get_or_create_room(applicant, other_job.id, poster.id)

        assert first.data != second.data

    @pytest.mark.parametrize(
        "job_id,other,code",
        [
            (None, "poster", "VALIDATION_ERROR"),
            ("job", "self", "VALIDATION_ERROR"),
            (999999, "poster", "JOB_NOT_FOUND"),
            ("job", 999999, "USER_NOT_FOUND"),
        ],
    )
    def test_get_or_create_room_errors(self, db, applicant, poster, job, job_id, other, code):
        job_id = job.id if job_id == "job" else job_id
        other_id = {"poster": poster.id, "self": applicant.id}.get(other, other)

        result = RoomService.get_or_create_room(applicant, job_id, other_id)

        assert result.error_code == code

    def test_get_room_for_participant(self, db, room, applicant, outsider):
        assert RoomService.get_room_for_participant(room.id, applicant).data == room

        denied = RoomService.get_room_for_participant(room.id, outsider)
        assert denied.error_code == "NOT_PARTICIPANT"
        assert denied.http_status == 403

        missing = RoomService.get_room_for_participant(999999, applicant)
        assert missing.error_code == "ROOM_NOT_FOUND"

    def test_list_rooms(self, db, room, applicant, outsider):
        assert list(RoomService.list_rooms(applicant)) == [room]
        assert list(RoomService.list_rooms(outsider)) == []

    def test_last_seen_reports_other_participants(self, db, room, applicant, poster, hub):
        seen = timezone.now() - timedelta(minutes=5)
        type(poster).objects.filter(pk=poster.pk).update(last_seen=seen)

        result = RoomService.last_seen(room.id, applicant, hub=hub)

        assert result.data == {
            "lastSeen": {str(poster.id): seen.isoformat()},
            "online": [],
        }

    def test_last_seen_includes_online_users(self, db, room, applicant, poster, hub):
        hub.presence.connect(poster.id, "conn-p")

        result = RoomService.last_seen(room.id, applicant, hub=hub)

        assert result.data["lastSeen"] == {str(poster.id): None}
        assert result.data["online"] == [poster.id]

    def test_unread_counts(self, db, room, applicant, poster):
        MessageFactory.create_batch(2, room=room, sender=poster)
        MessageFactory(room=room, sender=poster, read_by=[applicant])
        MessageFactory(room=room, sender=poster, is_deleted_for_everyone=True)
        hidden = MessageFactory(room=room, sender=poster)
        hidden.deleted_for.add(applicant)

        result = RoomService.unread_counts(applicant)

        assert result.data == {str(room.id): 2}
        assert RoomService.unread_counts(poster).data == {}


# =============================================================================
# Ingestion
# =============================================================================


class TestMessageIngestion:
    def test_send_persists_and_fans_out(self, db, room, applicant, poster, hub, fanout):
        result = MessageService.send_message(
            room.id, applicant, "  Hello there  ", hub=hub, resolver=StubResolver()
        )

        assert result.success
        payload = result.data
        assert payload["text"] == "Hello there"
        assert payload["roomId"] == room.id
        assert payload["sender"]["id"] == applicant.id
        assert payload["readBy"] == [applicant.id]
        assert payload["preview"] is None

        assert fanout.names() == [EventName.CHAT_MESSAGE, EventName.NEW_MESSAGE_NOTIFICATION]
        room_event, notification = fanout.events
        assert room_event.audience == Audience.ROOM
        assert room_event.payload == payload
        assert notification.user_id == poster.id
        assert notification.room_id == room.id

    def test_present_participant_is_seeded_into_read_by(
        self, db, room, applicant, poster, hub
    ):
        hub.rooms.join(room.id, "conn-poster", poster.id)

        result = MessageService.send_message(
            room.id, applicant, "Are you there?", hub=hub, resolver=StubResolver()
        )

        assert sorted(result.data["readBy"]) == sorted([applicant.id, poster.id])
        message = Message.objects.get(pk=result.data["id"])
        assert set(message.read_by.values_list("pk", flat=True)) == {applicant.id, poster.id}

    def test_non_participant_occupant_is_not_seeded(
        self, db, room, applicant, outsider, hub
    ):
        hub.rooms.join(room.id, "conn-out", outsider.id)

        result = MessageService.send_message(
            room.id, applicant, "Hi", hub=hub, resolver=StubResolver()
        )

        assert result.data["readBy"] == [applicant.id]

    def test_link_preview_is_attached(self, db, room, applicant, hub):
        preview = {"title": "Job", "description": "d", "image": "", "url": "https://x.com"}
        resolver = StubResolver(preview)

        result = MessageService.send_message(
            room.id, applicant, "see https://x.com", hub=hub, resolver=resolver
        )

        assert result.data["preview"] == preview
        assert Message.objects.get(pk=result.data["id"]).preview == preview

    def test_reply_carries_parent_summary(self, db, room, applicant, poster, message, hub):
        result = MessageService.send_message(
            room.id, poster, "Yes it is", parent_id=message.id, hub=hub, resolver=StubResolver()
        )

        parent = result.data["parent"]
        assert parent["id"] == message.id
        assert parent["text"] == message.text
        assert parent["sender"]["id"] == applicant.id

    def test_reply_to_deleted_parent_hides_its_text(self, db, room, poster, message, hub):
        message.is_deleted_for_everyone = True
        message.save()

        result = MessageService.send_message(
            room.id, poster, "Reply", parent_id=message.id, hub=hub, resolver=StubResolver()
        )

        assert result.data["parent"]["isDeleted"] is True
        assert result.data["parent"]["text"] == ""

    def test_parent_must_be_in_same_room(self, db, room, applicant, poster, hub):
        elsewhere = MessageFactory(room=ChatRoomFactory(participants=[applicant, poster]))

        result = MessageService.send_message(
            room.id, applicant, "Hi", parent_id=elsewhere.id, hub=hub, resolver=StubResolver()
        )

        assert result.error_code == "PARENT_NOT_FOUND"

    def test_location_requires_all_fields(self, db, room, applicant, hub):
        full = MessageService.send_message(
            room.id,
            applicant,
            "Meet here",
            location={"lat": "53.8", "lng": -1.55, "name": "Leeds"},
            hub=hub,
            resolver=StubResolver(),
        )
        partial = MessageService.send_message(
            room.id,
            applicant,
            "Meet here",
            location={"lat": 53.8, "name": "Leeds"},
            hub=hub,
            resolver=StubResolver(),
        )

        assert full.data["location"] == {"lat": 53.8, "lng": -1.55, "name": "Leeds"}
        assert partial.data["location"] is None

    def test_empty_message_is_rejected(self, db, room, applicant, hub, fanout):
        result = MessageService.send_message(room.id, applicant, "   ", hub=hub)

        assert result.error_code == "EMPTY_MESSAGE"
        assert not Message.objects.exists()
        assert fanout.events == []

    def test_text_too_long(self, db, room, applicant, hub):
        from chat.constants import MESSAGE_CONFIG

        result = MessageService.send_message(
            room.id, applicant, "x" * (MESSAGE_CONFIG.MAX_TEXT_LENGTH + 1), hub=hub
        )

        assert result.error_code == "VALIDATION_ERROR"

    def test_outsider_cannot_send(self, db, room, outsider, hub):
        result = MessageService.send_message(room.id, outsider, "Hi", hub=hub)

        assert result.error_code == "NOT_PARTICIPANT"

    def test_unknown_room(self, db, applicant, hub):
        result = MessageService.send_message(999999, applicant, "Hi", hub=hub)

        assert result.error_code == "ROOM_NOT_FOUND"

    def test_attachment_only_message(self, db, room, applicant, hub, settings, tmp_path):
        settings.MEDIA_ROOT = tmp_path
        upload = SimpleUploadedFile("cv final.pdf", b"%PDF-1.4", content_type="application/pdf")

        result = MessageService.send_message(
            room.id, applicant, "", attachment=upload, hub=hub, resolver=StubResolver()
        )

        assert result.success
        attachment = result.data["attachment"]
        assert attachment["name"] == "cv_final.pdf"
        assert attachment["contentType"] == "application/pdf"
        stored = Message.objects.get(pk=result.data["id"])
        assert (tmp_path / stored.attachment_id).exists()

    def test_failed_persist_destroys_attachment(
        self, db, room, applicant, hub, fanout, settings, tmp_path, mocker
    ):
        settings.MEDIA_ROOT = tmp_path
        mocker.patch.object(Message.objects, "create", side_effect=DatabaseError("disk full"))
        upload = SimpleUploadedFile("a.txt", b"hello", content_type="text/plain")

        result = MessageService.send_message(
            room.id, applicant, "", attachment=upload, hub=hub, resolver=StubResolver()
        )

        assert not result.success
        assert fanout.events == []
        assert list((tmp_path / "chat" / "attachments").iterdir()) == []

    def test_room_activity_is_bumped(self, db, room, applicant, hub):
        before = room.updated_at

        MessageService.send_message(room.id, applicant, "Hi", hub=hub, resolver=StubResolver())

        room.refresh_from_db()
        assert room.updated_at >= before


@pytest.mark.asyncio
@pytest.mark.django_db(transaction=True)
class TestAsyncIngestion:
    async def test_asend_message_matches_sync_pipeline(self, hub, fanout):
        from channels.db import database_sync_to_async

        from authentication.tests.factories import UserFactory

        @database_sync_to_async
        def make_room():
            poster, applicant = UserFactory(), UserFactory()
            job = JobFactory(created_by=poster)
            room = ChatRoomFactory(job=job, participants=[poster, applicant])
            return room, poster, applicant

        room, poster, applicant = await make_room()
        hub.rooms.join(room.id, "conn-poster", poster.id)

        result = await MessageService.asend_message(
            room.id, applicant, "Hello", hub=hub, resolver=StubResolver()
        )

        assert result.success
        assert sorted(result.data["readBy"]) == sorted([applicant.id, poster.id])
        assert fanout.names() == [EventName.CHAT_MESSAGE, EventName.NEW_MESSAGE_NOTIFICATION]


# =============================================================================
# History
# =============================================================================


class TestMessageHistory:
    def test_list_marks_read_and_excludes_deleted(self, db, room, applicant, poster, fanout):
        visible = MessageFactory(room=room, sender=poster)
        MessageFactory(room=room, sender=poster, is_deleted_for_everyone=True)
        hidden = MessageFactory(room=room, sender=poster)
        hidden.deleted_for.add(applicant)

        result = MessageService.list_messages(room.id, applicant, fanout=fanout)

        assert [m["id"] for m in result.data] == [visible.id]
        assert applicant.id in result.data[0]["readBy"]
        assert fanout.names() == [EventName.ROOM_MESSAGES_READ]
        assert fanout.events[0].payload == {"roomId": room.id, "userId": applicant.id}

    def test_list_is_newest_first(self, db, room, applicant, fanout):
        first = MessageFactory(room=room, sender=applicant)
        second = MessageFactory(room=room, sender=applicant)
        Message.objects.filter(pk=first.pk).update(created_at=timezone.now() - timedelta(hours=1))

        result = MessageService.list_messages(room.id, applicant, fanout=fanout)

        assert [m["id"] for m in result.data] == [second.id, first.id]

    def test_mark_room_read_counts_new_reads(self, db, room, applicant, poster, fanout):
        MessageFactory.create_batch(3, room=room, sender=poster)

        assert MessageService.mark_room_read(room.id, applicant, fanout=fanout).data == 3
        assert MessageService.mark_room_read(room.id, applicant, fanout=fanout).data == 0

    def test_outsider_cannot_list(self, db, room, outsider, fanout):
        result = MessageService.list_messages(room.id, outsider, fanout=fanout)

        assert result.error_code == "NOT_PARTICIPANT"
        assert fanout.events == []


# =============================================================================
# Mutations
# =============================================================================


class TestMessageMutations:
    def test_edit_within_window(self, db, message, applicant, fanout):
        result = MessageService.edit_message(applicant, message.id, "Updated", fanout=fanout)

        assert result.success
        assert result.data["text"] == "Updated"
        assert result.data["edited"] is True
        assert fanout.names() == [EventName.MESSAGE_EDITED]

    def test_edit_after_window(self, db, room, applicant, fanout):
        with freeze_time("2026-03-01 12:00:00"):
            message = MessageFactory(room=room, sender=applicant)

        with freeze_time("2026-03-01 12:05:01"):
            result = MessageService.edit_message(applicant, message.id, "Too late", fanout=fanout)

        assert result.error_code == "EDIT_WINDOW_EXPIRED"
        assert result.error == "Edit window expired (5 minutes)"
        assert fanout.events == []

    def test_edit_at_window_boundary(self, db, message, applicant, fanout):
        boundary = message.created_at + timedelta(minutes=5)

        result = MessageService.edit_message(
            applicant, message.id, "Just in time", now=boundary, fanout=fanout
        )

        assert result.success

    def test_only_sender_can_edit(self, db, message, poster, fanout):
        result = MessageService.edit_message(poster, message.id, "Mine now", fanout=fanout)

        assert result.error_code == "NOT_AUTHOR"
        assert result.http_status == 403

    def test_cannot_edit_deleted(self, db, message, applicant, fanout):
        message.is_deleted_for_everyone = True
        message.save()

        result = MessageService.edit_message(applicant, message.id, "Revive", fanout=fanout)

        assert result.error_code == "MESSAGE_DELETED"

    def test_react_replaces_previous_reaction(self, db, message, poster, fanout):
        MessageService.react(poster, message.id, "👍", fanout=fanout)
        result = MessageService.react(poster, message.id, "❤️", fanout=fanout)

        assert MessageReaction.objects.filter(message=message, user=poster).count() == 1
        assert [r["emoji"] for r in result.data["reactions"]] == ["❤️"]
        assert fanout.names() == [EventName.MESSAGE_REACTED, EventName.MESSAGE_REACTED]

    def test_react_validation(self, db, message, poster, outsider, fanout):
        assert MessageService.react(poster, message.id, " ", fanout=fanout).error_code == (
            "INVALID_EMOJI"
        )
        assert MessageService.react(outsider, message.id, "👍", fanout=fanout).error_code == (
            "NOT_PARTICIPANT"
        )
        assert MessageService.react(poster, 999999, "👍", fanout=fanout).error_code == (
            "MESSAGE_NOT_FOUND"
        )

    def test_remove_reaction(self, db, message, poster, fanout):
        MessageService.react(poster, message.id, "👍", fanout=fanout)

        result = MessageService.remove_reaction(poster, message.id, fanout=fanout)

        assert result.data["reactions"] == []

    def test_delete_for_me_hides_only_for_me(self, db, room, message, poster, applicant, fanout):
        assert MessageService.delete_for_me(poster, message.id).success

        mine = MessageService.list_messages(room.id, poster, fanout=fanout).data
        theirs = MessageService.list_messages(room.id, applicant, fanout=fanout).data
        assert mine == []
        assert [m["id"] for m in theirs] == [message.id]

    def test_delete_for_everyone(self, db, message, applicant, fanout):
        result = MessageService.delete_for_everyone(applicant, message.id, fanout=fanout)

        assert result.success
        message.refresh_from_db()
        assert message.is_deleted_for_everyone is True
        assert fanout.names() == [EventName.MESSAGE_DELETED]
        assert fanout.events[0].payload == {"messageId": message.id, "roomId": message.room_id}

    def test_only_sender_deletes_for_everyone(self, db, message, poster, fanout):
        result = MessageService.delete_for_everyone(poster, message.id, fanout=fanout)

        assert result.error_code == "NOT_AUTHOR"

    def test_clear_chat(self, db, room, poster, applicant, fanout):
        MessageFactory.create_batch(3, room=room, sender=applicant)

        assert MessageService.clear_chat(poster, room.id).data == 3
        assert MessageService.list_messages(room.id, poster, fanout=fanout).data == []
        assert len(MessageService.list_messages(room.id, applicant, fanout=fanout).data) == 3

    def test_star_and_unstar(self, db, message, poster, fanout):
        starred = MessageService.star(poster, message.id, fanout=fanout)
        assert starred.data["starredBy"] == [poster.id]

        unstarred = MessageService.unstar(poster, message.id, fanout=fanout)
        assert unstarred.data["starredBy"] == []
        assert fanout.names() == [EventName.MESSAGE_STARRED, EventName.MESSAGE_STARRED]

    def test_deleted_message_rejects_star_and_reaction_changes(
        self, db, message, applicant, poster, fanout
    ):
        """
        Why it matters: these events carry the full message payload, so
        allowing them after delete-for-everyone would re-broadcast its text.
        """
        MessageService.react(poster, message.id, "👍", fanout=fanout)
        MessageService.delete_for_everyone(applicant, message.id, fanout=fanout)

        assert MessageService.star(poster, message.id, fanout=fanout).error_code == (
            "MESSAGE_DELETED"
        )
        assert MessageService.unstar(poster, message.id, fanout=fanout).error_code == (
            "MESSAGE_DELETED"
        )
        assert MessageService.remove_reaction(poster, message.id, fanout=fanout).error_code == (
            "MESSAGE_DELETED"
        )
        assert fanout.names() == [EventName.MESSAGE_REACTED, EventName.MESSAGE_DELETED]
        assert not message.starred_by.exists()

    def test_deleted_message_payload_hides_content(self, db, message, applicant, fanout):
        MessageService.delete_for_everyone(applicant, message.id, fanout=fanout)

        payload = MessageService.serialize(message)

        assert payload["isDeletedForEveryone"] is True
        assert payload["text"] == ""
        assert payload["attachment"] is None
        assert payload["preview"] is None
        assert payload["location"] is None
