"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures (job poster, applicant, outsider)
- Job, room and message fixtures
- RecordingFanout and an isolated RealtimeHub for service tests
- API client helpers for authenticated requests

Usage:
    def test_example(room, applicant_client):
        response = applicant_client.get(f'/api/v1/chat/rooms/{room.id}/messages/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from chat.fanout import DeliveryFanout
from chat.presence import RealtimeHub, get_hub
from chat.tests.factories import ChatRoomFactory, MessageFactory
from jobs.tests.factories import JobFactory


class RecordingFanout(DeliveryFanout):
    """DeliveryFanout that keeps published events instead of sending them."""

    def __init__(self):
        super().__init__(channel_layer=None)
        self.events = []

    async def publish(self, event):
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def named(self, name: str) -> list:
        return [event for event in self.events if event.name == name]

    def clear(self) -> None:
        self.events.clear()


# =============================================================================
# Realtime Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_process_hub():
    """Start every test with empty process-wide presence and occupancy."""
    get_hub().reset()
    yield
    get_hub().reset()


@pytest.fixture
def fanout():
    return RecordingFanout()


@pytest.fixture
def last_seen_writes():
    """Calls made to the hub's last-seen writer."""
    return []


@pytest.fixture
def hub(fanout, last_seen_writes):
    """Isolated hub publishing into RecordingFanout; last-seen writes are recorded."""
    return RealtimeHub(
        fanout=fanout,
        last_seen_writer=lambda user_id, when: last_seen_writes.append((user_id, when)),
    )


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def poster(db):
    """User who posted the job."""
    return UserFactory(email_verified=True, first_name="Paula", last_name="Poster")


@pytest.fixture
def applicant(db):
    """User who wants to chat about the job."""
    return UserFactory(email_verified=True, first_name="Alex", last_name="Applicant")


@pytest.fixture
def outsider(db):
    """User who is not a participant in any room."""
    return UserFactory(email_verified=True)


# =============================================================================
# Job / Room / Message Fixtures
# =============================================================================


@pytest.fixture
def job(db, poster):
    return JobFactory(created_by=poster, title="Plumber")


@pytest.fixture
def room(db, job, poster, applicant):
    """Room about the job between the poster and the applicant."""
    return ChatRoomFactory(job=job, participants=[poster, applicant])


@pytest.fixture
def message(db, room, applicant):
    """A message from the applicant, read only by its sender."""
    return MessageFactory(room=room, sender=applicant, text="Is the job still open?")


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory to create authenticated clients for any user.

    Usage:
        def test_example(authenticated_client_factory, some_user):
            client = authenticated_client_factory(some_user)
    """

    def _make_client(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _make_client


@pytest.fixture
def poster_client(authenticated_client_factory, poster):
    return authenticated_client_factory(poster)


@pytest.fixture
def applicant_client(authenticated_client_factory, applicant):
    return authenticated_client_factory(applicant)


@pytest.fixture
def outsider_client(authenticated_client_factory, outsider):
    return authenticated_client_factory(outsider)


def access_token_for(user) -> str:
    return str(RefreshToken.for_user(user).access_token)
