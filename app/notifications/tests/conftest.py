"""
Test configuration and fixtures for notification tests.

This module provides:
- User fixtures
- Notification fixtures (read/unread, another user's)
- API client helpers for authenticated requests

Usage:
    def test_example(user, unread_notification, authenticated_client):
        response = authenticated_client.get('/api/v1/notifications/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from notifications.tests.factories import NotificationFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a basic verified user to receive notifications."""
    return UserFactory(email_verified=True)


@pytest.fixture
def other_user(db):
    """Create another verified user for multi-user tests."""
    return UserFactory(email_verified=True)


# =============================================================================
# Notification Fixtures
# =============================================================================


@pytest.fixture
def unread_notification(db, user):
    return NotificationFactory(recipient=user, is_read=False)


@pytest.fixture
def read_notification(db, user):
    return NotificationFactory(recipient=user, is_read=True)


@pytest.fixture
def multiple_unread_notifications(db, user):
    """Create 3 unread notifications for the user."""
    return NotificationFactory.create_batch(3, recipient=user)


@pytest.fixture
def other_user_notifications(db, other_user):
    """Create 3 notifications for other_user (must never leak)."""
    return NotificationFactory.create_batch(3, recipient=other_user)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(user):
    """API client authenticated with JWT token for the default user fixture."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client
