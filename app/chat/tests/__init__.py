"""
Tests for chat app.

This package contains test modules for:
- test_presence.py: PresenceRegistry and RealtimeHub connection lifecycle
- test_room_membership.py: RoomMembershipTracker occupancy
- test_fanout.py: DeliveryFanout channel-layer routing
- test_link_preview.py: Link preview extraction and fetching
- test_services.py: Chat request, room and message services
- test_scheduled.py: Scheduled messages and the dispatcher
- test_consumers.py: WebSocket consumer tests
- test_middleware.py: JWT WebSocket authentication
- test_views.py: REST API endpoint tests
- test_tasks.py: Celery task tests

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
