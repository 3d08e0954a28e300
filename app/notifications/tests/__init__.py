"""
Tests for notifications app.

This package contains test modules for:
- test_services.py: NotificationService and EmailNotifier tests
- test_tasks.py: send_email task tests
- test_views.py: API endpoint tests

Usage:
    pytest notifications/tests/
    pytest notifications/tests/test_services.py
"""
