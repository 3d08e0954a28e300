"""
Tests for authentication app.

This package contains test modules for:
- test_managers.py: UserManager create_user / create_superuser
- test_services.py: UserService.record_last_seen
- test_views.py: Token issuance and the current-user endpoint

Usage:
    pytest authentication/tests/
"""
