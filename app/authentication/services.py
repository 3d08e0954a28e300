"""
Authentication services.

UserService covers the user-record writes the realtime chat core needs:
persisting last-seen when a user's final connection closes.
"""

from __future__ import annotations

from datetime import datetime

from django.db import DatabaseError

from authentication.models import User
from core.services import BaseService, ServiceResult


class UserService(BaseService):
    """User record operations used outside the HTTP auth flow."""

    @classmethod
    def record_last_seen(cls, user_id: int, when: datetime) -> ServiceResult[datetime]:
        """
        Persist the moment a user went offline.

        Never raises: the caller is a socket disconnect path that must not be
        interrupted by a storage failure.

        Args:
            user_id: User whose last connection closed
            when: Disconnect timestamp

        Returns:
            ServiceResult with the written timestamp, or failure
        """
        try:
            updated = User.objects.filter(pk=user_id).update(last_seen=when)
        except DatabaseError as e:
            return cls.handle_exception(e, f"Failed to record last seen for user {user_id}")

        if not updated:
            return ServiceResult.failure("User not found", "USER_NOT_FOUND")

        cls.get_logger().debug(f"Recorded last seen for user {user_id}: {when.isoformat()}")
        return ServiceResult.success(when)
