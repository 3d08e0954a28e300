"""
Base service layer patterns for business logic encapsulation.

This module provides the foundation every app's service layer builds on:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Services encapsulate business logic separate from views, consumers and
    models. Views and socket consumers translate transport concerns, models
    hold data, services hold the rules.

Pattern Comparison:
    - ServiceResult: Use for expected failures (validation, access, conflicts)
    - Exceptions: Use for unexpected failures (database errors, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class RoomService(BaseService):
        @classmethod
        def get_room(cls, room_id, user) -> ServiceResult[ChatRoom]:
            room = ChatRoom.objects.filter(pk=room_id).first()
            if room is None:
                return ServiceResult.failure("Room not found", "ROOM_NOT_FOUND")
            return ServiceResult.success(room)

    # In a view
    result = RoomService.get_room(room_id, request.user)
    if not result.success:
        return Response(result.to_response(), status=result.http_status)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")

# Error codes that map to something other than 400 Bad Request.
# Codes ending in _NOT_FOUND are always 404.
FORBIDDEN_ERROR_CODES = frozenset({"NOT_PARTICIPANT", "NOT_AUTHOR", "NOT_OWNER"})


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.
    Use this for expected failures (validation errors, business rule violations).

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        return ServiceResult.success(message)
        return ServiceResult.failure("Message not found", "MESSAGE_NOT_FOUND")

        result = MessageService.edit_message(...)
        if result:
            message = result.data
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T = None) -> ServiceResult[T]:
        """Create a successful result carrying ``data``."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from a caught exception.

        The error code defaults to the exception's own ``error_code`` when it
        has one, otherwise to the upper-cased class name.
        """
        return cls(
            success=False,
            error=str(getattr(exc, "message", exc)),
            error_code=error_code
            or getattr(exc, "error_code", None)
            or exc.__class__.__name__.upper(),
        )

    @property
    def http_status(self) -> int:
        """
        HTTP status code matching this result.

        Returns:
            200 on success, 404 for *_NOT_FOUND codes, 403 for access
            failures, 400 otherwise.
        """
        if self.success:
            return 200
        code = self.error_code or ""
        if code.endswith("_NOT_FOUND"):
            return 404
        if code in FORBIDDEN_ERROR_CODES:
            return 403
        return 400

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            Dict with success status and data or error details
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Services are stateless: use @classmethod and keep state in the database
    (or, for realtime state, in the injected hub).

    Usage:
        class NotificationService(BaseService):
            @classmethod
            def create_notification(cls, recipient, message):
                with cls.atomic():
                    notification = Notification.objects.create(...)
                cls.get_logger().info(f"Created notification {notification.id}")
                return ServiceResult.success(notification)
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get a logger named after the service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that keeps
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed ServiceResult.

        Args:
            exc: The caught exception
            context: Additional context for logging
            log_level: Logging level (default ERROR)
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc)
