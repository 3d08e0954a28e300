"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    └── ExternalServiceError - Third-party service failures
        ├── LinkPreviewError - Page metadata could not be fetched
        └── DeliveryError - Outbound email could not be delivered

Expected business failures (validation, not-found, access, conflict) are
returned as core.services.ServiceResult rather than raised. The exceptions
here cover collaborators outside our control, which callers catch at the
boundary and degrade around.

Usage:
    from core.exceptions import LinkPreviewError

    try:
        preview = resolver.fetch(url)
    except LinkPreviewError as e:
        logger.warning(f"No preview for {url}: {e.error_code}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API or socket responses."""
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, error_code={self.error_code!r})"
        )


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a third-party collaborator fails.

    Attributes:
        service_name: Name of the external service that failed
    """

    default_error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        service_name: str = "external",
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.service_name = service_name
        super().__init__(message, error_code=error_code, details=details)


class LinkPreviewError(ExternalServiceError):
    """Raised when a URL's page metadata cannot be fetched or parsed."""

    default_error_code = "LINK_PREVIEW_FAILED"

    def __init__(self, message: str, url: str = "", **kwargs):
        self.url = url
        super().__init__(message, service_name="link_preview", **kwargs)


class DeliveryError(ExternalServiceError):
    """Raised by the email task so Celery retries with backoff."""

    default_error_code = "DELIVERY_FAILED"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, service_name="email", **kwargs)
