"""
Core Application - Infrastructure & Base Classes

This app contains infrastructure code shared by the domain apps. It holds no
domain logic of its own.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Services (import from core.services):
    - ServiceResult: Success/failure value returned by every service method,
      with the HTTP status and response envelope views use
    - BaseService: Logger, transaction and exception helpers for services

Exceptions (import from core.exceptions):
    - BaseApplicationError: Root of the application exception hierarchy
    - ExternalServiceError: A third-party dependency failed
    - LinkPreviewError: Fetching a page for a link preview failed
    - DeliveryError: An email could not be handed to the mail backend

Views (import from core.views):
    - health_check: Liveness endpoint for load balancers

Usage:
    from core.models import BaseModel
    from core.services import BaseService, ServiceResult

    class MyService(BaseService):
        @classmethod
        def do_something(cls, value) -> ServiceResult[int]:
            if value is None:
                return ServiceResult.failure("Value is required", "VALIDATION_ERROR")
            return ServiceResult.success(value)
"""
