"""
Domain error taxonomy shared by every app.

Services raise these instead of HttpError so they stay usable outside the
HTTP layer (Celery tasks, management commands, tests). The ninja API maps
them to responses in config/urls.py.
"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for all domain errors."""
    status_code = 500
    code = "unexpected"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class NotFound(DomainError):
    """
    Resource is absent (or soft-deleted).

    Raise this BEFORE any authorization decision is revealed so that
    unauthorized callers cannot test for existence.
    """
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", details: Optional[Dict[str, Any]] = None):
        self.resource = resource
        super().__init__(f"{resource} not found", details)


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"
    default_message = "Insufficient permissions"


class Conflict(DomainError):
    """Uniqueness, ownership, residency or invite-exhaustion violations."""
    status_code = 409
    code = "conflict"
    default_message = "Resource conflict"


class InvalidInput(DomainError):
    status_code = 400
    code = "invalid_input"
    default_message = "Invalid input"


class RateLimited(DomainError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message or f"Too many requests. Please try again in {retry_after} seconds.",
            {"retry_after": retry_after},
        )


class Unexpected(DomainError):
    """Storage or transport failure."""
    pass
