"""
DreamWeaver Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every error the API can report.
Why:   Each exception maps to one caller-visible error kind and HTTP status,
       so services raise domain errors and never build HTTP responses.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) translate them into
       structured JSON responses.
Who:   Raised by services, auth and middleware; caught by global handlers.

Exception Hierarchy:
    DreamWeaverError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found (also: not owned by caller)
    ├── ConflictError            → 409 Conflict (e.g. session already active)
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── SystemFailureError       → 500 Internal Server Error (generic message)
        └── DatabaseError        → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class DreamWeaverError(Exception):
    """
    Base exception for all DreamWeaver application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; returned only where the handler says so)
    """

    error_kind = "internal_server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DreamWeaverError):
    """
    Raised when client input fails validation.

    When:    sleep_quality out of range, unparseable timestamps, a final
             wake-up that also carries back_to_bed_at, bad bedroom values.
    HTTP:    400 Bad Request
    """

    error_kind = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(DreamWeaverError):
    """
    Raised when the bearer credential is missing, malformed, or expired.

    HTTP:    401 Unauthorized (with WWW-Authenticate: Bearer)
    """

    error_kind = "unauthorized"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(DreamWeaverError):
    """
    Raised when a requested resource does not exist or is not owned by the caller.

    Why ownership maps here too:
        Answering 403 for someone else's bedroom would confirm that the ID
        exists. Both cases look identical to the caller.
    HTTP:    404 Not Found
    """

    error_kind = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(DreamWeaverError):
    """
    Raised when a request conflicts with the current state of a resource.

    When:    Beginning a sleep session while one is still active; a session
             row changed underneath a write; deleting a bedroom still in use.
    HTTP:    409 Conflict

    The `active_session` payload (when present) lets the client jump straight
    to the wake-up flow instead of retrying creation.
    """

    error_kind = "conflict"

    def __init__(
        self,
        message: str = "The request conflicts with the current state",
        active_session: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if active_session is not None:
            ctx["active_session"] = active_session
        super().__init__(message=message, context=ctx)
        self.active_session = active_session


class RateLimitExceededError(DreamWeaverError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests (with Retry-After)
    """

    error_kind = "rate_limit_exceeded"

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class SystemFailureError(DreamWeaverError):
    """
    Raised when a collaborator (store, identity provider) fails.

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic. Context is
        logged server-side only.
    """

    error_kind = "system_error"

    def __init__(
        self,
        message: str = "A system error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(SystemFailureError):
    """Raised when a database query, insert, or update fails unexpectedly."""

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
