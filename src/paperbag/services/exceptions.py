"""Service error hierarchy for Paperbag.

This module defines the errors raised by request handlers and surfaced to API callers:
- PaperbagError: Base for all service errors (carries code, HTTP status, retryability)
- Validation and authorization errors: never retried
- RateLimited and SchedulingFailed: safe for the caller to retry later
"""

from typing import Any


class PaperbagError(Exception):
    """Base exception for all service errors."""

    code: str = "unknown"
    http_status: int = 500
    retryable: bool = False
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, **details: Any):
        super().__init__(message or self.default_message)
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error responses."""
        return {
            "code": self.code,
            "message": str(self),
            "retryable": self.retryable,
            **self.details,
        }


class AuthenticationRequired(PaperbagError):
    """Caller is not signed in."""

    code = "authentication_required"
    http_status = 401
    default_message = "Authentication required"


class Unauthorized(PaperbagError):
    """Caller is signed in but does not own the resource."""

    code = "unauthorized"
    http_status = 403
    default_message = "Unauthorized access"


class RecordNotFound(PaperbagError):
    """No image record matches the given reference."""

    code = "record_not_found"
    http_status = 404
    default_message = "Image record not found"


class ValidationFailed(PaperbagError):
    """Base for input validation failures."""

    code = "validation_failed"
    http_status = 422
    default_message = "Invalid request"


class InvalidStyle(ValidationFailed):
    """Requested cartoon style is not supported."""

    code = "invalid_style"
    default_message = "Invalid cartoon style"


class FileTooLarge(ValidationFailed):
    """Uploaded file exceeds the size limit."""

    code = "file_too_large"
    default_message = "File too large"


class InvalidFileType(ValidationFailed):
    """Uploaded file has a disallowed content type or name."""

    code = "invalid_file_type"
    default_message = "Invalid file type"


class RateLimited(PaperbagError):
    """Caller exceeded the request budget for an operation.

    Carries the remaining quota and the epoch-ms reset time so clients can show
    an accurate wait.
    """

    code = "rate_limited"
    http_status = 429
    retryable = True
    default_message = "Rate limit exceeded. Please try again later."

    def __init__(self, remaining: int, reset_time: int, message: str | None = None):
        super().__init__(message, remaining=remaining, reset_time=reset_time)
        self.remaining = remaining
        self.reset_time = reset_time


class SchedulingFailed(PaperbagError):
    """Generation job could not be enqueued; the image was reverted to pending."""

    code = "scheduling_failed"
    http_status = 503
    retryable = True
    default_message = "Failed to schedule image generation"


class UnknownError(PaperbagError):
    """Catch-all for unexpected failures surfaced to callers."""

    code = "unknown"
    http_status = 500
