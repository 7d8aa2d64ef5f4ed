"""Client-side error categorization.

Turns exceptions raised while talking to the Paperbag API into `AppError`
records with a category and a retryable flag, keeps a short in-memory log of
them, and maps categories to messages that can be shown to the user.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from paperbag.core.config import Settings

logger = structlog.get_logger(__name__)

DEFAULT_ERROR_LOG_SIZE = 100


class ErrorType(str, Enum):
    """Broad error categories used to pick a user message and retry offer."""

    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    PROCESSING = "processing"
    UPLOAD = "upload"
    API = "api"
    UNKNOWN = "unknown"


class ApiError(Exception):
    """Non-2xx response from the Paperbag API."""

    def __init__(
        self,
        status_code: int,
        code: str = "unknown",
        message: str = "",
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message or f"API request failed with status {status_code}")
        self.status_code = status_code
        self.code = code
        self.retryable = retryable
        self.details = details or {}


class ProcessingTimeout(Exception):
    """An image did not leave 'processing' within the client's wait budget."""

    def __init__(self, image_id: str, timeout: float):
        super().__init__(f"Image {image_id} still processing after {timeout:g}s")
        self.image_id = image_id
        self.timeout = timeout


@dataclass(frozen=True)
class AppError:
    """A categorized error as recorded by `ErrorHandler`."""

    type: ErrorType
    message: str
    retryable: bool
    code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_STATUS_TYPES = {
    401: ErrorType.AUTHENTICATION,
    403: ErrorType.AUTHORIZATION,
    404: ErrorType.API,
    413: ErrorType.UPLOAD,
    422: ErrorType.VALIDATION,
}

# Checked in order; the first keyword found in the message decides the category
_KEYWORD_TYPES: list[tuple[tuple[str, ...], ErrorType]] = [
    (("network", "fetch", "timeout"), ErrorType.NETWORK),
    (("unauthorized", "authentication"), ErrorType.AUTHENTICATION),
    (("forbidden", "permission"), ErrorType.AUTHORIZATION),
    (("validation", "invalid"), ErrorType.VALIDATION),
    (("upload", "file"), ErrorType.UPLOAD),
    (("api", "openai"), ErrorType.API),
    (("processing", "generation"), ErrorType.PROCESSING),
]

USER_MESSAGES = {
    ErrorType.NETWORK: (
        "Network connection issue. Please check your internet connection and try again."
    ),
    ErrorType.AUTHENTICATION: "Please sign in to continue.",
    ErrorType.AUTHORIZATION: "You don't have permission to perform this action.",
    ErrorType.UPLOAD: "Failed to upload image. Please try again with a different file.",
    ErrorType.API: "Service temporarily unavailable. Please try again in a few minutes.",
    ErrorType.PROCESSING: "Image processing failed. Please try again with a different image.",
}


def categorize_error(error: BaseException) -> ErrorType:
    """Category of an exception, by HTTP status for ApiError, else by message keywords."""
    if isinstance(error, ApiError):
        if error.status_code in _STATUS_TYPES:
            return _STATUS_TYPES[error.status_code]
        if error.status_code == 429 or error.status_code >= 500:
            return ErrorType.API

    message = str(error).lower()
    for keywords, error_type in _KEYWORD_TYPES:
        if any(keyword in message for keyword in keywords):
            return error_type
    return ErrorType.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    """Whether trying the same call again may succeed.

    Network, timeout and connection problems, 5xx responses and rate limits are
    retryable; everything else is not.
    """
    if isinstance(error, ApiError):
        return error.retryable or error.status_code == 429 or error.status_code >= 500
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True

    message = str(error).lower()
    if any(keyword in message for keyword in ("network", "timeout", "connection")):
        return True
    if any(code in message for code in ("500", "502", "503", "504")):
        return True
    return "rate limit" in message or "429" in message


class ErrorHandler:
    """Categorize errors and keep the most recent ones for debugging."""

    def __init__(self, max_entries: int = DEFAULT_ERROR_LOG_SIZE):
        self._log: deque[AppError] = deque(maxlen=max_entries)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ErrorHandler":
        return cls(max_entries=settings.error_log_max_entries)

    def handle_error(self, error: BaseException, context: str | None = None) -> AppError:
        """Categorize `error`, record it, and return the record."""
        if isinstance(error, Exception):
            app_error = AppError(
                type=categorize_error(error),
                message=str(error),
                retryable=is_retryable(error),
                code=getattr(error, "code", None) or type(error).__name__,
                details={"context": context} if context else {},
            )
        else:
            app_error = AppError(
                type=ErrorType.UNKNOWN,
                message="An unknown error occurred",
                retryable=False,
                details={"original_error": repr(error), "context": context},
            )

        self._log.append(app_error)
        logger.warning(
            "client.error",
            error_type=app_error.type.value,
            message=app_error.message,
            retryable=app_error.retryable,
            context=context,
        )
        return app_error

    def get_user_friendly_message(self, error: AppError) -> str:
        if error.type == ErrorType.VALIDATION:
            return error.message or "Please check your input and try again."
        return USER_MESSAGES.get(error.type, "Something went wrong. Please try again.")

    def get_error_log(self) -> list[AppError]:
        return list(self._log)

    def clear_error_log(self) -> None:
        self._log.clear()
