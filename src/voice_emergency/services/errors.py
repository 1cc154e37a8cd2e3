"""
Error taxonomy and user-friendly error rendering.

This module defines the exceptions raised by the pipeline and the
ErrorHandler that turns them into responses safe to show to a caller.
"""

import logging
from enum import Enum
from typing import Any

from .constants import ERROR_CODES

# Configure logging
logger = logging.getLogger(__name__)

GENERIC_RETRY_MESSAGE = "Something went wrong, please try again."


class VoicePipelineError(Exception):
    """Base class for all pipeline errors."""

    code = ERROR_CODES["INTERNAL_ERROR"]
    fatal = False

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


class InputError(VoicePipelineError):
    """Malformed, oversized or too-short input rejected at ingress."""

    code = ERROR_CODES["INPUT_ERROR"]


class ProviderTimeout(VoicePipelineError):
    """An external provider did not answer in time or is unavailable."""

    code = ERROR_CODES["PROVIDER_TIMEOUT"]


class SessionNotFound(VoicePipelineError):
    """Operation on an unknown or expired session id."""

    code = ERROR_CODES["SESSION_NOT_FOUND"]

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", session_id=session_id)


class RetentionViolation(VoicePipelineError):
    """Attempt to read data that was purged by the retention policy."""

    code = ERROR_CODES["RETENTION_VIOLATION"]


class InvalidSessionState(VoicePipelineError):
    """Illegal session state transition."""

    code = ERROR_CODES["INVALID_SESSION_STATE"]


class SessionPersistenceError(VoicePipelineError):
    """Storage or registry failure that survived all retries."""

    code = ERROR_CODES["PERSISTENCE_ERROR"]
    fatal = True


class ErrorCategory(Enum):
    """Error category enum."""

    INPUT = "input"  # Bad audio or configuration
    PROVIDER = "provider"  # External transcription/notification issues
    SESSION = "session"  # Unknown session or illegal transition
    RETENTION = "retention"  # Purged data
    STORAGE = "storage"  # Persistence failures
    UNKNOWN = "unknown"  # Anything else


class ErrorHandler:
    """
    Categorizes errors and builds caller-facing error responses.

    Fatal and unknown errors are always rendered with a generic retry
    message so raw exception text never reaches the user.
    """

    def __init__(self):
        """Initialize the error handler."""
        self.user_messages = {
            ErrorCategory.INPUT: "The audio or settings sent could not be processed.",
            ErrorCategory.PROVIDER: "Transcription is temporarily unavailable; listening continues.",
            ErrorCategory.SESSION: "This voice session is no longer available.",
            ErrorCategory.RETENTION: "This recording has been deleted under the data retention policy.",
            ErrorCategory.STORAGE: GENERIC_RETRY_MESSAGE,
            ErrorCategory.UNKNOWN: GENERIC_RETRY_MESSAGE,
        }

    def categorize_error(self, error: Exception) -> ErrorCategory:
        """
        Categorize an error based on its type.

        Args:
            error: The exception to categorize

        Returns:
            ErrorCategory: The error category
        """
        if isinstance(error, InputError):
            return ErrorCategory.INPUT
        if isinstance(error, ProviderTimeout | TimeoutError):
            return ErrorCategory.PROVIDER
        if isinstance(error, SessionNotFound | InvalidSessionState):
            return ErrorCategory.SESSION
        if isinstance(error, RetentionViolation):
            return ErrorCategory.RETENTION
        if isinstance(error, SessionPersistenceError):
            return ErrorCategory.STORAGE
        return ErrorCategory.UNKNOWN

    def get_user_message(self, error: Exception) -> str:
        """Get a user-friendly error message for an exception."""
        return self.user_messages[self.categorize_error(error)]

    def handle_error(self, error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Log an error and build the response shown to the caller.

        Args:
            error: The exception
            context: Optional context (session id, operation) for the log line

        Returns:
            Dict[str, Any]: Error response with code, category and message
        """
        category = self.categorize_error(error)
        code = getattr(error, "code", ERROR_CODES["INTERNAL_ERROR"])
        fatal = getattr(error, "fatal", category == ErrorCategory.UNKNOWN)

        if fatal:
            logger.critical(f"Fatal error ({code}): {error} context={context or {}}")
        elif category == ErrorCategory.UNKNOWN:
            logger.error(f"Unexpected error ({code}): {error} context={context or {}}")
        else:
            logger.warning(f"Recoverable error ({code}): {error} context={context or {}}")

        return {
            "error": True,
            "code": code,
            "category": category.value,
            "message": self.get_user_message(error),
            "retryable": fatal or category in (ErrorCategory.PROVIDER, ErrorCategory.UNKNOWN),
        }
