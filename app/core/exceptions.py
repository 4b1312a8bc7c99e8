"""
Application Exceptions
Errors that cross the HTTP boundary, plus the FastAPI handlers that render them.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TwynError(Exception):
    """Base exception for request-facing errors."""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class InputValidationError(TwynError):
    """Malformed or missing request input."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, "VALIDATION_ERROR", 400)


class RemoteSubmissionError(TwynError):
    """The provider rejected or failed the initial submit call."""

    def __init__(self, message: str = "Remote provider submission failed"):
        super().__init__(message, "REMOTE_SUBMISSION_ERROR", 502)


class StorageError(TwynError):
    """Blob store write or read failed while handling a request."""

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, "STORAGE_ERROR", 502)


class CharacterUnavailableError(TwynError):
    """The requested character does not exist on the provider side."""

    def __init__(self, character_id: str):
        self.character_id = character_id
        super().__init__(
            f"Character {character_id} is no longer available. Please retrain your model.",
            "CHARACTER_UNAVAILABLE",
            404,
        )


class UsageLimitExceeded(TwynError):
    """The user's tier does not allow the requested action."""

    def __init__(self, message: str, limit: int = 0, current: int = 0):
        self.limit = limit
        self.current = current
        super().__init__(message, "USAGE_LIMIT_EXCEEDED", 403)


class JobNotFoundError(TwynError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND", 404)


class InvalidJobTransition(TwynError):
    """A status write that would break the job state machine."""

    def __init__(self, job_id: str, current_state: str, target_state: str):
        self.job_id = job_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Job {job_id} cannot move from '{current_state}' to '{target_state}'",
            "INVALID_JOB_TRANSITION",
            409,
        )


class PhotoAnalysisError(TwynError):
    """The vision model could not turn a photo into a prompt."""

    def __init__(self, message: str, code: str = "ANALYSIS_FAILED", status_code: int = 502):
        super().__init__(message, code, status_code)


async def twyn_exception_handler(request: Request, exc: TwynError):
    """Render application errors as JSON."""
    logger.error(f"[API] {exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "status_code": exc.status_code,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(f"[API] Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "status_code": 500,
        },
    )


__all__ = [
    "TwynError",
    "InputValidationError",
    "RemoteSubmissionError",
    "StorageError",
    "CharacterUnavailableError",
    "UsageLimitExceeded",
    "JobNotFoundError",
    "InvalidJobTransition",
    "PhotoAnalysisError",
    "twyn_exception_handler",
    "generic_exception_handler",
]
