"""
Base Worker Classes
Failure types for detached jobs, retry logic, and the logging base shared by workflows.
"""

import asyncio
import logging
import traceback
from datetime import datetime
from functools import wraps
from typing import Callable, Optional, TypeVar

from rq import get_current_job
from rq.job import Job

logger = logging.getLogger(__name__)

T = TypeVar('T')


class WorkerException(Exception):
    """Base exception for worker errors."""

    def __init__(self, message: str, retryable: bool = True, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details or {}


class NonRetryableError(WorkerException):
    """Error that should NOT be retried (e.g., invalid input)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=False, details=details)


class RetryableError(WorkerException):
    """Error that SHOULD be retried (e.g., API timeout)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, retryable=True, details=details)


class JobFailure(NonRetryableError):
    """Terminal outcome of a poll loop other than success."""


class PollTimeout(JobFailure):
    """The attempt budget ran out before the provider reached a terminal status."""

    def __init__(self, task_id: str, attempts: int):
        super().__init__(
            f"Task {task_id} did not finish after {attempts} attempts",
            details={"task_id": task_id, "attempts": attempts},
        )
        self.task_id = task_id
        self.attempts = attempts


class RemoteFailure(JobFailure):
    """The provider reported failed/error for the task."""


class ContentRejected(JobFailure):
    """Every settled sub-job of a generation was flagged nsfw."""


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: tuple = (RetryableError, TimeoutError, ConnectionError)
):
    """
    Decorator to add retry logic to async helpers.

    Args:
        max_retries: Maximum number of retry attempts
        retry_delay: Base delay between retries (seconds)
        exponential_backoff: Whether to use exponential backoff
        retryable_exceptions: Tuple of exception types that should trigger retry
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except NonRetryableError as e:
                    logger.error(f"[Non-Retryable] {func.__name__}: {e}")
                    raise

                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                        logger.warning(
                            f"[Retry {attempt + 1}/{max_retries}] {func.__name__} failed: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"[Failed] {func.__name__} exhausted all {max_retries} retries: {e}"
                        )

            raise last_exception

        return wrapper

    return decorator


class BaseWorkflow:
    """
    Shared plumbing for the detached training and generation phases.

    Logs start/complete/error with timing and mirrors progress into the RQ
    job meta when running under an RQ worker.
    """

    TASK_NAME = "workflow"

    def __init__(self):
        self.start_time: Optional[datetime] = None

    def _get_current_job(self) -> Optional[Job]:
        return get_current_job()

    def _update_progress(self, progress: float, message: str = ""):
        """
        Update job progress (0.0 to 1.0).

        Args:
            progress: Progress value between 0 and 1
            message: Optional status message
        """
        job = self._get_current_job()
        if job:
            job.meta["progress"] = min(max(progress, 0), 1)
            job.meta["progress_message"] = message
            job.meta["updated_at"] = datetime.utcnow().isoformat()
            job.save_meta()

        logger.debug(f"Progress: {progress:.0%} - {message}")

    def _elapsed(self) -> float:
        return (datetime.utcnow() - self.start_time).total_seconds() if self.start_time else 0

    def _log_start(self, **context):
        self.start_time = datetime.utcnow()
        logger.info(f"[START] {self.TASK_NAME} | Context: {context}")

    def _log_complete(self, result_summary: str = ""):
        self._update_progress(1.0, "Complete")
        logger.info(f"[COMPLETE] {self.TASK_NAME} | Duration: {self._elapsed():.2f}s | {result_summary}")

    def _log_error(self, error: Exception):
        if isinstance(error, JobFailure):
            logger.warning(f"[FAILED] {self.TASK_NAME} | Duration: {self._elapsed():.2f}s | {type(error).__name__}: {error}")
        else:
            logger.error(
                f"[ERROR] {self.TASK_NAME} | Duration: {self._elapsed():.2f}s | Error: {error}\n"
                f"{traceback.format_exc()}"
            )


# Export all
__all__ = [
    "WorkerException",
    "NonRetryableError",
    "RetryableError",
    "JobFailure",
    "PollTimeout",
    "RemoteFailure",
    "ContentRejected",
    "with_retry",
    "BaseWorkflow",
]
