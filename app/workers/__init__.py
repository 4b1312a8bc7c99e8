# Workers package - detached job execution (in-process asyncio tasks or RQ)

from app.workers.base import (
    WorkerException,
    NonRetryableError,
    RetryableError,
    JobFailure,
    PollTimeout,
    RemoteFailure,
    ContentRejected,
    with_retry,
    BaseWorkflow,
)

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
