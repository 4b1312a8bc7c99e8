"""
Polling Orchestrator
Turns the provider's poll-based task status into a local terminal outcome.

One generic loop, poll_until_terminal, drives both workflows. Each workflow
supplies an evaluator that reads a status document and either returns a
result (done), returns None (keep polling), or raises a JobFailure.

Budgets:
    training    10s interval, 180 attempts (~30 minutes)
    generation  10s interval, 60 attempts  (~10 minutes)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from app.core.config import settings
from app.workers.base import ContentRejected, JobFailure, PollTimeout, RemoteFailure

logger = logging.getLogger(__name__)

TResult = TypeVar("TResult")

Sleep = Callable[[float], Awaitable[Any]]

FAILED_STATUSES = ("failed", "error")


@dataclass
class TrainingResult:
    external_id: str
    thumbnail_url: Optional[str] = None


@dataclass
class GenerationResult:
    image_urls: List[str] = field(default_factory=list)
    batch_id: Optional[str] = None


async def poll_until_terminal(
    fetch: Callable[[], Awaitable[Dict[str, Any]]],
    evaluate: Callable[[Dict[str, Any]], Optional[TResult]],
    *,
    task_id: str,
    interval: float,
    max_attempts: int,
    sleep: Sleep = asyncio.sleep,
    label: str = "Poll",
) -> TResult:
    """
    Fetch and evaluate until a terminal outcome or the attempt budget runs out.

    Args:
        fetch: Coroutine factory returning the provider status document
        evaluate: Returns a result when done, None while pending; raises JobFailure
        task_id: Provider task id (for logs and the timeout error)
        interval: Seconds slept between attempts
        max_attempts: Total number of fetches allowed
        sleep: Awaitable delay, injectable for tests
        label: Log tag

    Returns:
        Whatever evaluate returned on the first terminal success

    Raises:
        PollTimeout, RemoteFailure, ContentRejected
    """
    for attempt in range(1, max_attempts + 1):
        logger.debug(f"[{label}] {task_id}: attempt {attempt}/{max_attempts}")

        try:
            document = await fetch()
        except Exception as e:
            # Transport errors and non-2xx responses count as "not ready yet"
            logger.warning(f"[{label}] {task_id}: fetch failed on attempt {attempt}/{max_attempts}: {e}")
            document = None

        if isinstance(document, dict):
            try:
                result = evaluate(document)
            except JobFailure:
                raise
            except Exception as e:
                logger.warning(f"[{label}] {task_id}: unreadable status on attempt {attempt}/{max_attempts}: {e}")
                result = None
            if result is not None:
                logger.info(f"[{label}] {task_id}: finished after {attempt} attempt(s)")
                return result
        elif document is not None:
            logger.warning(f"[{label}] {task_id}: status is not a JSON object on attempt {attempt}/{max_attempts}")

        if attempt < max_attempts:
            await sleep(interval)

    logger.warning(f"[{label}] {task_id}: no terminal status after {max_attempts} attempts")
    raise PollTimeout(task_id, max_attempts)


def evaluate_training_status(document: Dict[str, Any], task_id: str) -> Optional[TrainingResult]:
    """Training reports its status at the root of the document."""
    status = str(document.get("status") or "").lower()

    if status == "completed":
        external_id = document.get("id") or document.get("character_id") or task_id
        return TrainingResult(
            external_id=str(external_id),
            thumbnail_url=document.get("thumbnail_url"),
        )

    if status in FAILED_STATUSES:
        raise RemoteFailure(f"Training failed: {document.get('error') or 'Unknown error'}")

    return None


def _sub_job_image_url(job: Dict[str, Any]) -> Optional[str]:
    results = job.get("results")
    if not isinstance(results, dict):
        return None
    for variant in ("raw", "min"):
        image = results.get(variant)
        if isinstance(image, dict) and image.get("url"):
            return image["url"]
    return None


def evaluate_generation_status(document: Dict[str, Any], task_id: str) -> Optional[GenerationResult]:
    """
    Evaluate the sub-job array of a generation task.

    Precedence: completed > failed > nsfw > pending. Any completed sub-job ends
    the poll with the images available so far. nsfw only ends it once no
    sub-job is still pending. Entries that are not objects are ignored.
    """
    jobs = document.get("jobs")
    if not isinstance(jobs, list):
        return None
    jobs = [job for job in jobs if isinstance(job, dict)]
    statuses = [str(job.get("status") or "").lower() for job in jobs]

    completed = [job for job, status in zip(jobs, statuses) if status == "completed"]
    if completed:
        image_urls = [url for url in (_sub_job_image_url(job) for job in completed) if url]
        if image_urls:
            batch_id = document.get("id") or document.get("task_id") or task_id
            return GenerationResult(image_urls=image_urls, batch_id=str(batch_id))
        logger.warning(f"[Poll] {task_id}: completed sub-jobs carry no image URL yet")
        return None

    failed = [job for job, status in zip(jobs, statuses) if status in FAILED_STATUSES]
    if failed:
        raise RemoteFailure(f"Generation failed: {failed[0].get('error') or 'Unknown error'}")

    nsfw_count = statuses.count("nsfw")
    if nsfw_count and nsfw_count == len(statuses):
        raise ContentRejected("Generated content was flagged by the provider's safety filter")

    return None


class PollingOrchestrator:
    """Runs the training and generation poll loops against a remote client."""

    def __init__(
        self,
        remote,
        sleep: Sleep = asyncio.sleep,
        training_interval: Optional[float] = None,
        training_max_attempts: Optional[int] = None,
        generation_interval: Optional[float] = None,
        generation_max_attempts: Optional[int] = None,
    ):
        self.remote = remote
        self.sleep = sleep
        self.training_interval = training_interval if training_interval is not None else settings.TRAINING_POLL_INTERVAL
        self.training_max_attempts = training_max_attempts or settings.TRAINING_POLL_MAX_ATTEMPTS
        self.generation_interval = generation_interval if generation_interval is not None else settings.GENERATION_POLL_INTERVAL
        self.generation_max_attempts = generation_max_attempts or settings.GENERATION_POLL_MAX_ATTEMPTS

    async def run_training_poll(self, task_id: str) -> TrainingResult:
        return await poll_until_terminal(
            lambda: self.remote.fetch_status(task_id),
            lambda document: evaluate_training_status(document, task_id),
            task_id=task_id,
            interval=self.training_interval,
            max_attempts=self.training_max_attempts,
            sleep=self.sleep,
            label="TrainPoll",
        )

    async def run_generation_poll(self, task_id: str) -> GenerationResult:
        return await poll_until_terminal(
            lambda: self.remote.fetch_status(task_id),
            lambda document: evaluate_generation_status(document, task_id),
            task_id=task_id,
            interval=self.generation_interval,
            max_attempts=self.generation_max_attempts,
            sleep=self.sleep,
            label="GenPoll",
        )


__all__ = [
    "TrainingResult",
    "GenerationResult",
    "poll_until_terminal",
    "evaluate_training_status",
    "evaluate_generation_status",
    "PollingOrchestrator",
]
