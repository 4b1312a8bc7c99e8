"""
Job Dispatcher
Starts the detached phase of a workflow once the request has been answered.

InProcessDispatcher (default) runs each phase as an asyncio task on the API
event loop. Jobs still running when the process stops are lost; they are
logged at shutdown. RQDispatcher hands the phase to Redis so a separate
worker process runs it and an API restart does not orphan it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Coroutine, Set

from app.workers.generation import GenerationWorkflow
from app.workers.training import TrainingWorkflow

logger = logging.getLogger(__name__)


class JobDispatcher(ABC):
    """Fire-and-forget launcher for detached workflow phases."""

    mode = "abstract"

    @abstractmethod
    def dispatch_training(self, job_id: str, task_id: str) -> None:
        pass

    @abstractmethod
    def dispatch_generation(self, job_id: str, task_id: str) -> None:
        pass

    async def shutdown(self) -> None:
        pass


class InProcessDispatcher(JobDispatcher):
    """Runs detached phases as asyncio tasks owned by this process."""

    mode = "inprocess"

    def __init__(self, training: TrainingWorkflow, generation: GenerationWorkflow):
        self.training = training
        self.generation = generation
        # Strong references; the event loop only keeps weak ones
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.info(f"[Dispatch] Started {name} ({len(self._tasks)} active)")
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"[Dispatch] {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[Dispatch] {task.get_name()} crashed: {exc!r}", exc_info=exc)

    def dispatch_training(self, job_id: str, task_id: str) -> None:
        self._spawn(self.training.run_detached(job_id, task_id), f"train:{job_id}")

    def dispatch_generation(self, job_id: str, task_id: str) -> None:
        self._spawn(self.generation.run_detached(job_id, task_id), f"generate:{job_id}")

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        names = sorted(task.get_name() for task in self._tasks)
        logger.warning(f"[Dispatch] Stopping with {len(names)} unfinished job(s): {', '.join(names)}")
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)


class RQDispatcher(JobDispatcher):
    """Enqueues detached phases for scripts/run_workers.py."""

    mode = "rq"

    def __init__(self, queue_manager=None):
        if queue_manager is None:
            from app.workers.queue import get_queue_manager
            queue_manager = get_queue_manager()
        self.queues = queue_manager

    def dispatch_training(self, job_id: str, task_id: str) -> None:
        self.queues.enqueue_training(job_id, task_id)

    def dispatch_generation(self, job_id: str, task_id: str) -> None:
        self.queues.enqueue_generation(job_id, task_id)


def build_dispatcher(mode: str, training: TrainingWorkflow, generation: GenerationWorkflow) -> JobDispatcher:
    if mode == "rq":
        logger.info("[Dispatch] Using RQ workers for detached jobs")
        return RQDispatcher()
    logger.info("[Dispatch] Running detached jobs in-process")
    return InProcessDispatcher(training, generation)


__all__ = [
    "JobDispatcher",
    "InProcessDispatcher",
    "RQDispatcher",
    "build_dispatcher",
]
