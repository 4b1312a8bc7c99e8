"""
Queue Management Utilities
RQ queue wrappers for the durable dispatch mode.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from rq import Queue
from rq.job import Job

from app.core.config import settings
from app.core.redis import Queues, get_redis

logger = logging.getLogger(__name__)


class QueueManager:
    """
    Enqueues detached workflow phases onto Redis.

    Poll tasks are not retried by RQ: a retry would re-run a poll loop for a
    job that was already reconciled.
    """

    def __init__(self, connection=None):
        self._queues: Dict[str, Queue] = {}
        self._redis = connection

    @property
    def redis(self):
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def get_queue(self, queue_name: str = Queues.DEFAULT) -> Queue:
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(name=queue_name, connection=self.redis)
            logger.debug(f"Created queue: {queue_name}")
        return self._queues[queue_name]

    def enqueue_training(self, job_id: str, task_id: str) -> Job:
        """
        Enqueue the detached phase of a training job.

        Args:
            job_id: TrainingJob id
            task_id: Provider task id returned by the submit call

        Returns:
            RQ Job instance
        """
        from app.workers.tasks import run_training_task

        job = self.get_queue(Queues.TRAINING).enqueue(
            run_training_task,
            kwargs={"job_id": job_id, "task_id": task_id},
            job_timeout=settings.training_job_timeout,
            job_id=f"train-{job_id}",
            meta={"type": "training", "job_id": job_id, "created_at": datetime.utcnow().isoformat()},
        )
        logger.info(f"[Queue] Enqueued training job {job_id} (task {task_id})")
        return job

    def enqueue_generation(self, job_id: str, task_id: str) -> Job:
        from app.workers.tasks import run_generation_task

        job = self.get_queue(Queues.GENERATION).enqueue(
            run_generation_task,
            kwargs={"job_id": job_id, "task_id": task_id},
            job_timeout=settings.generation_job_timeout,
            job_id=f"generate-{job_id}",
            meta={"type": "generation", "job_id": job_id, "created_at": datetime.utcnow().isoformat()},
        )
        logger.info(f"[Queue] Enqueued generation job {job_id} (task {task_id})")
        return job

    def get_queue_stats(self) -> Dict[str, Dict[str, int]]:
        stats = {}
        for name in Queues.ALL:
            queue = self.get_queue(name)
            stats[name] = {
                "queued": len(queue),
                "started": queue.started_job_registry.count,
                "finished": queue.finished_job_registry.count,
                "failed": queue.failed_job_registry.count,
            }
        return stats


# Singleton instance
_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    """Get singleton QueueManager instance."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager


# Export all
__all__ = [
    "QueueManager",
    "get_queue_manager",
]
