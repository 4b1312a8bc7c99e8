"""
RQ Task Definitions
Entry points executed by scripts/run_workers.py when JOB_DISPATCH_MODE=rq.

Each task builds its own services, runs one detached workflow phase on a fresh
event loop and closes the HTTP clients afterwards.
"""

import asyncio
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Helper to run async code in sync context (for RQ)."""
    return asyncio.run(coro)


def run_training_task(job_id: str, task_id: str) -> Dict[str, Any]:
    """
    RQ task for the detached phase of character training.

    Args:
        job_id: TrainingJob id
        task_id: Provider task id

    Returns:
        Dict with the final job status
    """
    logger.info(f"[Task] Starting training poll: {job_id} (task {task_id})")

    async def _train():
        from app.workers.context import WorkflowServices
        from app.workers.training import TrainingWorkflow

        services = WorkflowServices.build()
        try:
            job = await TrainingWorkflow(services).run_detached(job_id, task_id)
            return {
                "job_id": job_id,
                "status": job.status if job else None,
                "character_id": job.external_character_id if job else None,
            }
        finally:
            await services.aclose()

    return _run_async(_train())


def run_generation_task(job_id: str, task_id: str) -> Dict[str, Any]:
    """RQ task for the detached phase of image generation."""
    logger.info(f"[Task] Starting generation poll: {job_id} (task {task_id})")

    async def _generate():
        from app.workers.context import WorkflowServices
        from app.workers.generation import GenerationWorkflow

        services = WorkflowServices.build()
        try:
            job = await GenerationWorkflow(services).run_detached(job_id, task_id)
            return {
                "job_id": job_id,
                "status": job.status if job else None,
                "images": len(job.result_image_keys) if job else 0,
            }
        finally:
            await services.aclose()

    return _run_async(_generate())


__all__ = ["run_training_task", "run_generation_task"]
