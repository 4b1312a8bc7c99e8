"""
Training Workflow
Character training: provision photos, submit, then (detached) poll, record,
reorganize blobs and notify.

Two entry points feed the same detached phase:
    start_from_uploads  photos arrive with the request
    start_from_folder   photos already sit in an onboarding temp_ folder
"""

import asyncio
import logging
import time
import uuid
from typing import List, Optional, Tuple

from app.core.config import settings
from app.core.exceptions import (
    InputValidationError, InvalidJobTransition, JobNotFoundError, RemoteSubmissionError, StorageError
)
from app.models.training_job import TrainingJob
from app.models.user import UsageAction
from app.workers.base import BaseWorkflow, JobFailure
from app.workers.context import WorkflowServices

logger = logging.getLogger(__name__)

# (bytes, content type)
Photo = Tuple[bytes, str]


def new_temp_folder_name() -> str:
    """temp_<epoch millis>_<8 hex chars>"""
    return f"temp_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def provisional_folder_key(owner_id: str, folder_name: str) -> str:
    return f"users/{owner_id}/{folder_name}/"


def final_folder_key(owner_id: str, external_id: str) -> str:
    return f"users/{owner_id}/{external_id}/"


class TrainingWorkflow(BaseWorkflow):
    """Submit and track one character training job."""

    TASK_NAME = "character_training"

    def __init__(self, services: WorkflowServices):
        super().__init__()
        self.services = services

    async def store_photos(self, owner_id: str, folder_name: str, photos: List[Photo]) -> List[str]:
        """Upload photos to users/<owner>/<folder>/training/ concurrently; returns URLs in input order."""
        prefix = provisional_folder_key(owner_id, folder_name) + "training"
        try:
            return list(await asyncio.gather(*(
                self.services.storage.put(data, prefix, content_type or "image/jpeg")
                for data, content_type in photos
            )))
        except Exception as e:
            logger.error(f"[Train] Storing photos under {prefix} failed: {e}")
            raise StorageError(f"Failed to store training photos: {e}") from e

    async def start_from_uploads(
        self,
        owner_id: str,
        display_name: str,
        photos: List[Photo],
    ) -> Tuple[TrainingJob, str]:
        """
        Create the job, upload the photos and submit to the provider.

        Returns:
            (job record in pending state, provider task id)

        Raises:
            InputValidationError, StorageError, RemoteSubmissionError
        """
        if not display_name or not display_name.strip():
            raise InputValidationError("Model name is required")
        if not settings.TRAINING_MIN_PHOTOS <= len(photos) <= settings.TRAINING_MAX_PHOTOS:
            raise InputValidationError(
                f"Training needs {settings.TRAINING_MIN_PHOTOS}-{settings.TRAINING_MAX_PHOTOS} photos, got {len(photos)}"
            )

        folder_name = new_temp_folder_name()
        job = self.services.store.create_training_job(
            owner_id=owner_id,
            display_name=display_name.strip(),
            input_photo_count=len(photos),
            provisional_folder_key=provisional_folder_key(owner_id, folder_name),
        )

        try:
            image_urls = await self.store_photos(owner_id, folder_name, photos)
        except StorageError as e:
            self.services.store.fail_training(job.id, e.message)
            raise

        logger.info(f"[Train] Uploaded {len(image_urls)} photos for job {job.id} to {job.provisional_folder_key}")
        return await self._submit(job, image_urls)

    async def start_from_folder(self, owner_id: str, display_name: str, folder_name: str) -> Tuple[TrainingJob, str]:
        """Train from images already stored under users/<owner>/<folder_name>/training/."""
        if not display_name or not display_name.strip():
            raise InputValidationError("Model name is required")
        if not folder_name.startswith("temp_") or "/" in folder_name:
            raise InputValidationError(f"Invalid temp folder '{folder_name}'")

        provisional = provisional_folder_key(owner_id, folder_name)
        keys = await self.services.storage.list_keys(provisional + "training/")
        if not keys:
            raise InputValidationError(f"No training images found in {folder_name}")

        job = self.services.store.create_training_job(
            owner_id=owner_id,
            display_name=display_name.strip(),
            input_photo_count=len(keys),
            provisional_folder_key=provisional,
        )
        image_urls = [self.services.storage.url_for(key) for key in keys]
        logger.info(f"[Train] Job {job.id} reuses {len(keys)} onboarding images from {provisional}")
        return await self._submit(job, image_urls)

    async def _submit(self, job: TrainingJob, image_urls: List[str]) -> Tuple[TrainingJob, str]:
        try:
            task_id = await self.services.remote.submit_training(job.display_name, image_urls)
        except RemoteSubmissionError as e:
            logger.error(f"[Train] Submission failed for job {job.id}: {e.message}")
            self.services.store.fail_training(job.id, e.message)
            raise

        self.services.users.increment_model_count(job.owner_id)
        self.services.users.log_action(
            job.owner_id,
            UsageAction.TRAIN,
            details={"model_id": job.id, "task_id": task_id, "photo_count": job.input_photo_count},
        )
        return job, task_id

    async def training_image_keys(self, job: TrainingJob) -> List[str]:
        keys = []
        for prefix in job.training_image_prefixes:
            keys.extend(await self.services.storage.list_keys(prefix))
        return keys

    async def delete_training_images(self, job: TrainingJob) -> int:
        """Remove the model's training photos; the job and its generations stay."""
        if not job.is_terminal:
            raise InvalidJobTransition(job.id, job.status, "images_deleted")
        try:
            deleted = 0
            for prefix in job.training_image_prefixes:
                deleted += await self.services.storage.delete_prefix(prefix)
        except Exception as e:
            logger.error(f"[Train] Deleting training images of job {job.id} failed: {e}")
            raise StorageError(f"Failed to delete training images: {e}") from e
        logger.info(f"[Train] Deleted {deleted} training image(s) of job {job.id}")
        return deleted

    async def delete_model(self, owner_id: str, job_id: str) -> int:
        """
        Delete a finished model: its training photos, then its record.

        Returns:
            Number of deleted files

        Raises:
            JobNotFoundError, InvalidJobTransition (still training), StorageError
        """
        job = self.services.store.get_training_job(job_id, owner_id=owner_id)
        if job is None:
            raise JobNotFoundError(job_id)

        deleted = await self.delete_training_images(job)
        self.services.store.delete_training_job(job_id, owner_id)
        self.services.users.log_action(
            owner_id,
            UsageAction.TRAIN,
            count=0,
            details={"model_id": job_id, "action": "delete", "deleted_files": deleted},
        )
        return deleted

    async def run_detached(self, job_id: str, task_id: str) -> Optional[TrainingJob]:
        """
        Poll the provider task to a terminal state and reconcile the job.

        Provider failures and timeouts end as a failed job plus a push; they are
        not raised. Anything unexpected also fails the job, then propagates.
        """
        services = self.services
        self._log_start(job_id=job_id, task_id=task_id)

        job = services.store.mark_training_started(job_id)
        self._update_progress(0.1, "Training on provider")

        try:
            result = await services.poller.run_training_poll(task_id)
        except JobFailure as e:
            self._log_error(e)
            failed = services.store.fail_training(job_id, str(e))
            await services.notifier.training_failed(job.owner_id, job.id, job.display_name, str(e))
            return failed
        except Exception as e:
            self._log_error(e)
            services.store.fail_training(job_id, f"Internal error: {e}")
            raise

        job = services.store.complete_training(job_id, result.external_id, result.thumbnail_url)
        self._update_progress(0.8, "Organizing files")

        outcome = await services.reorganizer.reorganize(
            job.owner_id,
            job.provisional_folder_key,
            final_folder_key(job.owner_id, result.external_id),
        )
        if not outcome.complete:
            logger.warning(f"[Train] Job {job_id}: {len(outcome.failures)} file(s) stayed in {job.provisional_folder_key}")

        await services.notifier.training_completed(job.owner_id, job.id, job.display_name, result.external_id)
        self._log_complete(f"Job {job_id} -> character {result.external_id}, moved {outcome.moved} file(s)")
        return job


__all__ = [
    "TrainingWorkflow",
    "new_temp_folder_name",
    "provisional_folder_key",
    "final_folder_key",
]
