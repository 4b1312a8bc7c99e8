"""
Generation Workflow
Styled image generation: validate the character, submit, then (detached) poll,
copy the results into durable storage, record, count usage and notify.
"""

import logging
from typing import List, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.exceptions import CharacterUnavailableError, InputValidationError, RemoteSubmissionError
from app.models.generation_job import GenerationJob, GenerationQuality
from app.models.user import UsageAction
from app.services.storage import guess_content_type
from app.workers.base import BaseWorkflow, ContentRejected, JobFailure, RetryableError, with_retry
from app.workers.context import WorkflowServices

logger = logging.getLogger(__name__)


def generation_folder_key(owner_id: str, namespace: str) -> str:
    return f"users/{owner_id}/{namespace}/generations"


class GenerationWorkflow(BaseWorkflow):
    """Submit and track one image generation job."""

    TASK_NAME = "image_generation"

    def __init__(self, services: WorkflowServices):
        super().__init__()
        self.services = services

    async def start(
        self,
        owner_id: str,
        prompt: str,
        style_id: str,
        character_id: Optional[str] = None,
        quality: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
    ) -> Tuple[GenerationJob, str]:
        """
        Validate, create the job and submit it.

        Returns:
            (job record in processing state, provider task id)

        Raises:
            InputValidationError, CharacterUnavailableError, RemoteSubmissionError
        """
        services = self.services
        quality = quality or settings.DEFAULT_QUALITY
        aspect_ratio = aspect_ratio or settings.DEFAULT_ASPECT_RATIO

        if not prompt or not prompt.strip():
            raise InputValidationError("Prompt is required")
        if not style_id:
            raise InputValidationError("style_id is required")
        if quality not in GenerationQuality.ALL:
            raise InputValidationError(f"quality must be one of {', '.join(GenerationQuality.ALL)}")

        if character_id:
            await self.ensure_character_available(owner_id, character_id)

        job = services.store.create_generation_job(
            owner_id=owner_id,
            prompt=prompt.strip(),
            style_id=style_id,
            character_id=character_id,
            quality=quality,
            aspect_ratio=aspect_ratio,
        )

        try:
            task_id = await services.remote.submit_generation(
                prompt=job.prompt,
                style_id=style_id,
                character_id=character_id,
                quality=quality,
                aspect_ratio=aspect_ratio,
            )
        except RemoteSubmissionError as e:
            logger.error(f"[Generate] Submission failed for job {job.id}: {e.message}")
            services.store.fail_generation(job.id, e.message)
            raise

        services.users.log_action(
            owner_id,
            UsageAction.GENERATE,
            details={"generation_id": job.id, "task_id": task_id, "style_id": style_id, "character_id": character_id},
        )
        return job, task_id

    async def ensure_character_available(self, owner_id: str, character_id: str):
        """Reject generation for a character the provider no longer knows, failing its training jobs."""
        if await self.services.remote.character_exists(character_id):
            return
        invalidated = self.services.store.fail_trainings_for_character(
            owner_id, character_id, "Character is no longer available on the provider"
        )
        logger.warning(f"[Generate] Character {character_id} unavailable; {invalidated} model(s) marked failed")
        raise CharacterUnavailableError(character_id)

    @with_retry(max_retries=2, retry_delay=1.0, retryable_exceptions=(RetryableError, httpx.TransportError))
    async def _download(self, url: str) -> bytes:
        return await self.services.storage.download_bytes(url)

    async def store_results(self, job: GenerationJob, image_urls: List[str]) -> List[str]:
        """
        Copy provider images into users/<owner>/<character or style>/generations/.

        Returns the stored keys in provider order; images that fail to copy are skipped.
        """
        storage = self.services.storage
        prefix = generation_folder_key(job.owner_id, job.storage_namespace)
        keys = []
        for index, url in enumerate(image_urls):
            try:
                data = await self._download(url)
                content_type = guess_content_type(url)
                key = storage.make_key(prefix, content_type)
                await storage.put_object(key, data, content_type)
            except Exception as e:
                logger.error(f"[Generate] Job {job.id}: could not store image {index + 1}/{len(image_urls)}: {e}")
                continue
            keys.append(key)
        return keys

    async def run_detached(self, job_id: str, task_id: str) -> Optional[GenerationJob]:
        """
        Poll to a terminal state and reconcile the job.

        ContentRejected ends as content_rejected, other poll failures as failed.
        Unexpected errors fail the job and then propagate.
        """
        services = self.services
        self._log_start(job_id=job_id, task_id=task_id)

        job = services.store.get_generation_job(job_id)
        if job is None:
            logger.error(f"[Generate] Job {job_id} vanished before polling")
            return None

        try:
            result = await services.poller.run_generation_poll(task_id)
            self._update_progress(0.7, "Storing images")
            keys = await self.store_results(job, result.image_urls)
            if not keys:
                raise JobFailure("None of the generated images could be stored")
        except JobFailure as e:
            self._log_error(e)
            rejected = isinstance(e, ContentRejected)
            failed = services.store.fail_generation(job_id, str(e), rejected=rejected)
            await services.notifier.generation_failed(job.owner_id, job.id, str(e), rejected=rejected)
            return failed
        except Exception as e:
            self._log_error(e)
            services.store.fail_generation(job_id, f"Internal error: {e}")
            raise

        job = services.store.complete_generation(job_id, keys, result.batch_id)
        services.users.increment_generation_count(job.owner_id, len(keys))

        stored_urls = [services.storage.url_for(key) for key in keys]
        await services.notifier.generation_completed(job.owner_id, job.id, stored_urls)
        self._log_complete(f"Job {job_id} stored {len(keys)}/{len(result.image_urls)} image(s)")
        return job


__all__ = ["GenerationWorkflow", "generation_folder_key"]
