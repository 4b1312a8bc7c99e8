"""
Camera Workflow
A captured photo is stored, described by the vision model and, on request,
turned into a generation job with the derived prompt. The generation then
runs through the regular detached generation phase.
"""

import logging
import uuid
from typing import Optional, Tuple

from app.core.config import settings
from app.core.exceptions import InputValidationError, StorageError
from app.models.camera_capture import CameraCapture
from app.models.generation_job import GenerationJob, GenerationQuality
from app.models.user import UsageAction
from app.services.photo_analysis import PhotoAnalysis
from app.workers.context import WorkflowServices
from app.workers.generation import GenerationWorkflow

logger = logging.getLogger(__name__)


def capture_key(owner_id: str, capture_id: str) -> str:
    return f"users/{owner_id}/camera-captures/{capture_id}.jpg"


def check_photo(data: bytes, content_type: Optional[str]):
    if content_type and not content_type.startswith("image/"):
        raise InputValidationError("Only image files are allowed")
    if not data:
        raise InputValidationError("No photo provided. Please capture or select a photo.")
    if len(data) > settings.CAMERA_MAX_PHOTO_BYTES:
        raise InputValidationError(f"Photo exceeds {settings.CAMERA_MAX_PHOTO_BYTES // (1024 * 1024)}MB")


class CameraWorkflow:
    def __init__(self, services: WorkflowServices, generation: GenerationWorkflow):
        self.services = services
        self.generation = generation

    async def analyze(self, data: bytes, content_type: Optional[str], analysis_type: str = "standard") -> PhotoAnalysis:
        """Describe a photo without storing anything."""
        check_photo(data, content_type)
        return await self.services.analyzer.analyze(data, analysis_type)

    async def capture(self, owner_id: str, data: bytes, content_type: Optional[str]) -> CameraCapture:
        """Store the photo, analyze it and record the capture."""
        check_photo(data, content_type)
        capture_id = str(uuid.uuid4())
        key = capture_key(owner_id, capture_id)

        try:
            await self.services.storage.put_object(key, data, "image/jpeg")
        except Exception as e:
            logger.error(f"[Camera] Storing capture {capture_id} failed: {e}")
            raise StorageError(f"Failed to store photo: {e}") from e

        analysis = await self.services.analyzer.analyze(data)
        capture = self.services.captures.create_capture(
            owner_id, key, analysis.prompt, analysis.metadata, capture_id=capture_id
        )
        self.services.users.log_action(owner_id, UsageAction.UPLOAD, details={"capture_id": capture_id})
        return capture

    async def start_generation(
        self,
        owner_id: str,
        capture: CameraCapture,
        character_id: Optional[str] = None,
        quality: Optional[str] = None,
        aspect_ratio: Optional[str] = None,
    ) -> Tuple[GenerationJob, str]:
        """
        Submit a generation with the capture's prompt and the camera style.

        Returns:
            (generation job in processing state, provider task id)
        """
        if quality == "premium":
            quality = GenerationQuality.HIGH
        job, task_id = await self.generation.start(
            owner_id=owner_id,
            prompt=capture.generated_prompt,
            style_id=settings.CAMERA_STYLE_ID,
            character_id=character_id,
            quality=quality,
            aspect_ratio=aspect_ratio,
        )
        self.services.captures.link_generation(capture.id, job.id)
        logger.info(f"[Camera] Capture {capture.id} -> generation {job.id}")
        return job, task_id


__all__ = ["CameraWorkflow", "capture_key"]
