"""
Camera API Routes
Photo analysis, capture (optionally starting a generation right away),
generation from an earlier capture, and capture history.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from app.api.deps import get_camera_workflow, get_current_user, get_dispatcher, get_services
from app.core.exceptions import TwynError
from app.models.user import User
from app.schemas.camera import (
    CaptureGenerateRequest, CaptureHistoryItem, CaptureResponse, PhotoAnalysisResponse
)
from app.schemas.generation import GenerateAccepted
from app.workers.camera import CameraWorkflow
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=PhotoAnalysisResponse)
async def analyze_photo(
    photo: UploadFile = File(...),
    analysis_type: str = Form("standard"),
    user: User = Depends(get_current_user),
    camera: CameraWorkflow = Depends(get_camera_workflow),
):
    """Analyze a photo only; nothing is stored."""
    analysis = await camera.analyze(await photo.read(), photo.content_type, analysis_type)
    return PhotoAnalysisResponse(prompt=analysis.prompt, metadata=analysis.metadata)


@router.post("/capture", response_model=CaptureResponse)
async def capture_photo(
    photo: UploadFile = File(...),
    generate_immediately: bool = Form(False),
    character_id: Optional[str] = Form(None),
    quality: str = Form("basic"),
    aspect_ratio: str = Form("1:1"),
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    camera: CameraWorkflow = Depends(get_camera_workflow),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """
    Store and analyze a camera photo.
    With generate_immediately the derived prompt is submitted as well; a failed
    submission is reported in the response and leaves the capture usable.
    """
    capture = await camera.capture(user.id, await photo.read(), photo.content_type)
    response = CaptureResponse(
        capture_id=capture.id,
        prompt=capture.generated_prompt,
        metadata=capture.analysis_metadata or {},
    )

    if generate_immediately:
        try:
            services.users.ensure_can_generate(user)
            job, task_id = await camera.start_generation(user.id, capture, character_id, quality, aspect_ratio)
        except TwynError as e:
            logger.warning(f"[Camera] Capture {capture.id}: generation not started: {e.message}")
            response.generation_error = e.message
        else:
            dispatcher.dispatch_generation(job.id, task_id)
            response.generation_id = job.id

    return response


@router.post("/captures/{capture_id}/generate", response_model=GenerateAccepted, status_code=status.HTTP_202_ACCEPTED)
async def generate_from_capture(
    capture_id: str,
    request: CaptureGenerateRequest,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    camera: CameraWorkflow = Depends(get_camera_workflow),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Start a generation from the prompt of an earlier capture."""
    capture = services.captures.get_capture(capture_id, user.id)
    if capture is None:
        raise HTTPException(status_code=404, detail="Capture not found")

    services.users.ensure_can_generate(user)
    job, task_id = await camera.start_generation(
        user.id, capture, request.character_id, request.quality, request.aspect_ratio
    )
    dispatcher.dispatch_generation(job.id, task_id)
    return GenerateAccepted(id=job.id, status=job.status)


@router.get("/captures", response_model=List[CaptureHistoryItem])
async def list_captures(
    limit: int = 20,
    offset: int = 0,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """The user's captures, newest first, with the state of the generation each one started."""
    items = []
    for capture, generation in services.captures.list_captures(user.id, limit=limit, offset=offset):
        items.append(CaptureHistoryItem(
            id=capture.id,
            prompt=capture.generated_prompt,
            status=capture.status,
            capture_url=services.storage.url_for(capture.capture_key),
            generation_id=capture.generation_id,
            generation_status=generation.status if generation else None,
            image_urls=[services.storage.url_for(key) for key in ((generation.result_image_keys or []) if generation else [])],
            created_at=capture.created_at,
        ))
    return items
