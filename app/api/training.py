"""
Training API Routes
Starts character training from uploaded photos and reports job status.
"""

from typing import List
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.deps import get_current_user, get_dispatcher, get_services, get_training_workflow
from app.core.exceptions import InputValidationError, JobNotFoundError
from app.models.user import User
from app.schemas.training import TrainingAccepted, TrainingJobResponse
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher
from app.workers.training import TrainingWorkflow

router = APIRouter()


async def read_photos(photos: List[UploadFile]):
    """Read multipart images into (bytes, content type) pairs."""
    result = []
    for photo in photos:
        content_type = photo.content_type or "image/jpeg"
        if not content_type.startswith("image/"):
            raise InputValidationError(f"{photo.filename or 'file'} is not an image ({content_type})")
        data = await photo.read()
        if not data:
            raise InputValidationError(f"{photo.filename or 'file'} is empty")
        result.append((data, content_type))
    return result


@router.post("", response_model=TrainingAccepted, status_code=status.HTTP_202_ACCEPTED)
async def start_training(
    name: str = Form(...),
    photos: List[UploadFile] = File(...),
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    workflow: TrainingWorkflow = Depends(get_training_workflow),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """
    Upload training photos and start character training.
    Returns immediately with the job id; training continues in the background.
    """
    services.users.ensure_can_create_model(user)

    job, task_id = await workflow.start_from_uploads(user.id, name, await read_photos(photos))
    dispatcher.dispatch_training(job.id, task_id)

    return TrainingAccepted(
        id=job.id,
        status=job.status,
        display_name=job.display_name,
        input_photo_count=job.input_photo_count,
    )


@router.get("/{job_id}", response_model=TrainingJobResponse)
async def get_training_job(
    job_id: str,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """Get training job status."""
    job = services.store.get_training_job(job_id, owner_id=user.id)
    if not job:
        raise JobNotFoundError(job_id)
    return job
