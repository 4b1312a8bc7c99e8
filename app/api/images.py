"""
Image API Routes
The user's generated images (flat and per generation) and model training photos.
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_current_user, get_services, get_training_workflow
from app.core.exceptions import JobNotFoundError
from app.models.generation_job import GenerationStatus
from app.models.user import User
from app.schemas.images import (
    DeletedResponse, ImageBatch, ImageBatchesResponse, ImageListResponse, TrainingImagesResponse
)
from app.workers.context import WorkflowServices
from app.workers.training import TrainingWorkflow

router = APIRouter()


def completed_batches(services: WorkflowServices, owner_id: str, limit: int, offset: int):
    jobs = services.store.list_generation_jobs(owner_id, limit=limit, offset=offset, status=GenerationStatus.COMPLETED)
    return [
        ImageBatch(
            generation_id=job.id,
            prompt=job.prompt,
            style_id=job.style_id,
            character_id=job.character_id,
            image_urls=[services.storage.url_for(key) for key in job.result_image_keys or []],
            created_at=job.created_at,
        )
        for job in jobs
    ]


@router.get("", response_model=ImageListResponse)
async def list_images(
    limit: int = 100,
    offset: int = 0,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """All generated images of the user, newest generation first."""
    images = [url for batch in completed_batches(services, user.id, limit, offset) for url in batch.image_urls]
    return ImageListResponse(images=images, count=len(images))


@router.get("/batches", response_model=ImageBatchesResponse)
async def list_image_batches(
    limit: int = 20,
    offset: int = 0,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """Generated images grouped by the generation that produced them."""
    batches = completed_batches(services, user.id, limit, offset)
    return ImageBatchesResponse(batches=batches, count=len(batches))


@router.get("/training/{model_id}", response_model=TrainingImagesResponse)
async def list_training_images(
    model_id: str,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    workflow: TrainingWorkflow = Depends(get_training_workflow),
):
    job = services.store.get_training_job(model_id, owner_id=user.id)
    if not job:
        raise JobNotFoundError(model_id)

    images = [services.storage.url_for(key) for key in await workflow.training_image_keys(job)]
    return TrainingImagesResponse(job_id=model_id, images=images, count=len(images))


@router.delete("/training/{model_id}", response_model=DeletedResponse)
async def delete_training_images(
    model_id: str,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    workflow: TrainingWorkflow = Depends(get_training_workflow),
):
    """Delete a model's training photos; the model itself stays usable."""
    job = services.store.get_training_job(model_id, owner_id=user.id)
    if not job:
        raise JobNotFoundError(model_id)

    deleted = await workflow.delete_training_images(job)
    return DeletedResponse(job_id=model_id, deleted=deleted)
