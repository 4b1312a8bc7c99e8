"""
Generation API Routes
Handles image generation requests and job status.
"""

from typing import List
from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_user, get_dispatcher, get_generation_workflow, get_services
from app.core.exceptions import JobNotFoundError
from app.models.generation_job import GenerationJob
from app.models.user import User
from app.schemas.generation import GenerateAccepted, GenerateRequest, GenerationJobResponse
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher
from app.workers.generation import GenerationWorkflow

router = APIRouter()


def to_response(job: GenerationJob, services: WorkflowServices) -> GenerationJobResponse:
    response = GenerationJobResponse.model_validate(job)
    response.image_urls = [services.storage.url_for(key) for key in job.result_image_keys or []]
    return response


@router.post("", response_model=GenerateAccepted, status_code=status.HTTP_202_ACCEPTED)
async def generate_images(
    request: GenerateRequest,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    workflow: GenerationWorkflow = Depends(get_generation_workflow),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """
    Create a new image generation job.
    The provider task is submitted before responding; polling runs in the background.
    """
    services.users.ensure_can_generate(user)

    job, task_id = await workflow.start(
        owner_id=user.id,
        prompt=request.prompt,
        style_id=request.style_id,
        character_id=request.character_id,
        quality=request.quality,
        aspect_ratio=request.aspect_ratio,
    )
    dispatcher.dispatch_generation(job.id, task_id)

    return GenerateAccepted(id=job.id, status=job.status)


@router.get("", response_model=List[GenerationJobResponse])
async def list_generations(
    limit: int = 20,
    offset: int = 0,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """List the user's generations, newest first."""
    jobs = services.store.list_generation_jobs(user.id, limit=limit, offset=offset)
    return [to_response(job, services) for job in jobs]


@router.get("/{job_id}", response_model=GenerationJobResponse)
async def get_generation(
    job_id: str,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """Get generation status and result URLs."""
    job = services.store.get_generation_job(job_id, owner_id=user.id)
    if not job:
        raise JobNotFoundError(job_id)
    return to_response(job, services)
