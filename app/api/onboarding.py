"""
Onboarding API Routes
Photo upload during onboarding (one at a time or as a batch), and training from those photos later.
"""

import re
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.api.deps import get_current_user, get_dispatcher, get_services, get_training_workflow, require_free_user
from app.api.training import read_photos
from app.core.config import settings
from app.core.exceptions import InputValidationError, StorageError
from app.models.user import UsageAction, User
from app.schemas.training import (
    BatchUploadResponse, SingleUploadResponse, TempFolderResponse, TrainFromFolderRequest, TrainingAccepted
)
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher
from app.workers.training import TrainingWorkflow, new_temp_folder_name, provisional_folder_key

router = APIRouter()

TEMP_FOLDER_PATTERN = re.compile(r"^temp_[A-Za-z0-9_]+$")


@router.post("/images", response_model=SingleUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    file: UploadFile = File(...),
    temp_folder: Optional[str] = Form(None),
    user: User = Depends(require_free_user),
    services: WorkflowServices = Depends(get_services),
):
    """Add one onboarding photo to temp_folder, or to a new temp_ folder when none is given."""
    if temp_folder is None:
        temp_folder = new_temp_folder_name()
    elif not TEMP_FOLDER_PATTERN.match(temp_folder):
        raise InputValidationError(f"Invalid temp folder '{temp_folder}'")

    content_type = file.content_type or "image/jpeg"
    if not content_type.startswith("image/"):
        raise InputValidationError(f"{file.filename or 'file'} is not an image ({content_type})")

    try:
        image_url = await services.storage.upload_file(file, provisional_folder_key(user.id, temp_folder) + "training")
    except Exception as e:
        raise StorageError(f"Failed to store onboarding photo: {e}") from e

    services.users.log_action(user.id, UsageAction.UPLOAD, details={"temp_folder": temp_folder, "image_url": image_url})
    return SingleUploadResponse(temp_folder=temp_folder, image_url=image_url)


@router.post("/batch-upload", response_model=BatchUploadResponse, status_code=status.HTTP_201_CREATED)
async def batch_upload(
    photos: List[UploadFile] = File(...),
    user: User = Depends(require_free_user),
    services: WorkflowServices = Depends(get_services),
    workflow: TrainingWorkflow = Depends(get_training_workflow),
):
    """Store onboarding photos in a fresh temp_ folder for later training."""
    if not settings.ONBOARDING_MIN_PHOTOS <= len(photos) <= settings.ONBOARDING_MAX_PHOTOS:
        raise InputValidationError(
            f"Please upload {settings.ONBOARDING_MIN_PHOTOS}-{settings.ONBOARDING_MAX_PHOTOS} photos, got {len(photos)}"
        )

    folder_name = new_temp_folder_name()
    image_urls = await workflow.store_photos(user.id, folder_name, await read_photos(photos))

    services.users.log_action(user.id, UsageAction.UPLOAD, count=len(image_urls), details={"temp_folder": folder_name})
    return BatchUploadResponse(temp_folder=folder_name, image_urls=image_urls, count=len(image_urls))


@router.get("/temp-folder", response_model=TempFolderResponse)
async def find_temp_folder(
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """Find the user's most recent onboarding folder that still holds training images."""
    folders = await services.storage.list_folders(f"users/{user.id}/temp_")

    # temp_<millis>_<rand> sorts chronologically; newest first
    for folder_name in sorted(folders, reverse=True):
        keys = await services.storage.list_keys(provisional_folder_key(user.id, folder_name) + "training/")
        if keys:
            return TempFolderResponse(found=True, temp_folder=folder_name, image_count=len(keys))

    return TempFolderResponse(found=False)


@router.post("/train", response_model=TrainingAccepted, status_code=status.HTTP_202_ACCEPTED)
async def train_from_folder(
    request: TrainFromFolderRequest,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
    workflow: TrainingWorkflow = Depends(get_training_workflow),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Start training from a previously uploaded onboarding folder."""
    services.users.ensure_can_create_model(user)

    job, task_id = await workflow.start_from_folder(user.id, request.name, request.temp_folder)
    dispatcher.dispatch_training(job.id, task_id)

    return TrainingAccepted(
        id=job.id,
        status=job.status,
        display_name=job.display_name,
        input_photo_count=job.input_photo_count,
    )
