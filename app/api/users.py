"""
User API Routes
Profile, tier upgrade, onboarding flag, usage summary, the user's models and push device registration.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_current_user, get_services
from app.models.user import User
from app.schemas.training import TrainingJobResponse
from app.schemas.user import (
    DeviceTokenRequest, DeviceTokenStatus, ProfileResponse, ProfileUpdate, UpgradeRequest, UsageResponse
)
from app.workers.context import WorkflowServices

router = APIRouter()


def found(user):
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/me/profile", response_model=ProfileResponse)
async def get_profile(user: User = Depends(get_current_user)):
    return user


@router.put("/me/profile", response_model=ProfileResponse)
async def update_profile(
    request: ProfileUpdate,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    return found(services.users.update_profile(user.id, request.name.strip(), request.date_of_birth, request.gender))


@router.post("/me/upgrade", response_model=ProfileResponse)
async def upgrade(
    request: UpgradeRequest,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """Move the user to the Pro tier."""
    return found(services.users.upgrade(user.id))


@router.post("/me/complete-onboarding", response_model=ProfileResponse)
async def complete_onboarding(
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    return found(services.users.complete_onboarding(user.id))


@router.get("/me/usage", response_model=UsageResponse)
async def get_usage(
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    return services.users.usage_summary(user)


@router.get("/me/models", response_model=List[TrainingJobResponse])
async def list_models(
    limit: int = 50,
    offset: int = 0,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """List the user's trained and in-progress models."""
    return services.store.list_training_jobs(user.id, limit=limit, offset=offset)


@router.post("/me/device-token", response_model=DeviceTokenStatus)
async def register_device_token(
    request: DeviceTokenRequest,
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    """Register (or re-activate) a push token for this device."""
    services.users.register_device_token(user.id, request.token, request.platform)
    return DeviceTokenStatus(has_active_token=True)


@router.get("/me/device-token", response_model=DeviceTokenStatus)
async def get_device_token_status(
    user: User = Depends(get_current_user),
    services: WorkflowServices = Depends(get_services),
):
    return DeviceTokenStatus(has_active_token=services.users.has_active_device_token(user.id))
