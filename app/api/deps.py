"""
API Dependencies
Common dependencies for FastAPI routes (auth, workflow services).
"""

import logging
from functools import lru_cache
from fastapi import Depends, Header, HTTPException, Request
from supabase import Client, create_client

from app.core.config import settings
from app.models.user import SubscriptionTier, User
from app.workers.camera import CameraWorkflow
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher
from app.workers.generation import GenerationWorkflow
from app.workers.training import TrainingWorkflow

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase() -> Client:
    """Supabase client used to validate access tokens."""
    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)


def get_services(request: Request) -> WorkflowServices:
    return request.app.state.services


def get_training_workflow(request: Request) -> TrainingWorkflow:
    return request.app.state.training


def get_generation_workflow(request: Request) -> GenerationWorkflow:
    return request.app.state.generation


def get_camera_workflow(request: Request) -> CameraWorkflow:
    return request.app.state.camera


def get_dispatcher(request: Request) -> JobDispatcher:
    return request.app.state.dispatcher


def get_current_user(
    authorization: str = Header(None),
    services: WorkflowServices = Depends(get_services),
) -> User:
    """Validate the Supabase JWT from the Authorization header and load the local user."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid token")

    token = authorization.replace("Bearer ", "", 1)
    try:
        user_response = get_supabase().auth.get_user(token)
    except Exception as e:
        logger.info(f"[Auth] Token rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    auth_user = getattr(user_response, "user", None)
    if auth_user is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    return services.users.get_or_create_user(auth_user.id, phone=getattr(auth_user, "phone", None))


def require_pro_user(user: User = Depends(get_current_user)) -> User:
    if user.subscription_tier != SubscriptionTier.PRO:
        raise HTTPException(status_code=403, detail="This feature is only available to Pro users.")
    return user


def require_free_user(user: User = Depends(get_current_user)) -> User:
    if user.subscription_tier != SubscriptionTier.FREE:
        raise HTTPException(status_code=403, detail="This feature is only available to Free users.")
    return user
