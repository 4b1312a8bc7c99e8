"""
User Schemas
Profile, tier, device registration and usage schemas.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=8, max_length=512)
    platform: str = Field("ios", pattern=r"^(ios|android|expo)$")


class DeviceTokenStatus(BaseModel):
    has_active_token: bool


class UsageResponse(BaseModel):
    subscription_tier: str
    model_count: int
    monthly_generations: int
    limits: Dict[str, int]
    can_create_model: bool
    can_generate: bool


class ProfileResponse(BaseModel):
    id: str
    phone: Optional[str] = None
    name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    subscription_tier: str
    model_count: int
    monthly_generations: int
    onboarding_completed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    gender: str = Field(..., min_length=1, max_length=32)


class UpgradeRequest(BaseModel):
    """Payment processing is not wired up yet; the payload is only required to be present."""
    payment_info: Dict[str, Any]
