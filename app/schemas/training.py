"""
Training Schemas
Pydantic models for training and onboarding API requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class TrainingAccepted(BaseModel):
    """Returned as soon as the provider accepted the training task."""
    id: str
    status: str
    display_name: str
    input_photo_count: int
    message: str = "Training started. You'll get a notification when your model is ready."


class TrainingJobResponse(BaseModel):
    """Schema for a training job (a user's model)."""
    id: str
    display_name: str
    status: str
    input_photo_count: int
    external_character_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error_detail: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BatchUploadResponse(BaseModel):
    temp_folder: str
    image_urls: List[str]
    count: int


class TempFolderResponse(BaseModel):
    found: bool
    temp_folder: Optional[str] = None
    image_count: int = 0


class TrainFromFolderRequest(BaseModel):
    """Start training from images uploaded during onboarding."""
    name: str = Field(..., min_length=1, max_length=100)
    temp_folder: str = Field(..., pattern=r"^temp_[A-Za-z0-9_]+$")


class SingleUploadResponse(BaseModel):
    temp_folder: str
    image_url: str
