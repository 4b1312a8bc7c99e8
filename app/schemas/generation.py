"""
Generation Schemas
Pydantic models for generation API requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Schema for generation request."""
    prompt: str = Field(..., min_length=1, max_length=2000)
    style_id: str = Field(..., min_length=1)
    character_id: Optional[str] = None  # provider character id of a completed model
    quality: str = Field("basic", pattern=r"^(basic|high)$")
    aspect_ratio: str = Field("3:4", pattern=r"^\d{1,2}:\d{1,2}$")


class GenerateAccepted(BaseModel):
    """Schema for generation response."""
    id: str
    status: str
    message: str = "Generation started"


class GenerationJobResponse(BaseModel):
    id: str
    prompt: str
    style_id: str
    character_id: Optional[str] = None
    quality: str
    aspect_ratio: str
    status: str
    result_image_keys: List[str] = []
    image_urls: List[str] = []
    error_detail: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
