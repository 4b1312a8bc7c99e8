"""
Image Schemas
Gallery listings of generated images and model training photos.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class ImageListResponse(BaseModel):
    images: List[str]
    count: int


class ImageBatch(BaseModel):
    """The stored images of one completed generation."""
    generation_id: str
    prompt: str
    style_id: str
    character_id: Optional[str] = None
    image_urls: List[str]
    created_at: datetime


class ImageBatchesResponse(BaseModel):
    batches: List[ImageBatch]
    count: int


class TrainingImagesResponse(BaseModel):
    job_id: str
    images: List[str]
    count: int


class DeletedResponse(BaseModel):
    job_id: str
    deleted: int
