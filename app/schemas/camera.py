"""
Camera Schemas
Capture analysis results, capture-driven generation and capture history.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class PhotoAnalysisResponse(BaseModel):
    prompt: str
    metadata: Dict[str, Any] = {}


class CaptureResponse(BaseModel):
    capture_id: str
    prompt: str
    metadata: Dict[str, Any] = {}
    generation_id: Optional[str] = None
    generation_error: Optional[str] = None


class CaptureGenerateRequest(BaseModel):
    character_id: Optional[str] = None
    quality: str = Field("basic", pattern=r"^(basic|high|premium)$")
    aspect_ratio: str = Field("1:1", pattern=r"^\d{1,2}:\d{1,2}$")


class CaptureHistoryItem(BaseModel):
    id: str
    prompt: str
    status: str
    capture_url: str
    generation_id: Optional[str] = None
    generation_status: Optional[str] = None
    image_urls: List[str] = []
    created_at: datetime
