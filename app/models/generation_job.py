"""
Generation Job Model
One row per styled image generation request.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON

from app.core.database import Base


class GenerationStatus:
    """Generation job status constants."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CONTENT_REJECTED = "content_rejected"  # Provider flagged the output (nsfw)

    ALL = (PROCESSING, COMPLETED, FAILED, CONTENT_REJECTED)
    TERMINAL = (COMPLETED, FAILED, CONTENT_REJECTED)


class GenerationQuality:
    BASIC = "basic"
    HIGH = "high"

    ALL = (BASIC, HIGH)


class GenerationJob(Base):
    """Styled image generation job."""

    __tablename__ = "generations"

    id = Column(String, primary_key=True)  # gen_<owner>_<millis>_<rand>
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    # Request
    prompt = Column(Text, nullable=False)
    style_id = Column(String, nullable=False)
    character_id = Column(String, nullable=True)  # provider character id; None = style only
    quality = Column(String, default=GenerationQuality.BASIC, nullable=False)
    aspect_ratio = Column(String, default="3:4", nullable=False)

    # Status
    status = Column(String, default=GenerationStatus.PROCESSING, nullable=False, index=True)
    error_detail = Column(Text, nullable=True)

    # Result: ordered blob keys, non-empty only when completed
    result_image_keys = Column(JSON, default=list, nullable=False)
    remote_batch_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<GenerationJob(id={self.id}, status={self.status}, images={len(self.result_image_keys or [])})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in GenerationStatus.TERMINAL

    @property
    def storage_namespace(self) -> str:
        """Folder under the owner that receives the generated images."""
        return self.character_id or self.style_id
