"""
Camera Capture Model
A photo taken in the app, the prompt derived from it and the generation it fed.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON

from app.core.database import Base


class CaptureStatus:
    ANALYZED = "analyzed"
    GENERATED = "generated"  # a generation job was started from the prompt


class CameraCapture(Base):
    """Analyzed camera photo. Generation progress is read from the linked generation job."""

    __tablename__ = "camera_captures"

    id = Column(String, primary_key=True)  # uuid4
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)

    capture_key = Column(String, nullable=False)
    generated_prompt = Column(Text, nullable=False)
    analysis_metadata = Column(JSON, default=dict)

    status = Column(String, default=CaptureStatus.ANALYZED, nullable=False)
    generation_id = Column(String, ForeignKey("generations.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<CameraCapture(id={self.id}, status={self.status}, generation={self.generation_id})>"
