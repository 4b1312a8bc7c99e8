"""
Capture Store
Camera capture rows and their link to the generation they started.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models.camera_capture import CameraCapture, CaptureStatus
from app.models.generation_job import GenerationJob

logger = logging.getLogger(__name__)


class CaptureStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def create_capture(
        self,
        owner_id: str,
        capture_key: str,
        prompt: str,
        metadata: Optional[Dict[str, Any]] = None,
        capture_id: Optional[str] = None,
    ) -> CameraCapture:
        db = self.session_factory()
        try:
            capture = CameraCapture(
                id=capture_id or str(uuid.uuid4()),
                owner_id=owner_id,
                capture_key=capture_key,
                generated_prompt=prompt,
                analysis_metadata=metadata or {},
                status=CaptureStatus.ANALYZED,
            )
            db.add(capture)
            db.commit()
            db.refresh(capture)
            db.expunge(capture)
            logger.info(f"[Captures] Capture {capture.id} saved for {owner_id}")
            return capture
        finally:
            db.close()

    def get_capture(self, capture_id: str, owner_id: str) -> Optional[CameraCapture]:
        db = self.session_factory()
        try:
            capture = (
                db.query(CameraCapture)
                .filter(CameraCapture.id == capture_id, CameraCapture.owner_id == owner_id)
                .first()
            )
            if capture is not None:
                db.expunge(capture)
            return capture
        finally:
            db.close()

    def link_generation(self, capture_id: str, generation_id: str):
        db = self.session_factory()
        try:
            db.query(CameraCapture).filter(CameraCapture.id == capture_id).update(
                {CameraCapture.generation_id: generation_id, CameraCapture.status: CaptureStatus.GENERATED},
                synchronize_session=False,
            )
            db.commit()
        finally:
            db.close()

    def list_captures(
        self, owner_id: str, limit: int = 20, offset: int = 0
    ) -> List[Tuple[CameraCapture, Optional[GenerationJob]]]:
        """Newest captures first, each with its generation job (or None)."""
        db = self.session_factory()
        try:
            rows = (
                db.query(CameraCapture, GenerationJob)
                .outerjoin(GenerationJob, CameraCapture.generation_id == GenerationJob.id)
                .filter(CameraCapture.owner_id == owner_id)
                .order_by(CameraCapture.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            for capture, generation in rows:
                db.expunge(capture)
                if generation is not None:
                    db.expunge(generation)
            return [(capture, generation) for capture, generation in rows]
        finally:
            db.close()


__all__ = ["CaptureStore"]
