"""
Job Record Store
The only writer of training and generation job statuses.

Every operation opens its own session, touches one row by id and commits.
Transitions are checked against the tables below; an illegal write raises
InvalidJobTransition instead of silently overwriting.

Training:    pending -> training -> completed, any -> failed
Generation:  processing -> completed | failed | content_rejected (all final)
"""

import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.exceptions import InvalidJobTransition, JobNotFoundError
from app.models.generation_job import GenerationJob, GenerationQuality, GenerationStatus
from app.models.training_job import TrainingJob, TrainingStatus

logger = logging.getLogger(__name__)

TRAINING_TRANSITIONS: Dict[str, tuple] = {
    TrainingStatus.PENDING: (TrainingStatus.TRAINING, TrainingStatus.FAILED),
    TrainingStatus.TRAINING: (TrainingStatus.COMPLETED, TrainingStatus.FAILED),
    # A completed character can still be invalidated by the provider
    TrainingStatus.COMPLETED: (TrainingStatus.FAILED,),
    TrainingStatus.FAILED: (),
}

GENERATION_TRANSITIONS: Dict[str, tuple] = {
    GenerationStatus.PROCESSING: (
        GenerationStatus.COMPLETED,
        GenerationStatus.FAILED,
        GenerationStatus.CONTENT_REJECTED,
    ),
    GenerationStatus.COMPLETED: (),
    GenerationStatus.FAILED: (),
    GenerationStatus.CONTENT_REJECTED: (),
}


def new_training_job_id() -> str:
    return str(uuid.uuid4())


def new_generation_job_id(owner_id: str) -> str:
    """gen_<owner>_<epoch millis>_<random suffix>"""
    return f"gen_{owner_id}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class JobStore:
    """Persistence and state machine for TrainingJob / GenerationJob rows."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _commit(self, db: Session, row):
        db.commit()
        db.refresh(row)
        db.expunge(row)
        return row

    def _locked(self, db: Session, model, job_id: str):
        row = db.query(model).filter(model.id == job_id).with_for_update().first()
        if row is None:
            raise JobNotFoundError(job_id)
        return row

    # ------------------------------------------------------------------
    # Training jobs
    # ------------------------------------------------------------------

    def create_training_job(
        self,
        owner_id: str,
        display_name: str,
        input_photo_count: int,
        provisional_folder_key: str,
        job_id: Optional[str] = None,
    ) -> TrainingJob:
        with self._session() as db:
            job = TrainingJob(
                id=job_id or new_training_job_id(),
                owner_id=owner_id,
                display_name=display_name,
                status=TrainingStatus.PENDING,
                input_photo_count=input_photo_count,
                provisional_folder_key=provisional_folder_key,
            )
            db.add(job)
            self._commit(db, job)
            logger.info(f"[JobStore] Training job {job.id} created for {owner_id} ({input_photo_count} photos)")
            return job

    def _transition_training(self, db: Session, job: TrainingJob, target: str):
        if target not in TRAINING_TRANSITIONS.get(job.status, ()):
            raise InvalidJobTransition(job.id, job.status, target)
        logger.info(f"[JobStore] Training {job.id}: {job.status} -> {target}")
        job.status = target

    def mark_training_started(self, job_id: str) -> TrainingJob:
        with self._session() as db:
            job = self._locked(db, TrainingJob, job_id)
            self._transition_training(db, job, TrainingStatus.TRAINING)
            return self._commit(db, job)

    def complete_training(self, job_id: str, external_id: str, thumbnail_url: Optional[str]) -> TrainingJob:
        """Write the provider character id and thumbnail together with the completed status."""
        with self._session() as db:
            job = self._locked(db, TrainingJob, job_id)
            self._transition_training(db, job, TrainingStatus.COMPLETED)
            if job.external_character_id:
                raise InvalidJobTransition(job.id, job.status, TrainingStatus.COMPLETED)
            job.external_character_id = external_id
            job.thumbnail_url = thumbnail_url
            job.error_detail = None
            return self._commit(db, job)

    def fail_training(self, job_id: str, error_detail: str) -> TrainingJob:
        """Force a training job to failed. Already-failed jobs are returned unchanged."""
        with self._session() as db:
            job = self._locked(db, TrainingJob, job_id)
            if job.status == TrainingStatus.FAILED:
                db.expunge(job)
                return job
            self._transition_training(db, job, TrainingStatus.FAILED)
            job.error_detail = error_detail
            return self._commit(db, job)

    def fail_trainings_for_character(self, owner_id: str, external_id: str, error_detail: str) -> int:
        """Mark every non-failed training job of owner that produced external_id as failed."""
        with self._session() as db:
            jobs = (
                db.query(TrainingJob)
                .filter(
                    TrainingJob.owner_id == owner_id,
                    TrainingJob.external_character_id == external_id,
                    TrainingJob.status != TrainingStatus.FAILED,
                )
                .with_for_update()
                .all()
            )
            for job in jobs:
                self._transition_training(db, job, TrainingStatus.FAILED)
                job.error_detail = error_detail
            db.commit()
            if jobs:
                logger.warning(f"[JobStore] Invalidated {len(jobs)} training job(s) for character {external_id}")
            return len(jobs)

    def get_training_job(self, job_id: str, owner_id: Optional[str] = None) -> Optional[TrainingJob]:
        with self._session() as db:
            query = db.query(TrainingJob).filter(TrainingJob.id == job_id)
            if owner_id is not None:
                query = query.filter(TrainingJob.owner_id == owner_id)
            return query.first()

    def list_training_jobs(self, owner_id: str, limit: int = 50, offset: int = 0) -> List[TrainingJob]:
        with self._session() as db:
            return (
                db.query(TrainingJob)
                .filter(TrainingJob.owner_id == owner_id)
                .order_by(TrainingJob.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )

    def delete_training_job(self, job_id: str, owner_id: str) -> TrainingJob:
        """Remove a finished training job of owner. Jobs still in flight are refused."""
        with self._session() as db:
            job = (
                db.query(TrainingJob)
                .filter(TrainingJob.id == job_id, TrainingJob.owner_id == owner_id)
                .with_for_update()
                .first()
            )
            if job is None:
                raise JobNotFoundError(job_id)
            if not job.is_terminal:
                raise InvalidJobTransition(job.id, job.status, "deleted")
            db.expunge(job)
            db.query(TrainingJob).filter(TrainingJob.id == job_id).delete(synchronize_session=False)
            db.commit()
            logger.info(f"[JobStore] Training job {job_id} deleted")
            return job

    # ------------------------------------------------------------------
    # Generation jobs
    # ------------------------------------------------------------------

    def create_generation_job(
        self,
        owner_id: str,
        prompt: str,
        style_id: str,
        character_id: Optional[str] = None,
        quality: str = GenerationQuality.BASIC,
        aspect_ratio: str = "3:4",
    ) -> GenerationJob:
        with self._session() as db:
            job = GenerationJob(
                id=new_generation_job_id(owner_id),
                owner_id=owner_id,
                prompt=prompt,
                style_id=style_id,
                character_id=character_id,
                quality=quality,
                aspect_ratio=aspect_ratio,
                status=GenerationStatus.PROCESSING,
                result_image_keys=[],
            )
            db.add(job)
            self._commit(db, job)
            logger.info(f"[JobStore] Generation job {job.id} created (style={style_id}, character={character_id})")
            return job

    def _transition_generation(self, db: Session, job: GenerationJob, target: str):
        if target not in GENERATION_TRANSITIONS.get(job.status, ()):
            raise InvalidJobTransition(job.id, job.status, target)
        logger.info(f"[JobStore] Generation {job.id}: {job.status} -> {target}")
        job.status = target

    def complete_generation(
        self,
        job_id: str,
        image_keys: Sequence[str],
        batch_id: Optional[str] = None,
    ) -> GenerationJob:
        if not image_keys:
            raise ValueError(f"Generation {job_id} cannot complete without result images")

        with self._session() as db:
            job = self._locked(db, GenerationJob, job_id)
            self._transition_generation(db, job, GenerationStatus.COMPLETED)
            job.result_image_keys = list(image_keys)
            if batch_id:
                job.remote_batch_id = batch_id
            job.error_detail = None
            job.completed_at = datetime.utcnow()
            return self._commit(db, job)

    def fail_generation(self, job_id: str, error_detail: str, rejected: bool = False) -> GenerationJob:
        """Move a processing generation to failed, or content_rejected when rejected is set."""
        target = GenerationStatus.CONTENT_REJECTED if rejected else GenerationStatus.FAILED
        with self._session() as db:
            job = self._locked(db, GenerationJob, job_id)
            self._transition_generation(db, job, target)
            job.result_image_keys = []
            job.error_detail = error_detail
            job.completed_at = datetime.utcnow()
            return self._commit(db, job)

    def get_generation_job(self, job_id: str, owner_id: Optional[str] = None) -> Optional[GenerationJob]:
        with self._session() as db:
            query = db.query(GenerationJob).filter(GenerationJob.id == job_id)
            if owner_id is not None:
                query = query.filter(GenerationJob.owner_id == owner_id)
            return query.first()

    def list_generation_jobs(
        self,
        owner_id: str,
        limit: int = 50,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> List[GenerationJob]:
        with self._session() as db:
            query = db.query(GenerationJob).filter(GenerationJob.owner_id == owner_id)
            if status is not None:
                query = query.filter(GenerationJob.status == status)
            return (
                query
                .order_by(GenerationJob.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )


__all__ = [
    "JobStore",
    "TRAINING_TRANSITIONS",
    "GENERATION_TRANSITIONS",
    "new_training_job_id",
    "new_generation_job_id",
]
