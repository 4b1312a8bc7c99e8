"""
Database Configuration
SQLAlchemy engine and session factory for job records and user accounts.
SQLite for local development, PostgreSQL in production.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)


def create_db_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # FastAPI runs sync dependencies in a threadpool
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_size=10, max_overflow=20)


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    """Create missing tables."""
    from app.models import User, DeviceToken, UsageLog, TrainingJob, GenerationJob, CameraCapture  # noqa
    try:
        Base.metadata.create_all(bind=bind or engine)
    except SQLAlchemyError as e:
        # Tables may already exist or the filesystem may be read-only
        logger.warning(f"[DB] Could not create database tables: {e}")
        logger.info("[DB] Continuing with existing database...")
