"""
Twyn API - Character Training & Styled Generation
FastAPI Backend Entry Point
"""

import io
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import TwynError, generic_exception_handler, twyn_exception_handler
from app.core.logging_config import setup_logging
from app.api import camera, generate, images, models, onboarding, training, users
from app.services.storage import guess_content_type
from app.workers.camera import CameraWorkflow
from app.workers.context import WorkflowServices
from app.workers.dispatcher import JobDispatcher, build_dispatcher
from app.workers.generation import GenerationWorkflow
from app.workers.training import TrainingWorkflow

logger = logging.getLogger(__name__)

VERSION = "0.3.0"


def create_app(
    services: Optional[WorkflowServices] = None,
    dispatcher: Optional[JobDispatcher] = None,
    create_tables: bool = True,
) -> FastAPI:
    """
    Build the API.

    Args:
        services: Pre-built services (tests); built from settings when omitted
        dispatcher: Pre-built dispatcher (tests); chosen by JOB_DISPATCH_MODE when omitted
        create_tables: Run init_db() on startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        setup_logging()
        logger.info(f"Starting {settings.APP_NAME}...")
        if create_tables:
            init_db()

        app.state.services = services or WorkflowServices.build()
        app.state.training = TrainingWorkflow(app.state.services)
        app.state.generation = GenerationWorkflow(app.state.services)
        app.state.camera = CameraWorkflow(app.state.services, app.state.generation)
        app.state.dispatcher = dispatcher or build_dispatcher(
            settings.JOB_DISPATCH_MODE, app.state.training, app.state.generation
        )
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await app.state.dispatcher.shutdown()
        if services is None:
            await app.state.services.aclose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Character training and styled image generation for the Twyn mobile app",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_exception_handler(TwynError, twyn_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(training.router, prefix="/api/v1/train", tags=["Training"])
    app.include_router(onboarding.router, prefix="/api/v1/onboarding", tags=["Onboarding"])
    app.include_router(generate.router, prefix="/api/v1/generate", tags=["Image Generation"])
    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(models.router, prefix="/api/v1/models", tags=["Models"])
    app.include_router(images.router, prefix="/api/v1/images", tags=["Images"])
    app.include_router(camera.router, prefix="/api/v1/camera", tags=["Camera"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check with the status of the database and dispatch backend."""
        status = {
            "status": "healthy",
            "version": VERSION,
            "environment": {
                "storage": "local" if settings.USE_LOCAL_STORAGE or not settings.S3_BUCKET else "s3",
                "dispatch": app.state.dispatcher.mode,
                "push": app.state.services.notifier.transport.name,
            },
            "services": {},
        }

        try:
            from sqlalchemy import text
            from app.core.database import SessionLocal
            db = SessionLocal()
            try:
                db.execute(text("SELECT 1"))
            finally:
                db.close()
            status["services"]["database"] = "ok"
        except Exception as e:
            status["services"]["database"] = f"error: {str(e)}"
            status["status"] = "degraded"

        if app.state.dispatcher.mode == "rq":
            from app.core.redis import redis_health_check
            redis_status = redis_health_check()
            if redis_status.get("connected"):
                from app.workers.queue import get_queue_manager
                status["services"]["redis"] = "ok"
                status["services"]["queues"] = get_queue_manager().get_queue_stats()
            else:
                status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
                status["status"] = "degraded"
        else:
            status["services"]["active_jobs"] = getattr(app.state.dispatcher, "active_jobs", 0)

        return status

    @app.get("/files/{file_path:path}", tags=["Files"])
    async def serve_file(file_path: str):
        """Serve stored files when running on local storage."""
        try:
            file_bytes = await app.state.services.storage.get_file(file_path)
        except (OSError, KeyError) as e:
            raise HTTPException(status_code=404, detail=f"File not found: {file_path}") from e

        return StreamingResponse(
            io.BytesIO(file_bytes),
            media_type=guess_content_type(file_path),
            headers={"Cache-Control": "public, max-age=3600"},
        )

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.APP_NAME} - Character Training & Styled Generation",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
