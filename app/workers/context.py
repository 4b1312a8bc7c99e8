"""
Workflow Context
Wires the services a workflow needs. Built once per process: by the API
lifespan, by each RQ task, or by tests with substitutes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.services.captures import CaptureStore
from app.services.job_store import JobStore
from app.services.notifier import Notifier, PushTransport, build_push_transport
from app.services.photo_analysis import PhotoAnalyzer
from app.services.polling import PollingOrchestrator, Sleep
from app.services.remote_jobs import RemoteJobClient
from app.services.reorganizer import Reorganizer
from app.services.storage import StorageService
from app.services.users import UserService

logger = logging.getLogger(__name__)


@dataclass
class WorkflowServices:
    store: JobStore
    storage: StorageService
    remote: RemoteJobClient
    poller: PollingOrchestrator
    reorganizer: Reorganizer
    notifier: Notifier
    users: UserService
    captures: CaptureStore
    analyzer: PhotoAnalyzer

    @classmethod
    def build(
        cls,
        session_factory: Callable[[], Session] = SessionLocal,
        storage: Optional[StorageService] = None,
        remote: Optional[RemoteJobClient] = None,
        transport: Optional[PushTransport] = None,
        sleep: Sleep = asyncio.sleep,
        analyzer: Optional[PhotoAnalyzer] = None,
    ) -> "WorkflowServices":
        storage = storage or StorageService()
        remote = remote or RemoteJobClient()
        users = UserService(session_factory)
        notifier = Notifier(
            transport or build_push_transport(),
            users.get_active_device_tokens,
            on_unregistered=users.deactivate_device_token,
        )
        return cls(
            store=JobStore(session_factory),
            storage=storage,
            remote=remote,
            poller=PollingOrchestrator(remote, sleep=sleep),
            reorganizer=Reorganizer(storage),
            notifier=notifier,
            users=users,
            captures=CaptureStore(session_factory),
            analyzer=analyzer or PhotoAnalyzer(),
        )

    async def aclose(self):
        await self.remote.aclose()
        await self.notifier.transport.aclose()
        await self.analyzer.aclose()
        logger.debug("[Context] Closed remote, push and vision clients")


__all__ = ["WorkflowServices"]
