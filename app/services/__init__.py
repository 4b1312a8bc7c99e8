# Services package - business logic and external integrations
from app.services.storage import StorageService
from app.services.remote_jobs import RemoteJobClient
from app.services.polling import PollingOrchestrator, TrainingResult, GenerationResult
from app.services.job_store import JobStore
from app.services.reorganizer import Reorganizer, ReorganizeOutcome
from app.services.notifier import Notifier, PushMessage, DeliveryReport, build_push_transport
from app.services.users import UserService
from app.services.captures import CaptureStore
from app.services.photo_analysis import PhotoAnalyzer, PhotoAnalysis

__all__ = [
    "StorageService",
    "RemoteJobClient",
    "PollingOrchestrator",
    "TrainingResult",
    "GenerationResult",
    "JobStore",
    "Reorganizer",
    "ReorganizeOutcome",
    "Notifier",
    "PushMessage",
    "DeliveryReport",
    "build_push_transport",
    "UserService",
    "CaptureStore",
    "PhotoAnalyzer",
    "PhotoAnalysis",
]
