# Database models package
from app.models.user import User, DeviceToken, UsageLog, SubscriptionTier, DevicePlatform, UsageAction
from app.models.training_job import TrainingJob, TrainingStatus
from app.models.generation_job import GenerationJob, GenerationStatus, GenerationQuality
from app.models.camera_capture import CameraCapture, CaptureStatus

__all__ = [
    "User",
    "DeviceToken",
    "UsageLog",
    "SubscriptionTier",
    "DevicePlatform",
    "UsageAction",
    "TrainingJob",
    "TrainingStatus",
    "GenerationJob",
    "GenerationStatus",
    "GenerationQuality",
    "CameraCapture",
    "CaptureStatus",
]
