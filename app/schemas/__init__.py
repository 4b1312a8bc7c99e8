# Pydantic schemas package
from app.schemas.training import (
    TrainingAccepted, TrainingJobResponse, BatchUploadResponse, SingleUploadResponse, TempFolderResponse,
    TrainFromFolderRequest,
)
from app.schemas.generation import GenerateRequest, GenerateAccepted, GenerationJobResponse
from app.schemas.user import (
    DeviceTokenRequest, DeviceTokenStatus, UsageResponse, ProfileResponse, ProfileUpdate, UpgradeRequest
)
from app.schemas.images import (
    ImageListResponse, ImageBatch, ImageBatchesResponse, TrainingImagesResponse, DeletedResponse
)
from app.schemas.camera import PhotoAnalysisResponse, CaptureResponse, CaptureGenerateRequest, CaptureHistoryItem

__all__ = [
    "TrainingAccepted", "TrainingJobResponse", "BatchUploadResponse", "SingleUploadResponse", "TempFolderResponse",
    "TrainFromFolderRequest",
    "GenerateRequest", "GenerateAccepted", "GenerationJobResponse",
    "DeviceTokenRequest", "DeviceTokenStatus", "UsageResponse", "ProfileResponse", "ProfileUpdate", "UpgradeRequest",
    "ImageListResponse", "ImageBatch", "ImageBatchesResponse", "TrainingImagesResponse", "DeletedResponse",
    "PhotoAnalysisResponse", "CaptureResponse", "CaptureGenerateRequest", "CaptureHistoryItem",
]
