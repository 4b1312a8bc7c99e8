"""
Training Job Model
One row per character training request (table name kept from the mobile app: character_models).

Lifecycle: pending -> training -> completed, with failed reachable from anywhere.
The provider's character id and thumbnail are written together when the job completes.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey

from app.core.database import Base


class TrainingStatus:
    """Training job status constants."""
    PENDING = "pending"        # Record created, photos uploading / submit in flight
    TRAINING = "training"      # Provider accepted the task, poll loop running
    COMPLETED = "completed"    # Character id known
    FAILED = "failed"          # Submit error, provider failure, timeout or invalidated character

    ALL = (PENDING, TRAINING, COMPLETED, FAILED)
    TERMINAL = (COMPLETED, FAILED)


class TrainingJob(Base):
    """Character training job."""

    __tablename__ = "character_models"

    id = Column(String, primary_key=True)  # uuid4
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    display_name = Column(String, nullable=False)

    status = Column(String, default=TrainingStatus.PENDING, nullable=False, index=True)
    input_photo_count = Column(Integer, nullable=False)

    # users/<owner>/temp_<millis>_<rand>/ until the character id is known
    provisional_folder_key = Column(String, nullable=False)

    # Set once, on completion
    external_character_id = Column(String, nullable=True, index=True)
    thumbnail_url = Column(String, nullable=True)

    error_detail = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<TrainingJob(id={self.id}, status={self.status}, character={self.external_character_id})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TrainingStatus.TERMINAL

    @property
    def final_folder_key(self) -> str:
        """Blob prefix that holds the model's files once training completed."""
        if not self.external_character_id:
            return self.provisional_folder_key
        return f"users/{self.owner_id}/{self.external_character_id}/"

    @property
    def training_image_prefixes(self) -> list:
        """Where the training photos may live; both while a reorganization was incomplete."""
        prefixes = [self.final_folder_key + "training/"]
        if self.provisional_folder_key + "training/" not in prefixes:
            prefixes.append(self.provisional_folder_key + "training/")
        return prefixes
