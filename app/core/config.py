"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Twyn API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./twyn.db"

    # Redis (only needed when JOB_DISPATCH_MODE == "rq")
    REDIS_URL: str = "redis://localhost:6379"

    # Background jobs: "inprocess" runs poll loops on the API event loop,
    # "rq" hands them to scripts/run_workers.py through Redis.
    JOB_DISPATCH_MODE: str = "inprocess"
    # Minimum RQ job timeouts; raised to cover the worst-case poll time
    JOB_TIMEOUT_TRAINING: int = 2100
    JOB_TIMEOUT_GENERATION: int = 900
    JOB_TIMEOUT_MARGIN: int = 600  # uploads, downloads and store writes

    # Auth (Supabase)
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""

    # Character provider (302.AI / Higgsfield)
    AI302_API_KEY: str = ""
    AI302_BASE_URL: str = "https://api.302.ai"
    AI302_HTTP_TIMEOUT: float = 60.0

    # Camera capture analysis (OpenAI-compatible vision endpoint)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_VISION_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT: float = 10.0
    CAMERA_STYLE_ID: str = "1b798b54-03da-446a-93bf-12fcba1050d7"
    CAMERA_MAX_PHOTO_BYTES: int = 5 * 1024 * 1024

    # Polling budgets
    TRAINING_POLL_INTERVAL: float = 10.0
    TRAINING_POLL_MAX_ATTEMPTS: int = 180  # ~30 minutes
    GENERATION_POLL_INTERVAL: float = 10.0
    GENERATION_POLL_MAX_ATTEMPTS: int = 60  # ~10 minutes

    # Generation defaults
    DEFAULT_QUALITY: str = "basic"
    DEFAULT_ASPECT_RATIO: str = "3:4"

    # Upload limits
    TRAINING_MIN_PHOTOS: int = 1
    TRAINING_MAX_PHOTOS: int = 50
    ONBOARDING_MIN_PHOTOS: int = 15
    ONBOARDING_MAX_PHOTOS: int = 25

    # Storage - S3 settings
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "us-east-1"
    S3_PUBLIC_BASE_URL: str = ""  # e.g. CDN domain; defaults to the bucket URL

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    USE_LOCAL_STORAGE: bool = True

    # Push notifications (APNs token auth)
    APN_KEY_ID: str = ""
    APN_TEAM_ID: str = ""
    APN_KEY_PATH: str = ""
    APN_BUNDLE_ID: str = "com.twyn.app"
    APN_PRODUCTION: bool = False

    # Usage limits (-1 means unlimited)
    FREE_MODEL_LIMIT: int = 10
    FREE_MONTHLY_GENERATIONS: int = 100
    PRO_MODEL_LIMIT: int = -1
    PRO_MONTHLY_GENERATIONS: int = -1

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8081"]

    @field_validator('AI302_API_KEY', 'OPENAI_API_KEY', 'SUPABASE_ANON_KEY', 'S3_SECRET_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('JOB_DISPATCH_MODE')
    @classmethod
    def check_dispatch_mode(cls, v):
        v = v.lower()
        if v not in ("inprocess", "rq"):
            raise ValueError("JOB_DISPATCH_MODE must be 'inprocess' or 'rq'")
        return v

    def worst_case_poll_seconds(self, interval: float, max_attempts: int) -> int:
        """Sleeps between attempts plus every fetch hitting the HTTP timeout."""
        return int(interval * max(max_attempts - 1, 0) + self.AI302_HTTP_TIMEOUT * max_attempts)

    @property
    def training_job_timeout(self) -> int:
        budget = self.worst_case_poll_seconds(self.TRAINING_POLL_INTERVAL, self.TRAINING_POLL_MAX_ATTEMPTS)
        return max(self.JOB_TIMEOUT_TRAINING, budget + self.JOB_TIMEOUT_MARGIN)

    @property
    def generation_job_timeout(self) -> int:
        budget = self.worst_case_poll_seconds(self.GENERATION_POLL_INTERVAL, self.GENERATION_POLL_MAX_ATTEMPTS)
        return max(self.JOB_TIMEOUT_GENERATION, budget + self.JOB_TIMEOUT_MARGIN)

    @property
    def apns_configured(self) -> bool:
        return bool(self.APN_KEY_ID and self.APN_TEAM_ID and self.APN_KEY_PATH)

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
