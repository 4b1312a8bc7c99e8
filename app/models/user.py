"""
User Models
Account rows mirrored from Supabase auth, plus device registrations and the usage log.
"""

from datetime import datetime, date
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


class SubscriptionTier:
    """Subscription tier constants."""
    FREE = "free"
    PRO = "pro"


class DevicePlatform:
    """Push platform constants."""
    IOS = "ios"
    ANDROID = "android"
    EXPO = "expo"

    ALL = (IOS, ANDROID, EXPO)


class UsageAction:
    GENERATE = "generate"
    TRAIN = "train"
    UPLOAD = "upload"
    UPGRADE = "upgrade"


class User(Base):
    """User account. The id is the Supabase auth user id."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    phone = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String, nullable=True)

    subscription_tier = Column(String, default=SubscriptionTier.FREE, nullable=False)
    model_count = Column(Integer, default=0, nullable=False)
    monthly_generations = Column(Integer, default=0, nullable=False)
    generation_reset_date = Column(Date, default=date.today)
    onboarding_completed = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    device_tokens = relationship("DeviceToken", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, tier={self.subscription_tier})>"


class DeviceToken(Base):
    """A push registration for one device of one user."""

    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    token = Column(String, nullable=False, unique=True)
    platform = Column(String, default=DevicePlatform.IOS, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_used_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="device_tokens")


class UsageLog(Base):
    """Append-only record of billable user actions."""

    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    action = Column(String, nullable=False)
    count = Column(Integer, default=1, nullable=False)
    details = Column(JSON, default=dict)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
