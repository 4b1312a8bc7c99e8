"""
User Service
Usage limits, counters, the usage log and device registrations.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.exceptions import InputValidationError, UsageLimitExceeded
from app.core.logging_config import mask_token
from app.models.user import DevicePlatform, DeviceToken, SubscriptionTier, UsageAction, UsageLog, User
from app.services.notifier import DeviceRegistration

logger = logging.getLogger(__name__)

UNLIMITED = -1
GENERATION_PERIOD = timedelta(days=30)


def get_user_limits(tier: str) -> Dict[str, int]:
    """Model and monthly generation limits for a subscription tier (-1 = unlimited)."""
    if tier == SubscriptionTier.PRO:
        return {"models": settings.PRO_MODEL_LIMIT, "monthly_generations": settings.PRO_MONTHLY_GENERATIONS}
    return {"models": settings.FREE_MODEL_LIMIT, "monthly_generations": settings.FREE_MONTHLY_GENERATIONS}


def can_create_model(model_count: int, tier: str) -> bool:
    limit = get_user_limits(tier)["models"]
    return limit == UNLIMITED or model_count < limit


def can_generate_images(monthly_generations: int, tier: str, requested: int = 1) -> bool:
    limit = get_user_limits(tier)["monthly_generations"]
    return limit == UNLIMITED or monthly_generations + requested <= limit


class UserService:
    """Account-level bookkeeping around the job workflows."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def get_or_create_user(self, user_id: str, phone: Optional[str] = None) -> User:
        """Load the local user row, creating it on first sight and rolling the monthly counter."""
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                user = User(id=user_id, phone=phone, subscription_tier=SubscriptionTier.FREE)
                db.add(user)
                logger.info(f"[Users] Created local user {user_id}")
            elif user.generation_reset_date and date.today() - user.generation_reset_date >= GENERATION_PERIOD:
                logger.info(f"[Users] Resetting monthly generations for {user_id} ({user.monthly_generations})")
                user.monthly_generations = 0
                user.generation_reset_date = date.today()
            db.commit()
            db.refresh(user)
            db.expunge(user)
            return user
        finally:
            db.close()

    def ensure_can_create_model(self, user: User):
        if not can_create_model(user.model_count, user.subscription_tier):
            limit = get_user_limits(user.subscription_tier)["models"]
            raise UsageLimitExceeded(
                f"Model limit reached ({limit}). Upgrade to Pro for unlimited models.",
                limit=limit,
                current=user.model_count,
            )

    def ensure_can_generate(self, user: User, requested: int = 1):
        if not can_generate_images(user.monthly_generations, user.subscription_tier, requested):
            limit = get_user_limits(user.subscription_tier)["monthly_generations"]
            raise UsageLimitExceeded(
                f"Monthly generation limit reached ({limit}). Upgrade to Pro for unlimited generations.",
                limit=limit,
                current=user.monthly_generations,
            )

    def increment_model_count(self, user_id: str):
        self._increment(user_id, User.model_count, 1)

    def increment_generation_count(self, user_id: str, count: int = 1):
        self._increment(user_id, User.monthly_generations, count)

    def _increment(self, user_id: str, column, amount: int):
        db = self.session_factory()
        try:
            # Single UPDATE so concurrent jobs of the same user don't lose increments
            db.query(User).filter(User.id == user_id).update(
                {column: column + amount, User.updated_at: datetime.utcnow()},
                synchronize_session=False,
            )
            db.commit()
        finally:
            db.close()

    def log_action(self, user_id: str, action: str, count: int = 1, details: Optional[Dict[str, Any]] = None):
        db = self.session_factory()
        try:
            db.add(UsageLog(user_id=user_id, action=action, count=count, details=details or {}))
            db.commit()
        finally:
            db.close()

    def usage_summary(self, user: User) -> Dict[str, Any]:
        limits = get_user_limits(user.subscription_tier)
        return {
            "subscription_tier": user.subscription_tier,
            "model_count": user.model_count,
            "monthly_generations": user.monthly_generations,
            "limits": limits,
            "can_create_model": can_create_model(user.model_count, user.subscription_tier),
            "can_generate": can_generate_images(user.monthly_generations, user.subscription_tier),
        }

    def _update_user(self, user_id: str, **values) -> Optional[User]:
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                return None
            for name, value in values.items():
                setattr(user, name, value)
            db.commit()
            db.refresh(user)
            db.expunge(user)
            return user
        finally:
            db.close()

    def update_profile(self, user_id: str, name: str, date_of_birth: date, gender: str) -> Optional[User]:
        user = self._update_user(user_id, name=name, date_of_birth=date_of_birth, gender=gender)
        if user is not None:
            logger.info(f"[Users] Updated profile for {user_id}")
        return user

    def upgrade(self, user_id: str, tier: str = SubscriptionTier.PRO) -> Optional[User]:
        """Switch the user's tier; limits follow on the next check."""
        user = self._update_user(user_id, subscription_tier=tier)
        if user is not None:
            self.log_action(user_id, UsageAction.UPGRADE, details={"tier": tier})
            logger.info(f"[Users] {user_id} is now on the {tier} tier")
        return user

    def complete_onboarding(self, user_id: str) -> Optional[User]:
        user = self._update_user(user_id, onboarding_completed=True)
        if user is not None:
            logger.info(f"[Users] Onboarding completed for {user_id}")
        return user

    # ------------------------------------------------------------------
    # Device registrations
    # ------------------------------------------------------------------

    def register_device_token(self, user_id: str, token: str, platform: str = DevicePlatform.IOS) -> DeviceToken:
        """Upsert a device token for user and mark it active."""
        if platform not in DevicePlatform.ALL:
            raise InputValidationError(f"Unsupported platform '{platform}'")

        db = self.session_factory()
        try:
            device = db.query(DeviceToken).filter(DeviceToken.token == token).first()
            if device is None:
                device = DeviceToken(user_id=user_id, token=token, platform=platform)
                db.add(device)
            else:
                device.user_id = user_id
                device.platform = platform
            device.is_active = True
            device.last_used_at = datetime.utcnow()
            db.commit()
            db.refresh(device)
            db.expunge(device)
            logger.info(f"[Users] Registered {platform} device {mask_token(token)} for {user_id}")
            return device
        finally:
            db.close()

    def get_active_device_tokens(self, user_id: str) -> List[DeviceRegistration]:
        db = self.session_factory()
        try:
            rows = (
                db.query(DeviceToken)
                .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
                .order_by(DeviceToken.last_used_at.desc())
                .all()
            )
            return [DeviceRegistration(token=row.token, platform=row.platform) for row in rows]
        finally:
            db.close()

    def has_active_device_token(self, user_id: str) -> bool:
        return bool(self.get_active_device_tokens(user_id))

    def deactivate_device_token(self, token: str):
        db = self.session_factory()
        try:
            updated = db.query(DeviceToken).filter(DeviceToken.token == token).update(
                {DeviceToken.is_active: False}, synchronize_session=False
            )
            db.commit()
            if updated:
                logger.info(f"[Users] Deactivated device {mask_token(token)}")
        finally:
            db.close()


__all__ = [
    "UserService",
    "get_user_limits",
    "can_create_model",
    "can_generate_images",
]
