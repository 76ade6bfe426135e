from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.enums import SubscriptionTierEnum
from app.db.repositories.ai_generations import AIUsageRepository
from app.services.errors import GenerationStageError, StorageError

logger = logging.getLogger(__name__)

CAMPAIGN_GENERATOR_FEATURE = "campaign_generator"

TIER_LIMITS: dict[str, dict[str, int]] = {
    SubscriptionTierEnum.free.value: {"daily": 5, "monthly": 150},
    SubscriptionTierEnum.starter.value: {"daily": 20, "monthly": 100},
    SubscriptionTierEnum.pro.value: {"daily": 1000, "monthly": 1000},
}


@dataclass(frozen=True)
class RateLimitInfo:
    can_generate: bool
    tier: str
    daily_limit: int
    monthly_limit: int
    daily_used: int
    monthly_used: int
    daily_remaining: int
    monthly_remaining: int
    reset_at: Optional[datetime] = None
    message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["reset_at"] = self.reset_at.isoformat() if self.reset_at else None
        return data


class RateLimitError(GenerationStageError):
    stage = "rate_limit"
    status_code = 429

    def __init__(self, message: str, info: RateLimitInfo) -> None:
        super().__init__(message)
        self.info = info

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["rateLimit"] = self.info.to_dict()
        return payload


def _resolve_tier(tier: Optional[str]) -> str:
    resolved = (tier or settings.RATE_LIMIT_DEFAULT_TIER or SubscriptionTierEnum.pro.value).lower()
    if resolved not in TIER_LIMITS:
        raise ValueError(f"Unknown subscription tier '{resolved}'. Expected one of {sorted(TIER_LIMITS)}.")
    return resolved


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def start_of_next_month(now: datetime) -> datetime:
    first = start_of_month(now)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def check_rate_limit(
    session: Session,
    user_id: str,
    *,
    tier: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RateLimitInfo:
    """Report the user's generation allowance for today and this month.

    Counter reads that fail are raised as StorageError so callers never generate
    on an unknown count.
    """
    resolved_tier = _resolve_tier(tier)
    limits = TIER_LIMITS[resolved_tier]
    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    day_start = start_of_day(current)
    month_start = start_of_month(current)

    repo = AIUsageRepository(session)
    try:
        daily_used = repo.count_since(user_id, CAMPAIGN_GENERATOR_FEATURE, day_start)
        monthly_used = repo.count_since(user_id, CAMPAIGN_GENERATOR_FEATURE, month_start)
    except SQLAlchemyError as exc:
        logger.exception("Failed to read usage counters", extra={"user_id": user_id})
        raise StorageError(f"Unable to read usage counters: {exc}") from exc

    daily_limit = limits["daily"]
    monthly_limit = limits["monthly"]
    daily_remaining = max(daily_limit - daily_used, 0)
    monthly_remaining = max(monthly_limit - monthly_used, 0)

    reset_at: Optional[datetime] = None
    message: Optional[str] = None
    if daily_used >= daily_limit:
        reset_at = day_start + timedelta(days=1)
        message = f"Daily limit reached ({daily_limit} generations per day). Try again tomorrow."
    elif monthly_used >= monthly_limit:
        reset_at = start_of_next_month(current)
        message = f"Monthly limit reached ({monthly_limit} generations per month). Upgrade your plan for more."

    return RateLimitInfo(
        can_generate=message is None,
        tier=resolved_tier,
        daily_limit=daily_limit,
        monthly_limit=monthly_limit,
        daily_used=daily_used,
        monthly_used=monthly_used,
        daily_remaining=daily_remaining,
        monthly_remaining=monthly_remaining,
        reset_at=reset_at,
        message=message,
    )


def enforce_rate_limit(
    session: Session,
    user_id: str,
    *,
    tier: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RateLimitInfo:
    # Check-then-generate is not atomic; concurrent requests can overshoot by a few.
    info = check_rate_limit(session, user_id, tier=tier, now=now)
    if not info.can_generate:
        logger.info(
            "Rate limit reached",
            extra={"user_id": user_id, "tier": info.tier, "daily_used": info.daily_used, "monthly_used": info.monthly_used},
        )
        raise RateLimitError(info.message or "Rate limit exceeded", info)
    return info
