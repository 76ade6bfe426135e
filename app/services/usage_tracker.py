from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models import AIGeneration
from app.db.repositories.ai_generations import AIGenerationsRepository, AIUsageRepository
from app.services.rate_limit import CAMPAIGN_GENERATOR_FEATURE, start_of_month

logger = logging.getLogger(__name__)


def save_ai_generation(
    session: Session,
    *,
    user_id: str,
    prompt: str,
    generated_content: dict[str, Any],
    model: str,
    tokens_used: int,
    cost_usd: float,
    generation_time_ms: int,
    prompt_tokens: int = 0,
    completion_tokens: int = 0,
    model_version: Optional[str] = None,
    company_name: Optional[str] = None,
    product_description: Optional[str] = None,
    target_audience: Optional[str] = None,
    tone: Optional[str] = None,
    campaign_type: Optional[str] = None,
    generation_id: Optional[UUID] = None,
) -> AIGeneration:
    """Record one generation and its usage row; the caller owns the commit."""
    fields: dict[str, Any] = {
        "prompt": prompt,
        "company_name": company_name,
        "product_description": product_description,
        "target_audience": target_audience,
        "tone": tone,
        "campaign_type": campaign_type,
        "generated_content": generated_content,
        "model": model,
        "model_version": model_version,
        "tokens_used": tokens_used,
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "cost_usd": cost_usd,
        "generation_time_ms": generation_time_ms,
    }
    if generation_id is not None:
        fields["id"] = generation_id
    generation = AIGenerationsRepository(session).add(user_id, **fields)
    AIUsageRepository(session).add(
        user_id,
        CAMPAIGN_GENERATOR_FEATURE,
        tokens_used=tokens_used,
        cost_usd=cost_usd,
    )
    logger.info(
        "Recorded AI generation",
        extra={"generation_id": str(generation.id), "user_id": user_id, "tokens_used": tokens_used},
    )
    return generation


def get_generation_history(session: Session, user_id: str, limit: int = 10) -> List[AIGeneration]:
    return AIGenerationsRepository(session).list_recent(user_id, limit=limit)


def get_generation(session: Session, user_id: str, generation_id: UUID) -> Optional[AIGeneration]:
    return AIGenerationsRepository(session).get(user_id, generation_id)


def get_usage_statistics(session: Session, user_id: str, *, now: Optional[datetime] = None) -> dict[str, Any]:
    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    repo = AIUsageRepository(session)
    overall = repo.totals(user_id, CAMPAIGN_GENERATOR_FEATURE)
    this_month = repo.totals(user_id, CAMPAIGN_GENERATOR_FEATURE, since=start_of_month(current))
    return {
        "total_generations": overall["count"],
        "total_tokens": overall["tokens"],
        "total_cost": overall["cost"],
        "this_month_generations": this_month["count"],
        "this_month_cost": this_month["cost"],
    }
