from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.enums import CampaignStatusEnum, CampaignTypeEnum

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests and local runs).
JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def empty_campaign_stats() -> dict[str, int]:
    return {"sent": 0, "delivered": 0, "opened": 0, "clicked": 0, "bounced": 0}


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        sa.Index("idx_campaigns_user_created", "user_id", "created_at"),
        sa.CheckConstraint(
            "type IN ('one-time', 'sequence', 'automation')", name="ck_campaigns_type"
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'scheduled', 'sending', 'sent', 'paused', 'cancelled')",
            name="ck_campaigns_status",
        ),
    )

    id: Mapped[UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=CampaignTypeEnum.one_time.value
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=CampaignStatusEnum.draft.value
    )
    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    from_name: Mapped[str] = mapped_column(Text, nullable=False)
    from_email: Mapped[str] = mapped_column(Text, nullable=False)
    reply_to_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subject_line: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preview_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    html_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    plain_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    list_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    blocks: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSONType, nullable=True)
    design_config: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    send_config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    stats: Mapped[dict[str, int]] = mapped_column(
        JSONType, nullable=False, default=empty_campaign_stats
    )
    ai_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class AIGeneration(Base):
    __tablename__ = "ai_generations"
    __table_args__ = (sa.Index("idx_ai_generations_user_created", "user_id", "created_at"),)

    id: Mapped[UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    company_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_audience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    campaign_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    generated_content: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    model: Mapped[str] = mapped_column(String(128), nullable=False)
    model_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_usd: Mapped[float] = mapped_column(Numeric(12, 6, asdecimal=False), nullable=False, default=0)
    generation_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class AIUsage(Base):
    __tablename__ = "ai_usage"
    __table_args__ = (sa.Index("idx_ai_usage_user_feature_created", "user_id", "feature", "created_at"),)

    id: Mapped[UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    feature: Mapped[str] = mapped_column(String(64), nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_usd: Mapped[float] = mapped_column(Numeric(12, 6, asdecimal=False), nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
