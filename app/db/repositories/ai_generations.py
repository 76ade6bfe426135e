from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.models import AIGeneration, AIUsage


class AIGenerationsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, user_id: str, **fields) -> AIGeneration:
        generation = AIGeneration(user_id=user_id, **fields)
        self.session.add(generation)
        self.session.flush()
        return generation

    def list_recent(self, user_id: str, limit: int = 10) -> List[AIGeneration]:
        stmt = (
            select(AIGeneration)
            .where(AIGeneration.user_id == user_id)
            .order_by(AIGeneration.created_at.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, user_id: str, generation_id: UUID) -> Optional[AIGeneration]:
        stmt = select(AIGeneration).where(
            AIGeneration.user_id == user_id, AIGeneration.id == generation_id
        )
        return self.session.scalars(stmt).first()


class AIUsageRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, user_id: str, feature: str, *, tokens_used: int, cost_usd: float) -> AIUsage:
        usage = AIUsage(user_id=user_id, feature=feature, tokens_used=tokens_used, cost_usd=cost_usd)
        self.session.add(usage)
        self.session.flush()
        return usage

    def count_since(self, user_id: str, feature: str, since: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(AIUsage)
            .where(
                AIUsage.user_id == user_id,
                AIUsage.feature == feature,
                AIUsage.created_at >= since,
            )
        )
        return int(self.session.scalar(stmt) or 0)

    def totals(self, user_id: str, feature: str, since: Optional[datetime] = None) -> dict:
        """Aggregate generation count, tokens and cost for a user, optionally since a timestamp."""
        stmt = select(
            func.count(AIUsage.id),
            func.coalesce(func.sum(AIUsage.tokens_used), 0),
            func.coalesce(func.sum(AIUsage.cost_usd), 0),
        ).where(AIUsage.user_id == user_id, AIUsage.feature == feature)
        if since is not None:
            stmt = stmt.where(AIUsage.created_at >= since)
        count, tokens, cost = self.session.execute(stmt).one()
        return {"count": int(count or 0), "tokens": int(tokens or 0), "cost": float(cost or 0)}
