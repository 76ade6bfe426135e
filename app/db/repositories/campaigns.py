from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.db.models import Campaign


class CampaignsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(
        self,
        user_id: str,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        campaign_type: Optional[str] = None,
        limit: int = 12,
        offset: int = 0,
    ) -> Tuple[List[Campaign], int]:
        """Return one page of the user's campaigns plus the total matching count."""
        filters = [Campaign.user_id == user_id]
        if search:
            filters.append(Campaign.name.ilike(f"%{search}%"))
        if status:
            filters.append(Campaign.status == status)
        if campaign_type:
            filters.append(Campaign.type == campaign_type)

        total = self.session.scalar(select(func.count()).select_from(Campaign).where(*filters)) or 0
        stmt = (
            select(Campaign)
            .where(*filters)
            .order_by(Campaign.created_at.desc(), Campaign.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt).all()), int(total)

    def get(self, user_id: str, campaign_id: UUID) -> Optional[Campaign]:
        stmt = select(Campaign).where(Campaign.user_id == user_id, Campaign.id == campaign_id)
        return self.session.scalars(stmt).first()

    def create(self, user_id: str, name: str, *, commit: bool = True, **fields) -> Campaign:
        campaign = Campaign(user_id=user_id, name=name, **fields)
        self.session.add(campaign)
        if not commit:
            self.session.flush()
            return campaign
        self.session.commit()
        self.session.refresh(campaign)
        return campaign

    def update(self, user_id: str, campaign_id: UUID, **fields) -> Optional[Campaign]:
        campaign = self.get(user_id, campaign_id)
        if not campaign:
            return None
        for key, value in fields.items():
            setattr(campaign, key, value)
        self.session.commit()
        self.session.refresh(campaign)
        return campaign

    def delete(self, user_id: str, campaign_id: UUID) -> bool:
        campaign = self.get(user_id, campaign_id)
        if not campaign:
            return False
        self.session.delete(campaign)
        self.session.commit()
        return True
