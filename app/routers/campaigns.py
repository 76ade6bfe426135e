import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_current_user
from app.db.deps import get_session
from app.db.enums import CampaignStatusEnum
from app.db.models import empty_campaign_stats, utcnow
from app.db.repositories.campaigns import CampaignsRepository
from app.schemas.campaigns import CampaignCreate, CampaignUpdate, Pagination

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("")
def list_campaigns(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    search: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    campaign_type: Optional[str] = Query(default=None, alias="type"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = CampaignsRepository(session)
    campaigns, total = repo.list(
        auth.user_id,
        search=search or None,
        status=status_filter or None,
        campaign_type=campaign_type or None,
        limit=limit,
        offset=(page - 1) * limit,
    )
    pagination = Pagination(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit))
    return {
        "success": True,
        "data": {
            "campaigns": jsonable_encoder(campaigns),
            "pagination": pagination.model_dump(),
        },
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: CampaignCreate,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = CampaignsRepository(session)
    campaign = repo.create(
        auth.user_id,
        payload.name,
        type=payload.type,
        status=CampaignStatusEnum.draft.value,
        ai_generated=False,
        from_name=payload.from_name,
        from_email=str(payload.from_email),
        reply_to_email=str(payload.reply_to_email) if payload.reply_to_email else None,
        subject_line=payload.subject_line,
        preview_text=payload.preview_text,
        html_content=payload.html_content,
        plain_text=payload.plain_text,
        list_ids=payload.list_ids,
        blocks=payload.blocks,
        design_config=payload.design_config,
        send_config={},
        stats=empty_campaign_stats(),
    )
    return {"success": True, "data": jsonable_encoder(campaign)}


@router.get("/{campaign_id}")
def get_campaign(
    campaign_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    campaign = CampaignsRepository(session).get(auth.user_id, campaign_id)
    if not campaign:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return {"success": True, "data": jsonable_encoder(campaign)}


@router.put("/{campaign_id}")
def update_campaign(
    campaign_id: UUID,
    payload: CampaignUpdate,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    campaign = CampaignsRepository(session).update(
        auth.user_id, campaign_id, **payload.changes(), updated_at=utcnow()
    )
    if not campaign:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return {"success": True, "data": jsonable_encoder(campaign)}


@router.delete("/{campaign_id}")
def delete_campaign(
    campaign_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    deleted = CampaignsRepository(session).delete(auth.user_id, campaign_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return {"success": True, "data": {"id": str(campaign_id)}}
