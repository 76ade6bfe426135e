from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, get_current_user
from app.db.deps import get_session
from app.llm.client import LLMClient
from app.schemas.generation import GenerateCampaignRequest
from app.services.campaign_generator import CampaignGenerator
from app.services.design_systems import list_design_system_options
from app.services.rate_limit import check_rate_limit
from app.services.usage_tracker import get_generation, get_generation_history, get_usage_statistics

router = APIRouter(prefix="/ai", tags=["ai"])


def get_llm_client(request: Request) -> LLMClient:
    client = getattr(request.app.state, "llm_client", None)
    if client is None:
        raise RuntimeError("LLM client is not initialized; the app lifespan did not run.")
    return client


@router.post("/generate-campaign")
async def generate_campaign(
    payload: GenerateCampaignRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    llm_client: LLMClient = Depends(get_llm_client),
):
    data = payload.model_dump(exclude_none=True)
    data["userId"] = auth.user_id
    generator = CampaignGenerator(session, llm_client)
    result = await generator.generate_campaign(data)
    return {"success": True, "data": result.model_dump(mode="json")}


@router.get("/rate-limit")
def get_rate_limit(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    info = check_rate_limit(session, auth.user_id)
    return {"success": True, "data": info.to_dict()}


@router.get("/generations")
def list_generations(
    limit: int = Query(default=10, ge=1, le=100),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    generations = get_generation_history(session, auth.user_id, limit=limit)
    return {"success": True, "data": jsonable_encoder(generations)}


@router.get("/generations/{generation_id}")
def get_generation_detail(
    generation_id: UUID,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    generation = get_generation(session, auth.user_id, generation_id)
    if not generation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
    return {"success": True, "data": jsonable_encoder(generation)}


@router.get("/usage")
def get_usage(
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"success": True, "data": get_usage_statistics(session, auth.user_id)}


@router.get("/design-systems")
def list_design_systems(auth: AuthContext = Depends(get_current_user)):
    return {"success": True, "data": list_design_system_options()}
