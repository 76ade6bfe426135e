from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.config import settings as default_settings
from app.db.enums import CampaignStatusEnum
from app.db.models import empty_campaign_stats
from app.db.repositories.campaigns import CampaignsRepository
from app.llm.client import AIGenerationError, LLMClient, LLMCompletion, LLMGenerationParams
from app.observability import LangfuseTraceContext, bind_langfuse_trace_context
from app.schemas.generation import (
    GenerateCampaignInput,
    GeneratedCampaign,
    GenerationMetadata,
    GenerationResult,
    RenderedEmail,
)
from app.services.campaign_validation import parse_and_validate_campaign, validate_campaign_input
from app.services.design_systems import DesignSystemConfigError, detect_design_system
from app.services.email_renderer import render_campaign_emails
from app.services.errors import PromptBuildError, ProviderError, RenderError, StorageError
from app.services.prompts import CAMPAIGN_GENERATOR_SYSTEM_PROMPT, build_campaign_prompt, calculate_token_limit
from app.services.rate_limit import enforce_rate_limit
from app.services.usage_tracker import save_ai_generation

logger = logging.getLogger(__name__)

DEFAULT_FROM_NAME = "My Company"
DEFAULT_FROM_EMAIL = "noreply@example.com"


class CampaignGenerator:
    """Runs one campaign request from input validation through to the stored draft."""

    def __init__(
        self,
        session: Session,
        llm_client: LLMClient,
        *,
        settings: Settings = default_settings,
        tier: Optional[str] = None,
    ) -> None:
        self.session = session
        self.llm_client = llm_client
        self.settings = settings
        self.tier = tier

    async def generate_campaign(self, data: dict[str, Any] | GenerateCampaignInput) -> GenerationResult:
        started = time.monotonic()
        payload = data.model_dump() if isinstance(data, GenerateCampaignInput) else data
        campaign_input = validate_campaign_input(payload)
        user_id = str(campaign_input.userId)

        trace = LangfuseTraceContext(
            name="campaign_generation",
            user_id=user_id,
            metadata={"campaign_type": campaign_input.campaignType, "tone": campaign_input.tone},
            tags=["campaign-generator"],
        )
        with bind_langfuse_trace_context(trace):
            await asyncio.to_thread(enforce_rate_limit, self.session, user_id, tier=self.tier)

            system_prompt, user_prompt, max_tokens = self._build_prompts(campaign_input)
            completion = await self._call_provider(system_prompt, user_prompt, max_tokens)

            campaign = parse_and_validate_campaign(completion.content)
            logger.info(
                "Campaign validated",
                extra={"campaign_name": campaign.campaignName, "email_count": len(campaign.emails)},
            )

            rendered = await self._render(campaign)
            generated_at = datetime.now(timezone.utc)
            generation_id = await asyncio.to_thread(self._persist, campaign_input, campaign, rendered, completion)

        total_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Campaign generation complete",
            extra={"generation_id": str(generation_id), "user_id": user_id, "total_ms": total_ms},
        )
        return GenerationResult(
            id=generation_id,
            campaign=campaign,
            renderedEmails=rendered,
            metadata=GenerationMetadata(
                model=completion.model,
                tokensUsed=completion.tokens_used,
                promptTokens=completion.prompt_tokens,
                completionTokens=completion.completion_tokens,
                costUsd=completion.cost_usd,
                generationTimeMs=completion.generation_time_ms,
                generatedAt=generated_at,
            ),
        )

    def _build_prompts(self, campaign_input: GenerateCampaignInput) -> tuple[str, str, int]:
        try:
            design_system = detect_design_system(campaign_input.prompt)
            user_prompt = build_campaign_prompt(campaign_input, design_system)
        except DesignSystemConfigError as exc:
            logger.exception("Design systems unavailable")
            raise PromptBuildError(f"Design systems unavailable: {exc}") from exc

        email_count = 3 if campaign_input.campaignType == "sequence" else 1
        max_tokens = calculate_token_limit(
            len(campaign_input.prompt),
            campaign_input.campaignType,
            email_count,
            max_tokens=self.settings.LLM_MAX_TOKENS_GLOBAL,
        )
        logger.info(
            "Built campaign prompt",
            extra={
                "design_system": design_system.id,
                "user_prompt_chars": len(user_prompt),
                "max_tokens": max_tokens,
            },
        )
        return CAMPAIGN_GENERATOR_SYSTEM_PROMPT, user_prompt, max_tokens

    async def _call_provider(self, system_prompt: str, user_prompt: str, max_tokens: int) -> LLMCompletion:
        params = LLMGenerationParams(
            max_tokens=max_tokens,
            temperature=self.settings.LLM_TEMPERATURE,
            retries=self.settings.LLM_REQUEST_RETRIES,
            response_model=GeneratedCampaign,
        )
        try:
            return await asyncio.to_thread(self.llm_client.generate_json, system_prompt, user_prompt, params)
        except AIGenerationError as exc:
            logger.exception("Provider call failed", extra={"code": exc.code, "retryable": exc.retryable})
            raise ProviderError(exc.message, code=exc.code, retryable=exc.retryable) from exc

    async def _render(self, campaign: GeneratedCampaign) -> list[RenderedEmail]:
        try:
            return await render_campaign_emails(campaign, base_url=self.settings.APP_BASE_URL)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Email rendering failed")
            raise RenderError(f"Failed to render campaign emails: {exc}") from exc

    def _persist(
        self,
        campaign_input: GenerateCampaignInput,
        campaign: GeneratedCampaign,
        rendered: list[RenderedEmail],
        completion: LLMCompletion,
    ) -> UUID:
        user_id = str(campaign_input.userId)
        campaign_json = campaign.model_dump(mode="json", exclude_none=True)
        rendered_json = [email.model_dump(mode="json") for email in rendered]
        first_email = campaign.emails[0]
        generation_id = uuid4()

        try:
            save_ai_generation(
                self.session,
                generation_id=generation_id,
                user_id=user_id,
                prompt=campaign_input.prompt,
                company_name=campaign_input.companyName,
                product_description=campaign_input.productDescription,
                target_audience=campaign_input.targetAudience,
                tone=campaign_input.tone,
                campaign_type=campaign_input.campaignType,
                generated_content=campaign_json,
                model=completion.model,
                model_version=completion.model,
                tokens_used=completion.tokens_used,
                prompt_tokens=completion.prompt_tokens,
                completion_tokens=completion.completion_tokens,
                cost_usd=completion.cost_usd,
                generation_time_ms=completion.generation_time_ms,
            )
            CampaignsRepository(self.session).create(
                user_id,
                campaign.campaignName,
                commit=False,
                id=generation_id,
                type=campaign.campaignType,
                status=CampaignStatusEnum.draft.value,
                ai_generated=True,
                ai_prompt=campaign_input.prompt,
                from_name=campaign_input.companyName or DEFAULT_FROM_NAME,
                from_email=DEFAULT_FROM_EMAIL,
                subject_line=first_email.subject,
                preview_text=first_email.previewText,
                html_content=json.dumps(rendered_json),
                plain_text=rendered[0].plainText if rendered else None,
                blocks=campaign_json["emails"][0]["blocks"],
                design_config=first_email.resolved_settings().model_dump(mode="json"),
                send_config={},
                stats=empty_campaign_stats(),
                ai_metadata={"campaign": campaign_json, "renderedEmails": rendered_json},
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Failed to store generated campaign", extra={"user_id": user_id})
            raise StorageError(f"Failed to store generated campaign: {exc}") from exc
        return generation_id
