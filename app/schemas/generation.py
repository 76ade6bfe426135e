from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.blocks import Email


class BrandKit(BaseModel):
    primaryColor: str = Field(min_length=1, max_length=32)
    secondaryColor: str = Field(min_length=1, max_length=32)
    accentColor: Optional[str] = Field(default=None, max_length=32)
    fontStyle: str = Field(default="modern sans-serif", max_length=100)


class GenerateCampaignInput(BaseModel):
    prompt: str = Field(min_length=10, max_length=1000)
    userId: UUID
    companyName: Optional[str] = Field(default=None, max_length=200)
    productDescription: Optional[str] = Field(default=None, max_length=500)
    targetAudience: Optional[str] = Field(default=None, max_length=300)
    tone: Literal["professional", "friendly", "casual"] = "friendly"
    campaignType: Literal["one-time", "sequence"] = "one-time"
    brandKit: Optional[BrandKit] = None


class GenerateCampaignRequest(BaseModel):
    """HTTP body for generation; the user comes from the bearer token, not the payload."""

    model_config = ConfigDict(extra="ignore")

    prompt: str
    companyName: Optional[str] = None
    productDescription: Optional[str] = None
    targetAudience: Optional[str] = None
    tone: Optional[str] = None
    campaignType: Optional[str] = None
    brandKit: Optional[BrandKit] = None


class CampaignStrategy(BaseModel):
    model_config = ConfigDict(extra="ignore")

    goal: str = Field(max_length=500)
    keyMessage: str = Field(max_length=500)


class CampaignDesign(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Legacy template name; rendering ignores it.
    template: Optional[str] = Field(default=None, max_length=100)
    ctaColor: str = Field(max_length=32)
    accentColor: Optional[str] = Field(default=None, max_length=32)


class GeneratedCampaign(BaseModel):
    model_config = ConfigDict(extra="ignore")

    campaignName: str = Field(min_length=1, max_length=100)
    campaignType: Literal["one-time", "sequence"]
    recommendedSegment: Optional[str] = Field(default=None, max_length=500)
    strategy: Optional[CampaignStrategy] = None
    design: CampaignDesign
    emails: List[Email] = Field(min_length=1, max_length=5)
    segmentationSuggestion: Optional[str] = Field(default=None, max_length=1000)
    sendTimeSuggestion: Optional[str] = Field(default=None, max_length=500)
    successMetrics: Optional[str] = Field(default=None, max_length=1000)


class RenderedEmail(BaseModel):
    subject: str
    previewText: str
    html: str
    plainText: str
    ctaText: str
    ctaUrl: str


class GenerationMetadata(BaseModel):
    model: str
    tokensUsed: int
    promptTokens: int
    completionTokens: int
    costUsd: float
    generationTimeMs: int
    generatedAt: datetime


class GenerationResult(BaseModel):
    id: UUID
    campaign: GeneratedCampaign
    renderedEmails: List[RenderedEmail]
    metadata: GenerationMetadata
