"""Typed email blocks.

Provider output arrives with camelCase keys, so field names here mirror the wire format
directly. Each block variant is its own model and `Block` is the tagged union over `type`.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LayoutVariation(str, Enum):
    hero_center = "hero-center"
    hero_image_overlay = "hero-image-overlay"
    stats_2_col = "stats-2-col"
    stats_3_col = "stats-3-col"
    stats_4_col = "stats-4-col"
    testimonial_centered = "testimonial-centered"
    testimonial_card = "testimonial-card"
    two_column_50_50 = "two-column-50-50"
    two_column_60_40 = "two-column-60-40"
    two_column_40_60 = "two-column-40-60"
    three_column_equal = "three-column-equal"
    image_overlay = "image-overlay"
    zigzag_2_rows = "zigzag-2-rows"
    product_card_image_top = "product-card-image-top"


class FeatureIcon(str, Enum):
    check = "check"
    star = "star"
    heart = "heart"
    lightning = "lightning"
    shield = "shield"
    lock = "lock"
    clock = "clock"
    globe = "globe"


Alignment = Literal["left", "center", "right"]
SocialPlatform = Literal["twitter", "linkedin", "facebook", "instagram", "youtube", "github", "tiktok"]
Color = Annotated[str, Field(max_length=32)]
Url = Annotated[str, Field(max_length=2000)]


class BlockModel(BaseModel):
    # Unknown keys from the provider are dropped rather than rejected.
    model_config = ConfigDict(extra="ignore")


class Padding(BlockModel):
    top: int = Field(default=0, ge=0, le=200)
    bottom: int = Field(default=0, ge=0, le=200)
    left: int = Field(default=0, ge=0, le=200)
    right: int = Field(default=0, ge=0, le=200)


class BlockSettings(BlockModel):
    padding: Optional[Padding] = None
    backgroundColor: Optional[Color] = None
    align: Optional[Alignment] = None


class EmptyContent(BlockModel):
    pass


# Logo


class LogoContent(BlockModel):
    imageUrl: Url
    altText: str = Field(min_length=1, max_length=200)
    linkUrl: Optional[str] = Field(default=None, max_length=500)


class LogoSettings(BlockSettings):
    width: Optional[int] = Field(default=None, ge=16, le=600)


# Text


class TextContent(BlockModel):
    text: str = Field(min_length=1, max_length=5000)


class TextSettings(BlockSettings):
    fontSize: Optional[int] = Field(default=None, ge=8, le=72)
    fontWeight: Optional[int] = Field(default=None, ge=100, le=900)
    color: Optional[Color] = None
    lineHeight: Optional[str] = Field(default=None, max_length=10)


# Image


class ImageContent(BlockModel):
    imageUrl: Url
    altText: str = Field(min_length=1, max_length=200)
    linkUrl: Optional[str] = Field(default=None, max_length=500)
    caption: Optional[str] = Field(default=None, max_length=500)


class ImageSettings(BlockSettings):
    width: Optional[str] = Field(default=None, max_length=10)
    borderRadius: Optional[int] = Field(default=None, ge=0, le=100)


# Link bar


class LinkItem(BlockModel):
    text: str = Field(min_length=1, max_length=50)
    url: Url


class LinkBarContent(BlockModel):
    links: List[LinkItem] = Field(min_length=1, max_length=8)


class LinkBarSettings(BlockSettings):
    color: Optional[Color] = None
    fontSize: Optional[int] = Field(default=None, ge=8, le=32)
    separator: Optional[str] = Field(default=None, max_length=5)


# Button


class ButtonContent(BlockModel):
    text: str = Field(min_length=1, max_length=100)
    url: str = Field(default="{{cta_url}}", min_length=1, max_length=2000)


class ButtonSettings(BlockSettings):
    style: Literal["solid", "outline", "ghost"] = "solid"
    size: Literal["small", "medium", "large"] = "medium"
    buttonColor: Optional[Color] = None
    textColor: Optional[Color] = None
    borderRadius: Optional[int] = Field(default=None, ge=0, le=100)
    fullWidth: bool = False


# Divider


class DividerSettings(BlockSettings):
    style: Literal["solid", "dashed", "dotted"] = "solid"
    color: Optional[Color] = None
    thickness: Optional[int] = Field(default=None, ge=1, le=10)
    width: Optional[str] = Field(default=None, max_length=10)


# Spacer


class SpacerSettings(BlockSettings):
    height: int = Field(default=24, ge=0, le=200)


# Social links


class SocialLink(BlockModel):
    platform: SocialPlatform
    url: Url


class SocialLinksContent(BlockModel):
    links: List[SocialLink] = Field(min_length=1, max_length=10)


class SocialLinksSettings(BlockSettings):
    iconSize: Optional[int] = Field(default=None, ge=12, le=64)
    spacing: Optional[int] = Field(default=None, ge=0, le=100)
    color: Optional[Color] = None


# Footer


class FooterContent(BlockModel):
    companyName: str = Field(min_length=1, max_length=200)
    companyAddress: Optional[str] = Field(default=None, max_length=500)
    customText: Optional[str] = Field(default=None, max_length=1000)
    unsubscribeUrl: str = Field(default="{{unsubscribe_url}}", min_length=1, max_length=2000)
    preferencesUrl: Optional[str] = Field(default=None, max_length=2000)


class FooterSettings(BlockSettings):
    textColor: Optional[Color] = None
    fontSize: Optional[int] = Field(default=None, ge=8, le=24)


# Address


class AddressContent(BlockModel):
    companyName: Optional[str] = Field(default=None, max_length=200)
    address: str = Field(min_length=1, max_length=500)


class AddressSettings(BlockSettings):
    textColor: Optional[Color] = None
    fontSize: Optional[int] = Field(default=None, ge=8, le=24)


# Layouts


class StatItem(BlockModel):
    value: str = Field(min_length=1, max_length=50)
    label: str = Field(min_length=1, max_length=100)


class LayoutItem(BlockModel):
    icon: Optional[FeatureIcon] = None
    imageUrl: Optional[Url] = None
    imageAltText: Optional[str] = Field(default=None, max_length=200)
    heading: Optional[str] = Field(default=None, max_length=200)
    body: Optional[str] = Field(default=None, max_length=1000)
    buttonText: Optional[str] = Field(default=None, max_length=100)
    buttonUrl: Optional[Url] = None


class LayoutsContent(BlockModel):
    heading: Optional[str] = Field(default=None, max_length=200)
    subheading: Optional[str] = Field(default=None, max_length=300)
    body: Optional[str] = Field(default=None, max_length=2000)
    imageUrl: Optional[Url] = None
    imageAltText: Optional[str] = Field(default=None, max_length=200)
    buttonText: Optional[str] = Field(default=None, max_length=100)
    buttonUrl: Optional[Url] = None
    badge: Optional[str] = Field(default=None, max_length=50)
    price: Optional[str] = Field(default=None, max_length=50)
    originalPrice: Optional[str] = Field(default=None, max_length=50)
    quote: Optional[str] = Field(default=None, max_length=1000)
    author: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = Field(default=None, max_length=100)
    stats: Optional[List[StatItem]] = Field(default=None, max_length=4)
    columns: Optional[List[LayoutItem]] = Field(default=None, max_length=6)


class LayoutsSettings(BlockSettings):
    textColor: Optional[Color] = None
    headingColor: Optional[Color] = None
    accentColor: Optional[Color] = None
    buttonColor: Optional[Color] = None
    buttonTextColor: Optional[Color] = None
    overlayOpacity: Optional[int] = Field(default=None, ge=0, le=100)
    columnGap: Optional[int] = Field(default=None, ge=0, le=100)
    borderRadius: Optional[int] = Field(default=None, ge=0, le=100)


# Block variants


class BaseBlock(BlockModel):
    id: str = Field(min_length=1, max_length=100)
    position: int = Field(ge=0)


class LogoBlock(BaseBlock):
    type: Literal["logo"]
    content: LogoContent
    settings: LogoSettings = Field(default_factory=LogoSettings)


class TextBlock(BaseBlock):
    type: Literal["text"]
    content: TextContent
    settings: TextSettings = Field(default_factory=TextSettings)


class ImageBlock(BaseBlock):
    type: Literal["image"]
    content: ImageContent
    settings: ImageSettings = Field(default_factory=ImageSettings)


class LinkBarBlock(BaseBlock):
    type: Literal["link-bar"]
    content: LinkBarContent
    settings: LinkBarSettings = Field(default_factory=LinkBarSettings)


class ButtonBlock(BaseBlock):
    type: Literal["button"]
    content: ButtonContent
    settings: ButtonSettings = Field(default_factory=ButtonSettings)


class DividerBlock(BaseBlock):
    type: Literal["divider"]
    content: EmptyContent = Field(default_factory=EmptyContent)
    settings: DividerSettings = Field(default_factory=DividerSettings)


class SpacerBlock(BaseBlock):
    type: Literal["spacer"]
    content: EmptyContent = Field(default_factory=EmptyContent)
    settings: SpacerSettings = Field(default_factory=SpacerSettings)


class SocialLinksBlock(BaseBlock):
    type: Literal["social-links"]
    content: SocialLinksContent
    settings: SocialLinksSettings = Field(default_factory=SocialLinksSettings)


class FooterBlock(BaseBlock):
    type: Literal["footer"]
    content: FooterContent
    settings: FooterSettings = Field(default_factory=FooterSettings)


class AddressBlock(BaseBlock):
    type: Literal["address"]
    content: AddressContent
    settings: AddressSettings = Field(default_factory=AddressSettings)


class LayoutsBlock(BaseBlock):
    type: Literal["layouts"]
    layoutVariation: LayoutVariation
    content: LayoutsContent = Field(default_factory=LayoutsContent)
    settings: LayoutsSettings = Field(default_factory=LayoutsSettings)


Block = Annotated[
    Union[
        LayoutsBlock,
        LogoBlock,
        TextBlock,
        ImageBlock,
        LinkBarBlock,
        ButtonBlock,
        DividerBlock,
        SpacerBlock,
        SocialLinksBlock,
        FooterBlock,
        AddressBlock,
    ],
    Field(discriminator="type"),
]


class GlobalEmailSettings(BlockModel):
    backgroundColor: str = Field(max_length=32)
    contentBackgroundColor: str = Field(max_length=32)
    maxWidth: int = Field(ge=320, le=1200)
    fontFamily: str = Field(max_length=200)
    mobileBreakpoint: Optional[int] = Field(default=None, ge=240, le=1024)


DEFAULT_GLOBAL_SETTINGS = GlobalEmailSettings(
    backgroundColor="#f3f4f6",
    contentBackgroundColor="#ffffff",
    maxWidth=600,
    fontFamily="system-ui, -apple-system, sans-serif",
    mobileBreakpoint=480,
)


class Email(BlockModel):
    subject: str = Field(min_length=1, max_length=100)
    previewText: str = Field(min_length=1, max_length=150)
    blocks: List[Block] = Field(min_length=1)
    globalSettings: Optional[GlobalEmailSettings] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _unique_block_ids(self) -> "Email":
        seen: set[str] = set()
        for block in self.blocks:
            if block.id in seen:
                raise ValueError(f"duplicate block id '{block.id}'")
            seen.add(block.id)
        return self

    def ordered_blocks(self) -> list:
        return sorted(self.blocks, key=lambda block: block.position)

    def resolved_settings(self) -> GlobalEmailSettings:
        """Global settings with defaults applied for anything the provider left out."""
        if self.globalSettings is None:
            return DEFAULT_GLOBAL_SETTINGS
        if self.globalSettings.mobileBreakpoint is None:
            return self.globalSettings.model_copy(
                update={"mobileBreakpoint": DEFAULT_GLOBAL_SETTINGS.mobileBreakpoint}
            )
        return self.globalSettings
