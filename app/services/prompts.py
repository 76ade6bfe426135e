from __future__ import annotations

from typing import Optional

from app.config import settings
from app.schemas.blocks import FeatureIcon, LayoutVariation
from app.schemas.generation import GenerateCampaignInput
from app.services.design_systems import DesignSystem

BASE_TOKEN_LIMIT = 16000
LONG_PROMPT_THRESHOLD = 200
VERY_LONG_PROMPT_THRESHOLD = 400
LONG_PROMPT_TOKENS = 2000
SEQUENCE_TOKENS = 4000
TOKENS_PER_EXTRA_EMAIL = 1500

_LAYOUT_VARIATIONS = ", ".join(variation.value for variation in LayoutVariation)
_ICONS = ", ".join(icon.value for icon in FeatureIcon)

CAMPAIGN_GENERATOR_SYSTEM_PROMPT = "\n".join(
    [
        "You are a senior email designer and conversion copywriter. You produce complete, block-based",
        "email campaigns that look polished in every major inbox.",
        "",
        "## Output rules",
        "- Output ONLY a single JSON object. No markdown, no code fences, no commentary.",
        "- Keys are camelCase exactly as listed below. Omit optional fields instead of sending null.",
        "- Use merge tags for links you cannot know: {{cta_url}}, {{unsubscribe_url}}, {{first_name}},",
        "  {{company_name}}, {{logo_url}}. Use {{base_url}} for paths on the sender's site.",
        "- Every block has a unique string id, a type, a 0-based position, a content object and a settings object.",
        "",
        "## Campaign object",
        "campaignName, campaignType ('one-time' or 'sequence'), recommendedSegment, strategy {goal, keyMessage},",
        "design {ctaColor, accentColor}, emails (1-5), segmentationSuggestion, sendTimeSuggestion, successMetrics.",
        "Each email: subject (max 100 chars), previewText (max 150 chars), blocks, globalSettings",
        "{backgroundColor, contentBackgroundColor, maxWidth, fontFamily, mobileBreakpoint}.",
        "",
        "## Block catalogue",
        "- logo: content {imageUrl, altText, linkUrl?}; settings {width, align}",
        "- text: content {text}; settings {fontSize, fontWeight, color, lineHeight, align}",
        "- image: content {imageUrl, altText, linkUrl?, caption?}; settings {width, borderRadius}",
        "- link-bar: content {links: [{text, url}]} (1-8 links)",
        "- button: content {text, url}; settings {style: solid|outline|ghost, size, buttonColor, textColor, borderRadius}",
        "- divider: content {}; settings {color, thickness}",
        "- spacer: content {}; settings {height}",
        "- social-links: content {links: [{platform, url}]}",
        "- footer: content {companyName, companyAddress?, customText?, unsubscribeUrl}",
        "- address: content {companyName, address}",
        "- layouts: requires layoutVariation; content {heading?, subheading?, body?, imageUrl?, imageAltText?,",
        "  buttonText?, buttonUrl?, badge?, price?, originalPrice?, quote?, author?, role?, stats?, columns?}",
        "",
        f"layoutVariation must be one of: {_LAYOUT_VARIATIONS}.",
        "- hero-*: the opening statement of the email. image-overlay needs imageUrl.",
        "- stats-N-col: stats holds exactly N items of {value, label}.",
        "- testimonial-*: quote, author and role.",
        "- two-column-* / three-column-equal / zigzag-2-rows: columns holds one item per column or row,",
        "  each {icon?, imageUrl?, imageAltText?, heading?, body?, buttonText?, buttonUrl?}.",
        "- product-card-image-top: imageUrl, heading, body, price, optional originalPrice and badge.",
        f"Column icons must be one of: {_ICONS}. Do not invent other icon names.",
        "",
        "## Design principles",
        "- Generous white space. Hero padding 64-80px, standard sections 32-48px.",
        "- Clear hierarchy: one headline, short paragraphs, one primary call to action repeated at most twice.",
        "- Body text 16-18px with line height around 1.6. Keep contrast readable.",
        "- Start with a logo or hero, end with a footer block.",
        "- Image URLs must be absolute https URLs (Unsplash photo URLs are fine).",
    ]
)


def build_campaign_prompt(
    campaign_input: GenerateCampaignInput,
    design_system: Optional[DesignSystem] = None,
) -> str:
    """Assemble the user prompt for one campaign request."""
    lines = [f"Create a {campaign_input.campaignType} email campaign: {campaign_input.prompt}", ""]

    if campaign_input.companyName:
        lines.append(f"Company: {campaign_input.companyName}")
    if campaign_input.productDescription:
        lines.append(f"Product: {campaign_input.productDescription}")
    if campaign_input.targetAudience:
        lines.append(f"Audience: {campaign_input.targetAudience}")
    lines.append(f"Tone: {campaign_input.tone}")
    lines.append("")

    if campaign_input.campaignType == "sequence":
        lines.append("This is a sequence: write 3 to 5 emails that build on each other, each with its own subject.")
        lines.append("")
    else:
        lines.append("This is a one-time send: write exactly 1 email.")
        lines.append("")

    brand_kit = campaign_input.brandKit
    if brand_kit is not None:
        lines.append("Brand colors (use for CTAs and hero sections):")
        lines.append(f"Primary: {brand_kit.primaryColor}")
        lines.append(f"Secondary: {brand_kit.secondaryColor}")
        if brand_kit.accentColor:
            lines.append(f"Accent: {brand_kit.accentColor}")
        lines.append(f"Font: {brand_kit.fontStyle}")
        lines.append("")

    if design_system is not None:
        lines.append(f"## Design system: {design_system.name}")
        lines.append(design_system.description)
        lines.append("")
        lines.append(design_system.system)
        lines.append("")
        keywords = design_system.image_keywords
        hero_keywords = ", ".join(keywords.get("hero") or [])
        if hero_keywords:
            lines.append(f"Hero image keywords: {hero_keywords}")
            lines.append("")
        if design_system.example_email:
            lines.append("Reference email in this style (structure only, write fresh copy):")
            lines.append(design_system.example_email)
            lines.append("")

    lines.append("Requirements:")
    lines.append("- Generous white space and a clear visual hierarchy")
    lines.append(
        "- At least one compelling CTA button" + (" using the brand colors" if brand_kit is not None else "")
    )
    lines.append("- Use layouts blocks where they help: heroes, stats, testimonials, multi-column features, product cards")
    lines.append("- A footer block at the end of every email")
    return "\n".join(lines)


def calculate_token_limit(
    prompt_length: int,
    campaign_type: Optional[str] = None,
    email_count: int = 1,
    *,
    max_tokens: Optional[int] = None,
) -> int:
    tokens = BASE_TOKEN_LIMIT
    if prompt_length > LONG_PROMPT_THRESHOLD:
        tokens += LONG_PROMPT_TOKENS
    if prompt_length > VERY_LONG_PROMPT_THRESHOLD:
        tokens += LONG_PROMPT_TOKENS
    if campaign_type == "sequence":
        tokens += SEQUENCE_TOKENS
    tokens += max(email_count - 1, 0) * TOKENS_PER_EXTRA_EMAIL
    cap = max_tokens if max_tokens is not None else settings.LLM_MAX_TOKENS_GLOBAL
    return min(tokens, cap)
