"""Block-to-HTML rendering for generated emails.

Output is table-based with inline styles so it survives email clients that strip
`<style>` blocks. Every piece of provider text passes through `html.escape`.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from html import escape
from typing import Any, Callable, Iterable, Optional, Sequence

from app.config import settings
from app.schemas.blocks import (
    AddressBlock,
    ButtonBlock,
    DividerBlock,
    Email,
    FooterBlock,
    GlobalEmailSettings,
    ImageBlock,
    LayoutItem,
    LayoutsBlock,
    LinkBarBlock,
    LogoBlock,
    Padding,
    SocialLinksBlock,
    SpacerBlock,
    TextBlock,
)
from app.schemas.generation import GeneratedCampaign, RenderedEmail

logger = logging.getLogger(__name__)

BASE_URL_PLACEHOLDER = "{{base_url}}"
DEFAULT_CTA_TEXT = "Get Started"
DEFAULT_CTA_URL = "{{cta_url}}"
DEFAULT_TEXT_COLOR = "#374151"
DEFAULT_HEADING_COLOR = "#1f2937"
DEFAULT_MUTED_COLOR = "#6b7280"
DEFAULT_BUTTON_COLOR = "#2563eb"

_ICON_GLYPHS = {
    "check": "&#10003;",
    "star": "&#9733;",
    "heart": "&#9829;",
    "lightning": "&#9889;",
    "shield": "&#128737;",
    "lock": "&#128274;",
    "clock": "&#128339;",
    "globe": "&#127760;",
}

_SOCIAL_LABELS = {
    "twitter": "X",
    "linkedin": "LinkedIn",
    "facebook": "Facebook",
    "instagram": "Instagram",
    "youtube": "YouTube",
    "github": "GitHub",
    "tiktok": "TikTok",
}


def _attr(value: Optional[str]) -> str:
    return escape(value or "", quote=True)


def _text(value: Optional[str]) -> str:
    return escape(value or "").replace("\n", "<br>")


def _padding(padding: Optional[Padding], default: str = "16px 24px") -> str:
    if padding is None:
        return default
    return f"{padding.top}px {padding.right}px {padding.bottom}px {padding.left}px"


def _row(inner: str, *, padding: str, align: str = "left", background: Optional[str] = None) -> str:
    bg = f"background-color:{_attr(background)};" if background else ""
    return (
        f'<tr><td align="{align}" style="padding:{padding};{bg}text-align:{align};">'
        f"{inner}</td></tr>"
    )


def _button_html(text: str, url: str, *, color: str, text_color: str = "#ffffff", radius: int = 6) -> str:
    return (
        f'<a href="{_attr(url)}" style="display:inline-block;background-color:{_attr(color)};'
        f"color:{_attr(text_color)};padding:12px 28px;border-radius:{radius}px;"
        f'text-decoration:none;font-weight:600;">{_text(text)}</a>'
    )


def _render_logo(block: LogoBlock) -> str:
    s = block.settings
    width = s.width or 140
    img = (
        f'<img src="{_attr(block.content.imageUrl)}" alt="{_attr(block.content.altText)}" '
        f'width="{width}" style="display:block;border:0;max-width:100%;margin:0 auto;">'
    )
    if block.content.linkUrl:
        img = f'<a href="{_attr(block.content.linkUrl)}">{img}</a>'
    return _row(img, padding=_padding(s.padding, "24px"), align=s.align or "center", background=s.backgroundColor)


def _render_text(block: TextBlock) -> str:
    s = block.settings
    style = (
        f"margin:0;font-size:{s.fontSize or 16}px;font-weight:{s.fontWeight or 400};"
        f"color:{_attr(s.color or DEFAULT_TEXT_COLOR)};line-height:{_attr(s.lineHeight or '1.6')};"
    )
    inner = f'<p style="{style}">{_text(block.content.text)}</p>'
    return _row(inner, padding=_padding(s.padding), align=s.align or "left", background=s.backgroundColor)


def _render_image(block: ImageBlock) -> str:
    s = block.settings
    radius = s.borderRadius or 0
    img = (
        f'<img src="{_attr(block.content.imageUrl)}" alt="{_attr(block.content.altText)}" '
        f'style="display:block;border:0;width:{_attr(s.width or "100%")};max-width:100%;'
        f'border-radius:{radius}px;">'
    )
    if block.content.linkUrl:
        img = f'<a href="{_attr(block.content.linkUrl)}">{img}</a>'
    if block.content.caption:
        img += (
            f'<p style="margin:8px 0 0;font-size:13px;color:{DEFAULT_MUTED_COLOR};">'
            f"{_text(block.content.caption)}</p>"
        )
    return _row(img, padding=_padding(s.padding), align=s.align or "center", background=s.backgroundColor)


def _render_link_bar(block: LinkBarBlock) -> str:
    s = block.settings
    separator = f" {_text(s.separator or '|')} "
    links = separator.join(
        f'<a href="{_attr(link.url)}" style="color:{_attr(s.color or DEFAULT_TEXT_COLOR)};'
        f'font-size:{s.fontSize or 14}px;text-decoration:none;">{_text(link.text)}</a>'
        for link in block.content.links
    )
    return _row(links, padding=_padding(s.padding), align=s.align or "center", background=s.backgroundColor)


def _render_button(block: ButtonBlock) -> str:
    s = block.settings
    color = s.buttonColor or DEFAULT_BUTTON_COLOR
    radius = s.borderRadius if s.borderRadius is not None else 6
    sizes = {"small": "8px 18px", "medium": "12px 28px", "large": "16px 40px"}
    if s.style == "solid":
        look = f"background-color:{_attr(color)};color:{_attr(s.textColor or '#ffffff')};border:2px solid {_attr(color)};"
    elif s.style == "outline":
        look = f"background-color:transparent;color:{_attr(s.textColor or color)};border:2px solid {_attr(color)};"
    else:
        look = f"background-color:transparent;color:{_attr(s.textColor or color)};border:0;text-decoration:underline;"
    display = "block" if s.fullWidth else "inline-block"
    link = (
        f'<a href="{_attr(block.content.url)}" style="display:{display};{look}padding:{sizes[s.size]};'
        f'border-radius:{radius}px;font-weight:600;text-decoration:none;">{_text(block.content.text)}</a>'
    )
    return _row(link, padding=_padding(s.padding, "24px"), align=s.align or "center", background=s.backgroundColor)


def _render_divider(block: DividerBlock) -> str:
    s = block.settings
    rule = (
        f'<hr style="border:0;border-top:{s.thickness or 1}px {s.style} {_attr(s.color or "#e5e7eb")};'
        f'width:{_attr(s.width or "100%")};margin:0 auto;">'
    )
    return _row(rule, padding=_padding(s.padding), align="center", background=s.backgroundColor)


def _render_spacer(block: SpacerBlock) -> str:
    height = block.settings.height
    return f'<tr><td style="height:{height}px;line-height:{height}px;font-size:0;">&nbsp;</td></tr>'


def _render_social_links(block: SocialLinksBlock) -> str:
    s = block.settings
    gap = s.spacing if s.spacing is not None else 12
    links = "".join(
        f'<a href="{_attr(link.url)}" style="display:inline-block;margin:0 {gap // 2}px;'
        f'color:{_attr(s.color or DEFAULT_MUTED_COLOR)};text-decoration:none;">'
        f"{_SOCIAL_LABELS.get(link.platform, link.platform)}</a>"
        for link in block.content.links
    )
    return _row(links, padding=_padding(s.padding), align=s.align or "center", background=s.backgroundColor)


def _render_footer(block: FooterBlock) -> str:
    s = block.settings
    c = block.content
    style = f"margin:0 0 8px;font-size:{s.fontSize or 12}px;color:{_attr(s.textColor or '#9ca3af')};line-height:1.6;"
    parts = [f'<p style="{style}">{_text(c.companyName)}</p>']
    if c.companyAddress:
        parts.append(f'<p style="{style}">{_text(c.companyAddress)}</p>')
    if c.customText:
        parts.append(f'<p style="{style}">{_text(c.customText)}</p>')
    links = [f'<a href="{_attr(c.unsubscribeUrl)}" style="color:inherit;">Unsubscribe</a>']
    if c.preferencesUrl:
        links.append(f'<a href="{_attr(c.preferencesUrl)}" style="color:inherit;">Preferences</a>')
    parts.append(f'<p style="{style}">{" &middot; ".join(links)}</p>')
    return _row("".join(parts), padding=_padding(s.padding, "32px 24px"), align=s.align or "center", background=s.backgroundColor)


def _render_address(block: AddressBlock) -> str:
    s = block.settings
    style = f"margin:0;font-size:{s.fontSize or 12}px;color:{_attr(s.textColor or DEFAULT_MUTED_COLOR)};"
    lines = []
    if block.content.companyName:
        lines.append(f"<strong>{_text(block.content.companyName)}</strong>")
    lines.append(_text(block.content.address))
    inner = f'<p style="{style}">{"<br>".join(lines)}</p>'
    return _row(inner, padding=_padding(s.padding), align=s.align or "center", background=s.backgroundColor)


def _heading(text: Optional[str], *, size: int, color: str) -> str:
    if not text:
        return ""
    return f'<h2 style="margin:0 0 12px;font-size:{size}px;line-height:1.2;color:{_attr(color)};">{_text(text)}</h2>'


def _paragraph(text: Optional[str], *, color: str, size: int = 16) -> str:
    if not text:
        return ""
    return f'<p style="margin:0 0 16px;font-size:{size}px;line-height:1.6;color:{_attr(color)};">{_text(text)}</p>'


def _layout_item_cell(item: LayoutItem, *, width: str, heading_color: str, text_color: str, button_color: str) -> str:
    parts = []
    if item.icon is not None:
        parts.append(f'<div style="font-size:24px;color:{_attr(button_color)};">{_ICON_GLYPHS[item.icon.value]}</div>')
    if item.imageUrl:
        parts.append(
            f'<img src="{_attr(item.imageUrl)}" alt="{_attr(item.imageAltText)}" '
            f'style="display:block;width:100%;border:0;margin-bottom:12px;">'
        )
    parts.append(_heading(item.heading, size=18, color=heading_color))
    parts.append(_paragraph(item.body, color=text_color, size=15))
    if item.buttonText:
        parts.append(_button_html(item.buttonText, item.buttonUrl or DEFAULT_CTA_URL, color=button_color))
    return f'<td valign="top" width="{width}" style="padding:8px;">{"".join(parts)}</td>'


def _render_layouts(block: LayoutsBlock) -> str:
    s = block.settings
    c = block.content
    variation = block.layoutVariation.value
    heading_color = s.headingColor or DEFAULT_HEADING_COLOR
    text_color = s.textColor or DEFAULT_TEXT_COLOR
    button_color = s.buttonColor or s.accentColor or DEFAULT_BUTTON_COLOR
    align = s.align or ("center" if variation.startswith(("hero", "stats", "testimonial")) else "left")

    parts: list[str] = []
    if c.badge:
        parts.append(
            f'<span style="display:inline-block;padding:4px 10px;border-radius:999px;font-size:12px;'
            f'background-color:{_attr(s.accentColor or "#fef3c7")};">{_text(c.badge)}</span>'
        )

    if variation in ("hero-image-overlay", "image-overlay") and c.imageUrl:
        opacity = (s.overlayOpacity if s.overlayOpacity is not None else 40) / 100
        overlay = "".join(
            [
                _heading(c.heading, size=40, color="#ffffff"),
                _paragraph(c.subheading or c.body, color="#f3f4f6", size=18),
                _button_html(c.buttonText, c.buttonUrl or DEFAULT_CTA_URL, color=button_color) if c.buttonText else "",
            ]
        )
        parts.append(
            f'<table role="presentation" width="100%" cellpadding="0" cellspacing="0" '
            f'background="{_attr(c.imageUrl)}" style="background-image:url(\'{_attr(c.imageUrl)}\');'
            f'background-size:cover;background-position:center;">'
            f'<tr><td align="center" style="padding:80px 32px;background-color:rgba(0,0,0,{opacity:.2f});">'
            f"{overlay}</td></tr></table>"
        )
        return _row("".join(parts), padding=_padding(s.padding, "0"), align="center", background=s.backgroundColor)

    if variation == "product-card-image-top" and c.imageUrl:
        parts.append(
            f'<img src="{_attr(c.imageUrl)}" alt="{_attr(c.imageAltText)}" '
            f'style="display:block;width:100%;border:0;border-radius:{s.borderRadius or 0}px;margin-bottom:16px;">'
        )

    if variation.startswith("testimonial") and c.quote:
        parts.append(
            f'<p style="margin:0 0 12px;font-size:20px;font-style:italic;line-height:1.5;color:{_attr(heading_color)};">'
            f"&ldquo;{_text(c.quote)}&rdquo;</p>"
        )
        byline = ", ".join(_text(part) for part in (c.author, c.role) if part)
        if byline:
            parts.append(f'<p style="margin:0;font-size:14px;color:{DEFAULT_MUTED_COLOR};">{byline}</p>')

    size = 40 if variation.startswith("hero") else 28
    parts.append(_heading(c.heading, size=size, color=heading_color))
    parts.append(_paragraph(c.subheading, color=DEFAULT_MUTED_COLOR, size=18))
    parts.append(_paragraph(c.body, color=text_color))

    if c.price:
        original = (
            f' <span style="text-decoration:line-through;color:{DEFAULT_MUTED_COLOR};">{_text(c.originalPrice)}</span>'
            if c.originalPrice
            else ""
        )
        parts.append(f'<p style="margin:0 0 16px;font-size:22px;font-weight:700;">{_text(c.price)}{original}</p>')

    if c.stats:
        width = f"{100 // len(c.stats)}%"
        cells = "".join(
            f'<td align="center" width="{width}" style="padding:8px;">'
            f'<div style="font-size:36px;font-weight:800;color:{_attr(button_color)};">{_text(stat.value)}</div>'
            f'<div style="font-size:13px;color:{DEFAULT_MUTED_COLOR};">{_text(stat.label)}</div></td>'
            for stat in c.stats
        )
        parts.append(f'<table role="presentation" width="100%" cellpadding="0" cellspacing="0"><tr>{cells}</tr></table>')

    if c.columns:
        parts.append(_render_columns(variation, c.columns, heading_color, text_color, button_color))

    if c.buttonText:
        parts.append(_button_html(c.buttonText, c.buttonUrl or DEFAULT_CTA_URL, color=button_color, radius=s.borderRadius or 6))

    return _row("".join(parts), padding=_padding(s.padding, "32px 24px"), align=align, background=s.backgroundColor)


def _render_columns(
    variation: str,
    columns: Sequence[LayoutItem],
    heading_color: str,
    text_color: str,
    button_color: str,
) -> str:
    cell = partial(
        _layout_item_cell, heading_color=heading_color, text_color=text_color, button_color=button_color
    )
    if variation == "zigzag-2-rows":
        rows = "".join(f"<tr>{cell(item, width='100%')}</tr>" for item in columns)
        return f'<table role="presentation" width="100%" cellpadding="0" cellspacing="0">{rows}</table>'

    widths = {
        "two-column-50-50": ["50%", "50%"],
        "two-column-60-40": ["60%", "40%"],
        "two-column-40-60": ["40%", "60%"],
    }.get(variation)
    if widths is None:
        even = f"{100 // max(len(columns), 1)}%"
        widths = [even] * len(columns)
    cells = "".join(cell(item, width=widths[i % len(widths)]) for i, item in enumerate(columns))
    return f'<table role="presentation" width="100%" cellpadding="0" cellspacing="0"><tr>{cells}</tr></table>'


_RENDERERS: dict[str, Callable[[Any], str]] = {
    "logo": _render_logo,
    "text": _render_text,
    "image": _render_image,
    "link-bar": _render_link_bar,
    "button": _render_button,
    "divider": _render_divider,
    "spacer": _render_spacer,
    "social-links": _render_social_links,
    "footer": _render_footer,
    "address": _render_address,
    "layouts": _render_layouts,
}


def _sorted(blocks: Iterable[Any]) -> list[Any]:
    return sorted(blocks, key=lambda block: block.position)


def rewrite_base_url(html: str, base_url: str) -> str:
    return html.replace(BASE_URL_PLACEHOLDER, base_url.rstrip("/"))


def render_email_html(
    blocks: Sequence[Any],
    global_settings: GlobalEmailSettings,
    *,
    subject: str = "",
    preview_text: str = "",
    base_url: Optional[str] = None,
) -> str:
    body = "".join(_RENDERERS[block.type](block) for block in _sorted(blocks))
    gs = global_settings
    preheader = (
        f'<div style="display:none;max-height:0;overflow:hidden;opacity:0;">{_text(preview_text)}</div>'
        if preview_text
        else ""
    )
    document = (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1">'
        f"<title>{_text(subject)}</title></head>"
        f'<body style="margin:0;padding:0;background-color:{_attr(gs.backgroundColor)};'
        f'font-family:{_attr(gs.fontFamily)};">'
        f"{preheader}"
        f'<table role="presentation" width="100%" cellpadding="0" cellspacing="0" '
        f'style="background-color:{_attr(gs.backgroundColor)};"><tr><td align="center" style="padding:24px 0;">'
        f'<table role="presentation" width="{gs.maxWidth}" cellpadding="0" cellspacing="0" '
        f'style="width:100%;max-width:{gs.maxWidth}px;background-color:{_attr(gs.contentBackgroundColor)};">'
        f"{body}</table></td></tr></table></body></html>"
    )
    return rewrite_base_url(document, base_url if base_url is not None else settings.APP_BASE_URL)


def render_plain_text(blocks: Sequence[Any], fallback: str) -> str:
    chunks: list[str] = []
    for block in _sorted(blocks):
        if block.type == "text":
            chunks.append(block.content.text)
        elif block.type == "layouts":
            for value in (block.content.heading, block.content.subheading, block.content.body, block.content.quote):
                if value:
                    chunks.append(value)
            for item in block.content.columns or []:
                for value in (item.heading, item.body):
                    if value:
                        chunks.append(value)
    text = "\n\n".join(chunk.strip() for chunk in chunks if chunk and chunk.strip())
    return text or fallback


def extract_cta(blocks: Sequence[Any]) -> tuple[str, str]:
    for block in _sorted(blocks):
        if block.type == "button":
            return block.content.text, block.content.url
    return DEFAULT_CTA_TEXT, DEFAULT_CTA_URL


def render_email(email: Email, *, base_url: Optional[str] = None) -> RenderedEmail:
    blocks = email.ordered_blocks()
    html = render_email_html(
        blocks,
        email.resolved_settings(),
        subject=email.subject,
        preview_text=email.previewText,
        base_url=base_url,
    )
    cta_text, cta_url = extract_cta(blocks)
    return RenderedEmail(
        subject=email.subject,
        previewText=email.previewText,
        html=html,
        plainText=render_plain_text(blocks, email.subject),
        ctaText=cta_text,
        ctaUrl=cta_url,
    )


async def render_campaign_emails(
    campaign: GeneratedCampaign,
    *,
    base_url: Optional[str] = None,
) -> list[RenderedEmail]:
    """Render every email of a campaign concurrently, preserving email order."""
    tasks = [asyncio.to_thread(render_email, email, base_url=base_url) for email in campaign.emails]
    rendered = await asyncio.gather(*tasks)
    logger.info("Rendered campaign emails", extra={"email_count": len(rendered)})
    return list(rendered)
