"""Normalize and validate provider output against the campaign models.

Three passes run in order: sanitize (drop nulls, remap invented icon names), truncate
(cut strings to their schema `maxLength`), then pydantic validation with every issue
collected into a single error.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Optional

from pydantic import ValidationError

from app.config import settings
from app.llm.json_repair import parse_llm_json
from app.llm.schema_converter import SchemaResolver, split_nullable
from app.schemas.blocks import FeatureIcon
from app.schemas.generation import GenerateCampaignInput, GeneratedCampaign
from app.services.errors import (
    CampaignInputError,
    CampaignResponseParseError,
    CampaignResponseValidationError,
)

logger = logging.getLogger(__name__)

VALID_ICONS = frozenset(icon.value for icon in FeatureIcon)
FALLBACK_ICON = FeatureIcon.check.value

ICON_ALIASES: dict[str, str] = {
    "checkmark": "check",
    "check-circle": "check",
    "tick": "check",
    "done": "check",
    "verified": "check",
    "award": "star",
    "trophy": "star",
    "sparkle": "star",
    "sparkles": "star",
    "favorite": "star",
    "love": "heart",
    "like": "heart",
    "care": "heart",
    "bolt": "lightning",
    "flash": "lightning",
    "zap": "lightning",
    "rocket": "lightning",
    "fast": "lightning",
    "speed": "lightning",
    "security": "shield",
    "secure": "shield",
    "protection": "shield",
    "safe": "shield",
    "privacy": "lock",
    "key": "lock",
    "locked": "lock",
    "time": "clock",
    "timer": "clock",
    "schedule": "clock",
    "calendar": "clock",
    "moon": "clock",
    "sun": "clock",
    "world": "globe",
    "earth": "globe",
    "global": "globe",
    "international": "globe",
    "web": "globe",
}


def remap_icon(value: Any) -> str:
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in VALID_ICONS:
            return normalized
        mapped = ICON_ALIASES.get(normalized)
        if mapped:
            return mapped
    logger.debug("Unknown icon replaced with fallback", extra={"icon": value, "fallback": FALLBACK_ICON})
    return FALLBACK_ICON


def sanitize_campaign_payload(data: Any) -> Any:
    """Drop null object members recursively and coerce `icon` values onto the icon enum."""
    if isinstance(data, dict):
        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key == "icon":
                cleaned[key] = remap_icon(value)
                continue
            cleaned[key] = sanitize_campaign_payload(value)
        return cleaned
    if isinstance(data, list):
        return [sanitize_campaign_payload(item) for item in data]
    return data


@lru_cache(maxsize=1)
def _campaign_json_schema() -> dict[str, Any]:
    return GeneratedCampaign.model_json_schema()


def truncate_to_schema(data: Any, schema: Optional[dict[str, Any]] = None) -> Any:
    """Cut every string carrying a schema `maxLength` down to that length."""
    root = schema if schema is not None else _campaign_json_schema()
    return _truncate(data, root, SchemaResolver(root))


def _truncate(data: Any, node: dict[str, Any], resolver: SchemaResolver) -> Any:
    node = resolver.resolve(node)
    node, _ = split_nullable(node)
    node = resolver.resolve(node) if node else node
    if not node:
        return data

    if "discriminator" in node:
        variant = _discriminated_variant(data, node, resolver)
        return _truncate(data, variant, resolver) if variant else data

    if isinstance(data, str):
        max_length = node.get("maxLength")
        if isinstance(max_length, int) and len(data) > max_length:
            return data[:max_length]
        return data

    if isinstance(data, list):
        items = node.get("items")
        if isinstance(items, dict):
            return [_truncate(item, items, resolver) for item in data]
        return data

    if isinstance(data, dict):
        properties = node.get("properties") or {}
        if not properties:
            return data
        return {
            key: _truncate(value, properties[key], resolver) if key in properties else value
            for key, value in data.items()
        }

    return data


def _discriminated_variant(
    data: Any, node: dict[str, Any], resolver: SchemaResolver
) -> Optional[dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    discriminator = node["discriminator"]
    tag = data.get(discriminator.get("propertyName", "type"))
    ref = (discriminator.get("mapping") or {}).get(tag)
    if ref is None:
        return None
    return resolver.resolve({"$ref": ref})


def _issues_from(exc: ValidationError) -> list[tuple[str, str]]:
    issues: list[tuple[str, str]] = []
    for error in exc.errors(include_url=False):
        path = ".".join(str(part) for part in error.get("loc", ())) or "root"
        issues.append((path, error.get("msg", "Invalid value")))
    return issues


def validate_generated_campaign(data: Any) -> GeneratedCampaign:
    sanitized = sanitize_campaign_payload(data)
    truncated = truncate_to_schema(sanitized)
    try:
        return GeneratedCampaign.model_validate(truncated)
    except ValidationError as exc:
        issues = _issues_from(exc)
        logger.error(
            "Generated campaign failed validation",
            extra={"issue_count": len(issues), "issues": issues[:20]},
        )
        raise CampaignResponseValidationError(issues) from exc


def validate_campaign_input(data: dict[str, Any]) -> GenerateCampaignInput:
    try:
        return GenerateCampaignInput.model_validate(data)
    except ValidationError as exc:
        issues = _issues_from(exc)
        raise CampaignInputError(
            "Invalid campaign generation input",
            details=[{"path": path, "message": message} for path, message in issues],
        ) from exc


def parse_and_validate_campaign(text: str) -> GeneratedCampaign:
    try:
        data = parse_llm_json(
            text,
            debug_dir=settings.JSON_REPAIR_DEBUG_DIR,
            production=settings.is_production,
        )
    except json.JSONDecodeError as exc:
        raise CampaignResponseParseError(
            f"Provider returned malformed JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})"
        ) from exc
    return validate_generated_campaign(data)
