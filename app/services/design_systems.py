from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class DesignSystemConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class DesignSystem:
    id: str
    name: str
    description: str
    triggers: tuple[str, ...]
    image_keywords: dict[str, list[str]]
    system: str
    example_email: Optional[str] = None
    lowered_triggers: tuple[str, ...] = field(default=(), repr=False, compare=False)

    def score(self, lowered_prompt: str) -> int:
        return sum(1 for trigger in self.lowered_triggers if trigger in lowered_prompt)

    def matched_triggers(self, lowered_prompt: str) -> list[str]:
        return [trigger for trigger in self.lowered_triggers if trigger in lowered_prompt]


def _design_systems_dir() -> Path:
    # backend/app/services -> backend/app/templates/design_systems
    return Path(__file__).resolve().parents[1] / "templates" / "design_systems"


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise DesignSystemConfigError(f"Missing design system file at {path}.")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DesignSystemConfigError(f"Design system file {path.name} is not valid JSON: {exc}") from exc


def _load_record(path: Path) -> DesignSystem:
    data = _read_json(path)
    if not isinstance(data, dict):
        raise DesignSystemConfigError(f"Design system {path.name} must decode to a JSON object.")

    for key in ("id", "name", "description", "system"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise DesignSystemConfigError(f"Design system {path.name} is missing required '{key}'.")

    triggers = data.get("triggers")
    if not isinstance(triggers, list) or not all(isinstance(t, str) and t for t in triggers):
        raise DesignSystemConfigError(f"Design system {path.name} must list string triggers.")

    image_keywords = data.get("imageKeywords") or {}
    if not isinstance(image_keywords, dict):
        raise DesignSystemConfigError(f"Design system {path.name} imageKeywords must be an object.")
    for slot in ("hero", "feature", "product", "background"):
        if not isinstance(image_keywords.get(slot), list):
            raise DesignSystemConfigError(f"Design system {path.name} imageKeywords.{slot} must be a list.")

    example_email = data.get("exampleEmail")
    if example_email is not None and not isinstance(example_email, str):
        raise DesignSystemConfigError(f"Design system {path.name} exampleEmail must be a string.")

    return DesignSystem(
        id=data["id"],
        name=data["name"],
        description=data["description"],
        triggers=tuple(triggers),
        image_keywords={str(k): list(v) for k, v in image_keywords.items()},
        system=data["system"],
        example_email=example_email,
        lowered_triggers=tuple(t.lower() for t in triggers),
    )


@lru_cache(maxsize=1)
def load_design_systems() -> tuple[DesignSystem, ...]:
    """Load every design system listed in index.json, in priority order."""
    directory = _design_systems_dir()
    index = _read_json(directory / "index.json")
    order = index.get("order") if isinstance(index, dict) else None
    if not isinstance(order, list) or not order:
        raise DesignSystemConfigError("Design system index must contain a non-empty 'order' list.")

    records: list[DesignSystem] = []
    seen: set[str] = set()
    for system_id in order:
        if not isinstance(system_id, str) or not system_id:
            raise DesignSystemConfigError(f"Design system index has an invalid id: {system_id!r}")
        if system_id in seen:
            raise DesignSystemConfigError(f"Design system index lists '{system_id}' twice.")
        record = _load_record(directory / f"{system_id}.json")
        if record.id != system_id:
            raise DesignSystemConfigError(
                f"Design system file {system_id}.json declares id '{record.id}'."
            )
        seen.add(system_id)
        records.append(record)

    logger.info("Loaded design systems", extra={"count": len(records)})
    return tuple(records)


def detect_design_system(prompt: str) -> DesignSystem:
    """Pick the design system whose triggers best match the prompt.

    Ties keep index order, and a prompt with no matches gets the first record.
    """
    systems = load_design_systems()
    lowered = (prompt or "").lower()

    best = systems[0]
    best_score = 0
    for system in systems:
        score = system.score(lowered)
        if score > best_score:
            best = system
            best_score = score

    if best_score == 0:
        logger.info("No design system keywords matched, using default", extra={"design_system": best.id})
        return best

    logger.info(
        "Detected design system",
        extra={
            "design_system": best.id,
            "match_count": best_score,
            "matches": best.matched_triggers(lowered),
        },
    )
    return best


def get_design_system(system_id: str) -> Optional[DesignSystem]:
    for system in load_design_systems():
        if system.id == system_id:
            return system
    return None


def list_design_system_options() -> list[dict[str, str]]:
    return [{"id": system.id, "name": system.name} for system in load_design_systems()]
