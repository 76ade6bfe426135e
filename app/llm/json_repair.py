"""Best-effort repair of JSON text emitted by a generative model.

The rewrites are purely textual and only cover syntax slips seen from the providers in
practice. Anything they cannot fix is reported with the original parser error.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

# A double-quoted literal is matched before either comment form, so "//" in a URL
# or "/*" in copy never starts a comment.
_STRING_OR_COMMENT_RE = re.compile(r'"(?:\\.|[^"\\])*"|/\*.*?\*/|//[^\n]*', re.DOTALL)
_STRING_RE = re.compile(r'"(?:\\.|[^"\\])*"')

# Applied in order to the text between string literals; each sees the previous output.
_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r",(\s*[}\]])"), r"\1"),
    (re.compile(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)(\s*:)"), r'\1"\2"\3'),
    (re.compile(r"'([^']+)'(\s*:)"), r'"\1"\2'),
    (re.compile(r":\s*undefined\b"), ": null"),
)

_CONTEXT_WINDOW = 200
_HEAD_CHARS = 1000
_TAIL_CHARS = 500


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def repair_json_text(text: str) -> str:
    """Rewrite common syntax slips; string literals are never modified."""
    without_comments = _STRING_OR_COMMENT_RE.sub(_keep_strings, text)
    parts: list[str] = []
    last = 0
    for match in _STRING_RE.finditer(without_comments):
        parts.append(_rewrite_code(without_comments[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(_rewrite_code(without_comments[last:]))
    return "".join(parts)


def _keep_strings(match: re.Match[str]) -> str:
    token = match.group(0)
    return token if token.startswith('"') else ""


def _rewrite_code(segment: str) -> str:
    for pattern, replacement in _REWRITES:
        segment = pattern.sub(replacement, segment)
    return segment


def parse_llm_json(text: str, *, debug_dir: Optional[str] = None, production: bool = False) -> Any:
    """Parse provider JSON, repairing common syntax slips.

    Raises the original `json.JSONDecodeError` when the repaired text still does not parse.
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as original_error:
        repaired = repair_json_text(cleaned)
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError:
            _log_parse_failure(cleaned, original_error)
            if debug_dir and not production:
                _write_debug_files(Path(debug_dir), cleaned, repaired)
            raise original_error
        logger.info(
            "Repaired malformed provider JSON",
            extra={"original_error": original_error.msg, "position": original_error.pos},
        )
        return parsed


def _log_parse_failure(content: str, error: json.JSONDecodeError) -> None:
    start = max(0, error.pos - _CONTEXT_WINDOW)
    end = min(len(content), error.pos + _CONTEXT_WINDOW)
    logger.error(
        "Provider JSON could not be repaired",
        extra={
            "error": error.msg,
            "position": error.pos,
            "line": error.lineno,
            "column": error.colno,
            "content_length": len(content),
            "content_head": content[:_HEAD_CHARS],
            "content_tail": content[-_TAIL_CHARS:],
            "error_context": content[start:end],
        },
    )


def _write_debug_files(directory: Path, raw: str, repaired: str) -> None:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    try:
        directory.mkdir(parents=True, exist_ok=True)
        raw_path = directory / f"llm-json-{stamp}-raw.txt"
        fixed_path = directory / f"llm-json-{stamp}-fixed.txt"
        raw_path.write_text(raw, encoding="utf-8")
        fixed_path.write_text(repaired, encoding="utf-8")
    except OSError:
        logger.warning(
            "Failed to write JSON repair debug files",
            extra={"directory": str(directory)},
            exc_info=True,
        )
        return
    logger.info(
        "Wrote JSON repair debug files",
        extra={"raw_path": str(raw_path), "fixed_path": str(fixed_path)},
    )
