from __future__ import annotations

from typing import Any, Optional


class GenerationStageError(RuntimeError):
    """A campaign-generation failure tagged with the pipeline stage that raised it."""

    stage = "unknown"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.message, "stage": self.stage}
        if self.details:
            payload["details"] = self.details
        return payload


class CampaignInputError(GenerationStageError):
    stage = "input"
    status_code = 400


class PromptBuildError(GenerationStageError):
    stage = "prompt"
    status_code = 500


class ProviderError(GenerationStageError):
    stage = "provider"
    status_code = 502

    def __init__(self, message: str, *, code: str = "UNKNOWN", retryable: bool = False) -> None:
        super().__init__(message, details=[{"code": code, "retryable": retryable}])
        self.code = code
        self.retryable = retryable


class CampaignResponseParseError(GenerationStageError):
    stage = "validation"
    status_code = 502


class CampaignResponseValidationError(GenerationStageError):
    stage = "validation"
    status_code = 422

    def __init__(self, issues: list[tuple[str, str]]) -> None:
        summary = "; ".join(f"{path}: {message}" for path, message in issues)
        super().__init__(
            f"Generated campaign failed validation ({len(issues)} issue(s)): {summary}",
            details=[{"path": path, "message": message} for path, message in issues],
        )
        self.issues = issues


class RenderError(GenerationStageError):
    stage = "render"
    status_code = 500


class StorageError(GenerationStageError):
    stage = "storage"
    status_code = 500
