from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class CampaignCreate(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["one-time", "sequence", "automation"] = "one-time"
    from_name: str = Field(min_length=1)
    from_email: EmailStr
    reply_to_email: Optional[EmailStr] = None
    subject_line: Optional[str] = None
    preview_text: Optional[str] = None
    html_content: Optional[str] = None
    plain_text: Optional[str] = None
    list_ids: List[str] = Field(default_factory=list)
    blocks: Optional[List[dict[str, Any]]] = None
    design_config: Optional[Any] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


_NOT_NULL_FIELDS = frozenset({"name", "type", "status", "from_name", "from_email", "list_ids", "send_config"})


class CampaignUpdate(BaseModel):
    """Partial update; only fields present in the body are written."""

    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[Literal["one-time", "sequence", "automation"]] = None
    status: Optional[Literal["draft", "scheduled", "sending", "sent", "paused", "cancelled"]] = None
    from_name: Optional[str] = Field(default=None, min_length=1)
    from_email: Optional[EmailStr] = None
    reply_to_email: Optional[EmailStr] = None
    subject_line: Optional[str] = None
    preview_text: Optional[str] = None
    html_content: Optional[str] = None
    plain_text: Optional[str] = None
    list_ids: Optional[List[str]] = None
    blocks: Optional[List[dict[str, Any]]] = None
    design_config: Optional[Any] = None
    send_config: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _required_columns_not_null(self) -> "CampaignUpdate":
        cleared = sorted(name for name in _NOT_NULL_FIELDS & self.model_fields_set if getattr(self, name) is None)
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
        return self

    def changes(self) -> dict[str, Any]:
        fields = self.model_dump(exclude_unset=True)
        for key in ("from_email", "reply_to_email"):
            if fields.get(key) is not None:
                fields[key] = str(fields[key])
        return fields
