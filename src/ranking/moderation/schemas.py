"""Request/response models for flags and appeals."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FlagStatus = Literal["open", "dismissed", "confirmed"]
AppealStatus = Literal["open", "under_review", "upheld", "rejected"]


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Flags ──


class FlagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    writer_id: str
    reason: str
    details: str
    competition_id: str | None = None
    project_ids: list[str] = []
    status: str
    resolved_by_user_id: str | None = None
    created_at: datetime
    updated_at: datetime


class FlagListResponse(BaseModel):
    flags: list[FlagResponse]


class FlagItemResponse(BaseModel):
    flag: FlagResponse


class ManualFlagRequest(_RequestModel):
    writer_id: str = Field(min_length=1, max_length=128)
    reason: Literal["manual_admin", "suspicious_pattern"]
    details: str = Field(default="", max_length=2000)


class ResolveFlagRequest(_RequestModel):
    status: Literal["dismissed", "confirmed"]


# ── Appeals ──


class AppealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    writer_id: str
    reason: str
    status: str
    resolution_note: str | None = None
    resolved_by_user_id: str | None = None
    created_at: datetime
    updated_at: datetime


class AppealListResponse(BaseModel):
    appeals: list[AppealResponse]


class AppealItemResponse(BaseModel):
    appeal: AppealResponse


class CreateAppealRequest(_RequestModel):
    reason: str = Field(min_length=1, max_length=2000)


class ResolveAppealRequest(_RequestModel):
    status: Literal["upheld", "rejected"]
    resolution_note: str = Field(min_length=1, max_length=2000)
