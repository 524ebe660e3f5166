"""Pydantic request/response models for ranking endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TierDesignation = Literal["top_1", "top_2", "top_10", "top_25"]
PrestigeTier = Literal["standard", "notable", "elite", "premier"]


class _RequestModel(BaseModel):
    """Accepts snake_case or the gateway's camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Leaderboard ──


class RankedWriterResponse(BaseModel):
    writer_id: str
    rank: int
    total_score: float
    submission_count: int
    placement_count: int
    tier: str | None = None
    badges: list[str] = []
    score_change_30d: float = 0.0
    last_updated_at: datetime


class LeaderboardResponse(BaseModel):
    leaderboard: list[RankedWriterResponse]
    total: int
    limit: int
    offset: int


# ── Badges & placements ──


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    writer_id: str
    label: str
    placement_id: str
    competition_id: str
    awarded_at: datetime


class BadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class PlacementScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    placement_id: str
    competition_id: str
    project_id: str
    status_weight: float
    prestige_multiplier: float
    verification_multiplier: float
    time_decay_factor: float
    confidence_factor: float
    raw_score: float
    placement_date: datetime


class PlacementBreakdownResponse(BaseModel):
    writer_id: str
    placements: list[PlacementScoreResponse]


# ── Methodology ──


class MethodologyResponse(BaseModel):
    status_weights: dict[str, float]
    verification_multipliers: dict[str, float]
    prestige_multipliers: dict[str, float]
    default_prestige_multiplier: float
    time_decay_half_life_days: int
    confidence_threshold: int
    tier_thresholds: dict[str, float]
    badge_min_status: str
    version: str


# ── Prestige ──


class PrestigeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    competition_id: str
    tier: str
    multiplier: float
    updated_at: datetime


class PrestigeListResponse(BaseModel):
    prestige: list[PrestigeResponse]


class PrestigeItemResponse(BaseModel):
    prestige: PrestigeResponse


class PrestigeUpsertRequest(_RequestModel):
    tier: PrestigeTier
    multiplier: float | None = Field(default=None, gt=0, le=10)


# ── Recompute ──


class RecomputeResponse(BaseModel):
    recomputed_at: datetime
    writer_count: int
    placement_count: int
    skipped_placements: int
    badges_awarded: int
    flags_created: int


class IncrementalRecomputeRequest(_RequestModel):
    writer_id: str = Field(min_length=1, max_length=128)


class IncrementalRecomputeResponse(BaseModel):
    accepted: bool
    writer_id: str
    mode: Literal["deferred_full_recompute"] = "deferred_full_recompute"
    queued: bool


class SnapshotResponse(BaseModel):
    snapshots_created: int
