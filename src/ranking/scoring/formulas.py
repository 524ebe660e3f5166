"""Placement scoring formulas.

A placement's raw score is the product of five factors:

    raw = status_weight * prestige * verification * time_decay * confidence

Everything here is pure and deterministic so a full recompute over unchanged
input reproduces identical rows.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

STATUS_WEIGHTS: dict[str, float] = {
    "pending": 0,
    "quarterfinalist": 2,
    "semifinalist": 4,
    "finalist": 7,
    "winner": 10,
}

VERIFICATION_MULTIPLIERS: dict[str, float] = {
    "verified": 1.0,
    "pending": 0.5,
    "unverified": 0.5,
    "rejected": 0.0,
}
UNVERIFIED_MULTIPLIER = 0.5

DEFAULT_PRESTIGE_MULTIPLIERS: dict[str, float] = {
    "standard": 1.0,
    "notable": 1.5,
    "elite": 2.0,
    "premier": 3.0,
}
DEFAULT_PRESTIGE_MULTIPLIER = 1.0

TIME_DECAY_HALF_LIFE_DAYS = 365
SECONDS_PER_DAY = 86_400

CONFIDENCE_THRESHOLD = 5
CONFIDENCE_FLOOR = 0.5

# Checked best band first; percentile = rank / population
TIER_THRESHOLDS: dict[str, float] = {
    "top_1": 0.01,
    "top_2": 0.02,
    "top_10": 0.10,
    "top_25": 0.25,
}

BADGE_MIN_STATUS = "quarterfinalist"

_STATUS_LABELS: dict[str, str] = {
    "quarterfinalist": "Quarterfinalist",
    "semifinalist": "Semifinalist",
    "finalist": "Finalist",
    "winner": "Winner",
}

METHODOLOGY_VERSION = "1.0.0"


@dataclass(frozen=True)
class PlacementFactors:
    status_weight: float
    prestige_multiplier: float
    verification_multiplier: float
    time_decay_factor: float
    confidence_factor: float

    @property
    def raw_score(self) -> float:
        return (
            self.status_weight
            * self.prestige_multiplier
            * self.verification_multiplier
            * self.time_decay_factor
            * self.confidence_factor
        )


@dataclass(frozen=True)
class DuplicateSubmission:
    writer_id: str
    competition_id: str
    project_ids: list[str]


class SubmissionLike(Protocol):
    writer_id: str
    competition_id: str
    project_id: str


def status_weight(status: str) -> float:
    """Weight for a placement status; unknown statuses score nothing."""
    return float(STATUS_WEIGHTS.get(status, 0))


def verification_multiplier(state: str) -> float:
    """1.0 for verified claims, 0 for rejected ones, 0.5 for everything else."""
    return VERIFICATION_MULTIPLIERS.get(state, UNVERIFIED_MULTIPLIER)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def time_decay_factor(placement_date: datetime, now: datetime) -> float:
    """Exponential decay with a one-year half-life.

    Ages are measured on aware UTC datetimes in 86400-second days. Future
    dates (clock skew) are treated as age zero.
    """
    age_days = (_as_utc(now) - _as_utc(placement_date)).total_seconds() / SECONDS_PER_DAY
    if age_days <= 0:
        return 1.0
    return 0.5 ** (age_days / TIME_DECAY_HALF_LIFE_DAYS)


def confidence_factor(evaluation_count: int) -> float:
    """Dampen writers with few placements; 1.0 from CONFIDENCE_THRESHOLD on."""
    count = max(0, evaluation_count)
    return min(1.0, CONFIDENCE_FLOOR + (1.0 - CONFIDENCE_FLOOR) * count / CONFIDENCE_THRESHOLD)


def compute_placement_score(
    *,
    status: str,
    prestige_multiplier: float,
    verification_state: str,
    placement_date: datetime,
    now: datetime,
    evaluation_count: int,
) -> PlacementFactors:
    """Compute all five factors for one placement."""
    return PlacementFactors(
        status_weight=status_weight(status),
        prestige_multiplier=max(0.0, prestige_multiplier),
        verification_multiplier=verification_multiplier(verification_state),
        time_decay_factor=time_decay_factor(placement_date, now),
        confidence_factor=confidence_factor(evaluation_count),
    )


def assign_tier(rank: int, total_writers: int) -> str | None:
    """Map a 1-based rank within a population to a percentile band."""
    if total_writers <= 0 or rank <= 0:
        return None
    percentile = rank / total_writers
    for tier, threshold in TIER_THRESHOLDS.items():
        if percentile <= threshold:
            return tier
    return None


def is_badge_worthy(status: str) -> bool:
    return STATUS_WEIGHTS.get(status, 0) >= STATUS_WEIGHTS[BADGE_MIN_STATUS]


def generate_badge_label(status: str, competition_title: str, year: int) -> str | None:
    """Human-readable badge label, or None when the status earns no badge."""
    if not is_badge_worthy(status):
        return None
    label = _STATUS_LABELS.get(status)
    if label is None:
        return None
    return f"{label} - {competition_title} {year}"


def detect_duplicate_submissions(submissions: Iterable[SubmissionLike]) -> list[DuplicateSubmission]:
    """Find writers who entered more than one project into the same competition."""
    groups: dict[tuple[str, str], list[str]] = {}
    for sub in submissions:
        project_ids = groups.setdefault((sub.writer_id, sub.competition_id), [])
        if sub.project_id not in project_ids:
            project_ids.append(sub.project_id)

    return [
        DuplicateSubmission(writer_id=writer_id, competition_id=competition_id, project_ids=project_ids)
        for (writer_id, competition_id), project_ids in groups.items()
        if len(project_ids) > 1
    ]


def methodology() -> dict[str, Any]:
    """Snapshot of the scoring tables, published for transparency."""
    return {
        "status_weights": dict(STATUS_WEIGHTS),
        "verification_multipliers": dict(VERIFICATION_MULTIPLIERS),
        "prestige_multipliers": dict(DEFAULT_PRESTIGE_MULTIPLIERS),
        "default_prestige_multiplier": DEFAULT_PRESTIGE_MULTIPLIER,
        "time_decay_half_life_days": TIME_DECAY_HALF_LIFE_DAYS,
        "confidence_threshold": CONFIDENCE_THRESHOLD,
        "tier_thresholds": dict(TIER_THRESHOLDS),
        "badge_min_status": BADGE_MIN_STATUS,
        "version": METHODOLOGY_VERSION,
    }
