"""Full recompute of placement scores, writer aggregates, badges and flags.

Run states: fetching -> scoring -> aggregating -> persisting -> flagging -> done.
Any state may exit to failed. Failure while fetching submissions or
placements aborts before anything is written; later failures roll the
whole transaction back, so the previous placement_scores stay visible.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from arq.connections import ArqRedis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from ranking.clients.schemas import Competition, Placement, Submission
from ranking.clients.upstream import CompetitionDirectoryClient, SubmissionLedgerClient
from ranking.db.models import PlacementScore
from ranking.exceptions import UpstreamUnavailableError
from ranking.rankings import repository as repo
from ranking.rankings.repository import WriterScoreRow
from ranking.scoring.formulas import (
    assign_tier,
    compute_placement_score,
    detect_duplicate_submissions,
    generate_badge_label,
)
from ranking.workers.queue import RECOMPUTE_JOB_ID, RECOMPUTE_JOB_NAME

logger = structlog.get_logger()

SCORE_DELTA_DAYS = 30

RECOMPUTE_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["fetching"],
    "fetching": ["scoring", "failed"],
    "scoring": ["aggregating", "failed"],
    "aggregating": ["persisting", "failed"],
    "persisting": ["flagging", "failed"],
    "flagging": ["done", "failed"],
    "done": [],
    "failed": [],
}


def validate_transition(current: str, target: str) -> None:
    """Raise ValueError if current -> target is not a valid run transition."""
    if target not in RECOMPUTE_TRANSITIONS.get(current, []):
        raise ValueError(f"Invalid transition: {current} -> {target}")


@dataclass
class RecomputeResult:
    recomputed_at: datetime
    writer_count: int
    placement_count: int
    skipped_placements: int
    badges_awarded: int
    flags_created: int


@dataclass
class _WriterTotals:
    total_score: float = 0.0
    placement_count: int = 0
    submission_ids: set[str] = field(default_factory=set)
    last_updated: datetime | None = None

    def touch(self, when: datetime) -> None:
        if self.last_updated is None or when > self.last_updated:
            self.last_updated = when


def _canonical_order(items: list, key_attr: str = "created_at") -> list:
    """Stable order independent of how the upstream happened to list rows."""
    return sorted(items, key=lambda item: (getattr(item, key_attr), item.id))


class RecomputeRun:
    """One full recompute. Build a new instance per invocation."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: SubmissionLedgerClient,
        competitions: CompetitionDirectoryClient,
        now: datetime | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger
        self.competitions = competitions
        self.now = now or datetime.now(timezone.utc)
        self.state = "pending"

    def _advance(self, target: str) -> None:
        validate_transition(self.state, target)
        logger.info("recompute_state", previous=self.state, state=target)
        self.state = target

    async def execute(self) -> RecomputeResult:
        self._advance("fetching")
        try:
            submissions, placements, competitions = await self._fetch()
        except UpstreamUnavailableError:
            self._advance("failed")
            raise

        try:
            result = await self._score_and_persist(submissions, placements, competitions)
        except Exception:
            await self.db.rollback()
            self._advance("failed")
            raise

        self._advance("done")
        logger.info(
            "recompute_complete",
            writers=result.writer_count,
            placements=result.placement_count,
            skipped=result.skipped_placements,
            badges=result.badges_awarded,
            flags=result.flags_created,
        )
        return result

    async def _fetch(self) -> tuple[list[Submission], list[Placement], list[Competition]]:
        submissions = await self.ledger.list_all_submissions()
        placements = await self.ledger.list_all_placements()
        try:
            competitions = await self.competitions.list_all_competitions()
        except UpstreamUnavailableError as exc:
            # Titles only feed badge labels; prestige lives in our own table
            logger.warning("recompute_competitions_unavailable", reason=exc.reason)
            competitions = []
        logger.info(
            "recompute_fetched",
            submissions=len(submissions),
            placements=len(placements),
            competitions=len(competitions),
        )
        return submissions, placements, competitions

    async def _score_and_persist(
        self,
        submissions: list[Submission],
        placements: list[Placement],
        competitions: list[Competition],
    ) -> RecomputeResult:
        db = self.db
        self._advance("scoring")

        prestige = await repo.prestige_lookup(db)
        competition_titles = {c.id: c.title for c in competitions}
        submission_index: dict[str, Submission] = {}
        writers: dict[str, _WriterTotals] = {}

        for sub in _canonical_order(submissions):
            submission_index[sub.id] = sub
            totals = writers.setdefault(sub.writer_id, _WriterTotals())
            totals.submission_ids.add(sub.id)
            totals.touch(sub.updated_at)

        already_badged = await repo.badged_placement_ids(db)
        await repo.clear_placement_scores(db)

        scored = 0
        skipped = 0
        badges_awarded = 0
        for placement in _canonical_order(placements):
            submission = submission_index.get(placement.submission_id)
            if submission is None:
                skipped += 1
                logger.warning(
                    "recompute_placement_skipped",
                    placement_id=placement.id,
                    submission_id=placement.submission_id,
                )
                continue

            totals = writers.setdefault(submission.writer_id, _WriterTotals())
            factors = compute_placement_score(
                status=placement.status,
                prestige_multiplier=repo.prestige_for(prestige, submission.competition_id),
                verification_state=placement.verification_state,
                placement_date=placement.created_at,
                now=self.now,
                evaluation_count=totals.placement_count + 1,
            )
            raw_score = factors.raw_score
            repo.add_placement_score(db, PlacementScore(
                placement_id=placement.id,
                writer_id=submission.writer_id,
                competition_id=submission.competition_id,
                project_id=submission.project_id,
                status_weight=factors.status_weight,
                prestige_multiplier=factors.prestige_multiplier,
                verification_multiplier=factors.verification_multiplier,
                time_decay_factor=factors.time_decay_factor,
                confidence_factor=factors.confidence_factor,
                raw_score=raw_score,
                placement_date=placement.created_at,
                computed_at=self.now,
            ))
            scored += 1

            totals.total_score += raw_score
            totals.placement_count += 1
            totals.touch(placement.updated_at)

            if placement.verification_state == "verified" and placement.id not in already_badged:
                title = competition_titles.get(submission.competition_id, submission.competition_id)
                label = generate_badge_label(placement.status, title, placement.created_at.year)
                if label:
                    badge = await repo.award_badge(
                        db, submission.writer_id, label, placement.id, submission.competition_id,
                    )
                    already_badged.add(placement.id)
                    if badge is not None:
                        badges_awarded += 1

        await db.flush()

        self._advance("aggregating")
        rows = await self._aggregate(writers)

        self._advance("persisting")
        await repo.replace_writer_scores(db, rows, present_writer_ids=writers.keys())

        self._advance("flagging")
        flags_created = await self._flag_duplicates(submissions)

        await db.commit()

        return RecomputeResult(
            recomputed_at=self.now,
            writer_count=len(rows),
            placement_count=scored,
            skipped_placements=skipped,
            badges_awarded=badges_awarded,
            flags_created=flags_created,
        )

    async def _aggregate(self, writers: dict[str, _WriterTotals]) -> list[WriterScoreRow]:
        """Rank writers with a positive total and attach tiers and 30-day deltas."""
        ranked = [(writer_id, t) for writer_id, t in writers.items() if t.total_score > 0]
        # Stable: ties keep canonical insertion order
        ranked.sort(key=lambda item: item[1].total_score, reverse=True)

        old_scores = await repo.get_snapshot_scores(self.db, SCORE_DELTA_DAYS, self.now.date())
        population = len(ranked)

        rows: list[WriterScoreRow] = []
        for index, (writer_id, totals) in enumerate(ranked):
            rank = index + 1
            total = round(totals.total_score, 2)
            old = old_scores.get(writer_id)
            rows.append(WriterScoreRow(
                writer_id=writer_id,
                total_score=total,
                submission_count=len(totals.submission_ids),
                placement_count=totals.placement_count,
                rank=rank,
                tier=assign_tier(rank, population),
                score_change_30d=round(total - old, 2) if old is not None else 0.0,
                last_updated_at=totals.last_updated or self.now,
            ))
        return rows

    async def _flag_duplicates(self, submissions: list[Submission]) -> int:
        created = 0
        for dupe in detect_duplicate_submissions(_canonical_order(submissions)):
            existing = await repo.find_open_flag(
                self.db, dupe.writer_id, "duplicate_submission", dupe.competition_id, dupe.project_ids,
            )
            if existing is not None:
                continue
            await repo.create_flag(
                self.db,
                dupe.writer_id,
                "duplicate_submission",
                (
                    f"Writer submitted {len(dupe.project_ids)} projects to competition "
                    f"{dupe.competition_id}: {', '.join(dupe.project_ids)}"
                ),
                competition_id=dupe.competition_id,
                project_ids=dupe.project_ids,
            )
            created += 1
        if created:
            logger.info("recompute_flags_created", count=created)
        return created


async def run_full_recompute(
    db: AsyncSession,
    ledger: SubmissionLedgerClient,
    competitions: CompetitionDirectoryClient,
    now: datetime | None = None,
) -> RecomputeResult:
    """Run one full recompute. Callers must hold the recompute guard."""
    return await RecomputeRun(db, ledger, competitions, now=now).execute()


async def request_incremental_recompute(queue: ArqRedis | None, writer_id: str) -> bool:
    """Record that a writer's placements changed.

    Scoring is order-dependent across a writer's whole history, so there is
    no per-writer update: the hint schedules a full recompute on the worker.
    Repeated hints share one job id and collapse into a single queued run.
    Returns whether the hint reached the queue.
    """
    if queue is None:
        logger.warning("incremental_recompute_not_queued", writer_id=writer_id, reason="no job queue")
        return False
    try:
        job = await queue.enqueue_job(RECOMPUTE_JOB_NAME, _job_id=RECOMPUTE_JOB_ID)
    except RedisError as exc:
        logger.warning("incremental_recompute_not_queued", writer_id=writer_id, reason=str(exc))
        return False
    logger.info("incremental_recompute_queued", writer_id=writer_id, already_queued=job is None)
    return True
