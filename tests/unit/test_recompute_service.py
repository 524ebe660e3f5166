"""Tests for the full recompute pipeline against an in-memory database."""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from factories import BASE_TIME, FakeCompetitionDirectory, FakeLedger, make_placement, make_submission
from ranking.clients.schemas import Competition
from ranking.clients.upstream import SubmissionLedgerClient
from ranking.db.models import AntiGamingFlag, PlacementScore, WriterBadge, WriterScore
from ranking.exceptions import RecomputeInProgressError, UpstreamUnavailableError
from ranking.rankings import repository as repo
from ranking.rankings.lock import recompute_guard
from ranking.rankings.recompute_service import (
    RECOMPUTE_TRANSITIONS,
    RecomputeRun,
    request_incremental_recompute,
    run_full_recompute,
    validate_transition,
)

NOW = BASE_TIME + timedelta(days=10)


async def _scores(db) -> list[tuple]:
    result = await db.execute(select(WriterScore).order_by(WriterScore.writer_id))
    return [
        (s.writer_id, s.total_score, s.rank, s.tier, s.submission_count, s.placement_count)
        for s in result.scalars()
    ]


async def _placement_rows(db) -> list[tuple]:
    result = await db.execute(select(PlacementScore).order_by(PlacementScore.placement_id))
    return [(p.placement_id, p.writer_id, p.raw_score, p.confidence_factor) for p in result.scalars()]


def _populated_ledger() -> FakeLedger:
    ledger = FakeLedger()
    ledger.submissions = [
        make_submission("s1", "w1", "c1", "p1"),
        make_submission("s2", "w1", "c2", "p2", created_at=BASE_TIME + timedelta(hours=1)),
        make_submission("s3", "w2", "c1", "p3"),
        make_submission("s4", "w3", "c2", "p4"),
    ]
    ledger.placements = [
        make_placement("pl1", "s1", "winner"),
        make_placement("pl2", "s2", "finalist", created_at=BASE_TIME + timedelta(hours=1)),
        make_placement("pl3", "s3", "semifinalist", verification_state="pending"),
        make_placement("pl4", "s4", "pending"),
    ]
    return ledger


def _directory() -> FakeCompetitionDirectory:
    directory = FakeCompetitionDirectory()
    directory.competitions = [
        Competition(id="c1", title="Spring Fiction Prize"),
        Competition(id="c2", title="Shorts Open"),
    ]
    return directory


class TestRecomputeStateMachine:
    def test_happy_path(self):
        state = "pending"
        for target in ("fetching", "scoring", "aggregating", "persisting", "flagging", "done"):
            validate_transition(state, target)
            state = target

    def test_any_working_state_can_fail(self):
        for state in ("fetching", "scoring", "aggregating", "persisting", "flagging"):
            validate_transition(state, "failed")

    def test_terminal_states(self):
        assert RECOMPUTE_TRANSITIONS["done"] == []
        assert RECOMPUTE_TRANSITIONS["failed"] == []

    def test_skipping_rejected(self):
        with pytest.raises(ValueError, match="Invalid transition"):
            validate_transition("fetching", "persisting")


class TestFullRecompute:
    async def test_scores_and_ranks(self, db_session):
        result = await run_full_recompute(db_session, _populated_ledger(), _directory(), now=NOW)

        assert result.placement_count == 4
        assert result.skipped_placements == 0
        # w3 only has a pending placement: total 0, not ranked
        assert result.writer_count == 2

        scores = {row[0]: row for row in await _scores(db_session)}
        assert set(scores) == {"w1", "w2"}
        assert scores["w1"][2] == 1
        assert scores["w2"][2] == 2
        assert scores["w1"][4] == 2  # submission_count
        assert scores["w1"][5] == 2  # placement_count

    async def test_raw_score_is_product_of_factors(self, db_session):
        await run_full_recompute(db_session, _populated_ledger(), _directory(), now=NOW)
        result = await db_session.execute(select(PlacementScore))
        for row in result.scalars():
            factors = [
                row.status_weight,
                row.prestige_multiplier,
                row.verification_multiplier,
                row.time_decay_factor,
                row.confidence_factor,
            ]
            assert all(f >= 0 for f in factors)
            product = 1.0
            for f in factors:
                product *= f
            assert row.raw_score == pytest.approx(product)

    async def test_confidence_follows_creation_order(self, db_session):
        """The earlier placement is the writer's first evaluation regardless of fetch order."""
        ledger = _populated_ledger()
        ledger.placements.reverse()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        rows = {r[0]: r for r in await _placement_rows(db_session)}
        assert rows["pl1"][3] == pytest.approx(0.6)
        assert rows["pl2"][3] == pytest.approx(0.7)

    async def test_ranks_dense_and_ordered(self, db_session):
        ledger = FakeLedger()
        for i in range(12):
            ledger.submissions.append(make_submission(f"s{i}", f"w{i:02d}", "c1", f"p{i}"))
            status = ("winner", "finalist", "semifinalist", "quarterfinalist")[i % 4]
            ledger.placements.append(make_placement(f"pl{i}", f"s{i}", status))
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)

        rows = sorted(await _scores(db_session), key=lambda r: r[2])
        assert [r[2] for r in rows] == list(range(1, 13))
        totals = [r[1] for r in rows]
        assert totals == sorted(totals, reverse=True)

    async def test_idempotent(self, db_session):
        ledger = _populated_ledger()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        first_scores = await _scores(db_session)
        first_placements = await _placement_rows(db_session)

        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        assert await _scores(db_session) == first_scores
        assert await _placement_rows(db_session) == first_placements

    async def test_prestige_doubles_score(self, db_session):
        """A verified winner in a 2.0 competition scores twice a default one."""
        await repo.upsert_prestige(db_session, "c1", "elite", 2.0)
        await db_session.commit()

        ledger = FakeLedger()
        ledger.submissions = [make_submission("s1", "w1", "c1"), make_submission("s2", "w2", "c9")]
        ledger.placements = [make_placement("pl1", "s1", "winner"), make_placement("pl2", "s2", "winner")]
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)

        rows = {r[0]: r for r in await _placement_rows(db_session)}
        assert rows["pl1"][2] == pytest.approx(2 * rows["pl2"][2])

    async def test_badge_awarded_once(self, db_session):
        ledger = _populated_ledger()
        first = await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        second = await run_full_recompute(db_session, ledger, _directory(), now=NOW)

        # pl1 and pl2 are verified and badge-worthy; pl3 is unverified
        assert first.badges_awarded == 2
        assert second.badges_awarded == 0

        result = await db_session.execute(select(WriterBadge).order_by(WriterBadge.placement_id))
        badges = result.scalars().all()
        assert [b.placement_id for b in badges] == ["pl1", "pl2"]
        assert badges[0].label == "Winner - Spring Fiction Prize 2026"

    async def test_badges_survive_placement_removal(self, db_session):
        ledger = _populated_ledger()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        ledger.placements = [p for p in ledger.placements if p.id != "pl1"]
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)

        assert await repo.has_badge(db_session, "pl1")

    async def test_orphan_placement_skipped(self, db_session):
        ledger = _populated_ledger()
        ledger.placements.append(make_placement("pl_orphan", "s_missing"))
        result = await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        assert result.skipped_placements == 1
        assert "pl_orphan" not in {r[0] for r in await _placement_rows(db_session)}

    async def test_competition_outage_falls_back_to_ids(self, db_session):
        directory = _directory()
        directory.fail = True
        result = await run_full_recompute(db_session, _populated_ledger(), directory, now=NOW)
        assert result.writer_count == 2

        badges = await repo.get_badges(db_session, "w1")
        assert "Winner - c1 2026" in {b.label for b in badges}

    async def test_placement_outage_preserves_previous_scores(self, db_session):
        ledger = _populated_ledger()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        before_scores = await _scores(db_session)
        before_placements = await _placement_rows(db_session)

        ledger.fail_placements = True
        run = RecomputeRun(db_session, ledger, _directory(), now=NOW)
        with pytest.raises(UpstreamUnavailableError):
            await run.execute()

        assert run.state == "failed"
        assert await _scores(db_session) == before_scores
        assert await _placement_rows(db_session) == before_placements

    async def test_timestamp_without_offset_fails_fetch(self, db_session):
        """Mixed aware and naive upstream timestamps never reach the canonical sort."""
        body = {
            "submissions": [
                {"id": "s1", "writerId": "w1", "competitionId": "c1", "projectId": "p1",
                 "createdAt": "2026-01-01T00:00:00Z", "updatedAt": "2026-01-01T00:00:00Z"},
                {"id": "s2", "writerId": "w2", "competitionId": "c1", "projectId": "p2",
                 "createdAt": "2026-01-02T00:00:00", "updatedAt": "2026-01-02"},
            ],
            "placements": [],
        }
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        ledger = SubmissionLedgerClient("http://ledger", transport=transport)

        run = RecomputeRun(db_session, ledger, _directory(), now=NOW)
        with pytest.raises(UpstreamUnavailableError, match="submissions_unavailable"):
            await run.execute()

        assert run.state == "failed"
        assert await _scores(db_session) == []

    async def test_writer_dropping_to_zero_is_removed(self, db_session):
        ledger = _populated_ledger()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)

        ledger.placements = [p for p in ledger.placements if p.submission_id != "s3"]
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        assert "w2" not in {r[0] for r in await _scores(db_session)}

    async def test_delta_against_snapshot(self, db_session):
        await repo.upsert_snapshot(db_session, "w1", 5.0, NOW.date() - timedelta(days=31))
        await db_session.commit()

        await run_full_recompute(db_session, _populated_ledger(), _directory(), now=NOW)
        score = await repo.get_writer_score(db_session, "w1")
        assert score.score_change_30d == pytest.approx(round(score.total_score - 5.0, 2))

        other = await repo.get_writer_score(db_session, "w2")
        assert other.score_change_30d == 0.0


class TestDuplicateFlags:
    def _ledger(self) -> FakeLedger:
        ledger = FakeLedger()
        ledger.submissions = [
            make_submission("s1", "w1", "c1", "p1"),
            make_submission("s2", "w1", "c1", "p2", created_at=BASE_TIME + timedelta(minutes=5)),
        ]
        ledger.placements = [make_placement("pl1", "s1")]
        return ledger

    async def test_one_flag_for_both_projects(self, db_session):
        result = await run_full_recompute(db_session, self._ledger(), _directory(), now=NOW)
        assert result.flags_created == 1

        flags = (await db_session.execute(select(AntiGamingFlag))).scalars().all()
        assert len(flags) == 1
        assert flags[0].reason == "duplicate_submission"
        assert flags[0].writer_id == "w1"
        assert sorted(flags[0].project_ids) == ["p1", "p2"]
        assert "p1" in flags[0].details and "p2" in flags[0].details

    async def test_rerun_does_not_duplicate_flag(self, db_session):
        ledger = self._ledger()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        second = await run_full_recompute(db_session, ledger, _directory(), now=NOW)

        assert second.flags_created == 0
        flags = (await db_session.execute(select(AntiGamingFlag))).scalars().all()
        assert len(flags) == 1

    async def test_resolved_flag_can_be_raised_again(self, db_session):
        ledger = self._ledger()
        await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        flag = (await repo.list_flags(db_session, "open"))[0]
        await repo.resolve_flag(db_session, flag, "admin_01", "dismissed")
        await db_session.commit()

        second = await run_full_recompute(db_session, ledger, _directory(), now=NOW)
        assert second.flags_created == 1


class TestRecomputeGuard:
    async def test_second_holder_rejected(self):
        async with recompute_guard(None, 60):
            with pytest.raises(RecomputeInProgressError):
                async with recompute_guard(None, 60):
                    pass

    async def test_released_after_block(self):
        async with recompute_guard(None, 60):
            pass
        async with recompute_guard(None, 60):
            pass


class _FakeQueue:
    def __init__(self) -> None:
        self.jobs: list[tuple[str, str]] = []

    async def enqueue_job(self, name: str, _job_id: str | None = None):
        if _job_id in {job_id for _, job_id in self.jobs}:
            return None
        self.jobs.append((name, _job_id))
        return object()


class TestIncrementalRecompute:
    async def test_without_queue(self):
        assert await request_incremental_recompute(None, "w1") is False

    async def test_hints_collapse_into_one_job(self):
        queue = _FakeQueue()
        assert await request_incremental_recompute(queue, "w1") is True
        assert await request_incremental_recompute(queue, "w2") is True
        assert queue.jobs == [("recompute_rankings_job", "ranking:recompute:full")]
