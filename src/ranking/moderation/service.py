"""Anti-gaming flag review and writer appeals.

Both records follow a one-step lifecycle: an open record is resolved once
and never reopened. Resolving an appeal notifies the writer after the
resolution is committed.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ranking.clients.notifications import NotificationPublisher, NotificationPublishError
from ranking.clients.schemas import NotificationEvent
from ranking.db.models import AntiGamingFlag, RankingAppeal
from ranking.exceptions import InvalidTransitionError
from ranking.rankings import repository as repo

logger = structlog.get_logger()

FLAG_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"dismissed", "confirmed"}),
    "dismissed": frozenset(),
    "confirmed": frozenset(),
}

APPEAL_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"upheld", "rejected"}),
    "under_review": frozenset({"upheld", "rejected"}),
    "upheld": frozenset(),
    "rejected": frozenset(),
}

MANUAL_FLAG_REASONS = frozenset({"manual_admin", "suspicious_pattern"})

APPEAL_RESOLVED_EVENT = "ranking_appeal_resolved"


def _check_transition(transitions: dict[str, frozenset[str]], current: str, target: str) -> None:
    if target not in transitions.get(current, frozenset()):
        raise InvalidTransitionError(current, target)


# ── Flags ──


async def create_manual_flag(db: AsyncSession, writer_id: str, reason: str, details: str, actor_id: str) -> AntiGamingFlag:
    if reason not in MANUAL_FLAG_REASONS:
        raise ValueError(f"Unsupported manual flag reason: {reason}")
    flag = await repo.create_flag(db, writer_id, reason, details)
    await db.commit()
    logger.info("flag_created", flag_id=flag.id, writer_id=writer_id, reason=reason, actor=actor_id)
    return flag


async def list_flags(db: AsyncSession, status: str | None = None) -> Sequence[AntiGamingFlag]:
    return await repo.list_flags(db, status)


async def resolve_flag(db: AsyncSession, flag_id: str, actor_id: str, status: str) -> AntiGamingFlag | None:
    """Dismiss or confirm an open flag. Returns None if the flag does not exist."""
    flag = await repo.get_flag(db, flag_id)
    if flag is None:
        return None
    _check_transition(FLAG_TRANSITIONS, flag.status, status)
    await repo.resolve_flag(db, flag, actor_id, status)
    await db.commit()
    logger.info("flag_resolved", flag_id=flag_id, status=status, actor=actor_id)
    return flag


# ── Appeals ──


async def create_appeal(db: AsyncSession, writer_id: str, reason: str) -> RankingAppeal:
    appeal = await repo.create_appeal(db, writer_id, reason)
    await db.commit()
    logger.info("appeal_created", appeal_id=appeal.id, writer_id=writer_id)
    return appeal


async def list_appeals(db: AsyncSession, status: str | None = None) -> Sequence[RankingAppeal]:
    return await repo.list_appeals(db, status)


async def get_appeal(db: AsyncSession, appeal_id: str) -> RankingAppeal | None:
    return await repo.get_appeal(db, appeal_id)


def build_appeal_resolved_event(appeal: RankingAppeal, actor_id: str) -> NotificationEvent:
    return NotificationEvent(
        event_id=str(uuid.uuid4()),
        event_type=APPEAL_RESOLVED_EVENT,
        occurred_at=datetime.now(timezone.utc),
        actor_user_id=actor_id,
        target_user_id=appeal.writer_id,
        resource_type="ranking_appeal",
        resource_id=appeal.id,
        payload={"status": appeal.status},
    )


async def resolve_appeal(
    db: AsyncSession,
    publisher: NotificationPublisher,
    appeal_id: str,
    actor_id: str,
    status: str,
    resolution_note: str,
) -> RankingAppeal | None:
    """Uphold or reject an appeal and tell the writer.

    Returns None if the appeal does not exist. The notification is sent only
    after the commit; a delivery failure is logged and the resolution stands.
    """
    appeal = await repo.get_appeal(db, appeal_id)
    if appeal is None:
        return None
    _check_transition(APPEAL_TRANSITIONS, appeal.status, status)
    await repo.resolve_appeal(db, appeal, actor_id, status, resolution_note)
    await db.commit()
    logger.info("appeal_resolved", appeal_id=appeal_id, status=status, actor=actor_id)

    try:
        await publisher.publish(build_appeal_resolved_event(appeal, actor_id))
    except NotificationPublishError as exc:
        logger.warning("appeal_notification_failed", appeal_id=appeal_id, error=str(exc))
    return appeal
