"""Moderation endpoints: anti-gaming flags and ranking appeals."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ranking.auth.dependencies import get_actor_id
from ranking.clients.notifications import NotificationPublisher, get_notification_publisher
from ranking.database import get_session
from ranking.moderation import service
from ranking.moderation.schemas import (
    AppealItemResponse,
    AppealListResponse,
    AppealResponse,
    AppealStatus,
    CreateAppealRequest,
    FlagItemResponse,
    FlagListResponse,
    FlagResponse,
    FlagStatus,
    ManualFlagRequest,
    ResolveAppealRequest,
    ResolveFlagRequest,
)

router = APIRouter(prefix="/internal", tags=["Moderation"])


# ── Appeals ──


@router.post("/appeals", response_model=AppealItemResponse, status_code=201)
async def create_appeal(
    body: CreateAppealRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
):
    """File an appeal against the caller's own ranking."""
    appeal = await service.create_appeal(db, actor_id, body.reason)
    return AppealItemResponse(appeal=AppealResponse.model_validate(appeal))


@router.get("/appeals", response_model=AppealListResponse)
async def list_appeals(
    status: AppealStatus | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    appeals = await service.list_appeals(db, status)
    return AppealListResponse(appeals=[AppealResponse.model_validate(a) for a in appeals])


@router.get("/appeals/{appeal_id}", response_model=AppealItemResponse)
async def get_appeal(appeal_id: str, db: AsyncSession = Depends(get_session)):
    appeal = await service.get_appeal(db, appeal_id)
    if appeal is None:
        raise HTTPException(status_code=404, detail="appeal_not_found")
    return AppealItemResponse(appeal=AppealResponse.model_validate(appeal))


@router.post("/appeals/{appeal_id}/resolve", response_model=AppealItemResponse)
async def resolve_appeal(
    appeal_id: str,
    body: ResolveAppealRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
):
    appeal = await service.resolve_appeal(db, publisher, appeal_id, actor_id, body.status, body.resolution_note)
    if appeal is None:
        raise HTTPException(status_code=404, detail="appeal_not_found")
    return AppealItemResponse(appeal=AppealResponse.model_validate(appeal))


# ── Flags ──


@router.get("/flags", response_model=FlagListResponse)
async def list_flags(
    status: FlagStatus | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    flags = await service.list_flags(db, status)
    return FlagListResponse(flags=[FlagResponse.model_validate(f) for f in flags])


@router.post("/flags", response_model=FlagItemResponse, status_code=201)
async def create_flag(
    body: ManualFlagRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
):
    """Raise a flag by hand for later review."""
    flag = await service.create_manual_flag(db, body.writer_id, body.reason, body.details, actor_id)
    return FlagItemResponse(flag=FlagResponse.model_validate(flag))


@router.post("/flags/{flag_id}/resolve", response_model=FlagItemResponse)
async def resolve_flag(
    flag_id: str,
    body: ResolveFlagRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
):
    flag = await service.resolve_flag(db, flag_id, actor_id, body.status)
    if flag is None:
        raise HTTPException(status_code=404, detail="flag_not_found")
    return FlagItemResponse(flag=FlagResponse.model_validate(flag))
