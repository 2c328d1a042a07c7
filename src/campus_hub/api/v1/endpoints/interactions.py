"""Like, repost and bookmark endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from campus_hub.models import InteractionKind, TargetType
from campus_hub.models.post import CommunityPost, Post
from campus_hub.schemas.interaction import (
    InteractionOutcomeResponse,
    InteractionRequest,
    InteractionSnapshot,
)
from campus_hub.schemas.post import PostResponse
from campus_hub.services import interactions as interaction_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, OptionalProfileDep, SessionDep

router = APIRouter(prefix="/interactions", tags=["interactions"])


@router.put("/{target_type}/{target_id}/{kind}", response_model=InteractionOutcomeResponse)
async def set_interaction(
    target_type: TargetType,
    target_id: int,
    kind: InteractionKind,
    payload: InteractionRequest,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> InteractionOutcomeResponse:
    """Set the caller's interaction to ``active``.

    Repeating a request is harmless: a request for the state already stored
    returns ``changed: false`` with the current count.
    """
    outcome = interaction_service.set_interaction(
        db,
        feed,
        actor=current_profile,
        target_type=target_type,
        target_id=target_id,
        kind=kind,
        active=payload.active,
        idempotency_key=payload.idempotency_key,
    )
    return InteractionOutcomeResponse(**outcome.as_dict())


@router.get("/{target_type}/{target_id}", response_model=InteractionSnapshot)
async def get_snapshot(
    target_type: TargetType,
    target_id: int,
    viewer: OptionalProfileDep,
    db: SessionDep,
) -> InteractionSnapshot:
    """Counts and the caller's flags, computed from the interaction rows."""
    return interaction_service.snapshot(db, viewer=viewer, target_type=target_type, target_id=target_id)


@router.post("/{target_type}/{target_id}/recount", response_model=PostResponse)
async def recount(
    target_type: TargetType,
    target_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> Post | CommunityPost:
    return interaction_service.recount_target(
        db, feed, actor=current_profile, target_type=target_type, target_id=target_id
    )


@router.get("/{target_type}", response_model=list[InteractionSnapshot])
async def get_snapshots(
    target_type: TargetType,
    viewer: OptionalProfileDep,
    db: SessionDep,
    ids: str = Query(..., description="Comma-separated target ids"),
) -> list[InteractionSnapshot]:
    """Batch form of the snapshot endpoint, used when loading a feed."""
    try:
        target_ids = [int(part) for part in ids.split(",") if part.strip()]
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="ids must be comma-separated integers",
        ) from exc
    return interaction_service.snapshots(db, viewer=viewer, target_type=target_type, target_ids=target_ids)
