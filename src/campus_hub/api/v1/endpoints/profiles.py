"""Profile, presence heartbeat and follow endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from campus_hub.models import Profile
from campus_hub.schemas.profile import (
    FollowCounts,
    FollowStatus,
    HeartbeatResponse,
    ProfileResponse,
    ProfileUpdate,
)
from campus_hub.services import profiles as profile_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, SessionDep

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/search", response_model=list[ProfileResponse])
async def search_profiles(
    db: SessionDep,
    q: str = Query(..., min_length=1, description="Username fragment"),
    limit: int = Query(20, ge=1, le=50),
) -> list[Profile]:
    return profile_service.search_profiles(db, query=q, limit=limit)


@router.post("/me/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(current_profile: CurrentProfileDep, db: SessionDep) -> HeartbeatResponse:
    """Record that the caller is active. Answers 501 when presence is disabled."""
    profile = profile_service.record_heartbeat(db, actor=current_profile)
    return HeartbeatResponse(last_active_at=profile.last_active_at)


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    payload: ProfileUpdate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> Profile:
    return profile_service.update_profile(db, feed, actor=current_profile, data=payload)


@router.get("/{profile_id}", response_model=ProfileResponse)
async def get_profile(profile_id: int, db: SessionDep) -> Profile:
    return profile_service.get_profile(db, profile_id)


@router.get("/{profile_id}/follow-counts", response_model=FollowCounts)
async def follow_counts(profile_id: int, db: SessionDep) -> FollowCounts:
    return profile_service.follow_counts(db, profile_id=profile_id)


@router.get("/{profile_id}/follow", response_model=FollowStatus)
async def follow_status(profile_id: int, current_profile: CurrentProfileDep, db: SessionDep) -> FollowStatus:
    return FollowStatus(following=profile_service.is_following(db, actor=current_profile, profile_id=profile_id))


@router.post("/{profile_id}/follow", response_model=FollowStatus, status_code=status.HTTP_200_OK)
async def follow(
    profile_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> FollowStatus:
    """Follow a profile; following twice is a no-op."""
    profile_service.follow(db, feed, actor=current_profile, profile_id=profile_id)
    return FollowStatus(following=True)


@router.delete("/{profile_id}/follow", response_model=FollowStatus)
async def unfollow(
    profile_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> FollowStatus:
    profile_service.unfollow(db, feed, actor=current_profile, profile_id=profile_id)
    return FollowStatus(following=False)
