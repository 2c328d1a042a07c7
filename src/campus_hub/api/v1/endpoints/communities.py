"""Community endpoints: membership, community posts and invitations."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from campus_hub.models import CommunityInvitation, CommunityPost
from campus_hub.schemas.community import (
    CommunityCreate,
    CommunityLimitResponse,
    CommunityResponse,
    InvitationCreate,
    InvitationResponse,
    MemberResponse,
)
from campus_hub.schemas.post import CommunityPostCreate, CommunityPostResponse
from campus_hub.services import communities as community_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, OptionalProfileDep, SessionDep

router = APIRouter(prefix="/communities", tags=["communities"])


@router.get("/", response_model=list[CommunityResponse])
async def list_communities(
    db: SessionDep,
    viewer: OptionalProfileDep,
    category: str | None = Query(None, description="Category filter; 'all' disables it"),
    q: str | None = Query(None, description="Search name and description"),
) -> list[CommunityResponse]:
    """List communities by size with the caller's membership flags."""
    return community_service.list_communities(db, viewer=viewer, category=category, query=q)


@router.get("/joined", response_model=list[CommunityResponse])
async def list_joined(current_profile: CurrentProfileDep, db: SessionDep) -> list[CommunityResponse]:
    return community_service.list_joined_communities(db, viewer=current_profile)


@router.get("/limit", response_model=CommunityLimitResponse)
async def creation_limit(current_profile: CurrentProfileDep, db: SessionDep) -> CommunityLimitResponse:
    """Report how many more communities the caller may create on the free tier."""
    return community_service.creation_limit(db, actor=current_profile)


@router.get("/invitations/mine", response_model=list[InvitationResponse])
async def my_invitations(current_profile: CurrentProfileDep, db: SessionDep) -> list[CommunityInvitation]:
    return community_service.list_user_invitations(db, actor=current_profile)


@router.post("/invitations/{invitation_id}/accept", response_model=CommunityResponse)
async def accept_invitation(
    invitation_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommunityResponse:
    return community_service.accept_invitation(
        db, feed, actor=current_profile, invitation_id=invitation_id
    )


@router.post("/invitations/{invitation_id}/decline", status_code=status.HTTP_204_NO_CONTENT)
async def decline_invitation(
    invitation_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> None:
    community_service.decline_invitation(db, feed, actor=current_profile, invitation_id=invitation_id)


@router.delete("/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_invitation(
    invitation_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> None:
    """Revoke an invitation (its sender or a community admin)."""
    community_service.cancel_invitation(db, feed, actor=current_profile, invitation_id=invitation_id)


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_community_post(
    post_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> None:
    community_service.delete_community_post(db, feed, actor=current_profile, post_id=post_id)


@router.get("/{community_id}", response_model=CommunityResponse)
async def get_community(
    community_id: int,
    db: SessionDep,
    viewer: OptionalProfileDep,
) -> CommunityResponse:
    return community_service.community_details(db, community_id=community_id, viewer=viewer)


@router.post("/", response_model=CommunityResponse, status_code=status.HTTP_201_CREATED)
async def create_community(
    payload: CommunityCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommunityResponse:
    """Create a community; the caller becomes its admin."""
    return community_service.create_community(db, feed, actor=current_profile, data=payload)


@router.delete("/{community_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_community(
    community_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> None:
    community_service.delete_community(db, feed, actor=current_profile, community_id=community_id)


@router.post("/{community_id}/join", response_model=CommunityResponse)
async def join_community(
    community_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommunityResponse:
    return community_service.join_community(db, feed, actor=current_profile, community_id=community_id)


@router.post("/{community_id}/leave", response_model=CommunityResponse)
async def leave_community(
    community_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommunityResponse:
    return community_service.leave_community(db, feed, actor=current_profile, community_id=community_id)


@router.get("/{community_id}/members", response_model=list[MemberResponse])
async def list_members(community_id: int, db: SessionDep) -> list[MemberResponse]:
    return community_service.list_members(db, community_id=community_id)


@router.get("/{community_id}/posts", response_model=list[CommunityPostResponse])
async def list_community_posts(community_id: int, db: SessionDep) -> list[CommunityPost]:
    return community_service.list_community_posts(db, community_id=community_id)


@router.post(
    "/{community_id}/posts",
    response_model=CommunityPostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_community_post(
    community_id: int,
    payload: CommunityPostCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommunityPost:
    return community_service.create_community_post(
        db, feed, actor=current_profile, community_id=community_id, data=payload
    )


@router.get("/{community_id}/invitations", response_model=list[InvitationResponse])
async def list_invitations(
    community_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
) -> list[CommunityInvitation]:
    return community_service.list_community_invitations(
        db, actor=current_profile, community_id=community_id
    )


@router.post(
    "/{community_id}/invitations",
    response_model=list[InvitationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def invite_members(
    community_id: int,
    payload: InvitationCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> list[CommunityInvitation]:
    """Invite one or more users (admins only)."""
    return community_service.invite_members(
        db, feed, actor=current_profile, community_id=community_id, data=payload
    )
