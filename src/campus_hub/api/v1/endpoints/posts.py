"""Post endpoints for the campus feed."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from campus_hub.models import Post
from campus_hub.schemas.post import PostCreate, PostResponse
from campus_hub.services import posts as post_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, OptionalProfileDep, SessionDep

router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("/", response_model=list[PostResponse])
async def list_posts(
    db: SessionDep,
    viewer: OptionalProfileDep,
    following: bool = Query(False, description="Only posts by authors the caller follows"),
    category: str | None = Query(None),
    before: int | None = Query(None, description="Return posts with a smaller id"),
    limit: int = Query(50, ge=1, le=100),
) -> list[Post]:
    """List posts newest first."""
    return post_service.list_posts(
        db, viewer=viewer, following=following, category=category, before=before, limit=limit
    )


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(post_id: int, db: SessionDep) -> Post:
    return post_service.get_post(db, post_id)


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> Post:
    """Create a post; banned words are rejected with 422."""
    return post_service.create_post(db, feed, author=current_profile, data=payload)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> None:
    post_service.delete_post(db, feed, actor=current_profile, post_id=post_id)
