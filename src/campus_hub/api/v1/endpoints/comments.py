"""Comment endpoints for posts and community posts."""

from __future__ import annotations

from fastapi import APIRouter, status

from campus_hub.models import Comment, TargetType
from campus_hub.schemas.comment import CommentCreate, CommentMutationResponse, CommentResponse
from campus_hub.services import comments as comment_service

from ..dependencies import ChangeFeedDep, CurrentProfileDep, SessionDep

router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("/{target_type}/{target_id}", response_model=list[CommentResponse])
async def list_comments(target_type: TargetType, target_id: int, db: SessionDep) -> list[Comment]:
    """Comments oldest first."""
    return comment_service.list_comments(db, target_type=target_type, target_id=target_id)


@router.post(
    "/{target_type}/{target_id}",
    response_model=CommentMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    target_type: TargetType,
    target_id: int,
    payload: CommentCreate,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommentMutationResponse:
    return comment_service.add_comment(
        db, feed, actor=current_profile, target_type=target_type, target_id=target_id, data=payload
    )


@router.delete("/{comment_id}", response_model=CommentMutationResponse)
async def delete_comment(
    comment_id: int,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    feed: ChangeFeedDep,
) -> CommentMutationResponse:
    return comment_service.delete_comment(db, feed, actor=current_profile, comment_id=comment_id)
