"""Comment writes, with comments_count kept equal to the row count."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_hub.core.errors import NotFoundError, PermissionDeniedError
from campus_hub.models import Comment, NotificationType, Profile, TargetType
from campus_hub.models.post import DEFAULT_ANONYMOUS_NAME
from campus_hub.schemas.comment import CommentCreate, CommentMutationResponse, CommentResponse
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.interactions import (
    bump_version,
    count_comments,
    parse_target_type,
    publish_target_update,
    resolve_target,
    target_type_of,
)
from campus_hub.services.moderation import ensure_clean
from campus_hub.services.notifications import add_notification, publish_notifications
from campus_hub.services.records import comment_record

logger = logging.getLogger(__name__)


def _has_commented(db: Session, target_type: TargetType, target_id: int, user_id: int) -> bool:
    return (
        db.execute(
            select(Comment.id)
            .where(
                Comment.target_type == str(target_type),
                Comment.target_id == target_id,
                Comment.user_id == user_id,
            )
            .limit(1)
        ).first()
        is not None
    )


def list_comments(db: Session, *, target_type: str | TargetType, target_id: int) -> list[Comment]:
    ttype = parse_target_type(target_type)
    resolve_target(db, ttype, target_id)
    return list(
        db.execute(
            select(Comment)
            .where(Comment.target_type == str(ttype), Comment.target_id == target_id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
        ).scalars()
    )


def add_comment(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    target_type: str | TargetType,
    target_id: int,
    data: CommentCreate,
) -> CommentMutationResponse:
    """Insert a comment, recount the target and notify its author."""
    ensure_clean(db, data.content)
    ttype = parse_target_type(target_type)
    target = resolve_target(db, ttype, target_id, for_update=True)

    comment = Comment(
        target_type=str(ttype),
        target_id=target_id,
        user_id=actor.id,
        content=data.content,
        is_anonymous=data.is_anonymous,
        anonymous_name=(data.anonymous_name or DEFAULT_ANONYMOUS_NAME) if data.is_anonymous else None,
    )
    db.add(comment)
    db.flush()

    target.comments_count = count_comments(db, ttype, target_id)
    bump_version(target)
    refs = {"community_post_id": target.id} if ttype is TargetType.COMMUNITY_POST else {"post_id": target.id}
    notification = add_notification(
        db,
        recipient_id=target.author_id,
        type_=NotificationType.COMMENT,
        actor_id=actor.id,
        **refs,
    )
    db.commit()
    db.refresh(comment)
    db.refresh(target)

    feed.publish("comments", "INSERT", record=comment_record(comment), idempotency_key=data.idempotency_key)
    publish_target_update(feed, target, idempotency_key=data.idempotency_key)
    publish_notifications(feed, [notification])
    return CommentMutationResponse(
        comment=CommentResponse.model_validate(comment),
        comments_count=target.comments_count,
        has_commented=True,
        version=target.counts_version,
    )


def delete_comment(db: Session, feed: ChangeFeed, *, actor: Profile, comment_id: int) -> CommentMutationResponse:
    """Remove one of ``actor``'s comments; faculty may remove any."""
    comment = db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment", comment_id)
    if comment.user_id != actor.id and not actor.is_faculty:
        raise PermissionDeniedError("You can only delete your own comments")

    old = comment_record(comment)
    target = resolve_target(db, comment.target_type, comment.target_id, for_update=True)
    ttype = target_type_of(target)
    db.delete(comment)
    db.flush()
    target.comments_count = count_comments(db, ttype, target.id)
    bump_version(target)
    db.commit()
    db.refresh(target)

    feed.publish("comments", "DELETE", old_record=old)
    publish_target_update(feed, target)
    return CommentMutationResponse(
        comment=None,
        comments_count=target.comments_count,
        has_commented=_has_commented(db, ttype, target.id, actor.id),
        version=target.counts_version,
    )
