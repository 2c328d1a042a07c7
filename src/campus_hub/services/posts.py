"""Campus feed posts."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_hub.core.errors import InvalidOperationError, NotFoundError, PermissionDeniedError
from campus_hub.models import Follow, Post, Profile, TargetType
from campus_hub.models.post import DEFAULT_ANONYMOUS_NAME, POST_CATEGORIES
from campus_hub.schemas.post import PostCreate
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.interactions import purge_target_activity
from campus_hub.services.moderation import ensure_clean
from campus_hub.services.records import post_record

logger = logging.getLogger(__name__)


def create_post(db: Session, feed: ChangeFeed, *, author: Profile, data: PostCreate) -> Post:
    if data.category not in POST_CATEGORIES:
        raise InvalidOperationError(
            f"Unknown category {data.category!r}; expected one of {', '.join(POST_CATEGORIES)}"
        )
    ensure_clean(db, data.content)
    post = Post(
        author_id=author.id,
        content=data.content,
        category=data.category,
        is_anonymous=data.is_anonymous,
        anonymous_name=data.anonymous_name or DEFAULT_ANONYMOUS_NAME,
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    feed.publish("posts", "INSERT", record=post_record(post))
    return post


def list_posts(
    db: Session,
    *,
    viewer: Profile | None = None,
    following: bool = False,
    category: str | None = None,
    before: int | None = None,
    limit: int = 50,
) -> list[Post]:
    """Newest posts first.

    With ``following`` the feed is restricted to authors the viewer follows.
    ``before`` pages by post id.
    """
    stmt = select(Post)
    if following:
        if viewer is None:
            return []
        followed = select(Follow.following_id).where(Follow.follower_id == viewer.id)
        stmt = stmt.where(Post.author_id.in_(followed))
    if category:
        stmt = stmt.where(Post.category == category)
    if before is not None:
        stmt = stmt.where(Post.id < before)
    stmt = stmt.order_by(Post.created_at.desc(), Post.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())


def get_post(db: Session, post_id: int) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post", post_id)
    return post


def delete_post(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    post_id: int,
    moderator: bool = False,
) -> None:
    """Delete a post with its interactions, comments and notifications.

    ``moderator`` is set when a faculty moderator removes someone else's post
    through a report.
    """
    post = get_post(db, post_id)
    if post.author_id != actor.id and not (moderator and actor.is_faculty):
        raise PermissionDeniedError("You can only delete your own posts")

    old = post_record(post)
    purge_target_activity(db, TargetType.POST, [post.id])
    db.delete(post)
    db.commit()
    logger.info("Post %d deleted by %d", post_id, actor.id)
    feed.publish("posts", "DELETE", old_record=old)
