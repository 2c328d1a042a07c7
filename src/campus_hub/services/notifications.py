"""Notification creation, listing and read-state updates."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from campus_hub.core.errors import NotFoundError
from campus_hub.core.settings import settings
from campus_hub.models import Notification, NotificationType, Profile
from campus_hub.schemas.notification import NotificationResponse
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.records import notification_record

logger = logging.getLogger(__name__)

_TEMPLATES: dict[str, str] = {
    NotificationType.LIKE: "{name} liked your post",
    NotificationType.COMMENT: "{name} commented on your post",
    NotificationType.REPOST: "{name} reposted your content",
    NotificationType.BOOKMARK: "{name} bookmarked your post",
    NotificationType.FOLLOW: "{name} started following you",
    NotificationType.COMMUNITY_POST: "{name} posted in your community",
    NotificationType.MENTION: "{name} mentioned you",
}
_FALLBACKS: dict[str, str] = {
    NotificationType.SYSTEM: "System notification",
    NotificationType.ACHIEVEMENT: "Achievement unlocked!",
}


def describe(notification: Notification, actor: Profile | None) -> str:
    """Human-readable line for a notification row."""
    if notification.type in _FALLBACKS:
        return notification.message or _FALLBACKS[notification.type]
    name = actor.name_for_display if actor is not None else "User"
    template = _TEMPLATES.get(notification.type, "{name} interacted with your content")
    return template.format(name=name)


def add_notification(
    db: Session,
    *,
    recipient_id: int,
    type_: NotificationType,
    actor_id: int | None,
    post_id: int | None = None,
    community_post_id: int | None = None,
    message: str | None = None,
) -> Notification | None:
    """Stage a notification in the current transaction.

    Nothing is created when the actor is the recipient. The caller commits and
    then calls :func:`publish_notifications`.
    """
    if actor_id is not None and actor_id == recipient_id:
        return None
    notification = Notification(
        user_id=recipient_id,
        type=str(type_),
        actor_id=actor_id,
        post_id=post_id,
        community_post_id=community_post_id,
        message=message,
    )
    db.add(notification)
    return notification


def publish_notifications(feed: ChangeFeed, notifications: Iterable[Notification | None]) -> None:
    for notification in notifications:
        if notification is not None:
            feed.publish("notifications", "INSERT", record=notification_record(notification))


def list_notifications(db: Session, *, recipient: Profile, limit: int | None = None) -> list[NotificationResponse]:
    rows = (
        db.query(Notification)
        .filter(Notification.user_id == recipient.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit or settings.notification_page_size)
        .all()
    )
    actor_ids = {row.actor_id for row in rows if row.actor_id is not None}
    actors: dict[int, Profile] = {}
    if actor_ids:
        actors = {p.id: p for p in db.query(Profile).filter(Profile.id.in_(actor_ids)).all()}

    results = []
    for row in rows:
        actor = actors.get(row.actor_id) if row.actor_id is not None else None
        results.append(
            NotificationResponse(
                id=row.id,
                type=row.type,
                actor_id=row.actor_id,
                actor_name=actor.name_for_display if actor else None,
                post_id=row.post_id,
                community_post_id=row.community_post_id,
                description=describe(row, actor),
                is_read=row.is_read,
                created_at=row.created_at,
            )
        )
    return results


def unread_count(db: Session, *, recipient: Profile) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == recipient.id, Notification.is_read.is_(False))
        .scalar()
        or 0
    )


def mark_read(db: Session, feed: ChangeFeed, *, recipient: Profile, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != recipient.id:
        raise NotFoundError("Notification", notification_id)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
        feed.publish("notifications", "UPDATE", record=notification_record(notification))
    return notification


def mark_all_read(db: Session, feed: ChangeFeed, *, recipient: Profile) -> int:
    """Flip every unread notification of ``recipient``; returns how many changed."""
    unread = (
        db.query(Notification)
        .filter(Notification.user_id == recipient.id, Notification.is_read.is_(False))
        .all()
    )
    for notification in unread:
        notification.is_read = True
    db.commit()
    for notification in unread:
        feed.publish("notifications", "UPDATE", record=notification_record(notification))
    if unread:
        logger.debug("Marked %d notifications read for %d", len(unread), recipient.id)
    return len(unread)
