"""Idempotent interaction writes and counter reconciliation.

A like, repost or bookmark is a row in ``interactions`` keyed by
(target_type, target_id, user_id, kind). Writes state the desired value
rather than flipping it, so replaying a request is harmless. Counters on the
target row are a display cache: after every change they are rewritten from
an aggregate query and ``counts_version`` is bumped.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_hub.core.errors import InvalidOperationError, NotFoundError, PermissionDeniedError
from campus_hub.models import (
    Comment,
    CommunityPost,
    Interaction,
    InteractionKind,
    Notification,
    NotificationType,
    Post,
    Profile,
    TargetType,
)
from campus_hub.models.interaction import COMMENTS_COUNTER_FIELD, COUNTER_FIELDS
from campus_hub.schemas.interaction import InteractionSnapshot
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.notifications import add_notification, publish_notifications
from campus_hub.services.records import target_record

logger = logging.getLogger(__name__)

Target = Post | CommunityPost

TARGET_MODELS: dict[TargetType, type[Post] | type[CommunityPost]] = {
    TargetType.POST: Post,
    TargetType.COMMUNITY_POST: CommunityPost,
}
TARGET_TABLES: dict[TargetType, str] = {
    TargetType.POST: "posts",
    TargetType.COMMUNITY_POST: "community_posts",
}


@dataclass(frozen=True)
class InteractionOutcome:
    """Authoritative result of a :func:`set_interaction` call."""

    target_type: str
    target_id: int
    kind: str
    active: bool
    count: int
    version: int
    changed: bool
    idempotency_key: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_target_type(value: str | TargetType) -> TargetType:
    try:
        return TargetType(value)
    except ValueError as exc:
        raise InvalidOperationError(f"Unknown target type {value!r}") from exc


def parse_kind(value: str | InteractionKind) -> InteractionKind:
    try:
        return InteractionKind(value)
    except ValueError as exc:
        raise InvalidOperationError(f"Unknown interaction kind {value!r}") from exc


def target_type_of(target: Target) -> TargetType:
    return TargetType.COMMUNITY_POST if isinstance(target, CommunityPost) else TargetType.POST


def resolve_target(
    db: Session,
    target_type: str | TargetType,
    target_id: int,
    *,
    for_update: bool = False,
) -> Target:
    """Load the post or community post an interaction points at.

    Raises:
        NotFoundError: if no such row exists.
    """
    ttype = parse_target_type(target_type)
    model = TARGET_MODELS[ttype]
    stmt = select(model).where(model.id == target_id)
    if for_update:
        # Serializes concurrent counter rewrites on backends with row locks.
        stmt = stmt.with_for_update()
    target = db.execute(stmt).scalar_one_or_none()
    if target is None:
        raise NotFoundError("Post" if ttype is TargetType.POST else "Community post", target_id)
    return target


def count_interactions(db: Session, target_type: TargetType, target_id: int, kind: InteractionKind) -> int:
    return db.execute(
        select(func.count())
        .select_from(Interaction)
        .where(
            Interaction.target_type == str(target_type),
            Interaction.target_id == target_id,
            Interaction.kind == str(kind),
        )
    ).scalar_one()


def count_comments(db: Session, target_type: TargetType, target_id: int) -> int:
    return db.execute(
        select(func.count())
        .select_from(Comment)
        .where(Comment.target_type == str(target_type), Comment.target_id == target_id)
    ).scalar_one()


def aggregate_counts(db: Session, target_type: TargetType, target_id: int) -> dict[str, int]:
    """Every counter of a target, computed from the source tables."""
    rows = db.execute(
        select(Interaction.kind, func.count())
        .where(Interaction.target_type == str(target_type), Interaction.target_id == target_id)
        .group_by(Interaction.kind)
    ).all()
    counts = {str(kind): 0 for kind in InteractionKind}
    for kind, total in rows:
        counts[kind] = total
    return counts


def bump_version(target: Target) -> None:
    target.counts_version = (target.counts_version or 0) + 1


def publish_target_update(feed: ChangeFeed, target: Target, *, idempotency_key: str | None = None) -> None:
    feed.publish(
        TARGET_TABLES[target_type_of(target)],
        "UPDATE",
        record=target_record(target),
        idempotency_key=idempotency_key,
    )


def _notification_refs(target: Target) -> dict[str, int | None]:
    if isinstance(target, CommunityPost):
        return {"post_id": None, "community_post_id": target.id}
    return {"post_id": target.id, "community_post_id": None}


def _outcome(
    db: Session,
    target: Target,
    kind: InteractionKind,
    *,
    active: bool,
    changed: bool,
    idempotency_key: str | None,
) -> InteractionOutcome:
    ttype = target_type_of(target)
    return InteractionOutcome(
        target_type=str(ttype),
        target_id=target.id,
        kind=str(kind),
        active=active,
        count=count_interactions(db, ttype, target.id, kind),
        version=target.counts_version,
        changed=changed,
        idempotency_key=idempotency_key,
    )


def set_interaction(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    target_type: str | TargetType,
    target_id: int,
    kind: str | InteractionKind,
    active: bool,
    idempotency_key: str | None = None,
) -> InteractionOutcome:
    """Make ``actor``'s interaction of ``kind`` on the target equal ``active``.

    Requests that ask for the state already stored change nothing and
    publish nothing; they return the current count and version with
    ``changed=False``.

    Args:
        db: Database session.
        feed: Change feed that receives the resulting events after commit.
        actor: Profile performing the interaction.
        target_type: ``post`` or ``community_post``.
        target_id: Primary key of the target row.
        kind: ``like``, ``repost`` or ``bookmark``.
        active: Desired state.
        idempotency_key: Client operation id, echoed on every change event.

    Returns:
        The authoritative outcome.
    """
    ttype = parse_target_type(target_type)
    ikind = parse_kind(kind)
    target = resolve_target(db, ttype, target_id, for_update=True)

    existing = db.get(Interaction, (str(ttype), target_id, actor.id, str(ikind)))
    if active and existing is None:
        db.add(
            Interaction(
                target_type=str(ttype),
                target_id=target_id,
                user_id=actor.id,
                kind=str(ikind),
            )
        )
        try:
            db.flush()
        except IntegrityError:
            # A concurrent request inserted the same row first.
            db.rollback()
            logger.info(
                "Concurrent %s on %s %d by %d; treating as already active",
                ikind, ttype, target_id, actor.id,
            )
            target = resolve_target(db, ttype, target_id)
            return _outcome(db, target, ikind, active=True, changed=False, idempotency_key=idempotency_key)
    elif not active and existing is not None:
        db.delete(existing)
        db.flush()
    else:
        return _outcome(db, target, ikind, active=active, changed=False, idempotency_key=idempotency_key)

    count = count_interactions(db, ttype, target_id, ikind)
    setattr(target, COUNTER_FIELDS[ikind], count)
    bump_version(target)

    notification: Notification | None = None
    if active:
        notification = add_notification(
            db,
            recipient_id=target.author_id,
            type_=NotificationType(str(ikind)),
            actor_id=actor.id,
            **_notification_refs(target),
        )
    db.commit()
    db.refresh(target)

    record = {
        "target_type": str(ttype),
        "target_id": target_id,
        "user_id": actor.id,
        "kind": str(ikind),
        "count": count,
        "version": target.counts_version,
    }
    if active:
        feed.publish("interactions", "INSERT", record=record, idempotency_key=idempotency_key)
    else:
        feed.publish("interactions", "DELETE", old_record=record, idempotency_key=idempotency_key)
    publish_target_update(feed, target, idempotency_key=idempotency_key)
    publish_notifications(feed, [notification])

    logger.debug(
        "%s %s on %s %d by %d -> %d (v%d)",
        "Set" if active else "Cleared", ikind, ttype, target_id, actor.id, count, target.counts_version,
    )
    return InteractionOutcome(
        target_type=str(ttype),
        target_id=target_id,
        kind=str(ikind),
        active=active,
        count=count,
        version=target.counts_version,
        changed=True,
        idempotency_key=idempotency_key,
    )


def snapshot(
    db: Session,
    *,
    viewer: Profile | None,
    target_type: str | TargetType,
    target_id: int,
) -> InteractionSnapshot:
    """Counts and the viewer's flags, read from the source tables rather than the cache."""
    ttype = parse_target_type(target_type)
    target = resolve_target(db, ttype, target_id)
    counts = aggregate_counts(db, ttype, target_id)
    active = {str(kind): False for kind in InteractionKind}
    has_commented = False
    if viewer is not None:
        mine = db.execute(
            select(Interaction.kind).where(
                Interaction.target_type == str(ttype),
                Interaction.target_id == target_id,
                Interaction.user_id == viewer.id,
            )
        ).scalars()
        for kind in mine:
            active[kind] = True
        has_commented = (
            db.execute(
                select(Comment.id)
                .where(
                    Comment.target_type == str(ttype),
                    Comment.target_id == target_id,
                    Comment.user_id == viewer.id,
                )
                .limit(1)
            ).first()
            is not None
        )
    return InteractionSnapshot(
        target_type=str(ttype),
        target_id=target_id,
        counts=counts,
        active=active,
        comments_count=count_comments(db, ttype, target_id),
        has_commented=has_commented,
        version=target.counts_version,
    )


def recount_target(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    target_type: str | TargetType,
    target_id: int,
) -> Target:
    """Rewrite every cached counter of a target from its aggregates.

    Only the author or a faculty member may trigger a repair. The version is
    bumped only if some counter actually drifted.
    """
    ttype = parse_target_type(target_type)
    target = resolve_target(db, ttype, target_id, for_update=True)
    if target.author_id != actor.id and not actor.is_faculty:
        raise PermissionDeniedError("Only the author or faculty may recount a post")

    expected: dict[str, int] = {
        COUNTER_FIELDS[InteractionKind(kind)]: total
        for kind, total in aggregate_counts(db, ttype, target_id).items()
    }
    expected[COMMENTS_COUNTER_FIELD] = count_comments(db, ttype, target_id)
    drifted = {field: value for field, value in expected.items() if getattr(target, field) != value}
    if not drifted:
        return target

    for field, value in drifted.items():
        setattr(target, field, value)
    bump_version(target)
    db.commit()
    db.refresh(target)
    logger.warning("Repaired drifted counters on %s %d: %s", ttype, target_id, sorted(drifted))
    publish_target_update(feed, target)
    return target


def purge_target_activity(db: Session, target_type: TargetType, target_ids: list[int]) -> None:
    """Delete interactions and comments attached to targets that are being removed.

    Does not commit.
    """
    if not target_ids:
        return
    db.execute(
        delete(Interaction).where(
            Interaction.target_type == str(target_type), Interaction.target_id.in_(target_ids)
        )
    )
    db.execute(
        delete(Comment).where(Comment.target_type == str(target_type), Comment.target_id.in_(target_ids))
    )
    ref_column = Notification.post_id if target_type is TargetType.POST else Notification.community_post_id
    db.execute(delete(Notification).where(ref_column.in_(target_ids)))


def snapshots(
    db: Session,
    *,
    viewer: Profile | None,
    target_type: str | TargetType,
    target_ids: list[int],
) -> list[InteractionSnapshot]:
    """Snapshots for several targets; ids that do not exist are skipped."""
    ttype = parse_target_type(target_type)
    model = TARGET_MODELS[ttype]
    existing = set(db.execute(select(model.id).where(model.id.in_(target_ids))).scalars())
    return [
        snapshot(db, viewer=viewer, target_type=ttype, target_id=target_id)
        for target_id in dict.fromkeys(target_ids)
        if target_id in existing
    ]
