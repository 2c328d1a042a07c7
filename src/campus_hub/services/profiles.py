"""Accounts, profiles, presence heartbeat and the follow graph."""

from __future__ import annotations

import logging
import re

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_hub.core.errors import (
    ConflictError,
    FeatureUnavailableError,
    InvalidOperationError,
    NotFoundError,
)
from campus_hub.core.security import hash_password, password_needs_rehash, verify_password
from campus_hub.core.settings import settings
from campus_hub.db.time import utcnow
from campus_hub.models import Follow, NotificationType, Profile
from campus_hub.schemas.profile import FollowCounts, ProfileUpdate, SignUpRequest
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.notifications import add_notification, publish_notifications
from campus_hub.services.records import profile_record

logger = logging.getLogger(__name__)

_USERNAME_CHARS = re.compile(r"[^a-z0-9._]")


def _base_username(email: str) -> str:
    local = email.split("@", 1)[0].lower()
    return _USERNAME_CHARS.sub("", local) or "user"


def _unique_username(db: Session, base: str) -> str:
    candidate = base
    suffix = 1
    while db.execute(select(Profile.id).where(Profile.username == candidate)).first() is not None:
        suffix += 1
        candidate = f"{base}{suffix}"
    return candidate


def get_profile(db: Session, profile_id: int) -> Profile:
    profile = db.get(Profile, profile_id)
    if profile is None:
        raise NotFoundError("Profile", profile_id)
    return profile


def sign_up(db: Session, data: SignUpRequest) -> Profile:
    """Create an account; the username comes from the email's local part."""
    email = data.email.strip().lower()
    if db.execute(select(Profile.id).where(Profile.email == email)).first() is not None:
        raise ConflictError("An account with this email already exists")
    profile = Profile(
        email=email,
        username=_unique_username(db, _base_username(email)),
        display_name=data.display_name,
        user_type=data.user_type,
        department=data.department,
        password_hash=hash_password(data.password),
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("An account with this email already exists") from exc
    db.refresh(profile)
    logger.info("Registered %s profile %d", profile.user_type, profile.id)
    return profile


def authenticate(db: Session, *, email: str, password: str) -> Profile | None:
    profile = db.execute(
        select(Profile).where(Profile.email == email.strip().lower())
    ).scalar_one_or_none()
    if profile is None or not verify_password(password, profile.password_hash):
        return None
    if password_needs_rehash(profile.password_hash):
        profile.password_hash = hash_password(password)
        db.commit()
    return profile


def update_profile(db: Session, feed: ChangeFeed, *, actor: Profile, data: ProfileUpdate) -> Profile:
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(actor, key, value)
    db.add(actor)
    db.commit()
    db.refresh(actor)
    feed.publish("profiles", "UPDATE", record=profile_record(actor))
    return actor


def record_heartbeat(db: Session, *, actor: Profile) -> Profile:
    """Stamp ``last_active_at``.

    Raises:
        FeatureUnavailableError: when presence tracking is switched off.
    """
    if not settings.presence_tracking_enabled:
        raise FeatureUnavailableError("Presence tracking is not enabled")
    actor.last_active_at = utcnow()
    db.commit()
    db.refresh(actor)
    return actor


def search_profiles(db: Session, *, query: str, limit: int = 20) -> list[Profile]:
    pattern = f"%{query.strip()}%"
    return list(
        db.execute(
            select(Profile)
            .where(Profile.username.ilike(pattern))
            .order_by(Profile.username.asc())
            .limit(limit)
        ).scalars()
    )


def follow(db: Session, feed: ChangeFeed, *, actor: Profile, profile_id: int) -> bool:
    """Follow ``profile_id``. Returns False when the edge already existed."""
    if profile_id == actor.id:
        raise InvalidOperationError("You cannot follow yourself")
    get_profile(db, profile_id)
    if db.get(Follow, (actor.id, profile_id)) is not None:
        return False

    db.add(Follow(follower_id=actor.id, following_id=profile_id))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        return False
    notification = add_notification(
        db, recipient_id=profile_id, type_=NotificationType.FOLLOW, actor_id=actor.id
    )
    db.commit()
    feed.publish("follows", "INSERT", record={"follower_id": actor.id, "following_id": profile_id})
    publish_notifications(feed, [notification])
    return True


def unfollow(db: Session, feed: ChangeFeed, *, actor: Profile, profile_id: int) -> bool:
    edge = db.get(Follow, (actor.id, profile_id))
    if edge is None:
        return False
    db.delete(edge)
    db.commit()
    feed.publish("follows", "DELETE", old_record={"follower_id": actor.id, "following_id": profile_id})
    return True


def follow_counts(db: Session, *, profile_id: int) -> FollowCounts:
    get_profile(db, profile_id)
    followers = db.execute(
        select(func.count()).select_from(Follow).where(Follow.following_id == profile_id)
    ).scalar_one()
    following = db.execute(
        select(func.count()).select_from(Follow).where(Follow.follower_id == profile_id)
    ).scalar_one()
    return FollowCounts(followers=followers, following=following)


def is_following(db: Session, *, actor: Profile, profile_id: int) -> bool:
    return db.get(Follow, (actor.id, profile_id)) is not None
