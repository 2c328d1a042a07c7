"""Communities: membership, community posts and invitations.

``member_count`` on a community is a display cache recomputed from
``community_members`` on every membership write, the same way post counters
are recomputed from ``interactions``.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_hub.core.errors import (
    ConflictError,
    LimitExceededError,
    NotFoundError,
    PermissionDeniedError,
)
from campus_hub.core.settings import settings
from campus_hub.models import (
    Community,
    CommunityInvitation,
    CommunityMember,
    CommunityPost,
    NotificationType,
    Profile,
    TargetType,
)
from campus_hub.models.community import INVITATION_PENDING, ROLE_ADMIN, ROLE_MEMBER
from campus_hub.models.post import DEFAULT_ANONYMOUS_NAME
from campus_hub.schemas.community import (
    CommunityCreate,
    CommunityLimitResponse,
    CommunityResponse,
    InvitationCreate,
    MemberResponse,
)
from campus_hub.schemas.post import CommunityPostCreate
from campus_hub.services.changefeed import ChangeFeed
from campus_hub.services.interactions import purge_target_activity
from campus_hub.services.moderation import ensure_clean
from campus_hub.services.notifications import add_notification, publish_notifications
from campus_hub.services.records import (
    community_post_record,
    community_record,
    invitation_record,
    member_record,
)

logger = logging.getLogger(__name__)


def get_community(db: Session, community_id: int) -> Community:
    community = db.get(Community, community_id)
    if community is None:
        raise NotFoundError("Community", community_id)
    return community


def get_membership(db: Session, community_id: int, user_id: int) -> CommunityMember | None:
    return db.get(CommunityMember, (community_id, user_id))


def require_admin(db: Session, community_id: int, actor: Profile) -> CommunityMember:
    membership = get_membership(db, community_id, actor.id)
    if membership is None or membership.role != ROLE_ADMIN:
        raise PermissionDeniedError("You must be an admin of this community")
    return membership


def _recount_members(db: Session, community: Community) -> int:
    community.member_count = db.execute(
        select(func.count())
        .select_from(CommunityMember)
        .where(CommunityMember.community_id == community.id)
    ).scalar_one()
    return community.member_count


def _with_status(community: Community, membership: CommunityMember | None) -> CommunityResponse:
    response = CommunityResponse.model_validate(community)
    response.is_member = membership is not None
    response.user_role = membership.role if membership else None
    response.is_admin = membership is not None and membership.role == ROLE_ADMIN
    return response


def _memberships_of(db: Session, viewer: Profile | None) -> dict[int, CommunityMember]:
    if viewer is None:
        return {}
    rows = db.execute(select(CommunityMember).where(CommunityMember.user_id == viewer.id)).scalars()
    return {row.community_id: row for row in rows}


def list_communities(
    db: Session,
    *,
    viewer: Profile | None = None,
    category: str | None = None,
    query: str | None = None,
) -> list[CommunityResponse]:
    """Communities by member count, flagged with the viewer's membership.

    ``query`` matches name or description case-insensitively.
    """
    stmt = select(Community)
    if category and category != "all":
        stmt = stmt.where(Community.category == category)
    if query:
        pattern = f"%{query}%"
        stmt = stmt.where(or_(Community.name.ilike(pattern), Community.description.ilike(pattern)))
    stmt = stmt.order_by(Community.member_count.desc(), Community.created_at.desc())
    memberships = _memberships_of(db, viewer)
    return [_with_status(c, memberships.get(c.id)) for c in db.execute(stmt).scalars()]


def list_joined_communities(db: Session, *, viewer: Profile) -> list[CommunityResponse]:
    rows = db.execute(
        select(Community, CommunityMember)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .where(CommunityMember.user_id == viewer.id)
        .order_by(CommunityMember.joined_at.desc())
    ).all()
    return [_with_status(community, membership) for community, membership in rows]


def community_details(db: Session, *, community_id: int, viewer: Profile | None) -> CommunityResponse:
    community = get_community(db, community_id)
    membership = get_membership(db, community_id, viewer.id) if viewer is not None else None
    return _with_status(community, membership)


def creation_limit(db: Session, *, actor: Profile) -> CommunityLimitResponse:
    created = db.execute(
        select(func.count()).select_from(Community).where(Community.created_by == actor.id)
    ).scalar_one()
    limit = settings.community_free_tier_limit
    return CommunityLimitResponse(can_create=created < limit, created_count=created, max_free=limit)


def create_community(db: Session, feed: ChangeFeed, *, actor: Profile, data: CommunityCreate) -> CommunityResponse:
    """Create a community with ``actor`` as its first admin.

    Raises:
        LimitExceededError: when the free-tier creation limit is reached.
        ConflictError: when the name is taken.
    """
    limit = creation_limit(db, actor=actor)
    if not limit.can_create:
        raise LimitExceededError(
            f"Free tier allows {limit.max_free} communities",
            limit=limit.max_free,
            current=limit.created_count,
        )
    ensure_clean(db, f"{data.name} {data.description or ''}")
    if db.execute(select(Community.id).where(Community.name == data.name)).first() is not None:
        raise ConflictError(f"A community named {data.name!r} already exists")

    community = Community(
        name=data.name,
        description=data.description,
        category=data.category,
        privacy=data.privacy,
        rules=data.rules,
        icon=data.icon or "people-outline",
        max_members=data.max_members or settings.community_default_max_members,
        created_by=actor.id,
    )
    db.add(community)
    db.flush()
    membership = CommunityMember(community_id=community.id, user_id=actor.id, role=ROLE_ADMIN)
    db.add(membership)
    db.flush()
    _recount_members(db, community)
    db.commit()
    db.refresh(community)
    db.refresh(membership)

    feed.publish("communities", "INSERT", record=community_record(community))
    feed.publish("community_members", "INSERT", record=member_record(membership))
    logger.info("Community %d created by %d", community.id, actor.id)
    return _with_status(community, membership)


def _add_member(db: Session, community: Community, user_id: int, role: str) -> CommunityMember:
    if get_membership(db, community.id, user_id) is not None:
        raise ConflictError("Already a member")
    if community.member_count >= community.max_members:
        raise ConflictError("Community is full")
    membership = CommunityMember(community_id=community.id, user_id=user_id, role=role)
    db.add(membership)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Already a member") from exc
    _recount_members(db, community)
    return membership


def join_community(db: Session, feed: ChangeFeed, *, actor: Profile, community_id: int) -> CommunityResponse:
    community = get_community(db, community_id)
    membership = _add_member(db, community, actor.id, ROLE_MEMBER)
    db.commit()
    db.refresh(community)
    db.refresh(membership)
    feed.publish("community_members", "INSERT", record=member_record(membership))
    feed.publish("communities", "UPDATE", record=community_record(community))
    return _with_status(community, membership)


def leave_community(db: Session, feed: ChangeFeed, *, actor: Profile, community_id: int) -> CommunityResponse:
    community = get_community(db, community_id)
    membership = get_membership(db, community_id, actor.id)
    if membership is None:
        raise NotFoundError("Membership")
    old = member_record(membership)
    db.delete(membership)
    db.flush()
    _recount_members(db, community)
    db.commit()
    db.refresh(community)
    feed.publish("community_members", "DELETE", old_record=old)
    feed.publish("communities", "UPDATE", record=community_record(community))
    return _with_status(community, None)


def delete_community(db: Session, feed: ChangeFeed, *, actor: Profile, community_id: int) -> None:
    """Delete a community and everything hanging off it (admins only).

    Watchers learn about it through a ``communities`` DELETE event.
    """
    community = get_community(db, community_id)
    require_admin(db, community_id, actor)
    old = community_record(community)

    post_ids = list(
        db.execute(select(CommunityPost.id).where(CommunityPost.community_id == community_id)).scalars()
    )
    purge_target_activity(db, TargetType.COMMUNITY_POST, post_ids)
    db.execute(delete(CommunityPost).where(CommunityPost.community_id == community_id))
    db.execute(delete(CommunityInvitation).where(CommunityInvitation.community_id == community_id))
    db.execute(delete(CommunityMember).where(CommunityMember.community_id == community_id))
    db.delete(community)
    db.commit()

    logger.info("Community %d deleted by %d (%d posts)", community_id, actor.id, len(post_ids))
    feed.publish("communities", "DELETE", old_record=old)


def list_members(db: Session, *, community_id: int) -> list[MemberResponse]:
    """Members with admins first, then by join time."""
    get_community(db, community_id)
    rows = db.execute(
        select(CommunityMember, Profile)
        .join(Profile, Profile.id == CommunityMember.user_id)
        .where(CommunityMember.community_id == community_id)
        .order_by(CommunityMember.role.asc(), CommunityMember.joined_at.asc())
    ).all()
    return [
        MemberResponse(
            user_id=profile.id,
            role=membership.role,
            joined_at=membership.joined_at,
            username=profile.username,
            display_name=profile.display_name,
            avatar_url=profile.avatar_url,
        )
        for membership, profile in rows
    ]


def list_community_posts(db: Session, *, community_id: int) -> list[CommunityPost]:
    get_community(db, community_id)
    return list(
        db.execute(
            select(CommunityPost)
            .where(CommunityPost.community_id == community_id)
            .order_by(CommunityPost.created_at.desc(), CommunityPost.id.desc())
        ).scalars()
    )


def create_community_post(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    community_id: int,
    data: CommunityPostCreate,
) -> CommunityPost:
    """Post into a community (members only) and notify the other members."""
    get_community(db, community_id)
    if get_membership(db, community_id, actor.id) is None:
        raise PermissionDeniedError("Join the community to post in it")
    ensure_clean(db, data.content)

    post = CommunityPost(
        community_id=community_id,
        author_id=actor.id,
        content=data.content,
        category=data.category,
        is_anonymous=data.is_anonymous,
        anonymous_name=data.anonymous_name or DEFAULT_ANONYMOUS_NAME,
    )
    db.add(post)
    db.flush()
    member_ids = db.execute(
        select(CommunityMember.user_id).where(CommunityMember.community_id == community_id)
    ).scalars()
    notifications = [
        add_notification(
            db,
            recipient_id=member_id,
            type_=NotificationType.COMMUNITY_POST,
            actor_id=actor.id,
            community_post_id=post.id,
        )
        for member_id in member_ids
    ]
    db.commit()
    db.refresh(post)

    feed.publish("community_posts", "INSERT", record=community_post_record(post))
    publish_notifications(feed, notifications)
    return post


def delete_community_post(db: Session, feed: ChangeFeed, *, actor: Profile, post_id: int) -> None:
    """Authors and community admins may delete community posts."""
    post = db.get(CommunityPost, post_id)
    if post is None:
        raise NotFoundError("Community post", post_id)
    if post.author_id != actor.id:
        require_admin(db, post.community_id, actor)
    old = community_post_record(post)
    purge_target_activity(db, TargetType.COMMUNITY_POST, [post.id])
    db.delete(post)
    db.commit()
    feed.publish("community_posts", "DELETE", old_record=old)


def invite_members(
    db: Session,
    feed: ChangeFeed,
    *,
    actor: Profile,
    community_id: int,
    data: InvitationCreate,
) -> list[CommunityInvitation]:
    """Create pending invitations; existing members and pending invitees are skipped."""
    get_community(db, community_id)
    require_admin(db, community_id, actor)

    wanted = list(dict.fromkeys(data.invited_user_ids))
    known = set(db.execute(select(Profile.id).where(Profile.id.in_(wanted))).scalars())
    missing = [uid for uid in wanted if uid not in known]
    if missing:
        raise NotFoundError("Profile", missing[0])
    members = set(
        db.execute(
            select(CommunityMember.user_id).where(
                CommunityMember.community_id == community_id, CommunityMember.user_id.in_(wanted)
            )
        ).scalars()
    )
    pending = set(
        db.execute(
            select(CommunityInvitation.invited_user_id).where(
                CommunityInvitation.community_id == community_id,
                CommunityInvitation.status == INVITATION_PENDING,
                CommunityInvitation.invited_user_id.in_(wanted),
            )
        ).scalars()
    )

    invitations = [
        CommunityInvitation(
            community_id=community_id,
            invited_user_id=uid,
            invited_by=actor.id,
            role=data.role,
            status=INVITATION_PENDING,
        )
        for uid in wanted
        if uid not in members and uid not in pending
    ]
    if not invitations:
        raise ConflictError("Everyone listed is already a member or invited")
    db.add_all(invitations)
    db.commit()
    for invitation in invitations:
        db.refresh(invitation)
        feed.publish("community_invitations", "INSERT", record=invitation_record(invitation))
    return invitations


def list_user_invitations(db: Session, *, actor: Profile) -> list[CommunityInvitation]:
    return list(
        db.execute(
            select(CommunityInvitation)
            .where(
                CommunityInvitation.invited_user_id == actor.id,
                CommunityInvitation.status == INVITATION_PENDING,
            )
            .order_by(CommunityInvitation.created_at.desc())
        ).scalars()
    )


def list_community_invitations(db: Session, *, actor: Profile, community_id: int) -> list[CommunityInvitation]:
    get_community(db, community_id)
    require_admin(db, community_id, actor)
    return list(
        db.execute(
            select(CommunityInvitation)
            .where(
                CommunityInvitation.community_id == community_id,
                CommunityInvitation.status == INVITATION_PENDING,
            )
            .order_by(CommunityInvitation.created_at.desc())
        ).scalars()
    )


def _get_invitation(db: Session, invitation_id: int) -> CommunityInvitation:
    invitation = db.get(CommunityInvitation, invitation_id)
    if invitation is None:
        raise NotFoundError("Invitation", invitation_id)
    return invitation


def accept_invitation(db: Session, feed: ChangeFeed, *, actor: Profile, invitation_id: int) -> CommunityResponse:
    """Join with the invited role, then drop the invitation."""
    invitation = _get_invitation(db, invitation_id)
    if invitation.invited_user_id != actor.id:
        raise PermissionDeniedError("This invitation is for someone else")
    community = get_community(db, invitation.community_id)
    old = invitation_record(invitation)
    membership = _add_member(db, community, actor.id, invitation.role or ROLE_MEMBER)
    db.delete(invitation)
    db.commit()
    db.refresh(community)
    db.refresh(membership)

    feed.publish("community_invitations", "DELETE", old_record=old)
    feed.publish("community_members", "INSERT", record=member_record(membership))
    feed.publish("communities", "UPDATE", record=community_record(community))
    return _with_status(community, membership)


def decline_invitation(db: Session, feed: ChangeFeed, *, actor: Profile, invitation_id: int) -> None:
    invitation = _get_invitation(db, invitation_id)
    if invitation.invited_user_id != actor.id:
        raise PermissionDeniedError("This invitation is for someone else")
    _drop_invitation(db, feed, invitation)


def cancel_invitation(db: Session, feed: ChangeFeed, *, actor: Profile, invitation_id: int) -> None:
    invitation = _get_invitation(db, invitation_id)
    if invitation.invited_by != actor.id:
        require_admin(db, invitation.community_id, actor)
    _drop_invitation(db, feed, invitation)


def _drop_invitation(db: Session, feed: ChangeFeed, invitation: CommunityInvitation) -> None:
    old = invitation_record(invitation)
    db.delete(invitation)
    db.commit()
    feed.publish("community_invitations", "DELETE", old_record=old)
