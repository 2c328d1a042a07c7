"""Row serializers used for change-feed payloads.

Change events carry the same JSON shape the REST endpoints return so the
client can patch local state straight from an event.
"""

from __future__ import annotations

from typing import Any

from campus_hub.models import (
    Comment,
    Community,
    CommunityInvitation,
    CommunityMember,
    CommunityPost,
    Message,
    Notification,
    Post,
    Profile,
)
from campus_hub.schemas.comment import CommentResponse
from campus_hub.schemas.community import InvitationResponse
from campus_hub.schemas.message import MessageResponse
from campus_hub.schemas.post import CommunityPostResponse, PostResponse
from campus_hub.schemas.profile import ProfileResponse


def post_record(post: Post) -> dict[str, Any]:
    return PostResponse.model_validate(post).model_dump(mode="json")


def community_post_record(post: CommunityPost) -> dict[str, Any]:
    return CommunityPostResponse.model_validate(post).model_dump(mode="json")


def target_record(target: Post | CommunityPost) -> dict[str, Any]:
    if isinstance(target, CommunityPost):
        return community_post_record(target)
    return post_record(target)


def comment_record(comment: Comment) -> dict[str, Any]:
    return CommentResponse.model_validate(comment).model_dump(mode="json")


def community_record(community: Community) -> dict[str, Any]:
    return {
        "id": community.id,
        "name": community.name,
        "category": community.category,
        "privacy": community.privacy,
        "member_count": community.member_count,
        "created_by": community.created_by,
    }


def member_record(member: CommunityMember) -> dict[str, Any]:
    return {
        "community_id": member.community_id,
        "user_id": member.user_id,
        "role": member.role,
    }


def invitation_record(invitation: CommunityInvitation) -> dict[str, Any]:
    return InvitationResponse.model_validate(invitation).model_dump(mode="json")


def notification_record(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "actor_id": notification.actor_id,
        "post_id": notification.post_id,
        "community_post_id": notification.community_post_id,
        "is_read": notification.is_read,
    }


def message_record(message: Message) -> dict[str, Any]:
    return MessageResponse.model_validate(message).model_dump(mode="json")


def profile_record(profile: Profile) -> dict[str, Any]:
    return ProfileResponse.model_validate(profile).model_dump(mode="json")
