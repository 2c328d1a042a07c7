# src/campus_hub/models/__init__.py
"""SQLAlchemy models for the Campus Hub backend."""

from .community import Community, CommunityInvitation, CommunityMember
from .interaction import Comment, Interaction, InteractionKind, TargetType
from .message import Conversation, Message
from .moderation import BannedWord, Report, ReportAction
from .notification import Notification, NotificationType
from .post import CommunityPost, Post
from .profile import Follow, Profile

__all__ = [
    "BannedWord", "Report", "ReportAction",
    "Comment", "Interaction", "InteractionKind", "TargetType",
    "Community", "CommunityInvitation", "CommunityMember",
    "Conversation", "Message",
    "Follow", "Profile",
    "Notification", "NotificationType",
    "CommunityPost", "Post",
]
