"""API endpoint modules for version 1."""

from .auth import router as auth_router
from .comments import router as comments_router
from .communities import router as communities_router
from .interactions import router as interactions_router
from .messages import router as messages_router
from .messages import rpc_router
from .moderation import router as moderation_router
from .notifications import router as notifications_router
from .posts import router as posts_router
from .profiles import router as profiles_router
from .realtime import router as realtime_router
from .storage import public_router as storage_public_router
from .storage import router as storage_router

__all__ = [
    "auth_router",
    "posts_router",
    "interactions_router",
    "comments_router",
    "communities_router",
    "notifications_router",
    "messages_router",
    "rpc_router",
    "profiles_router",
    "realtime_router",
    "moderation_router",
    "storage_router",
    "storage_public_router",
]
