"""Version 1 API endpoints."""

from .endpoints import (
    auth_router,
    comments_router,
    communities_router,
    interactions_router,
    messages_router,
    moderation_router,
    notifications_router,
    posts_router,
    profiles_router,
    realtime_router,
    rpc_router,
    storage_public_router,
    storage_router,
)

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
