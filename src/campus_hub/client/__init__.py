"""Client sync layer for the Campus Hub API.

Wire the pieces together per signed-in user::

    backend = BackendClient()
    session = SessionContext(backend)
    subscriptions = SubscriptionManager()
    store = InteractionStore(backend, session=session)
    store.attach(subscriptions)
    poller = ChangeFeedPoller(backend, subscriptions)
"""

from .backend import BackendClient, BackendConfig, BackendError, load_backend_config
from .feeds import (
    CommentThread,
    CommunityState,
    CommunityWatcher,
    ConversationView,
    NotificationInbox,
    PostFeed,
    RefreshPolicy,
)
from .interactions import InteractionStore, InteractionView
from .realtime import ChangeFeedPoller
from .session import AuthState, SessionContext
from .subscriptions import Subscription, SubscriptionManager

__all__ = [
    "AuthState",
    "BackendClient",
    "BackendConfig",
    "BackendError",
    "ChangeFeedPoller",
    "CommentThread",
    "CommunityState",
    "CommunityWatcher",
    "ConversationView",
    "InteractionStore",
    "InteractionView",
    "NotificationInbox",
    "PostFeed",
    "RefreshPolicy",
    "SessionContext",
    "Subscription",
    "SubscriptionManager",
    "load_backend_config",
]
