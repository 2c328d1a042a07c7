"""View-models that keep screen state in step with the change feed.

Two refresh policies, chosen per view-model rather than per screen:

``PATCH``
    The event carries the changed row; it is merged into local state.
    Used for single rows and append-only lists. Counter fields never go
    through here, they belong to the :class:`InteractionStore`.
``REFETCH``
    The payload is ignored and the collection is reloaded. Used for lists
    filtered by a foreign key (comments, notifications).

A response that arrives after :meth:`ViewModel.close` is dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from campus_hub.client.backend import BackendClient, BackendError, NotFoundError
from campus_hub.client.interactions import COUNTER_FIELDS, InteractionStore, InteractionView
from campus_hub.client.session import SessionContext
from campus_hub.client.subscriptions import Subscription, SubscriptionManager
from campus_hub.services.changefeed import ChangeEvent

logger = logging.getLogger(__name__)


class RefreshPolicy(StrEnum):
    PATCH = "patch"
    REFETCH = "refetch"


class ViewModel:
    """Base for anything a screen opens, watches and closes."""

    refresh_policy = RefreshPolicy.REFETCH

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        *,
        session: SessionContext | None = None,
    ) -> None:
        self.backend = backend
        self.subscriptions = subscriptions
        self.session = session
        self.closed = True
        self.loading = False
        self.error: BackendError | None = None
        self._subscriptions: list[Subscription] = []
        self._hooks: list[Callable[[], None]] = []

    def _channels(self) -> list[tuple[str, str, str | None]]:
        """(table, event, filter) triples this view watches."""
        return []

    async def _load(self) -> Any:
        raise NotImplementedError

    def _apply(self, data: Any) -> None:
        raise NotImplementedError

    async def _on_change(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        if self.refresh_policy is RefreshPolicy.REFETCH:
            await self.reload()
        else:
            self._patch(event)

    def _patch(self, event: ChangeEvent) -> None:
        raise NotImplementedError

    async def open(self) -> None:
        self.closed = False
        for table, event, row_filter in self._channels():
            self._subscriptions.append(
                self.subscriptions.subscribe(table, self._on_change, event=event, row_filter=row_filter)
            )
        self._hooks.append(self.subscriptions.on_reset(self.reload))
        if self.session is not None:
            self._hooks.append(self.session.on_refresh(lambda _trigger: self.reload()))
        await self.reload()

    async def reload(self) -> None:
        if self.closed:
            return
        self.loading = True
        try:
            data = await self._load()
        except BackendError as e:
            self.loading = False
            if not self.closed:
                self._failed(e)
            return
        self.loading = False
        if self.closed:
            logger.debug("Dropping late response for closed %s", type(self).__name__)
            return
        self.error = None
        self._apply(data)

    def _failed(self, error: BackendError) -> None:
        self.error = error
        logger.warning("%s failed to load: %s", type(self).__name__, error)

    def close(self) -> None:
        self.closed = True
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        for remove in self._hooks:
            remove()
        self._hooks = []


class PostFeed(ViewModel):
    """Main feed. Rows are patched from ``posts`` events; counters live in the store."""

    refresh_policy = RefreshPolicy.PATCH

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        store: InteractionStore,
        *,
        session: SessionContext | None = None,
        following: bool = False,
        category: str | None = None,
    ) -> None:
        super().__init__(backend, subscriptions, session=session)
        self.store = store
        self.following = following
        self.category = category
        self.posts: list[dict[str, Any]] = []

    def _channels(self) -> list[tuple[str, str, str | None]]:
        return [("posts", "*", f"category=eq.{self.category}" if self.category else None)]

    async def _load(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        posts = await self.backend.list_posts(following=self.following, category=self.category)
        snapshots: list[dict[str, Any]] = []
        if self.backend.authenticated and posts:
            snapshots = await self.backend.get_interaction_snapshots("post", [post["id"] for post in posts])
        return posts, snapshots

    def _apply(self, data: tuple[list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        posts, snapshots = data
        self.posts = posts
        for post in posts:
            self.store.seed("post", post)
        for snapshot in snapshots:
            self.store.apply_snapshot(snapshot)

    def _patch(self, event: ChangeEvent) -> None:
        row = event.row
        if row is None:
            return
        post_id = row["id"]
        if event.type == "DELETE":
            self.posts = [post for post in self.posts if post["id"] != post_id]
        elif event.type == "INSERT":
            # The followed-authors feed cannot tell from the row alone; it refetches.
            if not self.following and all(post["id"] != post_id for post in self.posts):
                self.posts.insert(0, dict(row))
                self.store.seed("post", row)
        else:
            for post in self.posts:
                if post["id"] == post_id:
                    post.update({key: value for key, value in row.items() if key not in COUNTER_FIELDS.values()})

    async def _on_change(self, event: ChangeEvent) -> None:
        if not self.closed and event.type == "INSERT" and self.following:
            await self.reload()
            return
        await super()._on_change(event)

    def counters(self, post_id: int) -> dict[str, InteractionView | None]:
        return {kind: self.store.get("post", post_id, kind) for kind in COUNTER_FIELDS}


class CommentThread(ViewModel):
    """Comments under one post; any change for the post refetches the list."""

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        store: InteractionStore,
        *,
        target_type: str,
        target_id: int,
        session: SessionContext | None = None,
    ) -> None:
        super().__init__(backend, subscriptions, session=session)
        self.store = store
        self.target_type = target_type
        self.target_id = target_id
        self.comments: list[dict[str, Any]] = []

    def _channels(self) -> list[tuple[str, str, str | None]]:
        return [("comments", "*", f"target_id=eq.{self.target_id}")]

    async def _on_change(self, event: ChangeEvent) -> None:
        row = event.row
        if row is not None and row.get("target_type") != self.target_type:
            return
        await super()._on_change(event)

    async def _load(self) -> list[dict[str, Any]]:
        return await self.backend.list_comments(self.target_type, self.target_id)

    def _apply(self, data: list[dict[str, Any]]) -> None:
        self.comments = data

    async def add(self, content: str, **fields: Any) -> dict[str, Any]:
        """Post a comment, updating the shared counter optimistically."""
        comment = await self.store.comment_added(self.target_type, self.target_id, content, **fields)
        if not self.closed and all(item["id"] != comment["id"] for item in self.comments):
            self.comments.append(comment)
        return comment

    async def remove(self, comment_id: int) -> None:
        await self.store.comment_removed(self.target_type, self.target_id, comment_id)
        self.comments = [item for item in self.comments if item["id"] != comment_id]

    @property
    def has_commented(self) -> bool:
        view = self.store.get(self.target_type, self.target_id, "comment")
        return view.active if view is not None else False


class NotificationInbox(ViewModel):
    """The signed-in user's notifications, refetched on any change addressed to them."""

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        *,
        user_id: int,
        session: SessionContext | None = None,
    ) -> None:
        super().__init__(backend, subscriptions, session=session)
        self.user_id = user_id
        self.notifications: list[dict[str, Any]] = []

    def _channels(self) -> list[tuple[str, str, str | None]]:
        return [("notifications", "*", f"user_id=eq.{self.user_id}")]

    async def _load(self) -> list[dict[str, Any]]:
        return await self.backend.list_notifications()

    def _apply(self, data: list[dict[str, Any]]) -> None:
        self.notifications = data

    @property
    def unread(self) -> int:
        return sum(1 for item in self.notifications if not item["is_read"])

    async def mark_read(self, notification_id: int) -> None:
        """Flip the flag locally, then on the server; restores it if the call fails."""
        target = next((item for item in self.notifications if item["id"] == notification_id), None)
        previous = target["is_read"] if target is not None else None
        if target is not None:
            target["is_read"] = True
        try:
            await self.backend.mark_notification_read(notification_id)
        except BackendError:
            if target is not None:
                target["is_read"] = previous
            raise

    async def mark_all_read(self) -> int:
        previous = {item["id"]: item["is_read"] for item in self.notifications}
        for item in self.notifications:
            item["is_read"] = True
        try:
            return await self.backend.mark_all_notifications_read()
        except BackendError:
            for item in self.notifications:
                if item["id"] in previous:
                    item["is_read"] = previous[item["id"]]
            raise


class CommunityState(StrEnum):
    LOADING = "loading"
    ACTIVE = "active"
    DELETED = "deleted"


class CommunityWatcher(ViewModel):
    """A community screen: details patched in place, posts refetched, deletion observed."""

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        store: InteractionStore,
        *,
        community_id: int,
        session: SessionContext | None = None,
    ) -> None:
        super().__init__(backend, subscriptions, session=session)
        self.store = store
        self.community_id = community_id
        self.state = CommunityState.LOADING
        self.community: dict[str, Any] | None = None
        self.posts: list[dict[str, Any]] = []
        self._deleted_listeners: list[Callable[[int], None]] = []

    def _channels(self) -> list[tuple[str, str, str | None]]:
        return [
            ("communities", "*", f"id=eq.{self.community_id}"),
            ("community_posts", "*", f"community_id=eq.{self.community_id}"),
        ]

    def on_deleted(self, listener: Callable[[int], None]) -> None:
        self._deleted_listeners.append(listener)

    async def _load(self) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        community = await self.backend.get_community(self.community_id)
        posts = await self.backend.list_community_posts(self.community_id)
        return community, posts

    def _apply(self, data: tuple[dict[str, Any], list[dict[str, Any]]]) -> None:
        self.community, self.posts = data
        self.state = CommunityState.ACTIVE
        for post in self.posts:
            self.store.seed("community_post", post)

    def _failed(self, error: BackendError) -> None:
        if isinstance(error, NotFoundError):
            self._mark_deleted()
            return
        super()._failed(error)

    async def reload(self) -> None:
        if self.state is CommunityState.DELETED:
            return
        await super().reload()

    async def _on_change(self, event: ChangeEvent) -> None:
        if self.closed or self.state is CommunityState.DELETED:
            return
        if event.table == "communities":
            if event.type == "DELETE":
                self._mark_deleted()
            elif event.record is not None and self.community is not None:
                self.community.update(event.record)
            return
        await self.reload()

    def _mark_deleted(self) -> None:
        if self.state is CommunityState.DELETED:
            return
        self.state = CommunityState.DELETED
        for post in self.posts:
            self.store.forget("community_post", post["id"])
        self.posts = []
        logger.info("Community %d was deleted", self.community_id)
        for listener in list(self._deleted_listeners):
            try:
                listener(self.community_id)
            except Exception:
                logger.error("Community deleted listener failed", exc_info=True)


class ConversationView(ViewModel):
    """One direct-message conversation; new messages are appended from the feed."""

    refresh_policy = RefreshPolicy.PATCH

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        *,
        conversation_id: int,
        session: SessionContext | None = None,
    ) -> None:
        super().__init__(backend, subscriptions, session=session)
        self.conversation_id = conversation_id
        self.messages: list[dict[str, Any]] = []

    def _channels(self) -> list[tuple[str, str, str | None]]:
        return [("messages", "INSERT", f"conversation_id=eq.{self.conversation_id}")]

    async def _load(self) -> list[dict[str, Any]]:
        return await self.backend.list_messages(self.conversation_id)

    def _apply(self, data: list[dict[str, Any]]) -> None:
        self.messages = data

    def _append(self, message: dict[str, Any]) -> None:
        if all(item["id"] != message["id"] for item in self.messages):
            self.messages.append(message)

    def _patch(self, event: ChangeEvent) -> None:
        if event.record is not None:
            self._append(dict(event.record))

    async def send(self, content: str) -> dict[str, Any]:
        message = await self.backend.send_message(self.conversation_id, content)
        if not self.closed:
            self._append(message)
        return message
