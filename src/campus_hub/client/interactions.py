"""Client-side interaction state: one canonical store for counters and flags.

Every screen that shows a post reads its like/repost/bookmark/comment
counters through :class:`InteractionStore`, so two views of the same post can
never disagree. Each (target, kind) entity is a small state machine:

* ``confirmed(count, active, version)`` - the last authoritative values;
* ``pending`` - a write in flight, displayed as ``max(0, base + delta)`` with
  the desired flag, until the server answers or a change event carrying the
  write's idempotency key arrives.

Change events whose ``counts_version`` is not newer than what the entity
already holds are stale echoes and are discarded.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from campus_hub.client.backend import BackendClient, BackendError
from campus_hub.client.subscriptions import Subscription, SubscriptionManager
from campus_hub.services.changefeed import ChangeEvent

if TYPE_CHECKING:
    from campus_hub.client.session import AuthState, SessionContext

logger = logging.getLogger(__name__)

TOGGLE_KINDS: tuple[str, ...] = ("like", "repost", "bookmark")
COMMENT_KIND = "comment"
COUNTER_FIELDS: dict[str, str] = {
    "like": "likes_count",
    "repost": "reposts_count",
    "bookmark": "bookmarks_count",
    COMMENT_KIND: "comments_count",
}
TARGET_TABLES: dict[str, str] = {
    "post": "posts",
    "community_post": "community_posts",
}
_TABLE_TARGETS = {table: target_type for target_type, table in TARGET_TABLES.items()}


@dataclass(frozen=True)
class EntityKey:
    target_type: str
    target_id: int
    kind: str


@dataclass(frozen=True)
class Confirmed:
    count: int
    active: bool
    version: int


@dataclass(frozen=True)
class PendingOp:
    desired_active: bool
    delta: int
    op_key: str


@dataclass(frozen=True)
class InteractionView:
    """What a screen renders for one entity."""

    count: int
    active: bool
    pending: bool


class InteractionState:
    """Confirmed values plus at most one optimistic operation."""

    def __init__(self, base: Confirmed) -> None:
        self.base = base
        self.pending: PendingOp | None = None

    @property
    def count(self) -> int:
        delta = self.pending.delta if self.pending is not None else 0
        return max(0, self.base.count + delta)

    @property
    def active(self) -> bool:
        return self.pending.desired_active if self.pending is not None else self.base.active

    @property
    def version(self) -> int:
        return self.base.version

    def view(self) -> InteractionView:
        return InteractionView(count=self.count, active=self.active, pending=self.pending is not None)

    def begin(self, desired_active: bool, delta: int, op_key: str) -> None:
        self.pending = PendingOp(desired_active=desired_active, delta=delta, op_key=op_key)

    def resolve(self, outcome: Confirmed, op_key: str) -> None:
        """Collapse to confirmed using the server's answer to ``op_key``."""
        if self.pending is not None and self.pending.op_key == op_key:
            self.pending = None
        if outcome.version >= self.base.version:
            self.base = outcome
        else:
            # A newer event already moved the count; the flag is still ours.
            self.base = Confirmed(self.base.count, outcome.active, self.base.version)

    def rollback(self, op_key: str) -> None:
        if self.pending is not None and self.pending.op_key == op_key:
            self.pending = None

    def apply_remote(
        self,
        count: int,
        version: int,
        *,
        op_key: str | None = None,
        active: bool | None = None,
    ) -> bool:
        """Fold a change event into the state; returns False when it was discarded."""
        if self.pending is not None and op_key is not None and op_key == self.pending.op_key:
            desired = self.pending.desired_active
            self.pending = None
            if version >= self.base.version:
                self.base = Confirmed(count, desired, version)
            else:
                self.base = Confirmed(self.base.count, desired, self.base.version)
            return True
        if version <= self.base.version:
            return False
        self.base = Confirmed(count, self.base.active if active is None else active, version)
        return True


Listener = Callable[[EntityKey, InteractionView], None]


class InteractionStore:
    """Process-wide holder of every interaction entity the client displays.

    Pass the :class:`SessionContext` so the viewer is always whoever is
    signed in right now; the store empties itself whenever that changes.
    A fixed ``viewer_id`` is only for sessionless callers.
    """

    def __init__(
        self,
        backend: BackendClient,
        *,
        session: SessionContext | None = None,
        viewer_id: int | None = None,
    ) -> None:
        self.backend = backend
        self.session: SessionContext | None = None
        self._fixed_viewer_id = viewer_id
        self._known_viewer_id: int | None = None
        self._states: dict[EntityKey, InteractionState] = {}
        self._locks: dict[EntityKey, asyncio.Lock] = {}
        self._listeners: list[Listener] = []
        self._subscriptions: list[Subscription] = []
        self._remove_reset: Callable[[], None] | None = None
        self._remove_auth: Callable[[], None] | None = None
        if session is not None:
            self.follow(session)

    @property
    def viewer_id(self) -> int | None:
        if self.session is not None:
            return self.session.user_id
        return self._fixed_viewer_id

    def follow(self, session: SessionContext) -> None:
        """Bind the store to ``session`` and clear it on every change of user."""
        self.unfollow()
        self.session = session
        self._known_viewer_id = session.user_id
        self._remove_auth = session.on_auth_change(self._on_auth_change)

    def unfollow(self) -> None:
        if self._remove_auth is not None:
            self._remove_auth()
            self._remove_auth = None
        self.session = None

    def _on_auth_change(self, state: AuthState, profile: Mapping[str, Any] | None) -> None:
        viewer = int(profile["id"]) if profile else None
        if viewer == self._known_viewer_id:
            return
        logger.info("Viewer changed from %s to %s; dropping interaction state", self._known_viewer_id, viewer)
        self._known_viewer_id = viewer
        self.clear()

    # -- reading ------------------------------------------------------------

    def get(self, target_type: str, target_id: int, kind: str) -> InteractionView | None:
        state = self._states.get(EntityKey(target_type, target_id, kind))
        return state.view() if state is not None else None

    def tracked_targets(self) -> set[tuple[str, int]]:
        return {(key.target_type, key.target_id) for key in self._states}

    def listen(self, callback: Listener) -> Callable[[], None]:
        """Call ``callback(key, view)`` whenever an entity changes; returns a remover."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def _notify(self, key: EntityKey) -> None:
        state = self._states.get(key)
        if state is None:
            return
        view = state.view()
        for callback in list(self._listeners):
            try:
                callback(key, view)
            except Exception:
                logger.error("Interaction listener failed for %s", key, exc_info=True)

    def _lock(self, key: EntityKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # -- seeding ------------------------------------------------------------

    def _merge(self, key: EntityKey, incoming: Confirmed, *, active_known: bool, force: bool = False) -> None:
        state = self._states.get(key)
        if state is None:
            self._states[key] = InteractionState(incoming)
            self._notify(key)
            return
        newer = incoming.version > state.version or (force and incoming.version == state.version)
        if not newer:
            return
        active = incoming.active if active_known else state.base.active
        state.base = Confirmed(incoming.count, active, incoming.version)
        self._notify(key)

    def seed(
        self,
        target_type: str,
        row: Mapping[str, Any],
        active_flags: Mapping[str, bool] | None = None,
    ) -> None:
        """Build state from a fetched post row; never replaces a newer version.

        ``active_flags`` maps kinds (including ``comment``) to the viewer's
        flags. Kinds missing from it keep whatever flag is already known.
        """
        flags = active_flags or {}
        version = int(row.get("counts_version", 0))
        for kind, field in COUNTER_FIELDS.items():
            if field not in row:
                continue
            self._merge(
                EntityKey(target_type, int(row["id"]), kind),
                Confirmed(int(row[field]), bool(flags.get(kind, False)), version),
                active_known=kind in flags,
            )

    def apply_snapshot(self, snapshot: Mapping[str, Any]) -> None:
        """Adopt an authoritative snapshot from ``GET /interactions``.

        While a write is pending only the confirmed base is replaced; the
        optimistic delta stays on top.
        """
        target_type = snapshot["target_type"]
        target_id = int(snapshot["target_id"])
        version = int(snapshot["version"])
        values: dict[str, tuple[int, bool]] = {
            kind: (int(snapshot["counts"].get(kind, 0)), bool(snapshot["active"].get(kind, False)))
            for kind in TOGGLE_KINDS
        }
        values[COMMENT_KIND] = (int(snapshot["comments_count"]), bool(snapshot["has_commented"]))
        for kind, (count, active) in values.items():
            self._merge(
                EntityKey(target_type, target_id, kind),
                Confirmed(count, active, version),
                active_known=True,
                force=True,
            )

    async def refresh(self, target_type: str, target_id: int) -> None:
        snapshot = await self.backend.get_interactions(target_type, target_id)
        self.apply_snapshot(snapshot)

    async def refresh_many(self, target_type: str, target_ids: Iterable[int]) -> None:
        for snapshot in await self.backend.get_interaction_snapshots(target_type, target_ids):
            self.apply_snapshot(snapshot)

    def forget(self, target_type: str, target_id: int) -> None:
        for key in [key for key in self._states if (key.target_type, key.target_id) == (target_type, target_id)]:
            del self._states[key]
            self._locks.pop(key, None)

    # -- writes -------------------------------------------------------------

    async def set(self, target_type: str, target_id: int, kind: str, active: bool) -> InteractionView:
        """Make the viewer's ``kind`` on the target equal ``active``.

        A no-op when the displayed flag already matches, so a double tap
        produces a single write.

        Raises:
            BackendError: after rolling back the optimistic state.
        """
        return await self._write(target_type, target_id, kind, lambda _current: active)

    async def toggle(self, target_type: str, target_id: int, kind: str) -> InteractionView:
        return await self._write(target_type, target_id, kind, lambda current: not current)

    async def _write(
        self,
        target_type: str,
        target_id: int,
        kind: str,
        desired: Callable[[bool], bool],
    ) -> InteractionView:
        if kind not in TOGGLE_KINDS:
            raise ValueError(f"Unknown interaction kind {kind!r}")
        key = EntityKey(target_type, target_id, kind)
        async with self._lock(key):
            if key not in self._states:
                await self.refresh(target_type, target_id)
            state = self._states[key]
            want = desired(state.active)
            if want == state.active:
                return state.view()

            op_key = uuid.uuid4().hex
            state.begin(want, 1 if want else -1, op_key)
            self._notify(key)
            try:
                outcome = await self.backend.set_interaction(
                    target_type, target_id, kind, active=want, idempotency_key=op_key
                )
            except BackendError as e:
                state.rollback(op_key)
                self._notify(key)
                logger.warning("Could not set %s on %s %d: %s", kind, target_type, target_id, e)
                raise
            state.resolve(
                Confirmed(int(outcome["count"]), bool(outcome["active"]), int(outcome["version"])),
                op_key,
            )
            self._notify(key)
            return state.view()

    async def comment_added(
        self,
        target_type: str,
        target_id: int,
        content: str,
        *,
        count_hint: int | None = None,
        is_anonymous: bool = False,
        anonymous_name: str | None = None,
    ) -> dict[str, Any]:
        """Post a comment with an optimistic ``comments_count`` bump.

        ``count_hint`` seeds the counter for targets the store has not seen
        yet; otherwise an unknown target is refreshed first. Returns the
        created comment row.
        """
        key = EntityKey(target_type, target_id, COMMENT_KIND)
        async with self._lock(key):
            if key not in self._states:
                if count_hint is not None:
                    self._states[key] = InteractionState(Confirmed(count_hint, False, -1))
                else:
                    await self.refresh(target_type, target_id)
            state = self._states[key]
            op_key = uuid.uuid4().hex
            state.begin(True, 1, op_key)
            self._notify(key)
            try:
                result = await self.backend.add_comment(
                    target_type,
                    target_id,
                    content,
                    is_anonymous=is_anonymous,
                    anonymous_name=anonymous_name,
                    idempotency_key=op_key,
                )
            except BackendError as e:
                state.rollback(op_key)
                self._notify(key)
                logger.warning("Could not comment on %s %d: %s", target_type, target_id, e)
                raise
            state.resolve(
                Confirmed(int(result["comments_count"]), bool(result["has_commented"]), int(result["version"])),
                op_key,
            )
            self._notify(key)
            return result["comment"]

    async def comment_removed(self, target_type: str, target_id: int, comment_id: int) -> InteractionView | None:
        """Delete a comment, decrementing the displayed count until the server answers."""
        key = EntityKey(target_type, target_id, COMMENT_KIND)
        async with self._lock(key):
            state = self._states.get(key)
            op_key = uuid.uuid4().hex
            if state is not None:
                state.begin(state.active, -1, op_key)
                self._notify(key)
            try:
                result = await self.backend.delete_comment(comment_id)
            except BackendError as e:
                if state is not None:
                    state.rollback(op_key)
                    self._notify(key)
                logger.warning("Could not delete comment %d: %s", comment_id, e)
                raise
            outcome = Confirmed(int(result["comments_count"]), bool(result["has_commented"]), int(result["version"]))
            if state is None:
                self._states[key] = state = InteractionState(outcome)
            else:
                state.resolve(outcome, op_key)
            self._notify(key)
            return state.view()

    # -- change events ------------------------------------------------------

    def apply_change(self, event: ChangeEvent) -> None:
        """Consume ``interactions`` and ``posts``/``community_posts`` events for tracked targets."""
        row = event.row
        if row is None:
            return
        if event.table == "interactions":
            key = EntityKey(row["target_type"], int(row["target_id"]), row["kind"])
            state = self._states.get(key)
            if state is None:
                return
            active = None
            if self.viewer_id is not None and int(row["user_id"]) == self.viewer_id:
                active = event.type == "INSERT"
            if state.apply_remote(
                int(row["count"]), int(row["version"]), op_key=event.idempotency_key, active=active
            ):
                self._notify(key)
            return

        target_type = _TABLE_TARGETS.get(event.table)
        if target_type is None:
            return
        target_id = int(row["id"])
        if event.type == "DELETE":
            self.forget(target_type, target_id)
            return
        version = int(row.get("counts_version", 0))
        for kind, field in COUNTER_FIELDS.items():
            key = EntityKey(target_type, target_id, kind)
            state = self._states.get(key)
            if state is None or field not in row:
                continue
            if state.apply_remote(int(row[field]), version, op_key=event.idempotency_key):
                self._notify(key)

    async def _refetch_all(self) -> None:
        by_type: dict[str, list[int]] = {}
        for target_type, target_id in self.tracked_targets():
            by_type.setdefault(target_type, []).append(target_id)
        for target_type, ids in by_type.items():
            try:
                await self.refresh_many(target_type, sorted(ids))
            except BackendError as e:
                logger.warning("Could not refetch %s interactions after reset: %s", target_type, e)

    def attach(self, subscriptions: SubscriptionManager) -> None:
        """Subscribe to every table that carries counter changes."""
        self.detach()
        self._subscriptions = [
            subscriptions.subscribe(table, self.apply_change)
            for table in ("interactions", *TARGET_TABLES.values())
        ]
        self._remove_reset = subscriptions.on_reset(self._refetch_all)

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        if self._remove_reset is not None:
            self._remove_reset()
            self._remove_reset = None

    def clear(self) -> None:
        """Drop every entity; flags belong to the previous viewer."""
        self._states.clear()
        self._locks.clear()

    def close(self) -> None:
        self.detach()
        self.unfollow()
        self.clear()
