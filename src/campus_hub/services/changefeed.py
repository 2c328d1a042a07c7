"""In-process realtime change feed.

Every committed write that clients may want to observe is appended here as a
:class:`ChangeEvent`. Clients pull the feed with a cursor (``seq`` of the
last event they saw) through ``GET /api/v1/realtime/changes``; in-process
listeners may also register callbacks.

The log is bounded. When a cursor falls behind the oldest retained event the
reader is told to ``reset`` and refetch rather than silently missing events.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from campus_hub.core.settings import settings
from campus_hub.db.time import utcnow

logger = logging.getLogger(__name__)

ChangeType = Literal["INSERT", "UPDATE", "DELETE"]
EVENT_TYPES: tuple[str, ...] = ("INSERT", "UPDATE", "DELETE", "*")


@dataclass(frozen=True)
class ChangeFilter:
    """Equality filter on one column, written ``column=eq.value`` on the wire."""

    column: str
    value: str

    def matches(self, record: Mapping[str, Any] | None) -> bool:
        if record is None or self.column not in record:
            return False
        return str(record[self.column]) == self.value

    def __str__(self) -> str:
        return f"{self.column}=eq.{self.value}"


def parse_filter(expression: str | None) -> ChangeFilter | None:
    """Parse ``column=eq.value``; an empty expression means no filter.

    Raises:
        ValueError: for any other operator or a malformed expression.
    """
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    if not sep or not column:
        raise ValueError(f"Malformed filter expression: {expression!r}")
    operator, dot, value = rest.partition(".")
    if operator != "eq" or not dot:
        raise ValueError(f"Unsupported filter operator in {expression!r}; only 'eq' is allowed")
    return ChangeFilter(column=column.strip(), value=value)


@dataclass(frozen=True)
class ChangeEvent:
    """One row-level change, ordered globally by ``seq``."""

    seq: int
    table: str
    type: ChangeType
    record: Mapping[str, Any] | None
    old_record: Mapping[str, Any] | None = None
    idempotency_key: str | None = None
    committed_at: datetime = field(default_factory=utcnow)

    @property
    def row(self) -> Mapping[str, Any] | None:
        """The row the event is about: the new image, or the old one on DELETE."""
        return self.record if self.record is not None else self.old_record

    def matches(
        self,
        table: str,
        event: str = "*",
        row_filter: ChangeFilter | None = None,
    ) -> bool:
        if table != self.table:
            return False
        if event != "*" and event != self.type:
            return False
        if row_filter is None:
            return True
        return row_filter.matches(self.record) or row_filter.matches(self.old_record)

    def to_payload(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "table": self.table,
            "type": self.type,
            "record": dict(self.record) if self.record is not None else None,
            "old_record": dict(self.old_record) if self.old_record is not None else None,
            "idempotency_key": self.idempotency_key,
            "committed_at": self.committed_at,
        }


@dataclass(frozen=True)
class ChangeBatch:
    cursor: int
    reset: bool
    events: list[ChangeEvent]


Listener = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Bounded, thread-safe, append-only log of change events."""

    def __init__(self, retention: int | None = None) -> None:
        self._retention = max(1, retention or settings.changefeed_retention)
        self._events: deque[ChangeEvent] = deque(maxlen=self._retention)
        self._lock = threading.Lock()
        self._seq = 0
        self._listeners: list[Listener] = []
        self._waiters: set[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = set()

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._seq

    def publish(
        self,
        table: str,
        type_: ChangeType,
        *,
        record: Mapping[str, Any] | None = None,
        old_record: Mapping[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> ChangeEvent:
        """Append an event. Call only after the underlying write has committed."""
        with self._lock:
            self._seq += 1
            event = ChangeEvent(
                seq=self._seq,
                table=table,
                type=type_,
                record=record,
                old_record=old_record,
                idempotency_key=idempotency_key,
            )
            self._events.append(event)
            listeners = list(self._listeners)
            waiters = list(self._waiters)

        logger.debug("Published change %d: %s %s", event.seq, event.type, event.table)
        for loop, waiter in waiters:
            self._wake(loop, waiter)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.error("Change feed listener failed for seq %d", event.seq, exc_info=True)
        return event

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register an in-process callback; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def read_since(
        self,
        cursor: int,
        *,
        tables: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> ChangeBatch:
        """Return events with ``seq > cursor``, optionally restricted to ``tables``.

        The returned cursor always advances to the last examined event even
        when table filtering hides it, so readers never rescan skipped rows.
        """
        wanted = set(tables) if tables else None
        max_events = limit or settings.changefeed_batch_size
        with self._lock:
            head = self._seq
            oldest = self._events[0].seq if self._events else head + 1
            reset = cursor < oldest - 1 and cursor < head
            if cursor > head:
                # Cursor from a previous process lifetime.
                reset = True
            if reset:
                return ChangeBatch(cursor=head, reset=True, events=[])

            selected: list[ChangeEvent] = []
            new_cursor = cursor
            for event in self._events:
                if event.seq <= cursor:
                    continue
                if len(selected) >= max_events:
                    break
                new_cursor = event.seq
                if wanted is None or event.table in wanted:
                    selected.append(event)
        return ChangeBatch(cursor=new_cursor, reset=False, events=selected)

    async def wait_since(
        self,
        cursor: int,
        *,
        tables: Iterable[str] | None = None,
        wait_seconds: float = 0.0,
    ) -> ChangeBatch:
        """Long-poll variant of :meth:`read_since`.

        Sleeps until :meth:`publish` signals a new event or the wait runs out.
        Events hidden by ``tables`` advance the cursor and the wait goes on.
        """
        table_list = list(tables) if tables else None
        deadline = time.monotonic() + max(0.0, min(wait_seconds, settings.changefeed_max_wait_seconds))
        loop = asyncio.get_running_loop()
        while True:
            waiter = (loop, asyncio.Event())
            with self._lock:
                self._waiters.add(waiter)
            try:
                batch = self.read_since(cursor, tables=table_list)
                remaining = deadline - time.monotonic()
                if batch.events or batch.reset or remaining <= 0:
                    return batch
                cursor = batch.cursor
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(waiter[1].wait(), timeout=remaining)
            finally:
                with self._lock:
                    self._waiters.discard(waiter)

    @staticmethod
    def _wake(loop: asyncio.AbstractEventLoop, event: asyncio.Event) -> None:
        # publish() runs on worker threads as well as on the loop itself.
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        elif not loop.is_closed():
            loop.call_soon_threadsafe(event.set)


    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._seq = 0
            waiters = list(self._waiters)
        for loop, waiter in waiters:
            self._wake(loop, waiter)


_change_feed: ChangeFeed | None = None


def get_change_feed() -> ChangeFeed:
    """Return the process-wide change feed."""
    global _change_feed
    if _change_feed is None:
        _change_feed = ChangeFeed()
    return _change_feed
