"""Background poller that feeds backend change events to client subscriptions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass

from campus_hub.client.backend import BackendClient, BackendError
from campus_hub.client.subscriptions import SubscriptionManager
from campus_hub.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class PollerState:
    cursor: int | None = None
    events_delivered: int = 0
    resets: int = 0


class ChangeFeedPoller:
    """Periodically pulls ``/realtime/changes`` and dispatches what arrives.

    The cursor starts at the feed head the first time tables are subscribed,
    so a client only sees changes committed after it started listening. When
    nothing is subscribed the cursor is dropped and no requests are made.
    """

    def __init__(
        self,
        backend: BackendClient,
        subscriptions: SubscriptionManager,
        *,
        interval: float | None = None,
        wait: float | None = None,
    ) -> None:
        self.backend = backend
        self.subscriptions = subscriptions
        self.interval = max(0.05, float(interval if interval is not None else settings.realtime_poll_interval_seconds))
        self.wait = float(wait if wait is not None else backend.config.long_poll_seconds)
        self.state = PollerState()
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background polling loop, abandoning any long poll in flight."""
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                delivered = await self.poll_once(wait=self.wait)
            except BackendError as e:
                logger.warning("ChangeFeedPoller encountered BackendError: %s", e)
                await self._sleep(min(self.interval * 4, 30.0))
                continue
            except (ValueError, TypeError, KeyError) as e:
                logger.error("ChangeFeedPoller received a malformed batch: %s", e, exc_info=True)
                await self._sleep(min(self.interval * 4, 30.0))
                continue

            if not delivered:
                await self._sleep(self.interval)

    async def poll_once(self, *, wait: float = 0.0) -> int:
        """Pull one batch and dispatch it; returns the number of events received."""
        tables = self.subscriptions.tables
        if not tables:
            self.state.cursor = None
            return 0

        if self.state.cursor is None:
            head = await self.backend.pull_changes(None, tables=tables)
            self.state.cursor = head.cursor
            logger.debug("Change feed primed at cursor %d", head.cursor)
            return 0

        batch = await self.backend.pull_changes(self.state.cursor, tables=tables, wait=wait)
        if batch.reset:
            self.state.cursor = batch.cursor
            self.state.resets += 1
            await self.subscriptions.handle_reset()
            return 0

        for event in batch.events:
            await self.subscriptions.dispatch(event)
        self.state.cursor = batch.cursor
        self.state.events_delivered += len(batch.events)
        return len(batch.events)
