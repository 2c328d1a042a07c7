"""Reference-counted change subscriptions for the client.

Each view-model subscribes to the (table, event, filter) channel it needs.
Several subscribers on the same channel share it; the channel goes away when
its last subscriber unsubscribes, and the poller stops asking the backend
for tables nobody listens to.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from campus_hub.services.changefeed import EVENT_TYPES, ChangeEvent, ChangeFilter, parse_filter

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None] | None]
ResetHandler = Callable[[], Awaitable[None] | None]


@dataclass(frozen=True)
class ChannelKey:
    table: str
    event: str = "*"
    row_filter: ChangeFilter | None = None

    def matches(self, event: ChangeEvent) -> bool:
        return event.matches(self.table, self.event, self.row_filter)


class Subscription:
    """Handle returned by :meth:`SubscriptionManager.subscribe`."""

    def __init__(self, manager: SubscriptionManager, channel: ChannelKey, handler: ChangeHandler) -> None:
        self._manager = manager
        self.channel = channel
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        """Detach the handler; calling this twice is harmless."""
        if not self.active:
            return
        self.active = False
        self._manager._release(self)


async def _call(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class SubscriptionManager:
    """Routes change events to the handlers whose channel matches."""

    def __init__(self) -> None:
        self._channels: dict[ChannelKey, list[Subscription]] = {}
        self._reset_handlers: list[ResetHandler] = []

    def subscribe(
        self,
        table: str,
        handler: ChangeHandler,
        *,
        event: str = "*",
        row_filter: str | ChangeFilter | None = None,
    ) -> Subscription:
        """Listen for ``event`` changes on ``table``, optionally filtered by ``column=eq.value``.

        Raises:
            ValueError: for an unknown event type or a malformed filter.
        """
        if event not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {event!r}")
        parsed = parse_filter(row_filter) if isinstance(row_filter, str) else row_filter
        channel = ChannelKey(table=table, event=event, row_filter=parsed)
        subscription = Subscription(self, channel, handler)
        subscribers = self._channels.setdefault(channel, [])
        if not subscribers:
            logger.debug("Opened channel %s", channel)
        subscribers.append(subscription)
        return subscription

    def _release(self, subscription: Subscription) -> None:
        subscribers = self._channels.get(subscription.channel)
        if not subscribers or subscription not in subscribers:
            return
        subscribers.remove(subscription)
        if not subscribers:
            del self._channels[subscription.channel]
            logger.debug("Closed channel %s", subscription.channel)

    @property
    def tables(self) -> set[str]:
        """Tables that currently have at least one subscriber."""
        return {channel.table for channel in self._channels}

    @property
    def channels(self) -> list[ChannelKey]:
        return list(self._channels)

    def subscriber_count(self, channel: ChannelKey) -> int:
        return len(self._channels.get(channel, ()))

    async def dispatch(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every matching handler; returns how many ran.

        A failing handler is logged and does not stop delivery to the others.
        """
        targets = [
            subscription
            for channel, subscribers in list(self._channels.items())
            if channel.matches(event)
            for subscription in list(subscribers)
        ]
        delivered = 0
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                await _call(subscription.handler, event)
            except Exception:
                logger.error(
                    "Change handler failed for %s seq %d", subscription.channel, event.seq, exc_info=True
                )
            delivered += 1
        return delivered

    def on_reset(self, handler: ResetHandler) -> Callable[[], None]:
        """Register a callback for when the feed cursor was lost; returns a remover."""
        self._reset_handlers.append(handler)

        def _remove() -> None:
            if handler in self._reset_handlers:
                self._reset_handlers.remove(handler)

        return _remove

    async def handle_reset(self) -> None:
        logger.info("Change feed reset; asking %d views to refetch", len(self._reset_handlers))
        for handler in list(self._reset_handlers):
            try:
                await _call(handler)
            except Exception:
                logger.error("Reset handler failed", exc_info=True)

    def close(self) -> None:
        for subscribers in list(self._channels.values()):
            for subscription in list(subscribers):
                subscription.active = False
        self._channels.clear()
        self._reset_handlers.clear()
