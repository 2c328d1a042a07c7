# mypy: ignore-errors
# tests/client/test_subscriptions.py
"""Tests for reference-counted change subscriptions."""

import pytest

from campus_hub.client.subscriptions import ChannelKey, SubscriptionManager
from campus_hub.services.changefeed import ChangeEvent, parse_filter


def _event(seq, table="comments", type_="INSERT", **record):
    return ChangeEvent(seq=seq, table=table, type=type_, record=record or None)


def test_shared_channel_is_reference_counted() -> None:
    """The channel survives until its last subscriber leaves."""
    manager = SubscriptionManager()
    first = manager.subscribe("comments", lambda e: None, row_filter="target_id=eq.1")
    second = manager.subscribe("comments", lambda e: None, row_filter="target_id=eq.1")
    channel = ChannelKey("comments", "*", parse_filter("target_id=eq.1"))

    assert manager.subscriber_count(channel) == 2
    first.unsubscribe()
    first.unsubscribe()
    assert manager.subscriber_count(channel) == 1
    assert manager.tables == {"comments"}
    second.unsubscribe()
    assert manager.channels == []
    assert manager.tables == set()


def test_unknown_event_type_rejected() -> None:
    manager = SubscriptionManager()
    with pytest.raises(ValueError):
        manager.subscribe("posts", lambda e: None, event="UPSERT")
    with pytest.raises(ValueError):
        manager.subscribe("posts", lambda e: None, row_filter="id=like.3")


@pytest.mark.asyncio
async def test_dispatch_matches_table_event_and_filter() -> None:
    """Only handlers whose channel matches the event run."""
    manager = SubscriptionManager()
    seen = {"all": [], "inserts": [], "post_1": [], "deletes": []}
    manager.subscribe("comments", seen["all"].append)
    manager.subscribe("comments", seen["inserts"].append, event="INSERT")
    manager.subscribe("comments", seen["post_1"].append, row_filter="target_id=eq.1")
    manager.subscribe("comments", seen["deletes"].append, event="DELETE")

    delivered = await manager.dispatch(_event(1, target_id=2))
    assert delivered == 2
    assert await manager.dispatch(_event(2, table="posts", id=1)) == 0
    assert [e.seq for e in seen["all"]] == [1]
    assert [e.seq for e in seen["inserts"]] == [1]
    assert seen["post_1"] == [] and seen["deletes"] == []


@pytest.mark.asyncio
async def test_async_and_failing_handlers() -> None:
    """Async handlers are awaited; a failing handler does not block the rest."""
    manager = SubscriptionManager()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    async def collect(event):
        received.append(event.seq)

    manager.subscribe("posts", broken)
    manager.subscribe("posts", collect)
    assert await manager.dispatch(_event(7, table="posts", id=1)) == 2
    assert received == [7]


@pytest.mark.asyncio
async def test_unsubscribed_handler_not_called_mid_dispatch() -> None:
    """A handler removed by an earlier handler in the same dispatch is skipped."""
    manager = SubscriptionManager()
    calls = []
    later = None

    def first(event):
        calls.append("first")
        later.unsubscribe()

    manager.subscribe("posts", first)
    later = manager.subscribe("posts", lambda e: calls.append("later"))
    await manager.dispatch(_event(1, table="posts", id=1))
    assert calls == ["first"]


@pytest.mark.asyncio
async def test_reset_handlers() -> None:
    """Reset handlers run until removed, and close drops everything."""
    manager = SubscriptionManager()
    resets = []

    async def on_reset():
        resets.append(True)

    remove = manager.on_reset(on_reset)
    await manager.handle_reset()
    remove()
    await manager.handle_reset()
    assert resets == [True]

    subscription = manager.subscribe("posts", lambda e: None)
    manager.close()
    assert not subscription.active
    assert manager.tables == set()
