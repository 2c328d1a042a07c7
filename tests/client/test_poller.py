# mypy: ignore-errors
# tests/client/test_poller.py
"""Tests for the change feed poller."""

import asyncio

import pytest

from campus_hub.client.backend import BackendError
from campus_hub.client.realtime import ChangeFeedPoller
from campus_hub.client.subscriptions import SubscriptionManager
from campus_hub.services.changefeed import ChangeBatch


@pytest.mark.asyncio
async def test_no_subscriptions_no_requests(mocker) -> None:
    """Nothing is pulled while no table is subscribed."""
    backend = mocker.AsyncMock()
    backend.config.long_poll_seconds = 0.0
    poller = ChangeFeedPoller(backend, SubscriptionManager(), interval=0.05)
    assert await poller.poll_once() == 0
    backend.pull_changes.assert_not_called()
    assert poller.state.cursor is None


@pytest.mark.asyncio
async def test_primes_at_head_then_delivers(backend, change_feed) -> None:
    """The first poll only records the head; later ones dispatch new events."""
    change_feed.publish("posts", "INSERT", record={"id": 1})
    subscriptions = SubscriptionManager()
    received = []
    subscriptions.subscribe("posts", received.append)
    poller = ChangeFeedPoller(backend, subscriptions, interval=0.05)

    assert await poller.poll_once() == 0
    assert poller.state.cursor == 1

    change_feed.publish("posts", "UPDATE", record={"id": 1})
    change_feed.publish("messages", "INSERT", record={"id": 9, "conversation_id": 1})
    assert await poller.poll_once() == 1
    assert [e.seq for e in received] == [2]
    assert poller.state.cursor == 3
    assert poller.state.events_delivered == 1


@pytest.mark.asyncio
async def test_reset_triggers_refetch(mocker) -> None:
    """A reset moves the cursor and asks subscribers to refetch."""
    backend = mocker.AsyncMock()
    backend.config.long_poll_seconds = 0.0
    backend.pull_changes.return_value = ChangeBatch(cursor=500, reset=True, events=[])
    subscriptions = SubscriptionManager()
    subscriptions.subscribe("posts", lambda e: None)
    on_reset = mocker.AsyncMock()
    subscriptions.on_reset(on_reset)

    poller = ChangeFeedPoller(backend, subscriptions, interval=0.05)
    poller.state.cursor = 3
    assert await poller.poll_once() == 0
    assert poller.state.cursor == 500
    assert poller.state.resets == 1
    on_reset.assert_awaited_once()


@pytest.mark.asyncio
async def test_unsubscribing_everything_drops_cursor(backend) -> None:
    """Once nothing is subscribed the cursor is forgotten."""
    subscriptions = SubscriptionManager()
    subscription = subscriptions.subscribe("posts", lambda e: None)
    poller = ChangeFeedPoller(backend, subscriptions, interval=0.05)
    await poller.poll_once()
    assert poller.state.cursor is not None
    subscription.unsubscribe()
    await poller.poll_once()
    assert poller.state.cursor is None


@pytest.mark.asyncio
async def test_background_loop_survives_errors(mocker) -> None:
    """Backend failures back off and the loop keeps running until stopped."""
    backend = mocker.AsyncMock()
    backend.config.long_poll_seconds = 0.0
    backend.pull_changes.side_effect = [BackendError("down"), ChangeBatch(cursor=0, reset=False, events=[])] + [
        ChangeBatch(cursor=0, reset=False, events=[])
    ] * 50
    subscriptions = SubscriptionManager()
    subscriptions.subscribe("posts", lambda e: None)

    poller = ChangeFeedPoller(backend, subscriptions, interval=0.05)
    await poller.start()
    assert poller.running
    await asyncio.sleep(0.3)
    await poller.stop()
    assert not poller.running
    assert backend.pull_changes.await_count >= 2
    assert poller.state.cursor == 0
