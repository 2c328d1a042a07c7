# mypy: ignore-errors
# tests/services/test_changefeed.py
"""Tests for the in-process change feed."""

import asyncio
import time

import pytest

from campus_hub.services.changefeed import ChangeEvent, ChangeFeed, ChangeFilter, parse_filter


def test_publish_assigns_increasing_seq() -> None:
    """Each publish gets the next sequence number."""
    feed = ChangeFeed(retention=10)
    first = feed.publish("posts", "INSERT", record={"id": 1})
    second = feed.publish("posts", "UPDATE", record={"id": 1})
    assert (first.seq, second.seq) == (1, 2)
    assert feed.last_seq == 2


def test_read_since_filters_tables_but_advances_cursor() -> None:
    """Skipped tables still move the cursor forward."""
    feed = ChangeFeed(retention=10)
    feed.publish("posts", "INSERT", record={"id": 1})
    feed.publish("messages", "INSERT", record={"id": 7})
    feed.publish("posts", "DELETE", old_record={"id": 1})

    batch = feed.read_since(0, tables=["messages"])
    assert [e.seq for e in batch.events] == [2]
    assert batch.cursor == 3
    assert batch.reset is False


def test_read_since_respects_limit() -> None:
    """A limited read stops at the last returned event."""
    feed = ChangeFeed(retention=10)
    for index in range(5):
        feed.publish("posts", "INSERT", record={"id": index})
    batch = feed.read_since(0, limit=2)
    assert [e.seq for e in batch.events] == [1, 2]
    assert batch.cursor == 2


def test_expired_cursor_resets() -> None:
    """Falling behind retention produces a reset at the head."""
    feed = ChangeFeed(retention=3)
    for index in range(6):
        feed.publish("posts", "INSERT", record={"id": index})
    batch = feed.read_since(1)
    assert batch.reset is True
    assert batch.cursor == 6
    assert batch.events == []
    # The oldest retained event is 4, so a cursor of 3 is still valid.
    assert feed.read_since(3).reset is False


def test_cursor_from_the_future_resets() -> None:
    """A cursor ahead of the head belongs to an older process and is reset."""
    feed = ChangeFeed(retention=3)
    feed.publish("posts", "INSERT", record={"id": 1})
    batch = feed.read_since(50)
    assert batch.reset is True
    assert batch.cursor == 1


def test_caught_up_cursor_is_empty() -> None:
    """Reading at the head returns nothing and keeps the cursor."""
    feed = ChangeFeed(retention=3)
    feed.publish("posts", "INSERT", record={"id": 1})
    batch = feed.read_since(1)
    assert batch.events == [] and batch.cursor == 1 and batch.reset is False


def test_listeners_receive_events_and_survive_failures() -> None:
    """One failing listener does not stop the others or the publish."""
    feed = ChangeFeed(retention=3)
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    feed.add_listener(broken)
    remove = feed.add_listener(seen.append)
    feed.publish("posts", "INSERT", record={"id": 1})
    remove()
    feed.publish("posts", "INSERT", record={"id": 2})
    assert [e.seq for e in seen] == [1]


@pytest.mark.asyncio
async def test_wait_since_returns_when_event_arrives() -> None:
    """A long poll wakes up once something is published."""
    feed = ChangeFeed(retention=10)

    async def publish_later():
        await asyncio.sleep(0.05)
        feed.publish("posts", "INSERT", record={"id": 1})

    task = asyncio.create_task(publish_later())
    batch = await feed.wait_since(0, wait_seconds=2.0)
    await task
    assert [e.seq for e in batch.events] == [1]


@pytest.mark.asyncio
async def test_wait_since_times_out_empty() -> None:
    """With nothing published the long poll returns an empty batch."""
    feed = ChangeFeed(retention=10)
    batch = await feed.wait_since(0, wait_seconds=0.05)
    assert batch.events == [] and batch.cursor == 0


@pytest.mark.asyncio
async def test_wait_since_wakes_on_publish_from_worker_thread() -> None:
    """Publishing from a threadpool worker ends the wait well before the deadline."""
    feed = ChangeFeed(retention=10)

    async def publish_from_thread():
        await asyncio.sleep(0.05)
        await asyncio.to_thread(feed.publish, "posts", "INSERT", record={"id": 1})

    task = asyncio.create_task(publish_from_thread())
    started = time.monotonic()
    batch = await feed.wait_since(0, wait_seconds=10.0)
    await task
    assert [e.seq for e in batch.events] == [1]
    assert time.monotonic() - started < 5.0
    assert not feed._waiters


@pytest.mark.asyncio
async def test_wait_since_keeps_waiting_past_other_tables() -> None:
    """Events on unrequested tables advance the cursor without ending the poll."""
    feed = ChangeFeed(retention=10)

    async def publish_later():
        await asyncio.sleep(0.02)
        feed.publish("messages", "INSERT", record={"id": 1})
        await asyncio.sleep(0.02)
        feed.publish("posts", "INSERT", record={"id": 2})

    task = asyncio.create_task(publish_later())
    batch = await feed.wait_since(0, tables=["posts"], wait_seconds=5.0)
    await task
    assert [e.seq for e in batch.events] == [2]
    assert batch.cursor == 2


@pytest.mark.asyncio
async def test_wait_since_timeout_reports_skipped_cursor() -> None:
    """A poll that only saw filtered events still hands back the advanced cursor."""
    feed = ChangeFeed(retention=10)
    feed.publish("messages", "INSERT", record={"id": 1})
    batch = await feed.wait_since(0, tables=["posts"], wait_seconds=0.05)
    assert batch.events == [] and batch.cursor == 1



def test_parse_filter() -> None:
    """Only the eq operator is understood."""
    assert parse_filter(None) is None
    assert parse_filter("user_id=eq.5") == ChangeFilter(column="user_id", value="5")
    assert str(parse_filter("target_id=eq.12")) == "target_id=eq.12"
    with pytest.raises(ValueError):
        parse_filter("user_id=gt.5")
    with pytest.raises(ValueError):
        parse_filter("user_id")


def test_event_matching() -> None:
    """Events match on table, type and the filter against either row image."""
    deleted = ChangeEvent(seq=1, table="comments", type="DELETE", record=None, old_record={"target_id": 3})
    assert deleted.row == {"target_id": 3}
    assert deleted.matches("comments", "*", ChangeFilter("target_id", "3"))
    assert deleted.matches("comments", "DELETE")
    assert not deleted.matches("comments", "INSERT")
    assert not deleted.matches("posts")
    assert not deleted.matches("comments", "*", ChangeFilter("target_id", "4"))
