# mypy: ignore-errors
# tests/services/test_interaction_service.py
"""Tests for idempotent interaction writes and counter repair."""

import pytest

from campus_hub.core.errors import InvalidOperationError, NotFoundError, PermissionDeniedError
from campus_hub.models import Interaction, Notification
from campus_hub.services import interactions as interaction_service


def _set(db_session, change_feed, actor, post, active, kind="like", key=None):
    return interaction_service.set_interaction(
        db_session,
        change_feed,
        actor=actor,
        target_type="post",
        target_id=post.id,
        kind=kind,
        active=active,
        idempotency_key=key,
    )


def test_repeated_like_is_idempotent(db_session, change_feed, post, other_student) -> None:
    """Liking twice leaves one row, one notification and one version bump."""
    first = _set(db_session, change_feed, other_student, post, True, key="op-1")
    second = _set(db_session, change_feed, other_student, post, True, key="op-2")

    assert first.changed and first.count == 1 and first.version == 1
    assert not second.changed and second.count == 1 and second.version == 1
    assert db_session.query(Interaction).count() == 1
    assert db_session.query(Notification).count() == 1
    assert post.likes_count == 1


def test_events_carry_idempotency_key(db_session, change_feed, post, other_student) -> None:
    """The interaction event and the post update both echo the key."""
    _set(db_session, change_feed, other_student, post, True, key="op-1")
    events = change_feed.read_since(0, tables=["interactions", "posts"]).events
    assert [(e.table, e.type) for e in events] == [("interactions", "INSERT"), ("posts", "UPDATE")]
    assert {e.idempotency_key for e in events} == {"op-1"}
    assert events[1].record["likes_count"] == 1
    assert events[1].record["counts_version"] == 1


def test_unlike_publishes_delete(db_session, change_feed, post, other_student) -> None:
    """Clearing an interaction recounts and emits a DELETE with the old row."""
    _set(db_session, change_feed, other_student, post, True)
    outcome = _set(db_session, change_feed, other_student, post, False, key="undo")
    assert outcome.changed and outcome.count == 0 and outcome.version == 2
    delete_event = change_feed.read_since(0, tables=["interactions"]).events[-1]
    assert delete_event.type == "DELETE"
    assert delete_event.old_record["user_id"] == other_student.id


def test_unlike_when_not_liked_changes_nothing(db_session, change_feed, post, other_student) -> None:
    """A no-op write publishes nothing."""
    outcome = _set(db_session, change_feed, other_student, post, False)
    assert not outcome.changed
    assert change_feed.last_seq == 0


def test_self_like_does_not_notify(db_session, change_feed, post, student) -> None:
    """Authors liking their own post get no notification."""
    _set(db_session, change_feed, student, post, True)
    assert db_session.query(Notification).count() == 0


def test_kinds_are_counted_separately(db_session, change_feed, post, student, other_student) -> None:
    """Bookmarks and likes keep separate counters."""
    _set(db_session, change_feed, student, post, True, kind="bookmark")
    _set(db_session, change_feed, other_student, post, True)
    snap = interaction_service.snapshot(db_session, viewer=student, target_type="post", target_id=post.id)
    assert snap.counts == {"like": 1, "repost": 0, "bookmark": 1}
    assert snap.active == {"like": False, "repost": False, "bookmark": True}
    assert snap.version == 2


def test_unknown_kind_and_target(db_session, change_feed, post, student) -> None:
    """Bad kinds are invalid; missing targets are not found."""
    with pytest.raises(InvalidOperationError):
        _set(db_session, change_feed, student, post, True, kind="clap")
    with pytest.raises(NotFoundError):
        interaction_service.set_interaction(
            db_session, change_feed, actor=student, target_type="post", target_id=999, kind="like", active=True
        )


def test_recount_repairs_drift(db_session, change_feed, post, student, other_student) -> None:
    """Drifted cached counters are rewritten and the version bumps once."""
    _set(db_session, change_feed, other_student, post, True)
    post.likes_count = 42
    db_session.flush()

    repaired = interaction_service.recount_target(
        db_session, change_feed, actor=student, target_type="post", target_id=post.id
    )
    assert repaired.likes_count == 1
    assert repaired.counts_version == 2

    again = interaction_service.recount_target(
        db_session, change_feed, actor=student, target_type="post", target_id=post.id
    )
    assert again.counts_version == 2


def test_recount_requires_author_or_faculty(db_session, change_feed, post, other_student) -> None:
    """Other students may not trigger a repair."""
    with pytest.raises(PermissionDeniedError):
        interaction_service.recount_target(
            db_session, change_feed, actor=other_student, target_type="post", target_id=post.id
        )


def test_snapshots_skip_missing_ids(db_session, post, student) -> None:
    """Batch snapshots drop unknown ids and duplicates."""
    result = interaction_service.snapshots(
        db_session, viewer=None, target_type="post", target_ids=[post.id, 404, post.id]
    )
    assert [s.target_id for s in result] == [post.id]
    assert result[0].has_commented is False
