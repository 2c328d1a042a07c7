# mypy: ignore-errors
# tests/v1/test_interactions.py
"""Tests for idempotent like/repost/bookmark writes and counter snapshots."""

from fastapi import status

from campus_hub.models import Interaction


def _put(client, headers, target_id, kind="like", *, active=True, key="op-1", target_type="post"):
    return client.put(
        f"/api/v1/interactions/{target_type}/{target_id}/{kind}",
        json={"active": active, "idempotency_key": key},
        headers=headers,
    )


def test_like_sets_count_and_version(client, post, other_headers) -> None:
    """A like inserts one row and returns the authoritative count."""
    response = _put(client, other_headers, post.id)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["active"] is True
    assert data["count"] == 1
    assert data["version"] == 1
    assert data["changed"] is True
    assert data["idempotency_key"] == "op-1"


def test_like_twice_is_idempotent(client, post, other_headers, db_session) -> None:
    """Liking an already liked post creates no row and keeps the count."""
    _put(client, other_headers, post.id, key="op-1")
    response = _put(client, other_headers, post.id, key="op-2")

    data = response.json()
    assert data["changed"] is False
    assert data["count"] == 1
    assert data["version"] == 1
    assert db_session.query(Interaction).filter_by(target_id=post.id, kind="like").count() == 1


def test_unlike_removes_row(client, post, other_headers) -> None:
    """Clearing a like decrements by recount, not by arithmetic."""
    _put(client, other_headers, post.id, key="a")
    response = _put(client, other_headers, post.id, active=False, key="b")
    data = response.json()
    assert data["count"] == 0
    assert data["active"] is False
    assert data["version"] == 2


def test_unlike_when_not_liked_is_noop(client, post, other_headers) -> None:
    """Clearing a missing like never goes below zero."""
    response = _put(client, other_headers, post.id, active=False)
    data = response.json()
    assert data["changed"] is False
    assert data["count"] == 0


def test_counter_follows_rows_not_deltas(client, post, other_headers, db_session, student) -> None:
    """A drifted cache is overwritten by the aggregate on the next write."""
    post.likes_count = 42
    db_session.add(Interaction(target_type="post", target_id=post.id, user_id=student.id, kind="like"))
    db_session.flush()

    data = _put(client, other_headers, post.id).json()
    assert data["count"] == 2


def test_like_events_carry_idempotency_key(client, post, other_headers, change_feed) -> None:
    """The write publishes an interactions INSERT and a posts UPDATE tagged with the key."""
    _put(client, other_headers, post.id, key="tap-7")
    events = change_feed.read_since(0).events
    tagged = [(e.table, e.type) for e in events if e.idempotency_key == "tap-7"]
    assert tagged == [("interactions", "INSERT"), ("posts", "UPDATE")]
    interaction = events[0].record
    assert interaction["count"] == 1
    assert interaction["version"] == 1
    assert any(e.table == "notifications" for e in events)


def test_own_like_does_not_notify(client, post, auth_headers, change_feed) -> None:
    """Authors liking their own post get no notification."""
    _put(client, auth_headers, post.id)
    assert not change_feed.read_since(0, tables=["notifications"]).events


def test_unknown_kind_rejected(client, post, auth_headers) -> None:
    """Only like, repost and bookmark are accepted."""
    response = _put(client, auth_headers, post.id, kind="clap")
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_missing_target(client, auth_headers) -> None:
    """Interacting with a missing post returns 404."""
    response = _put(client, auth_headers, 12345)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_snapshot_uses_aggregates(client, post, db_session, other_student, other_headers) -> None:
    """The snapshot reports counts from rows and the caller's own flags."""
    post.likes_count = 99
    db_session.add_all([
        Interaction(target_type="post", target_id=post.id, user_id=other_student.id, kind="like"),
        Interaction(target_type="post", target_id=post.id, user_id=other_student.id, kind="bookmark"),
    ])
    db_session.flush()

    data = client.get(f"/api/v1/interactions/post/{post.id}", headers=other_headers).json()
    assert data["counts"] == {"like": 1, "repost": 0, "bookmark": 1}
    assert data["active"] == {"like": True, "repost": False, "bookmark": True}
    assert data["comments_count"] == 0
    assert data["has_commented"] is False


def test_batch_snapshots_skip_missing(client, post, auth_headers) -> None:
    """The batch endpoint returns one snapshot per existing id."""
    response = client.get("/api/v1/interactions/post", params={"ids": f"{post.id},999"}, headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert [s["target_id"] for s in response.json()] == [post.id]


def test_community_post_interactions(client, community_post, other_headers) -> None:
    """Community posts share the same interaction machinery."""
    data = _put(client, other_headers, community_post.id, kind="repost", target_type="community_post").json()
    assert data["target_type"] == "community_post"
    assert data["count"] == 1


def test_recount_repairs_drift(client, post, db_session, other_student, auth_headers, change_feed) -> None:
    """Recount rewrites drifted counters and bumps the version once."""
    db_session.add(Interaction(target_type="post", target_id=post.id, user_id=other_student.id, kind="repost"))
    post.reposts_count = 5
    db_session.flush()

    response = client.post(f"/api/v1/interactions/post/{post.id}/recount", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["reposts_count"] == 1
    assert data["counts_version"] == 1

    again = client.post(f"/api/v1/interactions/post/{post.id}/recount", headers=auth_headers).json()
    assert again["counts_version"] == 1


def test_recount_forbidden_for_strangers(client, post, other_headers) -> None:
    """Only the author or faculty may trigger a recount."""
    response = client.post(f"/api/v1/interactions/post/{post.id}/recount", headers=other_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
