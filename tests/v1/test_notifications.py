# mypy: ignore-errors
# tests/v1/test_notifications.py
"""Tests for notification endpoints."""

from fastapi import status

from campus_hub.models import Notification


def _like(client, headers, post_id):
    return client.put(
        f"/api/v1/interactions/post/{post_id}/like",
        json={"active": True, "idempotency_key": "n-1"},
        headers=headers,
    )


def test_like_creates_described_notification(client, post, other_headers, auth_headers) -> None:
    """The post author sees who liked their post."""
    _like(client, other_headers, post.id)
    data = client.get("/api/v1/notifications/", headers=auth_headers).json()
    assert len(data) == 1
    assert data[0]["type"] == "like"
    assert data[0]["description"] == "Bob liked your post"
    assert data[0]["post_id"] == post.id
    assert data[0]["is_read"] is False


def test_system_notification_uses_message(client, db_session, student, auth_headers) -> None:
    """System notifications fall back to their stored message."""
    db_session.add(Notification(user_id=student.id, type="system", message="Welcome to Campus Hub"))
    db_session.flush()
    data = client.get("/api/v1/notifications/", headers=auth_headers).json()
    assert data[0]["description"] == "Welcome to Campus Hub"
    assert data[0]["actor_name"] is None


def test_unread_count_and_mark_read(client, post, other_headers, auth_headers, change_feed) -> None:
    """Marking one read lowers the unread count and publishes an UPDATE."""
    _like(client, other_headers, post.id)
    assert client.get("/api/v1/notifications/unread-count", headers=auth_headers).json() == {"unread": 1}

    notification_id = client.get("/api/v1/notifications/", headers=auth_headers).json()[0]["id"]
    response = client.post(f"/api/v1/notifications/{notification_id}/read", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["is_read"] is True
    assert client.get("/api/v1/notifications/unread-count", headers=auth_headers).json() == {"unread": 0}

    updates = [e for e in change_feed.read_since(0, tables=["notifications"]).events if e.type == "UPDATE"]
    assert updates[0].record["is_read"] is True


def test_mark_someone_elses_notification(client, post, other_headers, auth_headers) -> None:
    """Notifications of other users are invisible."""
    _like(client, other_headers, post.id)
    notification_id = client.get("/api/v1/notifications/", headers=auth_headers).json()[0]["id"]
    response = client.post(f"/api/v1/notifications/{notification_id}/read", headers=other_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_mark_all_read(client, db_session, student, other_student, auth_headers) -> None:
    """Mark-all reports how many rows changed."""
    db_session.add_all([
        Notification(user_id=student.id, type="follow", actor_id=other_student.id),
        Notification(user_id=student.id, type="mention", actor_id=other_student.id),
    ])
    db_session.flush()

    response = client.post("/api/v1/notifications/read-all", headers=auth_headers)
    assert response.json() == {"updated": 2}
    assert client.post("/api/v1/notifications/read-all", headers=auth_headers).json() == {"updated": 0}
