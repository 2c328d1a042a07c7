# mypy: ignore-errors
# tests/v1/test_messages.py
"""Tests for direct messages and the conversation procedure."""

from datetime import timedelta

from fastapi import status

from campus_hub.db.time import utcnow
from campus_hub.models import Follow


def _conversation(client, headers, user1_id, user2_id):
    return client.post(
        "/api/v1/rpc/get_or_create_conversation",
        json={"user1_id": user1_id, "user2_id": user2_id},
        headers=headers,
    )


def test_get_or_create_is_idempotent(client, student, other_student, auth_headers, other_headers) -> None:
    """Both participants get the same conversation whatever the argument order."""
    first = _conversation(client, auth_headers, student.id, other_student.id)
    assert first.status_code == status.HTTP_200_OK
    second = _conversation(client, other_headers, student.id, other_student.id)
    reversed_order = _conversation(client, auth_headers, other_student.id, student.id)
    assert first.json()["conversation_id"] == second.json()["conversation_id"]
    assert first.json() == reversed_order.json()


def test_conversation_must_include_caller(client, student, other_student, make_profile, make_headers) -> None:
    """Outsiders cannot open a conversation between two other users."""
    outsider = make_profile("eve")
    response = _conversation(client, make_headers(outsider), student.id, other_student.id)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_conversation_with_self(client, student, auth_headers) -> None:
    """A conversation needs two different people."""
    response = _conversation(client, auth_headers, student.id, student.id)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_send_and_list_messages(client, student, other_student, auth_headers, other_headers, change_feed) -> None:
    """Messages are listed oldest first and published as INSERT events."""
    conversation_id = _conversation(client, auth_headers, student.id, other_student.id).json()["conversation_id"]
    sent = client.post(
        f"/api/v1/conversations/{conversation_id}/messages", json={"content": "hey"}, headers=auth_headers
    )
    assert sent.status_code == status.HTTP_201_CREATED
    client.post(f"/api/v1/conversations/{conversation_id}/messages", json={"content": "hi!"}, headers=other_headers)

    messages = client.get(f"/api/v1/conversations/{conversation_id}/messages", headers=other_headers).json()
    assert [m["content"] for m in messages] == ["hey", "hi!"]

    events = change_feed.read_since(0, tables=["messages"]).events
    assert [e.record["conversation_id"] for e in events] == [conversation_id, conversation_id]


def test_outsider_cannot_read_messages(client, student, other_student, auth_headers, make_profile, make_headers) -> None:
    """Non-participants get 404 for a conversation."""
    conversation_id = _conversation(client, auth_headers, student.id, other_student.id).json()["conversation_id"]
    outsider = make_profile("mallory")
    response = client.get(f"/api/v1/conversations/{conversation_id}/messages", headers=make_headers(outsider))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_contacts_include_presence_and_last_message(
    client, db_session, student, other_student, auth_headers
) -> None:
    """Contacts are follow-graph neighbours with their latest message and presence."""
    db_session.add(Follow(follower_id=other_student.id, following_id=student.id))
    other_student.last_active_at = utcnow() - timedelta(seconds=30)
    db_session.flush()

    conversation_id = _conversation(client, auth_headers, student.id, other_student.id).json()["conversation_id"]
    client.post(f"/api/v1/conversations/{conversation_id}/messages", json={"content": "lunch?"}, headers=auth_headers)

    contacts = client.get("/api/v1/conversations/contacts", headers=auth_headers).json()
    assert len(contacts) == 1
    contact = contacts[0]
    assert contact["user_id"] == other_student.id
    assert contact["conversation_id"] == conversation_id
    assert contact["last_message"] == "lunch?"
    assert contact["is_online"] is True
