# mypy: ignore-errors
# tests/v1/test_comments.py
"""Tests for comment endpoints and the comments counter."""

from fastapi import status

from campus_hub.models import Comment


def _comment(client, headers, post_id, content="Nice one", **extra):
    return client.post(f"/api/v1/comments/post/{post_id}", json={"content": content, **extra}, headers=headers)


def test_add_comment_recounts(client, post, db_session, make_profile, other_headers) -> None:
    """A fifth comment yields comments_count=5 and has_commented for the author."""
    for index in range(4):
        commenter = make_profile(f"commenter{index}")
        db_session.add(Comment(target_type="post", target_id=post.id, user_id=commenter.id, content="hey"))
    post.comments_count = 4
    db_session.flush()

    response = _comment(client, other_headers, post.id, idempotency_key="c-1")
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["comments_count"] == 5
    assert data["has_commented"] is True
    assert data["version"] == 1
    assert data["comment"]["content"] == "Nice one"

    snapshot = client.get(f"/api/v1/interactions/post/{post.id}", headers=other_headers).json()
    assert snapshot["comments_count"] == 5
    assert snapshot["has_commented"] is True


def test_comment_events(client, post, other_headers, change_feed) -> None:
    """Comments publish a comments INSERT and a target UPDATE with the client key."""
    _comment(client, other_headers, post.id, idempotency_key="c-9")
    events = change_feed.read_since(0).events
    assert [(e.table, e.type) for e in events if e.idempotency_key == "c-9"] == [
        ("comments", "INSERT"),
        ("posts", "UPDATE"),
    ]
    notification = [e for e in events if e.table == "notifications"]
    assert notification and notification[0].record["type"] == "comment"


def test_list_comments_oldest_first(client, post, auth_headers, other_headers) -> None:
    """Comments are listed in the order they were written."""
    _comment(client, auth_headers, post.id, content="first")
    _comment(client, other_headers, post.id, content="second")
    data = client.get(f"/api/v1/comments/post/{post.id}").json()
    assert [c["content"] for c in data] == ["first", "second"]


def test_anonymous_comment_gets_default_name(client, post, other_headers) -> None:
    """Anonymous comments without a name use the default label."""
    data = _comment(client, other_headers, post.id, is_anonymous=True).json()
    assert data["comment"]["anonymous_name"] == "Anonymous User"


def test_delete_own_comment(client, post, other_headers) -> None:
    """Deleting a comment recounts and clears has_commented."""
    created = _comment(client, other_headers, post.id).json()
    response = client.delete(f"/api/v1/comments/{created['comment']['id']}", headers=other_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["comments_count"] == 0
    assert data["has_commented"] is False
    assert data["version"] == 2


def test_delete_someone_elses_comment(client, post, other_headers, auth_headers) -> None:
    """Students cannot delete other people's comments."""
    created = _comment(client, other_headers, post.id).json()
    response = client.delete(f"/api/v1/comments/{created['comment']['id']}", headers=auth_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_faculty_can_delete_any_comment(client, post, other_headers, faculty_headers) -> None:
    """Faculty moderators may remove any comment."""
    created = _comment(client, other_headers, post.id).json()
    response = client.delete(f"/api/v1/comments/{created['comment']['id']}", headers=faculty_headers)
    assert response.status_code == status.HTTP_200_OK


def test_comment_on_missing_post(client, auth_headers) -> None:
    """Commenting on a missing post returns 404."""
    response = _comment(client, auth_headers, 4242)
    assert response.status_code == status.HTTP_404_NOT_FOUND
