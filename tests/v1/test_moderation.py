# mypy: ignore-errors
# tests/v1/test_moderation.py
"""Tests for banned words and reports."""

from fastapi import status

from campus_hub.models import Post, ReportAction


def test_add_banned_word_requires_faculty(client, auth_headers, faculty_headers) -> None:
    """Students cannot ban words; faculty can, once per word."""
    denied = client.post("/api/v1/moderation/banned-words", json={"word": "heck"}, headers=auth_headers)
    assert denied.status_code == status.HTTP_403_FORBIDDEN

    created = client.post("/api/v1/moderation/banned-words", json={"word": " Heck "}, headers=faculty_headers)
    assert created.status_code == status.HTTP_201_CREATED
    assert created.json()["word"] == "heck"

    duplicate = client.post("/api/v1/moderation/banned-words", json={"word": "heck"}, headers=faculty_headers)
    assert duplicate.status_code == status.HTTP_409_CONFLICT
    assert [w["word"] for w in client.get("/api/v1/moderation/banned-words").json()] == ["heck"]


def test_check_content_whole_words(client, faculty_headers) -> None:
    """Matching is case-insensitive and only on whole words."""
    client.post("/api/v1/moderation/banned-words", json={"word": "ass"}, headers=faculty_headers)
    assert client.post("/api/v1/moderation/check-content", json={"text": "Class assignment"}).json() == {
        "matches": []
    }
    assert client.post("/api/v1/moderation/check-content", json={"text": "what an ASS"}).json() == {
        "matches": ["ass"]
    }


def test_report_and_dismiss(client, post, other_headers, faculty_headers) -> None:
    """Any user may report; faculty list and resolve reports."""
    report = client.post(
        "/api/v1/moderation/reports", json={"post_id": post.id, "reason": "spam"}, headers=other_headers
    )
    assert report.status_code == status.HTTP_201_CREATED
    assert report.json()["status"] == "open"

    assert client.get("/api/v1/moderation/reports", headers=other_headers).status_code == 403
    listed = client.get("/api/v1/moderation/reports", headers=faculty_headers).json()
    assert [r["id"] for r in listed] == [report.json()["id"]]

    resolved = client.post(
        f"/api/v1/moderation/reports/{report.json()['id']}/actions",
        json={"action": "dismiss", "notes": "fine"},
        headers=faculty_headers,
    )
    assert resolved.json()["status"] == "dismissed"


def test_report_delete_post_action(client, post, db_session, other_headers, faculty_headers) -> None:
    """The delete action removes the post and records an audit row."""
    report_id = client.post(
        "/api/v1/moderation/reports", json={"post_id": post.id, "reason": "abuse"}, headers=other_headers
    ).json()["id"]
    resolved = client.post(
        f"/api/v1/moderation/reports/{report_id}/actions",
        json={"action": "delete_post"},
        headers=faculty_headers,
    )
    assert resolved.status_code == status.HTTP_200_OK
    assert resolved.json()["status"] == "deleted"
    assert db_session.get(Post, post.id) is None
    assert db_session.query(ReportAction).filter_by(report_id=report_id).count() == 1


def test_report_missing_post(client, other_headers) -> None:
    """Reporting a post that does not exist returns 404."""
    response = client.post("/api/v1/moderation/reports", json={"post_id": 777, "reason": "x"}, headers=other_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
