# mypy: ignore-errors
# tests/client/test_backend_client.py
"""Tests for the async backend client against the in-process app."""

from datetime import datetime

import httpx
import pytest

from campus_hub.client.backend import (
    AuthRequiredError,
    BackendClient,
    BackendError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from campus_hub.models import BannedWord


@pytest.mark.asyncio
async def test_sign_in_keeps_token(make_backend, student, test_password) -> None:
    """Signing in stores the token used by later calls."""
    backend = make_backend()
    assert await backend.get_session() is None

    profile = await backend.sign_in(email="alice@campus.edu", password=test_password)
    assert profile["id"] == student.id
    assert backend.authenticated
    assert (await backend.get_session())["username"] == "alice"

    backend.sign_out()
    assert backend.token is None


@pytest.mark.asyncio
async def test_bad_credentials_raise_auth_required(make_backend, student) -> None:
    """A 401 becomes AuthRequiredError carrying the detail message."""
    backend = make_backend()
    with pytest.raises(AuthRequiredError) as excinfo:
        await backend.sign_in(email="alice@campus.edu", password="wrong-password")
    assert excinfo.value.status_code == 401
    assert "Invalid email or password" in str(excinfo.value)


@pytest.mark.asyncio
async def test_status_codes_map_to_error_types(backend, db_session) -> None:
    """404, 403 and 422 are raised as distinct exception types."""
    with pytest.raises(NotFoundError):
        await backend.get_post(12345)
    with pytest.raises(PermissionDeniedError):
        await backend.add_banned_word("heck")

    db_session.add(BannedWord(word="heck"))
    db_session.flush()
    with pytest.raises(ValidationError) as excinfo:
        await backend.create_post("what the heck")
    assert excinfo.value.matches == ["heck"]


@pytest.mark.asyncio
async def test_no_content_returns_none(backend) -> None:
    """204 responses come back as None."""
    created = await backend.create_post("short lived")
    assert await backend.delete_post(created["id"]) is None


@pytest.mark.asyncio
async def test_network_failure_is_backend_error(backend_config) -> None:
    """Transport errors are wrapped so callers only catch BackendError."""

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = BackendClient(backend_config, transport=httpx.MockTransport(refuse))
    try:
        with pytest.raises(BackendError) as excinfo:
            await backend.list_posts()
        assert excinfo.value.status_code is None
    finally:
        await backend.close()


@pytest.mark.asyncio
async def test_pull_changes_from_head(backend) -> None:
    """A None cursor returns the head; later events parse into ChangeEvents."""
    head = await backend.pull_changes(None)
    assert head.events == []

    await backend.create_post("hello campus")
    batch = await backend.pull_changes(head.cursor, tables={"posts"})
    assert batch.reset is False
    assert batch.cursor > head.cursor
    event = batch.events[0]
    assert (event.table, event.type) == ("posts", "INSERT")
    assert event.record["content"] == "hello campus"
    assert isinstance(event.committed_at, datetime)


@pytest.mark.asyncio
async def test_empty_snapshot_request_skips_http(backend_config) -> None:
    """Asking for no ids never reaches the network."""

    def fail(request):
        raise AssertionError("unexpected request")

    backend = BackendClient(backend_config, transport=httpx.MockTransport(fail))
    try:
        assert await backend.get_interaction_snapshots("post", []) == []
    finally:
        await backend.close()
