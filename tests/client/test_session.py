# mypy: ignore-errors
# tests/client/test_session.py
"""Tests for the client session context."""

import asyncio
from datetime import timedelta

import pytest

from campus_hub.client.session import AuthState, SessionContext
from campus_hub.core.settings import settings
from campus_hub.db.time import utcnow


@pytest.fixture()
def fast_settings():
    return settings.model_copy(update={"heartbeat_interval_seconds": 0.05})


@pytest.mark.asyncio
async def test_init_without_token_is_anonymous(make_backend, fast_settings) -> None:
    session = SessionContext(make_backend(), fast_settings)
    assert session.state is AuthState.LOADING
    assert await session.init() is AuthState.ANONYMOUS
    assert session.user_id is None
    assert not session.heartbeat_running


@pytest.mark.asyncio
async def test_init_with_stored_token(backend, student, fast_settings) -> None:
    """A valid stored token restores the profile and starts the heartbeat."""
    session = SessionContext(backend, fast_settings)
    try:
        assert await session.init() is AuthState.AUTHENTICATED
        assert session.user_id == student.id
        assert session.heartbeat_running
    finally:
        await session.close()
    assert not session.heartbeat_running


@pytest.mark.asyncio
async def test_invalid_token_signs_out(make_backend, fast_settings) -> None:
    """A rejected token is dropped instead of surfacing an error."""
    session = SessionContext(make_backend(), fast_settings)
    assert await session.init(token="not-a-jwt") is AuthState.ANONYMOUS
    assert session.backend.token is None


@pytest.mark.asyncio
async def test_sign_in_and_out_notify_listeners(make_backend, student, test_password, fast_settings) -> None:
    """Listeners see every auth transition in order."""
    session = SessionContext(make_backend(), fast_settings)
    transitions = []
    session.on_auth_change(lambda state, profile: transitions.append((state, profile and profile["id"])))
    try:
        await session.sign_in("alice@campus.edu", test_password)
        await session.sign_out()
    finally:
        await session.close()
    assert transitions == [(AuthState.AUTHENTICATED, student.id), (AuthState.ANONYMOUS, None)]
    assert not session.backend.authenticated


@pytest.mark.asyncio
async def test_heartbeat_updates_presence(backend, student, fast_settings) -> None:
    """A beat stamps last_active_at on the server and in the cached profile."""
    session = SessionContext(backend, fast_settings)
    await session.set_foreground(False)
    await session.init()
    assert not session.heartbeat_running

    assert await session.beat_once() is True
    assert session.profile["last_active_at"]
    assert student.last_active_at is not None
    assert session.is_online(session.profile["last_active_at"])
    await session.close()


@pytest.mark.asyncio
async def test_heartbeat_disabled_when_presence_unavailable(backend, fast_settings, monkeypatch) -> None:
    """A 501 from the heartbeat turns it off for the rest of the session."""
    monkeypatch.setattr(settings, "presence_tracking_enabled", False)
    session = SessionContext(backend, fast_settings)
    await session.init()
    for _ in range(20):
        if not session.heartbeat_enabled:
            break
        await asyncio.sleep(0.01)
    assert session.heartbeat_enabled is False
    assert not session.heartbeat_running
    await session.close()


@pytest.mark.asyncio
async def test_background_pauses_heartbeat(backend, fast_settings) -> None:
    session = SessionContext(backend, fast_settings)
    await session.init()
    assert session.heartbeat_running
    await session.set_foreground(False)
    assert not session.heartbeat_running
    await session.set_foreground(True)
    assert session.heartbeat_running
    await session.close()


@pytest.mark.asyncio
async def test_refresh_trigger_runs_listeners(make_backend, fast_settings) -> None:
    """Each refresh bumps the counter and awaits async listeners."""
    session = SessionContext(make_backend(), fast_settings)
    seen = []

    async def reload(trigger):
        seen.append(trigger)

    remove = session.on_refresh(reload)
    session.on_refresh(lambda trigger: 1 / 0)
    assert await session.request_refresh() == 1
    remove()
    assert await session.request_refresh() == 2
    assert seen == [1]


@pytest.mark.asyncio
async def test_is_online_window(make_backend, fast_settings) -> None:
    session = SessionContext(make_backend(), fast_settings)
    assert session.is_online(utcnow() - timedelta(seconds=5))
    assert not session.is_online((utcnow() - timedelta(hours=1)).isoformat())
    assert not session.is_online(None)
