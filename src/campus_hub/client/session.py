"""Session context: the signed-in identity, heartbeat and refresh trigger."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

from campus_hub.client.backend import AuthRequiredError, BackendClient, BackendError, UnavailableError
from campus_hub.core.settings import Settings
from campus_hub.core.settings import settings as default_settings
from campus_hub.services.presence import is_online as _is_online

logger = logging.getLogger(__name__)


class AuthState(StrEnum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


AuthListener = Callable[[AuthState, dict[str, Any] | None], None]
RefreshListener = Callable[[int], Any]


class SessionContext:
    """Explicit holder of who is signed in, passed to whatever needs it.

    Lifecycle: :meth:`init` on start, :meth:`sign_in`/:meth:`sign_up` to
    authenticate, :meth:`sign_out` (or :meth:`close`) as teardown. The
    heartbeat runs only while a user is signed in and the app is in the
    foreground.
    """

    def __init__(self, backend: BackendClient, config: Settings | None = None) -> None:
        self.backend = backend
        self.config = config or default_settings
        self.state = AuthState.LOADING
        self.profile: dict[str, Any] | None = None
        self.refresh_trigger = 0
        self.foreground = True
        self.heartbeat_enabled = True
        self._auth_listeners: list[AuthListener] = []
        self._refresh_listeners: list[RefreshListener] = []
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._heartbeat_stopping = asyncio.Event()

    @property
    def user_id(self) -> int | None:
        return int(self.profile["id"]) if self.profile else None

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    # -- auth ---------------------------------------------------------------

    async def init(self, token: str | None = None) -> AuthState:
        """Resolve the initial auth state from a stored token, if any."""
        if token is not None:
            self.backend.set_token(token)
        if not self.backend.authenticated:
            await self._set_state(AuthState.ANONYMOUS, None)
            return self.state
        try:
            profile = await self.backend.get_session()
        except AuthRequiredError:
            logger.info("Stored session is no longer valid")
            self.backend.sign_out()
            profile = None
        await self._set_state(AuthState.AUTHENTICATED if profile else AuthState.ANONYMOUS, profile)
        return self.state

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        profile = await self.backend.sign_in(email=email, password=password)
        await self._set_state(AuthState.AUTHENTICATED, profile)
        return profile

    async def sign_up(self, email: str, password: str, **fields: Any) -> dict[str, Any]:
        profile = await self.backend.sign_up(email=email, password=password, **fields)
        await self._set_state(AuthState.AUTHENTICATED, profile)
        return profile

    async def sign_out(self) -> None:
        self.backend.sign_out()
        await self._set_state(AuthState.ANONYMOUS, None)

    def on_auth_change(self, listener: AuthListener) -> Callable[[], None]:
        self._auth_listeners.append(listener)

        def _remove() -> None:
            if listener in self._auth_listeners:
                self._auth_listeners.remove(listener)

        return _remove

    async def _set_state(self, state: AuthState, profile: dict[str, Any] | None) -> None:
        self.state = state
        self.profile = profile
        logger.debug("Auth state is now %s", state)
        for listener in list(self._auth_listeners):
            try:
                listener(state, profile)
            except Exception:
                logger.error("Auth listener failed", exc_info=True)
        await self._sync_heartbeat()

    async def refresh_profile(self) -> dict[str, Any] | None:
        if self.state is not AuthState.AUTHENTICATED:
            return None
        self.profile = await self.backend.get_session()
        return self.profile

    # -- heartbeat ----------------------------------------------------------

    async def set_foreground(self, foreground: bool) -> None:
        self.foreground = foreground
        await self._sync_heartbeat()

    async def _sync_heartbeat(self) -> None:
        should_run = (
            self.heartbeat_enabled and self.foreground and self.state is AuthState.AUTHENTICATED
        )
        if should_run and not self.heartbeat_running:
            self._heartbeat_stopping.clear()
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        elif not should_run:
            await self._stop_heartbeat()

    async def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is None:
            return
        self._heartbeat_stopping.set()
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def beat_once(self) -> bool:
        """Send one heartbeat; returns False once presence is known to be unavailable."""
        try:
            payload = await self.backend.heartbeat()
        except UnavailableError:
            logger.info("Presence tracking is unavailable; heartbeat disabled for this session")
            self.heartbeat_enabled = False
            return False
        except BackendError as e:
            logger.warning("Heartbeat failed: %s", e)
            return True
        if self.profile is not None:
            self.profile["last_active_at"] = payload["last_active_at"]
        return True

    async def _heartbeat_loop(self) -> None:
        interval = max(0.01, float(self.config.heartbeat_interval_seconds))
        while not self._heartbeat_stopping.is_set():
            if not await self.beat_once():
                self._heartbeat_task = None
                return
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._heartbeat_stopping.wait(), timeout=interval)

    # -- refresh trigger ----------------------------------------------------

    def on_refresh(self, listener: RefreshListener) -> Callable[[], None]:
        self._refresh_listeners.append(listener)

        def _remove() -> None:
            if listener in self._refresh_listeners:
                self._refresh_listeners.remove(listener)

        return _remove

    async def request_refresh(self) -> int:
        """Bump the refresh trigger and let every listener refetch."""
        self.refresh_trigger += 1
        for listener in list(self._refresh_listeners):
            try:
                result = listener(self.refresh_trigger)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.error("Refresh listener failed", exc_info=True)
        return self.refresh_trigger

    def is_online(self, last_active_at: datetime | str | None) -> bool:
        if isinstance(last_active_at, str):
            last_active_at = datetime.fromisoformat(last_active_at)
        return _is_online(last_active_at, window_seconds=self.config.online_window_seconds)

    async def close(self) -> None:
        await self._stop_heartbeat()
        self._auth_listeners.clear()
        self._refresh_listeners.clear()
