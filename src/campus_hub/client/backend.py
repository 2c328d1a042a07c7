"""Async data-access wrapper over the Campus Hub HTTP API.

Every view-model and store talks to the backend through :class:`BackendClient`.
It owns the bearer token, applies the request timeout and turns HTTP error
statuses into the :class:`BackendError` hierarchy so callers can branch on
exception type instead of status codes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from campus_hub.core.settings import settings
from campus_hub.services.changefeed import ChangeBatch, ChangeEvent

logger = logging.getLogger(__name__)

HTTP_NO_CONTENT = 204
HTTP_BAD_REQUEST = 400


class BackendError(RuntimeError):
    """Base exception for failed backend calls, including network failures."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class AuthRequiredError(BackendError):
    """401: missing, expired or invalid token."""


class PermissionDeniedError(BackendError):
    """403: the caller may not do this (includes quota limits)."""


class NotFoundError(BackendError):
    """404: the row no longer exists or is not visible."""


class ConflictError(BackendError):
    """409: duplicate membership, full community, taken name."""


class ValidationError(BackendError):
    """422: rejected input, including banned words."""

    @property
    def matches(self) -> list[str]:
        if isinstance(self.payload, Mapping):
            return list(self.payload.get("matches") or [])
        return []


class UnavailableError(BackendError):
    """501: the backend has the feature switched off."""


_STATUS_ERRORS: dict[int, type[BackendError]] = {
    401: AuthRequiredError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
    501: UnavailableError,
}


@dataclass(frozen=True)
class BackendConfig:
    """Immutable configuration for backend access."""

    base_url: str
    timeout_seconds: float
    long_poll_seconds: float


def load_backend_config() -> BackendConfig:
    """Build configuration object from global settings."""
    return BackendConfig(
        base_url=settings.backend_base_url,
        timeout_seconds=float(settings.http_timeout_seconds),
        long_poll_seconds=float(settings.realtime_long_poll_seconds),
    )


def _error_detail(response: httpx.Response) -> tuple[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    detail = payload.get("detail") if isinstance(payload, Mapping) else None
    if isinstance(detail, list):
        # FastAPI request validation errors.
        detail = "; ".join(str(item.get("msg", item)) for item in detail)
    return str(detail or response.reason_phrase), payload


def parse_change_event(payload: Mapping[str, Any]) -> ChangeEvent:
    return ChangeEvent(
        seq=int(payload["seq"]),
        table=payload["table"],
        type=payload["type"],
        record=payload.get("record"),
        old_record=payload.get("old_record"),
        idempotency_key=payload.get("idempotency_key"),
        committed_at=datetime.fromisoformat(payload["committed_at"]),
    )


class BackendClient:
    """HTTP client wrapper for the Campus Hub backend."""

    def __init__(
        self,
        config: BackendConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        token: str | None = None,
    ) -> None:
        self.config = config or load_backend_config()
        self._transport = transport
        self._token = token
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    def set_token(self, token: str | None) -> None:
        self._token = token

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None
        params: Mapping[str, Any] | None = None
        files: Any | None = None
        timeout: float | None = None

    async def _request(self, params: RequestParams) -> httpx.Response:
        client = await self._ensure_client()
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        extra: dict[str, Any] = {}
        if params.timeout is not None:
            extra["timeout"] = httpx.Timeout(params.timeout)
        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                params=params.params,
                files=params.files,
                headers=headers,
                **extra,
            )
        except httpx.HTTPError as exc:
            raise BackendError(f"{params.method} {params.path} failed: {exc}") from exc

        if response.status_code >= HTTP_BAD_REQUEST:
            message, payload = _error_detail(response)
            error_cls = _STATUS_ERRORS.get(response.status_code, BackendError)
            raise error_cls(message, status_code=response.status_code, payload=payload)
        return response

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(self.RequestParams(method=method, path=path, **kwargs))
        if response.status_code == HTTP_NO_CONTENT or not response.content:
            return None
        return response.json()

    # -- auth ---------------------------------------------------------------

    async def sign_up(
        self,
        *,
        email: str,
        password: str,
        display_name: str | None = None,
        user_type: str = "student",
        department: str | None = None,
    ) -> dict[str, Any]:
        """Create an account and keep its token for later calls."""
        payload = await self._json(
            "POST",
            "/api/v1/auth/sign-up",
            json_data={
                "email": email,
                "password": password,
                "display_name": display_name,
                "user_type": user_type,
                "department": department,
            },
        )
        self._token = payload["access_token"]
        return payload["profile"]

    async def sign_in(self, *, email: str, password: str) -> dict[str, Any]:
        payload = await self._json(
            "POST", "/api/v1/auth/sign-in", json_data={"email": email, "password": password}
        )
        self._token = payload["access_token"]
        return payload["profile"]

    async def get_session(self) -> dict[str, Any] | None:
        """Current profile, or None when there is no token."""
        if self._token is None:
            return None
        return await self._json("GET", "/api/v1/auth/session")

    def sign_out(self) -> None:
        self._token = None

    # -- profiles -----------------------------------------------------------

    async def get_profile(self, profile_id: int) -> dict[str, Any]:
        return await self._json("GET", f"/api/v1/profiles/{profile_id}")

    async def update_profile(self, **fields: Any) -> dict[str, Any]:
        return await self._json("PATCH", "/api/v1/profiles/me", json_data=fields)

    async def heartbeat(self) -> dict[str, Any]:
        return await self._json("POST", "/api/v1/profiles/me/heartbeat")

    async def search_profiles(self, query: str) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/profiles/search", params={"q": query})

    async def follow(self, profile_id: int) -> bool:
        payload = await self._json("POST", f"/api/v1/profiles/{profile_id}/follow")
        return bool(payload["following"])

    async def unfollow(self, profile_id: int) -> bool:
        payload = await self._json("DELETE", f"/api/v1/profiles/{profile_id}/follow")
        return bool(payload["following"])

    async def is_following(self, profile_id: int) -> bool:
        payload = await self._json("GET", f"/api/v1/profiles/{profile_id}/follow")
        return bool(payload["following"])

    async def follow_counts(self, profile_id: int) -> dict[str, int]:
        return await self._json("GET", f"/api/v1/profiles/{profile_id}/follow-counts")

    # -- posts, interactions, comments --------------------------------------

    async def list_posts(
        self,
        *,
        following: bool = False,
        category: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": limit}
        if following:
            params["following"] = "true"
        if category:
            params["category"] = category
        return await self._json("GET", "/api/v1/posts/", params=params)

    async def get_post(self, post_id: int) -> dict[str, Any]:
        return await self._json("GET", f"/api/v1/posts/{post_id}")

    async def create_post(
        self,
        content: str,
        *,
        category: str = "General",
        is_anonymous: bool = True,
        anonymous_name: str | None = None,
    ) -> dict[str, Any]:
        return await self._json(
            "POST",
            "/api/v1/posts/",
            json_data={
                "content": content,
                "category": category,
                "is_anonymous": is_anonymous,
                "anonymous_name": anonymous_name,
            },
        )

    async def delete_post(self, post_id: int) -> None:
        await self._json("DELETE", f"/api/v1/posts/{post_id}")

    async def set_interaction(
        self,
        target_type: str,
        target_id: int,
        kind: str,
        *,
        active: bool,
        idempotency_key: str,
    ) -> dict[str, Any]:
        """Ask the backend to make the caller's interaction equal ``active``."""
        return await self._json(
            "PUT",
            f"/api/v1/interactions/{target_type}/{target_id}/{kind}",
            json_data={"active": active, "idempotency_key": idempotency_key},
        )

    async def get_interactions(self, target_type: str, target_id: int) -> dict[str, Any]:
        return await self._json("GET", f"/api/v1/interactions/{target_type}/{target_id}")

    async def get_interaction_snapshots(self, target_type: str, target_ids: Iterable[int]) -> list[dict[str, Any]]:
        ids = ",".join(str(target_id) for target_id in target_ids)
        if not ids:
            return []
        return await self._json("GET", f"/api/v1/interactions/{target_type}", params={"ids": ids})

    async def list_comments(self, target_type: str, target_id: int) -> list[dict[str, Any]]:
        return await self._json("GET", f"/api/v1/comments/{target_type}/{target_id}")

    async def add_comment(
        self,
        target_type: str,
        target_id: int,
        content: str,
        *,
        is_anonymous: bool = False,
        anonymous_name: str | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        return await self._json(
            "POST",
            f"/api/v1/comments/{target_type}/{target_id}",
            json_data={
                "content": content,
                "is_anonymous": is_anonymous,
                "anonymous_name": anonymous_name,
                "idempotency_key": idempotency_key,
            },
        )

    async def delete_comment(self, comment_id: int) -> dict[str, Any]:
        return await self._json("DELETE", f"/api/v1/comments/{comment_id}")

    # -- communities --------------------------------------------------------

    async def list_communities(self, *, category: str | None = None, query: str | None = None) -> list[dict[str, Any]]:
        params = {key: value for key, value in (("category", category), ("q", query)) if value}
        return await self._json("GET", "/api/v1/communities/", params=params)

    async def list_joined_communities(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/communities/joined")

    async def community_limit(self) -> dict[str, Any]:
        return await self._json("GET", "/api/v1/communities/limit")

    async def get_community(self, community_id: int) -> dict[str, Any]:
        return await self._json("GET", f"/api/v1/communities/{community_id}")

    async def create_community(self, name: str, **fields: Any) -> dict[str, Any]:
        return await self._json("POST", "/api/v1/communities/", json_data={"name": name, **fields})

    async def delete_community(self, community_id: int) -> None:
        await self._json("DELETE", f"/api/v1/communities/{community_id}")

    async def join_community(self, community_id: int) -> dict[str, Any]:
        return await self._json("POST", f"/api/v1/communities/{community_id}/join")

    async def leave_community(self, community_id: int) -> dict[str, Any]:
        return await self._json("POST", f"/api/v1/communities/{community_id}/leave")

    async def list_members(self, community_id: int) -> list[dict[str, Any]]:
        return await self._json("GET", f"/api/v1/communities/{community_id}/members")

    async def list_community_posts(self, community_id: int) -> list[dict[str, Any]]:
        return await self._json("GET", f"/api/v1/communities/{community_id}/posts")

    async def create_community_post(self, community_id: int, content: str, **fields: Any) -> dict[str, Any]:
        return await self._json(
            "POST",
            f"/api/v1/communities/{community_id}/posts",
            json_data={"content": content, **fields},
        )

    async def delete_community_post(self, post_id: int) -> None:
        await self._json("DELETE", f"/api/v1/communities/posts/{post_id}")

    async def invite_members(
        self, community_id: int, user_ids: Iterable[int], *, role: str = "member"
    ) -> list[dict[str, Any]]:
        return await self._json(
            "POST",
            f"/api/v1/communities/{community_id}/invitations",
            json_data={"invited_user_ids": list(user_ids), "role": role},
        )

    async def list_my_invitations(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/communities/invitations/mine")

    async def list_community_invitations(self, community_id: int) -> list[dict[str, Any]]:
        return await self._json("GET", f"/api/v1/communities/{community_id}/invitations")

    async def accept_invitation(self, invitation_id: int) -> dict[str, Any]:
        return await self._json("POST", f"/api/v1/communities/invitations/{invitation_id}/accept")

    async def decline_invitation(self, invitation_id: int) -> None:
        await self._json("POST", f"/api/v1/communities/invitations/{invitation_id}/decline")

    async def cancel_invitation(self, invitation_id: int) -> None:
        await self._json("DELETE", f"/api/v1/communities/invitations/{invitation_id}")

    # -- notifications ------------------------------------------------------

    async def list_notifications(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/notifications/")

    async def unread_count(self) -> int:
        payload = await self._json("GET", "/api/v1/notifications/unread-count")
        return int(payload["unread"])

    async def mark_notification_read(self, notification_id: int) -> None:
        await self._json("POST", f"/api/v1/notifications/{notification_id}/read")

    async def mark_all_notifications_read(self) -> int:
        payload = await self._json("POST", "/api/v1/notifications/read-all")
        return int(payload["updated"])

    # -- messaging ----------------------------------------------------------

    async def get_or_create_conversation(self, user1_id: int, user2_id: int) -> int:
        payload = await self._json(
            "POST",
            "/api/v1/rpc/get_or_create_conversation",
            json_data={"user1_id": user1_id, "user2_id": user2_id},
        )
        return int(payload["conversation_id"])

    async def list_messages(self, conversation_id: int) -> list[dict[str, Any]]:
        return await self._json("GET", f"/api/v1/conversations/{conversation_id}/messages")

    async def send_message(self, conversation_id: int, content: str) -> dict[str, Any]:
        return await self._json(
            "POST",
            f"/api/v1/conversations/{conversation_id}/messages",
            json_data={"content": content},
        )

    async def list_contacts(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/conversations/contacts")

    # -- moderation ---------------------------------------------------------

    async def check_content(self, text: str) -> list[str]:
        payload = await self._json("POST", "/api/v1/moderation/check-content", json_data={"text": text})
        return list(payload["matches"])

    async def list_banned_words(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/moderation/banned-words")

    async def add_banned_word(self, word: str) -> dict[str, Any]:
        return await self._json("POST", "/api/v1/moderation/banned-words", json_data={"word": word})

    async def report_post(self, post_id: int, reason: str) -> dict[str, Any]:
        return await self._json(
            "POST", "/api/v1/moderation/reports", json_data={"post_id": post_id, "reason": reason}
        )

    async def list_reports(self) -> list[dict[str, Any]]:
        return await self._json("GET", "/api/v1/moderation/reports")

    async def act_on_report(self, report_id: int, action: str, *, notes: str | None = None) -> dict[str, Any]:
        return await self._json(
            "POST",
            f"/api/v1/moderation/reports/{report_id}/actions",
            json_data={"action": action, "notes": notes},
        )

    # -- storage ------------------------------------------------------------

    async def upload(self, bucket: str, filename: str, content: bytes, content_type: str) -> dict[str, Any]:
        """Upload an image to ``avatars`` or ``covers``; returns its path and public URL."""
        return await self._json(
            "POST",
            f"/api/v1/storage/{bucket}",
            files={"file": (filename, content, content_type)},
        )

    # -- realtime -----------------------------------------------------------

    async def pull_changes(
        self,
        cursor: int | None,
        *,
        tables: Iterable[str] | None = None,
        wait: float = 0.0,
    ) -> ChangeBatch:
        """Fetch change events after ``cursor``; None starts at the feed head."""
        params: dict[str, Any] = {}
        if cursor is not None:
            params["cursor"] = cursor
            if wait:
                params["wait"] = min(wait, self.config.long_poll_seconds)
        if tables:
            params["tables"] = ",".join(sorted(tables))
        response = await self._request(
            self.RequestParams(
                method="GET",
                path="/api/v1/realtime/changes",
                params=params,
                # Leave room for the server to hold a long poll open.
                timeout=self.config.timeout_seconds + params.get("wait", 0.0),
            )
        )
        payload = response.json()
        return ChangeBatch(
            cursor=int(payload["cursor"]),
            reset=bool(payload.get("reset", False)),
            events=[parse_change_event(item) for item in payload.get("events", [])],
        )

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
