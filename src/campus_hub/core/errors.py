"""Domain exceptions raised by the service layer.

Services never raise ``HTTPException`` themselves; the API installs a single
handler that maps each of these onto a status code.
"""

from __future__ import annotations

from collections.abc import Sequence


class CampusError(Exception):
    """Base class for all domain failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(CampusError):
    """A referenced row does not exist (or is not visible to the caller)."""

    status_code = 404

    def __init__(self, entity: str, entity_id: object | None = None) -> None:
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message)


class PermissionDeniedError(CampusError):
    """The caller is authenticated but may not perform the action."""

    status_code = 403


class LimitExceededError(PermissionDeniedError):
    """A quota such as the community free tier has been reached."""

    def __init__(self, message: str, *, limit: int, current: int) -> None:
        self.limit = limit
        self.current = current
        super().__init__(message)


class ConflictError(CampusError):
    """The write collides with existing state (duplicate membership, full community)."""

    status_code = 409


class InvalidOperationError(CampusError):
    """The request is well-formed but makes no sense (e.g. following yourself)."""

    status_code = 400


class ContentRejectedError(CampusError):
    """Submitted text contains banned words."""

    status_code = 422

    def __init__(self, matches: Sequence[str]) -> None:
        self.matches = list(matches)
        super().__init__(f"Content contains banned words: {', '.join(self.matches)}")


class FeatureUnavailableError(CampusError):
    """The backend has the feature switched off (e.g. presence tracking)."""

    status_code = 501
