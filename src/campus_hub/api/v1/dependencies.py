"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from campus_hub.core.security import decode_access_token
from campus_hub.db.session import get_db
from campus_hub.models import Profile
from campus_hub.services.changefeed import ChangeFeed, get_change_feed

# Missing credentials are reported as 401 below rather than by the scheme.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
CredentialsDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_profile(credentials: CredentialsDep, db: SessionDep) -> Profile:
    """Resolve the bearer token to a profile.

    Args:
        credentials: HTTP Bearer token credentials
        db: Database session

    Returns:
        Profile of the authenticated user

    Raises:
        HTTPException: If the token is missing or invalid, or the profile is gone
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    profile_id = decode_access_token(credentials.credentials)
    if profile_id is None:
        raise _unauthorized()
    profile = db.get(Profile, profile_id)
    if profile is None:
        raise _unauthorized("User not found")
    return profile


def get_optional_profile(credentials: CredentialsDep, db: SessionDep) -> Profile | None:
    """Like :func:`get_current_profile` but anonymous callers get None."""
    if credentials is None:
        return None
    return get_current_profile(credentials, db)


def get_change_feed_dep() -> ChangeFeed:
    """Return the shared change feed."""
    return get_change_feed()


CurrentProfileDep = Annotated[Profile, Depends(get_current_profile)]
OptionalProfileDep = Annotated[Profile | None, Depends(get_optional_profile)]
ChangeFeedDep = Annotated[ChangeFeed, Depends(get_change_feed_dep)]
