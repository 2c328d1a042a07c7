"""Authentication endpoints: sign-up, sign-in and session lookup."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from campus_hub.core.security import create_access_token
from campus_hub.models import Profile
from campus_hub.schemas.profile import ProfileResponse, SignInRequest, SignUpRequest, TokenResponse
from campus_hub.services import profiles as profile_service

from ..dependencies import CurrentProfileDep, SessionDep

router = APIRouter(prefix="/auth", tags=["authentication"])


def _token_response(profile: Profile) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(profile.id),
        profile=ProfileResponse.model_validate(profile),
    )


@router.post("/sign-up", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(payload: SignUpRequest, db: SessionDep) -> TokenResponse:
    """Register with a school email and return a bearer token."""
    profile = profile_service.sign_up(db, payload)
    return _token_response(profile)


@router.post("/sign-in", response_model=TokenResponse)
async def sign_in(payload: SignInRequest, db: SessionDep) -> TokenResponse:
    profile = profile_service.authenticate(db, email=payload.email, password=payload.password)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return _token_response(profile)


@router.get("/session", response_model=ProfileResponse)
async def get_session(current_profile: CurrentProfileDep) -> Profile:
    """Return the profile behind the bearer token.

    Signing out is client-side: the client drops its token.
    """
    return current_profile
