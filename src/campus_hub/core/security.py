"""Password hashing and access token helpers."""
from __future__ import annotations

from datetime import timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from jose import JWTError, jwt

from campus_hub.core.settings import settings
from campus_hub.db.time import utcnow

pwd_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Return an encoded Argon2id hash of ``password``."""
    return pwd_hasher.hash(password)


def verify_password(password: str, stored: str) -> bool:
    """Check ``password`` against a hash produced by :func:`hash_password`."""
    try:
        return pwd_hasher.verify(stored, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def password_needs_rehash(stored: str) -> bool:
    return pwd_hasher.check_needs_rehash(stored)


def create_access_token(profile_id: int, expires_minutes: int | None = None) -> str:
    """Issue a signed JWT whose subject is the profile id."""
    lifetime = expires_minutes or settings.access_token_expire_minutes
    expire = utcnow() + timedelta(minutes=lifetime)
    payload = {"sub": str(profile_id), "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> int | None:
    """Return the profile id carried by ``token`` or None if it is invalid."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    subject = payload.get("sub")
    if subject is None:
        return None
    try:
        return int(subject)
    except (TypeError, ValueError):
        return None
