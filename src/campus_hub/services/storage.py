"""Filesystem-backed object storage for avatar and cover images."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from pathlib import Path

from campus_hub.core.errors import InvalidOperationError, NotFoundError
from campus_hub.core.settings import settings

logger = logging.getLogger(__name__)

BUCKETS = ("avatars", "covers")
_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    public_url: str


def _bucket_root(bucket: str) -> Path:
    if bucket not in BUCKETS:
        raise NotFoundError("Bucket", bucket)
    return Path(settings.storage_root).resolve() / bucket


def public_url(bucket: str, path: str) -> str:
    return f"{settings.storage_public_url.rstrip('/')}/{bucket}/{path}"


def save_object(*, bucket: str, owner_id: int, content: bytes, content_type: str | None) -> StoredObject:
    """Write an uploaded image under ``<bucket>/<owner_id>/``.

    Raises:
        InvalidOperationError: for non-image uploads and oversized files.
    """
    root = _bucket_root(bucket)
    extension = _EXTENSIONS.get((content_type or "").lower())
    if extension is None:
        raise InvalidOperationError("Only JPEG, PNG, GIF or WebP images can be uploaded")
    if not content:
        raise InvalidOperationError("Uploaded file is empty")
    if len(content) > settings.storage_max_upload_bytes:
        raise InvalidOperationError(
            f"File exceeds the {settings.storage_max_upload_bytes} byte upload limit"
        )

    relative = f"{owner_id}/{secrets.token_hex(12)}.{extension}"
    destination = root / relative
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(content)
    logger.debug("Stored %d bytes at %s/%s", len(content), bucket, relative)
    return StoredObject(bucket=bucket, path=relative, public_url=public_url(bucket, relative))


def resolve_object(bucket: str, path: str) -> Path:
    """Map a public path back to a file, refusing anything outside the bucket."""
    root = _bucket_root(bucket)
    candidate = (root / path).resolve()
    if not candidate.is_relative_to(root) or not candidate.is_file():
        raise NotFoundError("Object", f"{bucket}/{path}")
    return candidate
