"""Avatar and cover image uploads."""

from __future__ import annotations

from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import FileResponse

from campus_hub.schemas.storage import StoredObjectResponse
from campus_hub.services import storage as storage_service

from ..dependencies import CurrentProfileDep

router = APIRouter(prefix="/storage", tags=["storage"])
# Mounted without the /api/v1 prefix so public URLs stay short.
public_router = APIRouter(prefix="/storage", tags=["storage"])


@router.post("/{bucket}", response_model=StoredObjectResponse, status_code=status.HTTP_201_CREATED)
async def upload(
    bucket: str,
    current_profile: CurrentProfileDep,
    file: UploadFile = File(...),
) -> StoredObjectResponse:
    """Store an image in ``avatars`` or ``covers`` and return its public URL."""
    content = await file.read()
    stored = storage_service.save_object(
        bucket=bucket,
        owner_id=current_profile.id,
        content=content,
        content_type=file.content_type,
    )
    return StoredObjectResponse(bucket=stored.bucket, path=stored.path, public_url=stored.public_url)


@public_router.get("/{bucket}/{path:path}")
async def download(bucket: str, path: str) -> FileResponse:
    return FileResponse(storage_service.resolve_object(bucket, path))
