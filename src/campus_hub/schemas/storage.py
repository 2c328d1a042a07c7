"""Object storage schemas."""

from pydantic import BaseModel


class StoredObjectResponse(BaseModel):
    bucket: str
    path: str
    public_url: str
