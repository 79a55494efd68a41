"""
Result shapes returned by every storage operation.

Each response keeps the backend's native result in ``raw`` so callers can
reach backend-specific details without the driver having to model them.
"""
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class Response(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw: Any = None


class ExistsResponse(Response):
    exists: bool


class DeleteResponse(Response):
    # None when the backend cannot tell whether anything was removed
    was_deleted: bool | None


class ContentResponse(Response, Generic[T]):
    content: T


class StatResponse(Response):
    size: int
    modified: datetime


class SignedUrlResponse(Response):
    signed_url: str


class FileListEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Relative to the driver root or bucket, never a URL
    path: str
