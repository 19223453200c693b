"""Pydantic schemas for file storage.

This module defines the data models for stored livechat files:
- UploadDetails: What the caller knows about a file before it is stored
- StoredFile: The record a store returns after a successful insert
- FileType: Enum for categorizing files by MIME major type

Stored files are addressed by ``/file-upload/{id}/{name}`` regardless of the
backend holding their bytes.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field


class FileType(str, Enum):
    """File type categories used to pick inline previews.

    - IMAGE: image/*
    - AUDIO: audio/*
    - VIDEO: video/*
    - OTHER: everything else, offered as a plain download
    """
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    OTHER = "other"


class UploadDetails(BaseModel):
    """Descriptive metadata handed to ``FileStore.insert``."""
    name: str = Field(..., description="Original filename")
    size: int = Field(..., ge=0, description="File size in bytes")
    type: str = Field(..., description="MIME type")
    rid: str = Field(..., description="Room the file was uploaded to")
    visitor_token: Optional[str] = Field(None, description="Token of the uploading visitor")


class StoredFile(BaseModel):
    """A file persisted through a store.

    ``path`` is the backend-specific location (file system path or S3 key)
    and is never sent to clients.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="_id")
    store: str = Field(..., description="Store name, e.g. 'Uploads'")
    name: str
    size: int
    type: str
    rid: str
    visitor_token: Optional[str] = None
    description: Optional[str] = None
    path: str = ""
    complete: bool = False
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None)
    )

    @property
    def url(self) -> str:
        """Relative download URL for this file."""
        return f"/file-upload/{self.id}/{quote(self.name or 'file', safe='')}"


def get_file_type(mime_type: Optional[str]) -> FileType:
    """Determine file type category from MIME type.

    Examples:
        >>> get_file_type("image/jpeg")
        <FileType.IMAGE: 'image'>
        >>> get_file_type("application/pdf")
        <FileType.OTHER: 'other'>
    """
    major, _, minor = (mime_type or "").partition("/")
    if not minor:
        return FileType.OTHER
    try:
        return FileType(major)
    except ValueError:
        return FileType.OTHER
