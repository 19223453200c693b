"""Pydantic schemas for livechat visitors, rooms and messages.

Serialized documents use the wire names the chat widget expects (``_id``,
``rid``, ``ts``, ``u``), so identifiers are declared with an ``_id`` alias and
every model accepts either name on input. Dump with ``by_alias=True``.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SourceType(str, Enum):
    """Channel a livechat conversation originated from.

    Attributes:
        WIDGET: The embedded website widget.
        API: Direct calls against the REST API.
    """
    WIDGET = "widget"
    API = "api"


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VisitorSource(_Document):
    type: SourceType = Field(..., description="Channel type")
    id: Optional[str] = Field(None, description="Channel-specific identifier")


class Visitor(_Document):
    """An external chat participant identified by a token."""
    id: str = Field(default_factory=_new_id, alias="_id")
    token: str = Field(..., description="Visitor token issued by the widget")
    username: str = Field(..., description="Generated guest username")
    name: Optional[str] = Field(None, description="Name given by the visitor")
    email: Optional[str] = Field(None, description="Email given by the visitor")
    source: Optional[VisitorSource] = Field(
        None, description="Recorded channel, unset until the first channel-bound action"
    )
    ts: datetime = Field(default_factory=utcnow, description="Registration time (UTC)")


class RoomVisitor(_Document):
    id: str = Field(..., alias="_id")
    token: str
    username: str


class Room(_Document):
    """A livechat conversation tied to one visitor."""
    id: str = Field(default_factory=_new_id, alias="_id")
    t: str = Field(default="l", description="Room type, always 'l' for livechat")
    open: bool = True
    v: RoomVisitor
    msgs: int = 0
    source: Optional[VisitorSource] = None
    ts: datetime = Field(default_factory=utcnow)
    lm: Optional[datetime] = Field(None, description="Last message time")
    closedAt: Optional[datetime] = None


class MessageUser(_Document):
    id: str = Field(..., alias="_id")
    username: str
    name: Optional[str] = None


class FileReference(_Document):
    id: str = Field(..., alias="_id")
    name: str
    type: str


class Attachment(BaseModel):
    """Message attachment describing an uploaded file.

    The ``image_*``, ``audio_*`` and ``video_*`` groups are filled according to
    the MIME major type so clients can render inline previews.
    """
    title: str
    type: str = "file"
    description: Optional[str] = None
    title_link: str
    title_link_download: bool = True
    image_url: Optional[str] = None
    image_type: Optional[str] = None
    image_size: Optional[int] = None
    audio_url: Optional[str] = None
    audio_type: Optional[str] = None
    audio_size: Optional[int] = None
    video_url: Optional[str] = None
    video_type: Optional[str] = None
    video_size: Optional[int] = None


class Message(_Document):
    """A chat message as stored in room history and broadcast to subscribers."""
    id: str = Field(default_factory=_new_id, alias="_id")
    rid: str
    msg: str = ""
    ts: datetime = Field(default_factory=utcnow)
    token: Optional[str] = None
    u: Optional[MessageUser] = None
    alias: Optional[str] = None
    avatar: Optional[str] = None
    emoji: Optional[str] = None
    groupable: bool = False
    file: Optional[FileReference] = None
    files: List[FileReference] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FileMessageData(BaseModel):
    """Optional message fields a visitor may send alongside an upload.

    Anything else in the form is rejected.
    """
    model_config = ConfigDict(extra="forbid")

    msg: Optional[str] = None
    alias: Optional[str] = None
    avatar: Optional[str] = None
    emoji: Optional[str] = None
    groupable: Optional[bool] = None


# =============================================================================
# Request bodies
# =============================================================================


class VisitorRegistration(BaseModel):
    token: str = Field(..., min_length=1, description="Visitor token")
    name: Optional[str] = None
    email: Optional[str] = None


class RegisterVisitorRequest(BaseModel):
    visitor: VisitorRegistration


class CloseRoomRequest(BaseModel):
    rid: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
