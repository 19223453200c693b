"""Livechat message delivery.

Messages sent by visitors are persisted to room history, counted on the room
and broadcast to every WebSocket subscriber of the room as
``{"type": "message", "message": {...}}``.

File messages carry a ``file`` reference plus one attachment whose preview
fields depend on the MIME major type (image, audio or video).
"""
import json
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.db import Database
from app.files.schemas import FileType, StoredFile, get_file_type

from .manager import ConnectionManager, manager
from .rooms import RoomRepository
from .schemas import (
    Attachment,
    FileMessageData,
    FileReference,
    Message,
    MessageUser,
    Visitor,
)
from .visitors import VisitorRepository

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 200

# Fields kept in extra_json; everything else has its own column
_EXTRA_FIELDS = {"avatar", "emoji", "file", "files", "attachments"}


class MessageDataError(ValueError):
    """Visitor supplied message fields that are not allowed."""


def build_file_attachment(file: StoredFile) -> Attachment:
    """Describe a stored file as a message attachment."""
    url = file.url
    attachment = Attachment(
        title=file.name,
        description=file.description,
        title_link=url,
        title_link_download=True,
    )

    file_type = get_file_type(file.type)
    if file_type is FileType.IMAGE:
        attachment.image_url = url
        attachment.image_type = file.type
        attachment.image_size = file.size
    elif file_type is FileType.AUDIO:
        attachment.audio_url = url
        attachment.audio_type = file.type
        attachment.audio_size = file.size
    elif file_type is FileType.VIDEO:
        attachment.video_url = url
        attachment.video_type = file.type
        attachment.video_size = file.size

    return attachment


def parse_message_data(msg_data: Optional[Dict[str, str]]) -> FileMessageData:
    """Validate the free-form fields sent alongside an upload.

    Raises:
        MessageDataError: On unknown fields or a non-boolean ``groupable``.
    """
    try:
        return FileMessageData(**(msg_data or {}))
    except ValidationError as e:
        raise MessageDataError(str(e)) from e


class MessageService:
    """Sends visitor messages into livechat rooms."""

    def __init__(
        self,
        db: Optional[Database] = None,
        connections: Optional[ConnectionManager] = None,
    ) -> None:
        self._db = db or Database.get_instance()
        self._visitors = VisitorRepository(self._db)
        self._rooms = RoomRepository(self._db)
        self._connections = connections or manager

    async def send_message(self, guest: Visitor, message: Message) -> Message:
        """Persist a visitor message and deliver it to room subscribers."""
        message.u = MessageUser(id=guest.id, username=guest.username, name=guest.name)
        message.token = guest.token
        if message.alias is None and guest.name:
            message.alias = guest.name

        extra = message.model_dump(mode="json", by_alias=True, include=_EXTRA_FIELDS)
        self._db.execute(
            """
            INSERT INTO messages (id, rid, token, user_id, username, alias, msg, groupable, extra_json, ts)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                message.id,
                message.rid,
                message.token,
                guest.id,
                guest.username,
                message.alias,
                message.msg,
                message.groupable,
                json.dumps(extra),
                message.ts,
            ],
        )
        self._rooms.record_message(message.rid, message.ts)

        await self._connections.broadcast(
            {"type": "message", "message": message.to_response()}, message.rid
        )
        return message

    async def send_file_message(
        self,
        room_id: str,
        visitor_token: str,
        file: StoredFile,
        msg_data: Optional[Dict[str, str]] = None,
    ) -> Optional[Message]:
        """Post a stored file into a room as a visitor message.

        Args:
            room_id: Target room.
            visitor_token: Token of the visitor sending the file.
            file: The stored file, including its description.
            msg_data: Optional message fields (msg, alias, avatar, emoji, groupable).

        Returns:
            The delivered message, or None if the visitor or the open room
            cannot be found.

        Raises:
            MessageDataError: If ``msg_data`` holds fields that are not allowed.
        """
        data = parse_message_data(msg_data)

        visitor = self._visitors.get_by_token(visitor_token)
        if visitor is None:
            return None
        room = self._rooms.find_one_open_by_room_id_and_visitor_token(room_id, visitor_token)
        if room is None:
            return None

        reference = FileReference(id=file.id, name=file.name, type=file.type)
        message = Message(
            rid=room_id,
            file=reference,
            files=[reference],
            groupable=False,
            attachments=[build_file_attachment(file)],
        )
        overrides = data.model_dump(exclude_none=True)
        for key, value in overrides.items():
            setattr(message, key, value)

        logger.info(f"Sending file message for {file.name} to room {room_id}")
        return await self.send_message(visitor, message)

    def history(self, room_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Message]:
        """Return the latest ``limit`` messages of a room, oldest first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        rows = self._db.execute(
            """
            SELECT id, rid, token, user_id, username, alias, msg, groupable, extra_json, ts
            FROM (
                SELECT * FROM messages WHERE rid = ? ORDER BY ts DESC LIMIT ?
            )
            ORDER BY ts ASC
            """,
            [room_id, limit],
        ).fetchall()

        messages = []
        for row in rows:
            extra = json.loads(row[8])
            messages.append(
                Message(
                    id=row[0],
                    rid=row[1],
                    token=row[2],
                    u=MessageUser(id=row[3], username=row[4]),
                    alias=row[5],
                    msg=row[6],
                    groupable=row[7],
                    ts=row[9],
                    **extra,
                )
            )
        return messages
