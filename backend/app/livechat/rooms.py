"""Livechat room persistence."""
import logging
from datetime import datetime
from typing import Optional

from app.db import Database

from .schemas import Room, RoomVisitor, SourceType, Visitor, VisitorSource, utcnow

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, visitor_id, visitor_token, visitor_username, is_open, msgs, "
    "source_type, created_at, last_message_at, closed_at"
)


def _row_to_room(row) -> Room:
    return Room(
        id=row[0],
        v=RoomVisitor(id=row[1], token=row[2], username=row[3]),
        open=row[4],
        msgs=row[5],
        source=VisitorSource(type=SourceType(row[6])) if row[6] else None,
        ts=row[7],
        lm=row[8],
        closedAt=row[9],
    )


class RoomRepository:
    """Data access for the ``rooms`` table."""

    def __init__(self, db: Optional[Database] = None) -> None:
        self._db = db or Database.get_instance()

    def create(self, visitor: Visitor, source_type: SourceType) -> Room:
        room = Room(
            v=RoomVisitor(id=visitor.id, token=visitor.token, username=visitor.username),
            source=VisitorSource(type=source_type),
        )
        self._db.execute(
            f"INSERT INTO rooms ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                room.id,
                room.v.id,
                room.v.token,
                room.v.username,
                True,
                0,
                source_type.value,
                room.ts,
                None,
                None,
            ],
        )
        logger.info(f"Opened room {room.id} for visitor {visitor.username}")
        return room

    def find_one_by_id(self, room_id: str) -> Optional[Room]:
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM rooms WHERE id = ?", [room_id]
        ).fetchone()
        return _row_to_room(row) if row else None

    def find_one_open_by_room_id_and_visitor_token(
        self, room_id: str, visitor_token: str
    ) -> Optional[Room]:
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM rooms WHERE id = ? AND is_open AND visitor_token = ?",
            [room_id, visitor_token],
        ).fetchone()
        return _row_to_room(row) if row else None

    def find_open_by_visitor_token(self, visitor_token: str) -> Optional[Room]:
        """Most recent open room of a visitor, if any."""
        row = self._db.execute(
            f"""
            SELECT {_COLUMNS} FROM rooms
            WHERE visitor_token = ? AND is_open
            ORDER BY created_at DESC
            LIMIT 1
            """,
            [visitor_token],
        ).fetchone()
        return _row_to_room(row) if row else None

    def close(self, room_id: str, visitor_token: str) -> bool:
        """Close an open room. Returns False if no such open room exists."""
        room = self.find_one_open_by_room_id_and_visitor_token(room_id, visitor_token)
        if room is None:
            return False
        self._db.execute(
            "UPDATE rooms SET is_open = FALSE, closed_at = ? WHERE id = ?",
            [utcnow(), room_id],
        )
        logger.info(f"Closed room {room_id}")
        return True

    def record_message(self, room_id: str, ts: datetime) -> None:
        self._db.execute(
            "UPDATE rooms SET msgs = msgs + 1, last_message_at = ? WHERE id = ?",
            [ts, room_id],
        )
