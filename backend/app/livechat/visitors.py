"""Visitor persistence.

Visitors are keyed by the token the widget (or an API client) generates.
A visitor's source channel stays unset until the first channel-bound action
records it, and a visitor without a recorded source is accepted on any
channel.
"""
import logging
from typing import Optional

from app.db import Database

from .schemas import SourceType, Visitor, VisitorSource

logger = logging.getLogger(__name__)

_COLUMNS = "id, token, username, name, email, source_type, source_id, created_at"


def _row_to_visitor(row) -> Visitor:
    source = None
    if row[5]:
        source = VisitorSource(type=SourceType(row[5]), id=row[6])
    return Visitor(
        id=row[0],
        token=row[1],
        username=row[2],
        name=row[3],
        email=row[4],
        source=source,
        ts=row[7],
    )


class VisitorRepository:
    """Data access for the ``visitors`` table."""

    def __init__(self, db: Optional[Database] = None) -> None:
        self._db = db or Database.get_instance()

    def register(
        self,
        token: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Visitor:
        """Create the visitor for ``token`` or update its contact details.

        Args:
            token: Visitor token.
            name: Optional display name.
            email: Optional email address.

        Returns:
            The stored visitor.
        """
        existing = self.get_by_token(token)
        if existing is not None:
            if name is not None or email is not None:
                self._db.execute(
                    "UPDATE visitors SET name = COALESCE(?, name), email = COALESCE(?, email) WHERE id = ?",
                    [name, email, existing.id],
                )
                existing = self.get_by_token(token)
            return existing

        number = self._db.execute("SELECT nextval('visitor_username_seq')").fetchone()[0]
        visitor = Visitor(token=token, username=f"guest-{number}", name=name, email=email)
        self._db.execute(
            f"INSERT INTO visitors ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                visitor.id,
                visitor.token,
                visitor.username,
                visitor.name,
                visitor.email,
                None,
                None,
                visitor.ts,
            ],
        )
        logger.info(f"Registered visitor {visitor.username}")
        return visitor

    def get_by_token(self, token: str) -> Optional[Visitor]:
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM visitors WHERE token = ?", [token]
        ).fetchone()
        return _row_to_visitor(row) if row else None

    def get_by_token_and_source(self, token: str, source_type: SourceType) -> Optional[Visitor]:
        """Find a visitor usable on the given channel.

        Matches when the recorded source type equals ``source_type`` or when
        no source has been recorded yet.
        """
        row = self._db.execute(
            f"""
            SELECT {_COLUMNS} FROM visitors
            WHERE token = ? AND (source_type = ? OR source_type IS NULL)
            """,
            [token, source_type.value],
        ).fetchone()
        return _row_to_visitor(row) if row else None

    def set_source_by_id(self, visitor_id: str, source: VisitorSource) -> None:
        self._db.execute(
            "UPDATE visitors SET source_type = ?, source_id = ? WHERE id = ?",
            [source.type.value, source.id, visitor_id],
        )
        logger.debug("Recorded source %s for visitor %s", source.type.value, visitor_id)
