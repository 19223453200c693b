"""DuckDB storage shared by the livechat repositories.

A single embedded DuckDB database holds visitors, rooms, messages and upload
metadata. The service implements the singleton pattern so every repository
in the process uses the same connection.

Database Schema:
    visitors: one row per visitor token, source_* NULL until a channel is recorded
    rooms:    livechat conversations, ``is_open`` flips to FALSE when closed
    messages: room history, file and attachment fields stored as JSON text
    uploads:  metadata for files written through a store

Thread Safety:
    The DuckDB connection is NOT thread-safe. Repositories only touch it from
    the event loop thread; blocking storage I/O runs elsewhere.

Usage:
    db = Database.get_instance()
    row = db.execute("SELECT ...", [param]).fetchone()
"""
import logging
from typing import Any, List, Optional

import duckdb

logger = logging.getLogger(__name__)

_SCHEMA = (
    "CREATE SEQUENCE IF NOT EXISTS visitor_username_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS visitors (
        id VARCHAR PRIMARY KEY,
        token VARCHAR NOT NULL UNIQUE,
        username VARCHAR NOT NULL,
        name VARCHAR,
        email VARCHAR,
        source_type VARCHAR,
        source_id VARCHAR,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id VARCHAR PRIMARY KEY,
        visitor_id VARCHAR NOT NULL,
        visitor_token VARCHAR NOT NULL,
        visitor_username VARCHAR NOT NULL,
        is_open BOOLEAN NOT NULL,
        msgs INTEGER NOT NULL DEFAULT 0,
        source_type VARCHAR,
        created_at TIMESTAMP NOT NULL,
        last_message_at TIMESTAMP,
        closed_at TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rooms_visitor_token ON rooms(visitor_token)",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id VARCHAR PRIMARY KEY,
        rid VARCHAR NOT NULL,
        token VARCHAR,
        user_id VARCHAR NOT NULL,
        username VARCHAR NOT NULL,
        alias VARCHAR,
        msg VARCHAR NOT NULL,
        groupable BOOLEAN NOT NULL,
        extra_json VARCHAR NOT NULL,
        ts TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_rid ON messages(rid)",
    """
    CREATE TABLE IF NOT EXISTS uploads (
        id VARCHAR PRIMARY KEY,
        store VARCHAR NOT NULL,
        name VARCHAR NOT NULL,
        size BIGINT NOT NULL,
        type VARCHAR NOT NULL,
        rid VARCHAR NOT NULL,
        visitor_token VARCHAR,
        description VARCHAR,
        path VARCHAR NOT NULL,
        complete BOOLEAN NOT NULL,
        uploaded_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_uploads_rid ON uploads(rid)",
)


class Database:
    """Singleton owner of the DuckDB connection.

    Attributes:
        _instance: Singleton instance.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["Database"] = None
    _db_path: str = "livechat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "Database":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the instance (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
            logger.info("Opened DuckDB database at %s", self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create tables and indexes. Idempotent."""
        conn = self._get_connection()
        for statement in _SCHEMA:
            conn.execute(statement)

    def execute(self, query: str, params: Optional[List[Any]] = None) -> duckdb.DuckDBPyConnection:
        return self._get_connection().execute(query, params or [])

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
