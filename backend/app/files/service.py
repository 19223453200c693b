"""File upload service.

Maps named stores (``Uploads``) onto the configured storage backend and keeps
upload metadata in DuckDB. Objects are written to ``<store>/<rid>/<file id>``.

Usage:
    store = FileUploadService.get_instance().get_store("Uploads")
    stored = await store.insert(details, content)
"""
import asyncio
import logging
from typing import Optional

from app.config import AppSettings, get_config
from app.db import Database

from .schemas import StoredFile, UploadDetails
from .stores import FileStoreBackend, FileSystemBackend, S3Backend, StorageError

logger = logging.getLogger(__name__)

_COLUMNS = "id, store, name, size, type, rid, visitor_token, description, path, complete, uploaded_at"


def _row_to_file(row) -> StoredFile:
    return StoredFile(
        id=row[0],
        store=row[1],
        name=row[2],
        size=row[3],
        type=row[4],
        rid=row[5],
        visitor_token=row[6],
        description=row[7],
        path=row[8],
        complete=row[9],
        uploaded_at=row[10],
    )


def create_backend(config: AppSettings) -> FileStoreBackend:
    """Build the backend selected by ``file_upload.storage_type``."""
    upload_settings = config.file_upload
    if upload_settings.storage_type == "AmazonS3":
        aws = config.secrets.aws
        return S3Backend(
            bucket=upload_settings.s3.bucket,
            region_name=upload_settings.s3.region,
            aws_access_key_id=aws.access_key_id,
            aws_secret_access_key=aws.secret_access_key,
            aws_session_token=aws.session_token,
        )
    return FileSystemBackend(upload_settings.file_system_path)


class FileStore:
    """A named bucket of files backed by the service's storage backend."""

    def __init__(self, name: str, service: "FileUploadService") -> None:
        self.name = name
        self._service = service

    async def insert(self, details: UploadDetails, content: bytes) -> Optional[StoredFile]:
        """Persist ``content`` and record its metadata.

        Args:
            details: Name, size, type, room and uploader of the file.
            content: File bytes.

        Returns:
            The stored file, or None if the backend could not write it.
        """
        stored = StoredFile(store=self.name, **details.model_dump())
        stored.path = f"{self.name}/{stored.rid}/{stored.id}"
        self._service.record(stored)

        try:
            await asyncio.to_thread(
                self._service.backend.write, stored.path, content, stored.type
            )
        except StorageError:
            logger.exception(f"Storing {stored.name} in {self.name} failed")
            self._service.forget(stored.id)
            return None

        self._service.mark_complete(stored.id)
        stored.complete = True
        return stored


class FileUploadService:
    """Singleton service for stored files and their metadata."""

    _instance: Optional["FileUploadService"] = None

    def __init__(
        self,
        backend: Optional[FileStoreBackend] = None,
        db: Optional[Database] = None,
    ) -> None:
        self.backend = backend or create_backend(get_config())
        self._db = db or Database.get_instance()
        logger.info(f"File storage backend: {self.backend.name}")

    @classmethod
    def get_instance(cls) -> "FileUploadService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def set_instance(cls, instance: Optional["FileUploadService"]) -> None:
        cls._instance = instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        cls._instance = None

    def get_store(self, name: str) -> FileStore:
        return FileStore(name, self)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def record(self, stored: StoredFile) -> None:
        self._db.execute(
            f"INSERT INTO uploads ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                stored.id,
                stored.store,
                stored.name,
                stored.size,
                stored.type,
                stored.rid,
                stored.visitor_token,
                stored.description,
                stored.path,
                stored.complete,
                stored.uploaded_at,
            ],
        )

    def mark_complete(self, file_id: str) -> None:
        self._db.execute("UPDATE uploads SET complete = TRUE WHERE id = ?", [file_id])

    def forget(self, file_id: str) -> None:
        self._db.execute("DELETE FROM uploads WHERE id = ?", [file_id])

    def set_description(self, file_id: str, description: Optional[str]) -> None:
        self._db.execute(
            "UPDATE uploads SET description = ? WHERE id = ?", [description, file_id]
        )

    def get_file(self, file_id: str) -> Optional[StoredFile]:
        """Get metadata of a completely stored file."""
        row = self._db.execute(
            f"SELECT {_COLUMNS} FROM uploads WHERE id = ? AND complete", [file_id]
        ).fetchone()
        return _row_to_file(row) if row else None

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def read(self, stored: StoredFile) -> bytes:
        return await asyncio.to_thread(self.backend.read, stored.path)
