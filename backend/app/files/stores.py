"""Storage backends for uploaded files.

A backend only moves bytes; naming, metadata and access control live in
``FileUploadService``. Backend methods are blocking and are called through
``asyncio.to_thread`` by the service.

Backends:
    - FileSystemBackend: ``<root>/<relative path>`` on local disk
    - S3Backend: objects in a single bucket, keyed by the relative path
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A backend failed to read or write an object."""


class FileStoreBackend(ABC):
    """Interface every storage backend implements.

    ``path`` is always a relative, slash separated location such as
    ``Uploads/<rid>/<file id>``.
    """

    name: str = "abstract"

    @abstractmethod
    def write(self, path: str, content: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    def read(self, path: str) -> bytes:
        ...


class FileSystemBackend(FileStoreBackend):
    """Stores files below a root directory on local disk."""

    name = "FileSystem"

    def __init__(self, root: str) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root.resolve() not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    def write(self, path: str, content: bytes, content_type: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            raise StorageError(f"Failed to write {target}: {e}") from e
        logger.info(f"Saved file: {target} ({len(content)} bytes)")

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {target}: {e}") from e


class S3Backend(FileStoreBackend):
    """Stores files as objects in an S3 bucket."""

    name = "AmazonS3"

    def __init__(
        self,
        bucket: str,
        region_name: str = "us-east-1",
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        client=None,
    ) -> None:
        if not bucket:
            raise ValueError("file_upload.s3.bucket must be set for the AmazonS3 storage type")
        self._bucket = bucket

        if client is not None:
            self._client = client
        elif aws_access_key_id and aws_secret_access_key:
            # Explicit credentials (local development)
            self._client = boto3.client(
                "s3",
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
                aws_session_token=aws_session_token,
                region_name=region_name,
            )
        else:
            # Default credential chain (instance role, env vars, ~/.aws)
            self._client = boto3.client("s3", region_name=region_name)

    def write(self, path: str, content: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=path,
                Body=content,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload s3://{self._bucket}/{path}: {e}") from e
        logger.info(f"Uploaded s3://{self._bucket}/{path} ({len(content)} bytes)")

    def read(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=path)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download s3://{self._bucket}/{path}: {e}") from e
