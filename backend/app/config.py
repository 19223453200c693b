"""Livechat backend configuration.

Loads settings from two YAML files:
  * livechat.settings.yaml: non-secret configuration
  * livechat.secrets.yaml: secrets (never committed)

The ``livechat`` and ``file_upload`` sections are the feature flags and
upload policy read by the upload endpoint on every request, so changing them
through ``set_config()`` takes effect immediately.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("livechat.settings.yaml")
SECRETS_FILE  = Path("livechat.secrets.yaml")

# 100 MB, used when file_upload.max_file_size is 0 or unset
DEFAULT_MAX_FILE_SIZE = 104857600


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class AwsSecrets(BaseModel):
    access_key_id:     Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token:     Optional[str] = None


class Secrets(BaseModel):
    aws: AwsSecrets = Field(default_factory=AwsSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "info"


class DatabaseSettings(BaseModel):
    path: str = "livechat.duckdb"


class LivechatSettings(BaseModel):
    """Livechat-specific switches."""
    file_upload_enabled: bool = True


class S3Settings(BaseModel):
    bucket: str = ""
    region: str = "us-east-1"


class FileUploadSettings(BaseModel):
    """Global upload policy shared by every upload surface.

    ``max_file_size`` is in bytes; ``-1`` disables the size check and ``0``
    falls back to ``DEFAULT_MAX_FILE_SIZE``. The media type lists are
    comma-separated and accept ``major/*`` wildcards.
    """
    enabled:               bool = True
    max_file_size:         int  = DEFAULT_MAX_FILE_SIZE
    media_type_white_list: str  = ""
    media_type_black_list: str  = "image/svg+xml"
    protect_files:         bool = True
    storage_type:          Literal["FileSystem", "AmazonS3"] = "FileSystem"
    file_system_path:      str  = "./uploads"
    s3:                    S3Settings = Field(default_factory=S3Settings)

    @field_validator("max_file_size")
    @classmethod
    def _check_max_file_size(cls, value: int) -> int:
        if value < -1:
            raise ValueError("max_file_size must be -1 (unlimited), 0 (default) or positive")
        return value

    @property
    def effective_max_file_size(self) -> int:
        return self.max_file_size or DEFAULT_MAX_FILE_SIZE


class AppSettings(BaseModel):
    server:      ServerSettings     = Field(default_factory=ServerSettings)
    logging:     LoggingSettings    = Field(default_factory=LoggingSettings)
    database:    DatabaseSettings   = Field(default_factory=DatabaseSettings)
    livechat:    LivechatSettings   = Field(default_factory=LivechatSettings)
    file_upload: FileUploadSettings = Field(default_factory=FileUploadSettings)
    secrets:     Secrets            = Field(default_factory=Secrets)

    @property
    def can_upload(self) -> bool:
        """Livechat uploads need both the livechat and the global switch."""
        return self.livechat.file_upload_enabled and self.file_upload.enabled


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_path or SETTINGS_FILE)
    secrets_data  = _load_yaml(secrets_path or SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, storage=%s, uploads.enabled=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.file_upload.storage_type,
        app_settings.can_upload,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace the cached settings. ``None`` forces a reload on next access."""
    global _config
    _config = config
