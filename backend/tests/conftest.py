"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.config import AppSettings, FileUploadSettings, set_config
from app.db import Database
from app.files.service import FileUploadService
from app.files.stores import FileSystemBackend
from app.livechat.manager import manager
from app.livechat.rooms import RoomRepository
from app.livechat.schemas import SourceType
from app.livechat.visitors import VisitorRepository
from app.main import app

WIDGET_COOKIES = "rc_room_type=l; rc_is_widget=t"


@pytest.fixture(autouse=True)
def livechat_env(tmp_path):
    """Fresh in-memory database, default settings and a temp upload dir per test.

    Yields the upload directory.
    """
    upload_dir = tmp_path / "uploads"
    Database.reset_instance()
    Database.get_instance(db_path=":memory:")
    set_config(AppSettings(file_upload=FileUploadSettings(file_system_path=str(upload_dir))))
    FileUploadService.set_instance(FileUploadService(backend=FileSystemBackend(str(upload_dir))))

    yield upload_dir

    manager.active_connections.clear()
    FileUploadService.reset_instance()
    set_config(None)
    Database.reset_instance()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Not used as a context manager, so the lifespan hook (which opens the
    configured on-disk database) does not run.
    """
    return TestClient(app)


@pytest.fixture
def visitor():
    """A registered visitor with no recorded source channel."""
    return VisitorRepository().register(token="visitor-token-1", name="Alice")


@pytest.fixture
def room(visitor):
    """An open room belonging to ``visitor``."""
    return RoomRepository().create(visitor, SourceType.API)


def update_upload_settings(**changes) -> None:
    """Replace file_upload settings for the current test."""
    set_config(AppSettings(file_upload=FileUploadSettings(**changes)))
