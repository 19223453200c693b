"""Livechat Backend Application.

This is the main entry point for the livechat backend service, which serves
the customer-support chat widget.

Modules:
    - livechat: visitors, rooms, message delivery and the upload endpoint
    - files: file storage abstraction (file system / Amazon S3) and downloads
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import get_config
from app.db import Database
from app.files.router import router as files_router
from app.files.service import FileUploadService
from app.livechat.router import router as livechat_router
from app.livechat.upload_router import router as upload_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# botocore.auth logs the full SigV4 canonical request, including
# x-amz-security-token.
for _noisy in (
    "botocore",
    "boto3",
    "urllib3",
    "urllib3.connectionpool",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    Database.get_instance(config.database.path)
    FileUploadService.get_instance()

    if not config.can_upload:
        logger.info("Livechat file uploads are disabled")
    logger.info(
        f"Server running on http://{config.server.host}:{config.server.port}"
    )

    yield  # Application runs here

    # Shutdown
    Database.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Livechat API",
    description="Backend service for the customer-support chat widget",
    version="0.1.0",
    lifespan=lifespan,
)

# Register all routers
app.include_router(livechat_router)
app.include_router(upload_router)
app.include_router(files_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
