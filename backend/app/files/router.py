"""FastAPI router for stored file downloads."""
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from app.config import get_config

from .service import FileUploadService
from .stores import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/file-upload", tags=["files"])


def _request_token(request: Request) -> Optional[str]:
    """Visitor token from header, ``rc_token`` cookie or ``token`` query parameter."""
    return (
        request.headers.get("x-visitor-token")
        or request.cookies.get("rc_token")
        or request.query_params.get("token")
    )


@router.get("/{file_id}/{name}")
async def download_file(request: Request, file_id: str, name: str):
    """Download a stored file.

    Args:
        file_id: The file ID to download
        name: Filename segment of the URL (informational)

    Raises:
        HTTPException 403: If files are protected and the token does not match the uploader
        HTTPException 404: If file not found
    """
    service = FileUploadService.get_instance()

    stored = service.get_file(file_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="File not found")

    if get_config().file_upload.protect_files:
        token = _request_token(request)
        if not token or token != stored.visitor_token:
            logger.warning(f"Denied download of file {file_id}")
            raise HTTPException(status_code=403, detail="Forbidden")

    try:
        content = await service.read(stored)
    except StorageError as e:
        logger.error(f"Failed to read file {file_id}: {e}")
        raise HTTPException(status_code=404, detail="File not found in storage")

    return Response(
        content=content,
        media_type=stored.type or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(stored.name, safe='')}"},
    )
