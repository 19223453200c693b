"""Multipart form parsing for upload endpoints."""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from fastapi import Request
from starlette.datastructures import UploadFile

logger = logging.getLogger(__name__)


class UploadFormError(Exception):
    """The request body did not contain a usable file part."""


@dataclass
class UploadFormData:
    fields: Dict[str, str] = field(default_factory=dict)
    file_buffer: bytes = b""
    filename: str = ""
    mimetype: str = ""


def _base_name(filename: Optional[str]) -> str:
    """Drop any client-side directory part, POSIX or Windows style."""
    return (filename or "").replace("\\", "/").rsplit("/", 1)[-1]


async def get_upload_form_data(
    request: Request,
    field_name: str = "file",
    size_limit: int = -1,
) -> UploadFormData:
    """Parse a multipart body into the file part and the remaining fields.

    When ``size_limit`` is not -1 at most ``size_limit + 1`` bytes of the file
    are kept, which is enough for callers to tell that the limit was exceeded.

    Args:
        request: Incoming request with a multipart/form-data body.
        field_name: Name of the form field holding the file.
        size_limit: Maximum number of bytes the caller accepts, -1 for no limit.

    Raises:
        UploadFormError: If the body is not multipart or the file part is missing.
    """
    content_type = request.headers.get("content-type", "").lower()
    if not content_type.startswith("multipart/form-data"):
        raise UploadFormError("Request is not multipart/form-data")

    form = await request.form()
    try:
        fields: Dict[str, str] = {}
        upload = None
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == field_name and upload is None:
                    upload = value
                continue
            fields[key] = value

        if upload is None:
            raise UploadFormError("No file uploaded")

        if size_limit > -1:
            buffer = await upload.read(size_limit + 1)
        else:
            buffer = await upload.read()

        return UploadFormData(
            fields=fields,
            file_buffer=buffer,
            filename=_base_name(upload.filename),
            mimetype=upload.content_type or "",
        )
    finally:
        await form.close()
