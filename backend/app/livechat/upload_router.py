"""Livechat file upload endpoint.

Endpoint:
    POST /api/v1/livechat/upload/{rid}

The visitor is identified by the ``x-visitor-token`` header. The body is
multipart/form-data with the file in the ``file`` field; an optional
``description`` field is attached to the stored file and any other fields are
passed on as message data (msg, alias, avatar, emoji, groupable).

Every check short-circuits with a REST failure envelope:
    - missing token, unknown visitor or no matching open room -> 401 unauthorized
    - uploads switched off                                     -> error-file-upload-disabled
    - disallowed MIME type                                     -> error-type-not-allowed
    - file over file_upload.max_file_size                      -> error-size-not-allowed
    - storage backend failure                                  -> Invalid file
"""
import logging

from fastapi import APIRouter, Request

from app.config import get_config
from app.files.form_data import UploadFormError, get_upload_form_data
from app.files.restrictions import is_valid_content_type
from app.files.schemas import UploadDetails
from app.files.service import FileUploadService
from app.files.sizes import format_file_size

from . import responses
from .messages import MessageDataError, MessageService
from .rooms import RoomRepository
from .schemas import VisitorSource
from .visitors import VisitorRepository
from .widget import get_source_type

logger = logging.getLogger(__name__)

router = APIRouter(tags=["livechat"])

UPLOADS_STORE = "Uploads"


@router.post("/api/v1/livechat/upload/{rid}")
async def upload(request: Request, rid: str):
    """Upload a file to a livechat room on behalf of a visitor.

    Args:
        rid: Room to post the file into.

    Returns:
        The delivered file message wrapped in a success envelope.
    """
    visitor_token = request.headers.get("x-visitor-token")
    if not visitor_token:
        return responses.unauthorized()

    source_type = get_source_type(request.headers)

    config = get_config()
    if not config.can_upload:
        return responses.failure({"reason": "error-file-upload-disabled"})

    visitors = VisitorRepository()
    visitor = visitors.get_by_token_and_source(visitor_token, source_type)
    if visitor is None:
        return responses.unauthorized()

    room = RoomRepository().find_one_open_by_room_id_and_visitor_token(rid, visitor_token)
    if room is None:
        return responses.unauthorized()

    max_file_size = config.file_upload.effective_max_file_size

    try:
        form = await get_upload_form_data(request, field_name="file", size_limit=max_file_size)
    except UploadFormError as e:
        return responses.failure(str(e))

    if not is_valid_content_type(form.mimetype):
        return responses.failure({"reason": "error-type-not-allowed"})

    size = len(form.file_buffer)

    # -1 means there is no limit
    if max_file_size > -1 and size > max_file_size:
        return responses.failure({
            "reason": "error-size-not-allowed",
            "sizeAllowed": format_file_size(max_file_size),
        })

    files = FileUploadService.get_instance()
    details = UploadDetails(
        name=form.filename,
        size=size,
        type=form.mimetype,
        rid=rid,
        visitor_token=visitor_token,
    )
    uploaded_file = await files.get_store(UPLOADS_STORE).insert(details, form.file_buffer)
    if uploaded_file is None:
        return responses.failure("Invalid file")

    if visitor.source is None:
        visitors.set_source_by_id(visitor.id, VisitorSource(type=source_type))

    fields = dict(form.fields)
    uploaded_file.description = fields.pop("description", None)
    if uploaded_file.description is not None:
        files.set_description(uploaded_file.id, uploaded_file.description)

    logger.info(f"Visitor {visitor.username} uploaded {uploaded_file.name} ({size} bytes) to room {rid}")

    try:
        message = await MessageService().send_file_message(
            room_id=rid,
            visitor_token=visitor_token,
            file=uploaded_file,
            msg_data=fields,
        )
    except MessageDataError as e:
        logger.warning(f"Rejected message data for upload to room {rid}: {e}")
        return responses.failure("error-invalid-message-data")

    if message is None:
        return responses.failure("error-invalid-room")

    return responses.success(message.to_response())
