"""Media type restrictions for uploads.

White and black lists are comma-separated strings taken from settings.
Entries are trimmed and may use a ``major/*`` wildcard. The black list always
wins; an empty (or ``*``) white list allows every type not black-listed.
"""
from typing import List, Optional

from app.config import get_config


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def media_white_list(value: Optional[str]) -> Optional[List[str]]:
    if not value or value.strip() == "*":
        return None
    return _split(value) or None


def media_black_list(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return _split(value) or None


def is_type_on_list(mime_type: str, media_types: List[str]) -> bool:
    if mime_type in media_types:
        return True
    major = mime_type.split("/", 1)[0]
    return f"{major}/*" in media_types


def is_valid_content_type_from_settings(
    mime_type: Optional[str],
    white_list: Optional[str],
    black_list: Optional[str],
) -> bool:
    """Check ``mime_type`` against explicit white/black list settings."""
    blocked = media_black_list(black_list)
    allowed = media_white_list(white_list)

    if not mime_type and blocked:
        return False
    if blocked and is_type_on_list(mime_type, blocked):
        return False
    if not allowed:
        return True
    return bool(mime_type) and is_type_on_list(mime_type, allowed)


def is_valid_content_type(mime_type: Optional[str], custom_white_list: Optional[str] = None) -> bool:
    """Check ``mime_type`` against the configured upload policy."""
    settings = get_config().file_upload
    return is_valid_content_type_from_settings(
        mime_type,
        custom_white_list or settings.media_type_white_list,
        settings.media_type_black_list,
    )
