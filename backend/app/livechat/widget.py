"""Source-channel inference for livechat requests."""
from typing import Mapping

from starlette.requests import cookie_parser

from .schemas import SourceType


def is_widget(headers: Mapping[str, str]) -> bool:
    """Return True when the request was made by the embedded widget.

    The widget marks its requests with two cookies: ``rc_room_type=l`` and
    ``rc_is_widget=t``. Anything else is treated as a direct API call.
    Malformed cookies elsewhere in the header do not hide the two markers.
    """
    cookies = cookie_parser(headers.get("cookie") or "")
    return cookies.get("rc_room_type") == "l" and cookies.get("rc_is_widget") == "t"


def get_source_type(headers: Mapping[str, str]) -> SourceType:
    return SourceType.WIDGET if is_widget(headers) else SourceType.API
