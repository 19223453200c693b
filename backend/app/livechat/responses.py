"""REST response envelope for the livechat API.

Every endpoint answers with a JSON object carrying a ``success`` flag:

    success(result)        200  {"success": true, **result}
    failure({...})         400  {**result, "success": false}
    failure("message")     400  {"success": false, "error": "message"}
    unauthorized()         401  {"success": false, "error": "unauthorized"}
"""
from typing import Any, Dict, Optional, Union

from fastapi.responses import JSONResponse


def success(result: Optional[Dict[str, Any]] = None) -> JSONResponse:
    body = {"success": True}
    if result:
        body.update(result)
    return JSONResponse(status_code=200, content=body)


def failure(result: Union[str, Dict[str, Any]]) -> JSONResponse:
    if isinstance(result, dict):
        body = dict(result)
        body["success"] = False
    else:
        body = {"success": False, "error": result}
    return JSONResponse(status_code=400, content=body)


def unauthorized(message: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"success": False, "error": message or "unauthorized"},
    )
