from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    stack: str | None = None,
) -> JSONResponse:
    # The code is kept for the request log; clients only see status + message.
    request.state.error_code = code
    payload: dict[str, Any] = {
        "success": False,
        "message": message,
        "request_id": get_request_id(request),
    }
    if stack is not None:
        payload["stack"] = stack
    return JSONResponse(status_code=status_code, content=payload)
