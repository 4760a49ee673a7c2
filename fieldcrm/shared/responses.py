"""
Standard API response envelope

Success: {"success": true, "data": ..., "version": "v1", "timestamp": ...}
Error:   {"success": false, "error": code, "message": text, "status": code, "version": "v1"}
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..config import API_VERSION

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Domain error rendered as the error envelope by the app exception handler"""

    def __init__(self, error: str, message: str, status: int = 400, details: Optional[dict] = None):
        super().__init__(message)
        self.error = error
        self.message = message
        self.status = status
        self.details = details


def success_response(data: Any = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": True,
            "data": jsonable_encoder(data),
            "version": API_VERSION,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
    )


def error_response(
    error: str, message: str, status_code: int, details: Optional[dict] = None
) -> JSONResponse:
    content = {
        "success": False,
        "error": error,
        "message": message,
        "status": status_code,
        "version": API_VERSION,
    }
    if details:
        content["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=content)


# Error codes used for HTTPException raised by auth, rate limiting and FastAPI itself
HTTP_STATUS_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
    500: "server_error",
    503: "service_unavailable",
}
