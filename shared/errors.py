"""Stable error codes and the JSON error envelope returned by the admin API.

Handlers raise :class:`BusinessError` with a code from :data:`ERROR_MAP`; the
app-level exception handler turns it into ``{"success": false, "error": code,
"message": ...}`` with the mapped HTTP status. Anything else is mapped to the
endpoint's fallback code so raw exception text never reaches the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from fastapi.responses import JSONResponse


Message = Union[str, Callable[[Dict[str, Any]], str]]


@dataclass(frozen=True)
class ErrorInfo:
    status: int
    message: Message


ERROR_MAP: Dict[str, ErrorInfo] = {
    "UNKNOWN_ERROR": ErrorInfo(500, "An unknown error occurred."),
    # auth
    "UNAUTHORIZED": ErrorInfo(401, "Authentication is required."),
    "ADMIN_ACCESS_REQUIRED": ErrorInfo(403, "Administrator access is required."),
    "RATE_LIMIT_EXCEEDED": ErrorInfo(
        429,
        lambda p: f"Too many requests. Retry after {p.get('retry_after', 'a few')} seconds.",
    ),
    # orphan files
    "ORPHAN_FILES_CHECK_FAILED": ErrorInfo(500, "Failed to check orphan files."),
    "ORPHAN_FILES_CLEANUP_FAILED": ErrorInfo(500, "Failed to clean up orphan files."),
    "ORPHAN_REFERENCE_QUERY_FAILED": ErrorInfo(
        500,
        lambda p: f"Failed to load stored file references for {p.get('domain', 'unknown')}.",
    ),
    "BACKGROUND_TASK_ENQUEUE_FAILED": ErrorInfo(503, "Failed to queue the background task."),
    # system logs
    "LOG_CLEANUP_FAILED": ErrorInfo(500, "Failed to clean up expired data."),
    "LOG_FETCH_FAILED": ErrorInfo(500, "Failed to load system logs."),
    "INVALID_CLEANUP_TYPE": ErrorInfo(
        400,
        lambda p: f"Unsupported cleanup type: {p.get('type')}.",
    ),
    "UNSUPPORTED_DELETE_OPERATION": ErrorInfo(
        400,
        lambda p: f"Unsupported delete operation: {p.get('action')}.",
    ),
    "LOG_ID_REQUIRED": ErrorInfo(400, "A log id is required to delete a single log."),
    "LOG_NOT_FOUND": ErrorInfo(404, "The log entry was not found."),
    "LOG_DELETE_FAILED": ErrorInfo(500, "Failed to delete system logs."),
}


class BusinessError(Exception):
    """Error with a stable code from ERROR_MAP."""

    def __init__(self, code: str, params: Optional[Dict[str, Any]] = None):
        self.code = code if code in ERROR_MAP else "UNKNOWN_ERROR"
        self.params = params or {}
        super().__init__(self.code)

    @property
    def status(self) -> int:
        return ERROR_MAP[self.code].status

    @property
    def message(self) -> str:
        return error_message(self.code, self.params)


def error_message(code: str, params: Optional[Dict[str, Any]] = None) -> str:
    info = ERROR_MAP.get(code, ERROR_MAP["UNKNOWN_ERROR"])
    if callable(info.message):
        return info.message(params or {})
    return info.message


def error_response(code: str, params: Optional[Dict[str, Any]] = None, headers=None) -> JSONResponse:
    info = ERROR_MAP.get(code, ERROR_MAP["UNKNOWN_ERROR"])
    return JSONResponse(
        {"success": False, "error": code, "message": error_message(code, params)},
        status_code=info.status,
        headers=headers,
    )
