"""
Global exception handlers for the sync API.

Every error leaves the API as {"detail": ..., "error_code": ...}, so the
client driver can show `detail` verbatim and branch on `error_code`.

Registration (in main.py):
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from inline_sync.dependencies import HEADER_CALLER_ID
from inline_sync.exceptions import AppException

logger = logging.getLogger(__name__)


def _request_context(request: Request) -> dict:
    context = {"path": request.url.path, "method": request.method}
    # Only header auth mode trusts X-Caller-Id
    settings = getattr(request.app.state, "settings", None)
    if settings is not None and settings.auth_mode == "header":
        context["caller_id"] = request.headers.get(HEADER_CALLER_ID, "")
    return context


def _error_response(status_code: int, detail: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error_code": error_code},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle AppException and subclasses.

    Client errors (unknown job, no cached batch, auth) log at WARNING;
    server errors (retrieval failures, misconfigured jobs) at ERROR.
    """
    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"{exc.error_code}: {exc.message}",
        extra={**_request_context(request), "error": exc.error_code},
    )
    return _error_response(exc.status_code, exc.message, exc.error_code)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for anything the coordinator did not translate.

    Logs the stack trace; the client only sees a generic message.
    """
    logger.exception(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        extra={**_request_context(request), "error": type(exc).__name__},
    )
    return _error_response(500, "Internal server error", "INTERNAL_ERROR")
