"""Exception handlers converting wrapper errors into HTTP responses."""

from __future__ import annotations

__all__ = [
    "auth_error_handler",
    "setup_validation_error_handler",
    "upstream_unavailable_handler",
]

import logging

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from gateway_wrapper.exceptions import AuthError, SetupValidationError, UpstreamUnavailableError
from gateway_wrapper.log_config import log_event
from gateway_wrapper.models import WrapperSystemEvent

from .helpers import loading_page_response


async def auth_error_handler(request: Request, exc: AuthError) -> PlainTextResponse:
    """Setup gate rejections are plain text, with the challenge header on 401."""
    return PlainTextResponse(exc.message, status_code=exc.status_code, headers=exc.headers)


async def setup_validation_error_handler(request: Request, exc: SetupValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"ok": False, "output": str(exc)})


async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError) -> HTMLResponse:
    """Backend refused or dropped the connection before any bytes were sent."""
    log_event(
        logging.WARNING,
        WrapperSystemEvent(
            event="upstream_unavailable",
            message=f"Gateway unavailable for {request.method} {request.url.path}: {exc}",
            method=request.method,
            path=request.url.path,
            status_code=503,
            details={"target": exc.target} if exc.target else None,
        ),
    )
    return loading_page_response()
