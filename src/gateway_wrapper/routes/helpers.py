"""Shared HTTP utilities for wrapper routes.

Constants and helpers used across route modules: JSON error bodies,
the static wizard/loading pages and JSON body parsing with a size cap.
"""

from __future__ import annotations

__all__ = [
    "STATIC_DIR",
    "error_response",
    "loading_page_response",
    "read_json_body",
    "static_page",
]

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse

from gateway_wrapper.constants import MAX_JSON_BODY_SIZE
from gateway_wrapper.exceptions import SetupValidationError

# Static pages shipped with the package (setup wizard, loading page)
STATIC_DIR = Path(__file__).parent.parent / "web" / "static"

_NO_STORE = {"Cache-Control": "no-cache, no-store, must-revalidate"}


def error_response(
    status_code: int,
    message: str,
    detail: str | None = None,
) -> JSONResponse:
    """Create standardized error response.

    Args:
        status_code: HTTP status code.
        message: Error message for the "error" field.
        detail: Optional additional detail.

    Returns:
        JSONResponse with error structure.
    """
    content: dict[str, Any] = {"error": message}
    if detail:
        content["detail"] = detail
    return JSONResponse(status_code=status_code, content=content)


@lru_cache(maxsize=None)
def static_page(name: str) -> str:
    """Read a bundled HTML page (cached for the process lifetime)."""
    return (STATIC_DIR / name).read_text(encoding="utf-8")


def loading_page_response() -> HTMLResponse:
    """503 page shown while the backend is starting or unreachable."""
    return HTMLResponse(content=static_page("loading.html"), status_code=503, headers=_NO_STORE)


async def read_json_body(request: Request) -> Any:
    """Decode a JSON request body. Empty bodies decode to {}.

    Raises:
        SetupValidationError: Body too large or not valid JSON.
    """
    body = await request.body()
    if len(body) > MAX_JSON_BODY_SIZE:
        raise SetupValidationError("Request body too large")
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SetupValidationError(f"Invalid JSON body: {e}") from e
