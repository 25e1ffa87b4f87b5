"""Setup wizard endpoints.

Every route here sits behind require_setup_auth. The wizard page is
static HTML; the API endpoints drive SetupOrchestrator.
"""

from __future__ import annotations

__all__ = ["router"]

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from gateway_wrapper.constants import APP_NAME
from gateway_wrapper.exceptions import SetupValidationError
from gateway_wrapper.gateway.setup_flow import SetupOrchestrator
from gateway_wrapper.models import PairingApproveRequest
from gateway_wrapper.security.setup_auth import require_setup_auth

from .helpers import read_json_body, static_page

_logger = logging.getLogger(f"{APP_NAME}.routes.setup")

router = APIRouter(prefix="/setup", tags=["setup"], dependencies=[Depends(require_setup_auth)])


def _orchestrator(request: Request) -> SetupOrchestrator:
    return request.app.state.orchestrator


@router.get("", response_class=HTMLResponse)
async def setup_page() -> HTMLResponse:
    """Serve the setup wizard."""
    return HTMLResponse(content=static_page("setup.html"))


@router.get("/api/status")
async def setup_status(request: Request) -> dict[str, Any]:
    return await _orchestrator(request).status()


@router.post("/api/run")
async def setup_run(request: Request) -> JSONResponse:
    """Run onboarding. 200 on success, 500 with the command transcript otherwise."""
    payload = await read_json_body(request)
    try:
        result = await _orchestrator(request).run(payload)
    except SetupValidationError:
        raise
    except Exception as e:
        _logger.error(
            {
                "event": "setup_run_failed",
                "message": f"Setup run failed: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
            }
        )
        return JSONResponse(status_code=500, content={"ok": False, "output": f"Internal error: {e}"})

    return JSONResponse(status_code=200 if result.ok else 500, content=result.model_dump())


@router.get("/api/debug")
async def setup_debug(request: Request) -> dict[str, Any]:
    return await _orchestrator(request).debug()


@router.post("/api/pairing/approve")
async def approve_pairing(request: Request) -> JSONResponse:
    payload = await read_json_body(request)
    body = PairingApproveRequest.model_validate(payload if isinstance(payload, dict) else {})
    if not body.channel or not body.code:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Missing channel or code"})

    result = await _orchestrator(request).approve_pairing(str(body.channel), str(body.code))
    return JSONResponse(status_code=200 if result.ok else 500, content=result.model_dump())


@router.post("/api/reset", response_class=PlainTextResponse)
async def setup_reset(request: Request) -> PlainTextResponse:
    result = _orchestrator(request).reset()
    return PlainTextResponse(result.output, status_code=200 if result.ok else 500)


@router.post("/api/doctor")
async def setup_doctor(request: Request) -> JSONResponse:
    result = await _orchestrator(request).doctor()
    return JSONResponse(status_code=200 if result.ok else 500, content=result.model_dump())
