"""Legacy device-management endpoints.

Kept for clients that predate the backend's own pairing UI. Both
endpoints shell out to the backend CLI; they are not gated.
"""

from __future__ import annotations

__all__ = ["router"]

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from gateway_wrapper.constants import DEVICES_COMMAND_TIMEOUT_SECONDS
from gateway_wrapper.gateway.backend_cli import BackendCli
from gateway_wrapper.gateway.devices import parse_devices_output
from gateway_wrapper.models import DeviceApproveRequest, DeviceApproveResponse, DeviceListResponse

from .helpers import read_json_body

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.get("", response_model=DeviceListResponse)
async def list_devices(request: Request) -> DeviceListResponse | JSONResponse:
    """List pending and approved devices parsed from `devices list`."""
    cli: BackendCli = request.app.state.cli
    result = await cli.run(["devices", "list"], timeout=DEVICES_COMMAND_TIMEOUT_SECONDS)
    devices = parse_devices_output(result.output)

    if not result.ok and not devices:
        response = DeviceListResponse(success=False, devices=[], error=result.output.strip() or f"exit {result.code}")
        return JSONResponse(status_code=500, content=response.model_dump(by_alias=True))

    return DeviceListResponse(success=True, devices=devices)


@router.post("/approve", response_model=DeviceApproveResponse, response_model_exclude_none=True)
async def approve_device(request: Request) -> DeviceApproveResponse | JSONResponse:
    payload = await read_json_body(request)
    try:
        body = DeviceApproveRequest.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError:
        body = DeviceApproveRequest()
    if not body.request_id:
        response = DeviceApproveResponse(success=False, error="Missing requestId")
        return JSONResponse(status_code=400, content=response.model_dump(exclude_none=True))

    cli: BackendCli = request.app.state.cli
    result = await cli.run(["devices", "approve", body.request_id], timeout=DEVICES_COMMAND_TIMEOUT_SECONDS)
    return DeviceApproveResponse(
        success=result.ok,
        message=f"Device {body.request_id} approved" if result.ok else f"Device {body.request_id} approval failed",
        output=result.output,
    )
