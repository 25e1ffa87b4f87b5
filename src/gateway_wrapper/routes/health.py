"""Liveness endpoints. Served locally, never gated, never proxied."""

from __future__ import annotations

__all__ = ["gateway_health", "router"]

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from gateway_wrapper.gateway.supervisor import GatewaySupervisor
from gateway_wrapper.models import (
    GatewayHealth,
    HealthResponse,
    HealthzResponse,
    SetupHealthResponse,
)

router = APIRouter(tags=["health"])


def gateway_health(supervisor: GatewaySupervisor) -> GatewayHealth:
    """Collapse supervisor state into unconfigured / starting / ready."""
    if not supervisor.is_configured():
        return "unconfigured"
    return "ready" if supervisor.is_ready else "starting"


@router.get("/healthz", response_model=HealthzResponse)
async def healthz(request: Request) -> HealthzResponse:
    return HealthzResponse(gateway=gateway_health(request.app.state.supervisor))


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Platform health check."""
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return HealthResponse(timestamp=timestamp, gateway=gateway_health(request.app.state.supervisor))


@router.get("/setup/healthz", response_model=SetupHealthResponse, response_model_by_alias=True)
async def setup_healthz(request: Request) -> SetupHealthResponse:
    """Wizard diagnostics, including a live reachability probe when running."""
    supervisor: GatewaySupervisor = request.app.state.supervisor
    running = supervisor.is_ready
    reachable = await supervisor.prober.probe_once() if running else False
    return SetupHealthResponse(
        configured=supervisor.is_configured(),
        gateway_running=running,
        gateway_starting=supervisor.is_starting,
        gateway_reachable=reachable,
    )
