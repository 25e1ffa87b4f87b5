"""Wrapper routes package - HTTP surface of the supervising proxy.

This package splits the routes into focused modules:
- helpers: Shared HTTP utilities (error bodies, static pages, JSON bodies)
- errors: Exception handlers for wrapper errors
- health: Liveness endpoints (never gated)
- setup: Setup wizard (behind the setup auth gate)
- devices: Legacy device-management API
- forwarding: Catch-all HTTP and WebSocket forwarding to the backend
"""

from __future__ import annotations

__all__ = [
    "create_wrapper_app",
    # Used by tests
    "error_response",
]

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import httpx
from fastapi import FastAPI

from gateway_wrapper import __version__
from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.constants import PROXY_TIMEOUT_SECONDS, UI_ENTRY_PATH
from gateway_wrapper.exceptions import AuthError, SetupValidationError, UpstreamUnavailableError
from gateway_wrapper.gateway.admission import AdmissionGate
from gateway_wrapper.gateway.backend_cli import BackendCli
from gateway_wrapper.gateway.setup_flow import SetupOrchestrator
from gateway_wrapper.security.rate_limiter import SetupRateLimiter, run_rate_limit_sweeper

from .errors import auth_error_handler, setup_validation_error_handler, upstream_unavailable_handler
from .helpers import error_response

# Import routers
from . import devices
from . import forwarding
from . import health
from . import setup

if TYPE_CHECKING:
    from gateway_wrapper.gateway.supervisor import GatewaySupervisor


def create_wrapper_app(
    config: WrapperConfig,
    token: str,
    supervisor: "GatewaySupervisor",
    *,
    cli: BackendCli | None = None,
    orchestrator: SetupOrchestrator | None = None,
    rate_limiter: SetupRateLimiter | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI application for the wrapper.

    Args:
        config: Wrapper configuration.
        token: Resolved gateway token.
        supervisor: Backend supervisor (shared with the daemon).
        cli: Backend CLI runner. Built from config/token if omitted.
        orchestrator: Setup orchestrator. Built if omitted.
        rate_limiter: Setup rate limiter. Built if omitted.
        http_client: Client for forwarded requests. Built if omitted.

    Returns:
        Configured FastAPI application.
    """
    cli = cli or BackendCli(config, token)
    rate_limiter = rate_limiter or SetupRateLimiter()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(run_rate_limit_sweeper(rate_limiter))
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            await app.state.http_client.aclose()

    app = FastAPI(
        title="Gateway Wrapper",
        description="Supervising reverse proxy for the OpenClaw gateway",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.gateway_token = token
    app.state.supervisor = supervisor
    app.state.cli = cli
    app.state.orchestrator = orchestrator or SetupOrchestrator(config, token, cli, supervisor)
    app.state.rate_limiter = rate_limiter
    app.state.admission = AdmissionGate(supervisor, token, ui_path=UI_ENTRY_PATH)
    app.state.http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(PROXY_TIMEOUT_SECONDS))

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(SetupValidationError, setup_validation_error_handler)
    app.add_exception_handler(UpstreamUnavailableError, upstream_unavailable_handler)

    # Order matters: local routes before the forwarding catch-all.
    # health first so /setup/healthz is not caught by the gated setup router.
    app.include_router(health.router)
    app.include_router(setup.router)
    app.include_router(devices.router)
    app.include_router(forwarding.router)

    return app
