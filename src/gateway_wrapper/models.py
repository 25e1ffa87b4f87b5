"""Pydantic models for gateway-wrapper.

This module contains two categories of models:

API Response Models (FrozenModel-based):
- FrozenModel: Base class for immutable models
- HealthzResponse / HealthResponse / SetupHealthResponse: liveness endpoints
- DeviceRecord / DeviceListResponse / DeviceApproveResponse: legacy device API
- CommandOutputResponse: setup endpoints that return captured CLI output

Request Models:
- SetupRunRequest: validated onboarding payload
- DeviceApproveRequest / PairingApproveRequest

Logging Models:
- WrapperSystemEvent: System log entries for the wrapper
"""

from __future__ import annotations

__all__ = [
    # API Response Models
    "CommandOutputResponse",
    "DeviceApproveResponse",
    "DeviceListResponse",
    "DeviceRecord",
    "FrozenModel",
    "HealthResponse",
    "HealthzResponse",
    "SetupHealthResponse",
    # Request Models
    "DeviceApproveRequest",
    "PairingApproveRequest",
    "SetupRunRequest",
    # Logging Models
    "WrapperSystemEvent",
]

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Summary of backend state exposed on liveness endpoints
GatewayHealth = Literal["unconfigured", "starting", "ready"]


# =============================================================================
# API Response Models
# =============================================================================


class FrozenModel(BaseModel):
    """Base class for immutable Pydantic models."""

    model_config = ConfigDict(frozen=True)


class HealthzResponse(FrozenModel):
    """Response model for /healthz.

    Attributes:
        ok: Always True; the wrapper itself is alive.
        gateway: Best-effort backend state.
    """

    ok: bool = True
    gateway: GatewayHealth


class HealthResponse(FrozenModel):
    """Response model for /health (platform health checks)."""

    status: str = "healthy"
    timestamp: str
    gateway: GatewayHealth


class SetupHealthResponse(FrozenModel):
    """Response model for /setup/healthz (wizard diagnostics, ungated).

    Attributes:
        ok: Always True.
        wrapper: Marks the response as coming from the wrapper, not the backend.
        configured: Whether the backend config file exists.
        gateway_running: Whether the backend is ready.
        gateway_starting: Whether a start attempt is in flight.
        gateway_reachable: Whether a live probe got a response.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ok: bool = True
    wrapper: bool = True
    configured: bool
    gateway_running: bool = Field(alias="gatewayRunning")
    gateway_starting: bool = Field(alias="gatewayStarting")
    gateway_reachable: bool = Field(alias="gatewayReachable")


class DeviceRecord(FrozenModel):
    """One device line parsed from `devices list` output.

    Attributes:
        request_id: Hex identifier (at least 12 chars).
        status: "pending" or "approved".
        info: The trimmed source line.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    request_id: str = Field(alias="requestId")
    status: Literal["pending", "approved"]
    info: str


class DeviceListResponse(FrozenModel):
    """Response model for GET /api/devices."""

    success: bool
    devices: list[DeviceRecord]
    error: Optional[str] = None


class DeviceApproveResponse(FrozenModel):
    """Response model for POST /api/devices/approve."""

    success: bool
    message: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None


class CommandOutputResponse(FrozenModel):
    """Result of a setup action backed by one or more CLI invocations.

    Attributes:
        ok: Whether every required command succeeded.
        output: Combined stdout/stderr for diagnostic display.
    """

    ok: bool
    output: str


# =============================================================================
# Request Models
# =============================================================================


class SetupRunRequest(BaseModel):
    """Onboarding payload posted by the setup wizard.

    Field-level checks (allowed flows, string types) run in
    setup_flow.validate_setup_payload() first so the wizard gets a
    readable message; this model only gives typed access.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    flow: Optional[str] = "quickstart"
    auth_choice: Optional[str] = Field(default=None, alias="authChoice")
    auth_secret: Optional[str] = Field(default=None, alias="authSecret")
    model: Optional[str] = None
    telegram_token: Optional[str] = Field(default=None, alias="telegramToken")
    discord_token: Optional[str] = Field(default=None, alias="discordToken")


class DeviceApproveRequest(BaseModel):
    """Body for POST /api/devices/approve."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    request_id: Optional[str] = Field(default=None, alias="requestId")


class PairingApproveRequest(BaseModel):
    """Body for POST /setup/api/pairing/approve."""

    model_config = ConfigDict(extra="ignore")

    # the wizard may send numeric codes; routes stringify
    channel: Optional[Any] = None
    code: Optional[Any] = None


# =============================================================================
# Logging Models
# =============================================================================


class WrapperSystemEvent(BaseModel):
    """One wrapper system log entry (<log_dir>/system.jsonl).

    Used for INFO, WARNING, ERROR, and CRITICAL events about backend
    lifecycle, forwarding and the setup flow.

    Note: 'time' is None when created, populated by JsonlFormatter during logging.
    """

    # --- core ---
    time: Optional[str] = Field(
        None,
        description="ISO 8601 timestamp (UTC), added by formatter during serialization",
    )
    event: Optional[str] = Field(
        None,
        description="Machine-friendly event name, e.g. 'gateway_started', 'auto_restart_scheduled'",
    )
    message: str = Field(description="Human-readable log message")

    # --- backend process context ---
    pid: Optional[int] = Field(
        None,
        description="Backend process ID",
    )
    exit_code: Optional[int] = Field(
        None,
        description="Backend exit code (negative = killed by signal)",
    )

    # --- request context ---
    path: Optional[str] = Field(
        None,
        description="Request path, e.g. '/setup/api/run'",
    )
    method: Optional[str] = Field(
        None,
        description="HTTP method",
    )
    status_code: Optional[int] = Field(
        None,
        description="HTTP response status code",
    )
    client_ip: Optional[str] = Field(
        None,
        description="Client address (rate limiting, auth failures)",
    )
    duration_ms: Optional[float] = Field(
        None,
        description="Duration in milliseconds",
    )

    # --- error details ---
    error_type: Optional[str] = Field(
        None,
        description="Exception class name, e.g. 'ConnectError'",
    )
    error_message: Optional[str] = Field(
        None,
        description="Short error text from exception",
    )

    # --- additional structured details ---
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional context as key-value pairs",
    )

    model_config = ConfigDict(extra="allow")
