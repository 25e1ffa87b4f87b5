"""Backend supervision: token store, supervisor, prober, admission, setup flow."""

from gateway_wrapper.gateway.admission import (
    Admission,
    AdmissionAction,
    AdmissionGate,
    RequestClass,
    classify_request,
)
from gateway_wrapper.gateway.backend_cli import BackendCli, CommandResult
from gateway_wrapper.gateway.devices import parse_devices_output
from gateway_wrapper.gateway.prober import ReadinessProber
from gateway_wrapper.gateway.setup_flow import SetupOrchestrator, validate_setup_payload
from gateway_wrapper.gateway.supervisor import (
    BackendProcess,
    GatewaySupervisor,
    SupervisorState,
    spawn_backend,
)
from gateway_wrapper.gateway.token_store import GatewayTokenStore, resolve_gateway_token

__all__ = [
    "Admission",
    "AdmissionAction",
    "AdmissionGate",
    "BackendCli",
    "BackendProcess",
    "CommandResult",
    "GatewaySupervisor",
    "GatewayTokenStore",
    "ReadinessProber",
    "RequestClass",
    "SetupOrchestrator",
    "SupervisorState",
    "classify_request",
    "parse_devices_output",
    "resolve_gateway_token",
    "spawn_backend",
    "validate_setup_payload",
]
