"""Application-wide constants for gateway-wrapper.

Constants that define wrapper behavior.
For settings resolved per deployment (ports, directories, secrets), see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Environment variable names
    "ENV_CONFIG_PATH",
    "ENV_GATEWAY_TOKEN",
    "ENV_INTERNAL_HOST",
    "ENV_INTERNAL_PORT",
    "ENV_LOG_DIR",
    "ENV_NODE",
    "ENV_ENTRY",
    "ENV_PORT",
    "ENV_SETUP_PASSWORD",
    "ENV_STATE_DIR",
    "ENV_WORKSPACE_DIR",
    # Defaults
    "DEFAULT_PORT",
    "DEFAULT_STATE_DIR",
    "DEFAULT_WORKSPACE_DIR",
    "DEFAULT_INTERNAL_HOST",
    "DEFAULT_INTERNAL_PORT",
    "DEFAULT_BACKEND_ENTRY",
    "DEFAULT_BACKEND_NODE",
    "CONFIG_FILENAME",
    "TOKEN_FILENAME",
    "TOKEN_BYTES",
    "TOKEN_LOG_PREFIX_CHARS",
    "STALE_LOCK_PATHS",
    # Supervisor timing
    "AUTO_RESTART_DELAY_SECONDS",
    "TERMINATE_GRACE_SECONDS",
    "RESTART_SETTLE_SECONDS",
    "SHUTDOWN_GRACE_SECONDS",
    # Readiness probe
    "PROBE_INTERVAL_SECONDS",
    "PROBE_ATTEMPT_TIMEOUT_SECONDS",
    "PROBE_MAX_WAIT_SECONDS",
    "PROBE_DIAGNOSTIC_TIMEOUT_SECONDS",
    # Forwarding
    "PROXY_TIMEOUT_SECONDS",
    "MAX_JSON_BODY_SIZE",
    # Routing
    "HEALTH_PATHS",
    "SETUP_PREFIX",
    "DEVICES_PREFIX",
    "UI_ENTRY_PATH",
    # Setup gate
    "SETUP_RATE_WINDOW_SECONDS",
    "SETUP_RATE_MAX_ATTEMPTS",
    "SETUP_RATE_SWEEP_INTERVAL_SECONDS",
    "SETUP_AUTH_REALM",
    # Backend CLI
    "DEVICES_COMMAND_TIMEOUT_SECONDS",
    "COMMAND_NOT_FOUND_EXIT_CODE",
    "COMMAND_TIMEOUT_EXIT_CODE",
    # Daemon
    "API_SERVER_SHUTDOWN_TIMEOUT_SECONDS",
]

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for logger names and log directories
APP_NAME: str = "gateway-wrapper"

# ============================================================================
# Environment Variables
# ============================================================================

# Names match what the backend and the hosting platform already use.
ENV_PORT: str = "PORT"
ENV_STATE_DIR: str = "OPENCLAW_STATE_DIR"
ENV_WORKSPACE_DIR: str = "OPENCLAW_WORKSPACE_DIR"
ENV_SETUP_PASSWORD: str = "SETUP_PASSWORD"
ENV_GATEWAY_TOKEN: str = "OPENCLAW_GATEWAY_TOKEN"
ENV_INTERNAL_PORT: str = "INTERNAL_GATEWAY_PORT"
ENV_INTERNAL_HOST: str = "INTERNAL_GATEWAY_HOST"
ENV_ENTRY: str = "OPENCLAW_ENTRY"
ENV_NODE: str = "OPENCLAW_NODE"
ENV_CONFIG_PATH: str = "OPENCLAW_CONFIG_PATH"
ENV_LOG_DIR: str = "WRAPPER_LOG_DIR"

# ============================================================================
# Deployment Defaults
# ============================================================================

DEFAULT_PORT: int = 8080
DEFAULT_STATE_DIR: str = "/data/.openclaw"
DEFAULT_WORKSPACE_DIR: str = "/data/workspace"

# The backend only ever binds to loopback
DEFAULT_INTERNAL_HOST: str = "127.0.0.1"
DEFAULT_INTERNAL_PORT: int = 18789

DEFAULT_BACKEND_ENTRY: str = "/openclaw/dist/entry.js"
DEFAULT_BACKEND_NODE: str = "node"

# Existence of this file under the state dir is the "configured" signal
CONFIG_FILENAME: str = "openclaw.json"

# ============================================================================
# Gateway Token
# ============================================================================

TOKEN_FILENAME: str = "gateway.token"

# 32 bytes = 64 hex chars
TOKEN_BYTES: int = 32

# Only this many characters of the token ever reach the logs
TOKEN_LOG_PREFIX_CHARS: int = 12

# Lock files left behind by a crashed backend. Removed before every start.
# "{state_dir}" is substituted at runtime.
STALE_LOCK_PATHS: tuple[str, ...] = (
    "{state_dir}/gateway.lock",
    "/tmp/openclaw-gateway.lock",
)

# ============================================================================
# Supervisor Timing
# ============================================================================

# Delay between an unexpected backend exit and the auto-restart attempt
AUTO_RESTART_DELAY_SECONDS: float = 2.0

# SIGTERM -> SIGKILL escalation bound for restart()
TERMINATE_GRACE_SECONDS: float = 1.0

# Pause between killing the old backend and spawning the new one
RESTART_SETTLE_SECONDS: float = 0.5

# SIGTERM -> SIGKILL escalation bound during wrapper shutdown
SHUTDOWN_GRACE_SECONDS: float = 2.0

# ============================================================================
# Readiness Probe
# ============================================================================

PROBE_INTERVAL_SECONDS: float = 0.5
PROBE_ATTEMPT_TIMEOUT_SECONDS: float = 2.0
PROBE_MAX_WAIT_SECONDS: float = 20.0

# Single-shot reachability check used by /setup/healthz
PROBE_DIAGNOSTIC_TIMEOUT_SECONDS: float = 3.0

# ============================================================================
# Forwarding
# ============================================================================

# Upstream connect/read timeout for proxied requests
PROXY_TIMEOUT_SECONDS: float = 120.0

# Max JSON body accepted by locally served endpoints (1MB)
MAX_JSON_BODY_SIZE: int = 1024 * 1024

# ============================================================================
# Routing
# ============================================================================

HEALTH_PATHS: frozenset[str] = frozenset({"/health", "/healthz", "/setup/healthz"})
SETUP_PREFIX: str = "/setup"
DEVICES_PREFIX: str = "/api/devices"

# Browser entry point for the backend control UI (token appended on redirect)
UI_ENTRY_PATH: str = "/openclaw"

# ============================================================================
# Setup Gate
# ============================================================================

SETUP_RATE_WINDOW_SECONDS: float = 60.0
SETUP_RATE_MAX_ATTEMPTS: int = 50
SETUP_RATE_SWEEP_INTERVAL_SECONDS: float = 60.0
SETUP_AUTH_REALM: str = "OpenClaw Setup"

# ============================================================================
# Backend CLI
# ============================================================================

DEVICES_COMMAND_TIMEOUT_SECONDS: float = 10.0

# Shell conventions for "could not run" and "timed out"
COMMAND_NOT_FOUND_EXIT_CODE: int = 127
COMMAND_TIMEOUT_EXIT_CODE: int = 124

# ============================================================================
# Daemon
# ============================================================================

API_SERVER_SHUTDOWN_TIMEOUT_SECONDS: float = 10.0
