"""Request classification and admission policy.

Every inbound request is classified by path:

- HEALTH:  /health, /healthz, /setup/healthz (served locally, never gated)
- SETUP:   /setup and /setup/... (served locally behind the setup auth gate)
- DEVICES: /api/devices and /api/devices/... (served locally via the backend CLI)
- GENERIC: everything else (forwarded once the backend is ready)

The local classes have their own routes. AdmissionGate decides what the
catch-all forwarding route does with a request; a local-class path that
reaches it (unknown sub-path, wrong method) is never forwarded.
"""

from __future__ import annotations

__all__ = [
    "Admission",
    "AdmissionAction",
    "AdmissionGate",
    "RequestClass",
    "classify_request",
]

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import quote

from gateway_wrapper.constants import (
    APP_NAME,
    DEVICES_PREFIX,
    HEALTH_PATHS,
    SETUP_PREFIX,
    UI_ENTRY_PATH,
)
from gateway_wrapper.exceptions import NotConfiguredError, WrapperError

if TYPE_CHECKING:
    from gateway_wrapper.gateway.supervisor import GatewaySupervisor

_logger = logging.getLogger(f"{APP_NAME}.admission")


class RequestClass(str, Enum):
    HEALTH = "health"
    SETUP = "setup"
    DEVICES = "devices"
    GENERIC = "generic"


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def classify_request(path: str) -> RequestClass:
    """Classify a request path.

    Args:
        path: URL path without query string.

    Returns:
        The request class.
    """
    if path in HEALTH_PATHS:
        return RequestClass.HEALTH
    if _under(path, SETUP_PREFIX):
        return RequestClass.SETUP
    if _under(path, DEVICES_PREFIX):
        return RequestClass.DEVICES
    return RequestClass.GENERIC


class AdmissionAction(str, Enum):
    FORWARD = "forward"
    REDIRECT = "redirect"
    UNAVAILABLE = "unavailable"
    LOCAL_ONLY = "local_only"


@dataclass(frozen=True, slots=True)
class Admission:
    """Outcome of the admission check.

    Attributes:
        action: What to do with the request.
        location: Redirect target (REDIRECT only).
        reason: Short machine-friendly reason, for logs.
    """

    action: AdmissionAction
    location: str | None = None
    reason: str | None = None


_FORWARD = Admission(AdmissionAction.FORWARD)
_LOCAL_ONLY = Admission(AdmissionAction.LOCAL_ONLY, reason="local_path")


class AdmissionGate:
    """Decides whether a generic request may reach the backend.

    Args:
        supervisor: Backend supervisor (consulted and, if needed, started).
        token: Gateway token, appended to the UI entry redirect.
        ui_path: Browser entry path of the backend control UI.
        setup_path: Where unconfigured instances are redirected.
    """

    def __init__(
        self,
        supervisor: GatewaySupervisor,
        token: str,
        *,
        ui_path: str = UI_ENTRY_PATH,
        setup_path: str = SETUP_PREFIX,
    ) -> None:
        self._supervisor = supervisor
        self._token = token
        self._ui_path = ui_path
        self._setup_path = setup_path

    def _setup_redirect(self) -> Admission:
        return Admission(AdmissionAction.REDIRECT, location=self._setup_path, reason="not_configured")

    async def _require_ready(self) -> Admission | None:
        """Start the backend if needed. Returns a blocking Admission, or None if ready."""
        if not self._supervisor.is_configured():
            return self._setup_redirect()
        if self._supervisor.is_ready:
            return None

        try:
            ready = await self._supervisor.ensure_running()
        except NotConfiguredError:
            return self._setup_redirect()
        except WrapperError as e:
            _logger.warning(
                {
                    "event": "admission_start_failed",
                    "message": f"Gateway not available: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            ready = False

        if not ready or not self._supervisor.is_ready:
            return Admission(AdmissionAction.UNAVAILABLE, reason="gateway_not_ready")
        return None

    async def admit(self, path: str, *, query_has_token: bool = False) -> Admission:
        """Admission decision for a plain HTTP request.

        Args:
            path: URL path.
            query_has_token: Whether the query string already carries `token`.
        """
        if classify_request(path) is not RequestClass.GENERIC:
            return _LOCAL_ONLY

        blocked = await self._require_ready()
        if blocked is not None:
            return blocked

        if path == self._ui_path and not query_has_token:
            return Admission(
                AdmissionAction.REDIRECT,
                location=f"{self._ui_path}?token={quote(self._token, safe='')}",
                reason="ui_token",
            )
        return _FORWARD

    async def admit_upgrade(self, path: str) -> Admission:
        """Admission decision for a WebSocket upgrade.

        Redirects make no sense for a handshake: unconfigured is reported
        as UNAVAILABLE.
        """
        if classify_request(path) is not RequestClass.GENERIC:
            return _LOCAL_ONLY

        blocked = await self._require_ready()
        if blocked is None:
            return _FORWARD
        if blocked.action is AdmissionAction.REDIRECT:
            return Admission(AdmissionAction.UNAVAILABLE, reason="not_configured")
        return blocked
