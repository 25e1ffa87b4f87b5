"""Basic-auth gate for the setup wizard.

Checks, in order:
1. A setup password is configured at all (else 500, fail closed)
2. Per-IP rate limit (429, credentials not evaluated)
3. Basic credentials; the password is compared as SHA-256 digests in
   constant time (401 with a challenge on failure)

Any username is accepted; only the password matters.
"""

from __future__ import annotations

__all__ = [
    "check_setup_credentials",
    "client_ip",
    "password_matches",
    "require_setup_auth",
]

import base64
import binascii
import hashlib
import hmac
import logging

from fastapi import Request

from gateway_wrapper.constants import SETUP_AUTH_REALM
from gateway_wrapper.exceptions import AuthError
from gateway_wrapper.log_config import log_event
from gateway_wrapper.models import WrapperSystemEvent
from gateway_wrapper.security.rate_limiter import SetupRateLimiter

_CHALLENGE = {"WWW-Authenticate": f'Basic realm="{SETUP_AUTH_REALM}"'}


def password_matches(provided: str, expected: str) -> bool:
    """Constant-time password check on fixed-length digests."""
    provided_digest = hashlib.sha256(provided.encode("utf-8")).digest()
    expected_digest = hashlib.sha256(expected.encode("utf-8")).digest()
    return hmac.compare_digest(provided_digest, expected_digest)


def _basic_password(authorization: str | None) -> str | None:
    """Extract the password from a Basic Authorization header."""
    if not authorization:
        return None
    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    _, sep, password = decoded.partition(":")
    if not sep:
        return None
    return password


def check_setup_credentials(
    setup_password: str | None,
    authorization: str | None,
    ip: str,
    limiter: SetupRateLimiter,
) -> None:
    """Apply the setup gate.

    Args:
        setup_password: Configured password, None if unset.
        authorization: Raw Authorization header.
        ip: Client address for rate limiting.
        limiter: Shared rate limiter.

    Raises:
        AuthError: 500 (no password configured), 429 (rate limited)
            or 401 (missing/wrong credentials).
    """
    if not setup_password:
        raise AuthError(500, "SETUP_PASSWORD is not set. Set it in your deployment variables before using /setup.")

    if limiter.is_rate_limited(ip):
        log_event(
            logging.WARNING,
            WrapperSystemEvent(
                event="setup_rate_limited",
                message=f"Too many setup auth attempts from {ip}",
                client_ip=ip,
            ),
        )
        raise AuthError(429, "Too many requests. Try again later.")

    password = _basic_password(authorization)
    if password is None:
        raise AuthError(401, "Auth required", headers=_CHALLENGE)

    if not password_matches(password, setup_password):
        log_event(
            logging.WARNING,
            WrapperSystemEvent(
                event="setup_auth_failed",
                message="Invalid setup password",
                client_ip=ip,
            ),
        )
        raise AuthError(401, "Invalid password", headers=_CHALLENGE)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def require_setup_auth(request: Request) -> None:
    """FastAPI dependency guarding the setup routes."""
    check_setup_credentials(
        request.app.state.config.setup_password,
        request.headers.get("authorization"),
        client_ip(request),
        request.app.state.rate_limiter,
    )
