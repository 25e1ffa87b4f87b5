"""Setup wizard protection: basic-auth gate and per-IP rate limiting."""

from gateway_wrapper.security.rate_limiter import SetupRateLimiter, run_rate_limit_sweeper
from gateway_wrapper.security.setup_auth import check_setup_credentials, require_setup_auth

__all__ = [
    "SetupRateLimiter",
    "check_setup_credentials",
    "require_setup_auth",
    "run_rate_limit_sweeper",
]
