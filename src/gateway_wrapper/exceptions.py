"""Custom exceptions for gateway-wrapper.

Exceptions are organized into two categories:

Recoverable Errors (wrapper keeps serving):
    - NotConfiguredError: Backend start attempted before first-run setup
    - SpawnError: Backend executable failed to launch
    - UpstreamUnavailableError: Connection to the backend failed mid-proxy
    - AuthError: Setup credentials missing/wrong, or rate limit exceeded
    - SetupValidationError: Malformed setup payload

Startup Failures (wrapper must not start):
    - StartupFailure: Base for fatal startup errors, carries an exit code
    - ConfigurationError: Environment could not be resolved into a config
    - TokenStoreError: Gateway token could not be read or persisted

Usage:
    from gateway_wrapper.exceptions import NotConfiguredError, SpawnError
"""

from __future__ import annotations

__all__ = [
    "AuthError",
    "ConfigurationError",
    "NotConfiguredError",
    "SetupValidationError",
    "SpawnError",
    "StartupFailure",
    "TokenStoreError",
    "UpstreamUnavailableError",
    "WrapperError",
]


# =============================================================================
# Recoverable Errors
# =============================================================================


class WrapperError(Exception):
    """Base class for recoverable wrapper errors.

    The wrapper stays alive and keeps accepting requests when one of these
    is raised; they are converted to state or to an HTTP response.
    """


class NotConfiguredError(WrapperError):
    """Backend start attempted before first-run setup completed.

    Surfaced to the admission gate as a redirect to the setup wizard,
    never as a 5xx.
    """


class SpawnError(WrapperError):
    """Backend executable failed to launch.

    The process handle is left cleared and the in-flight start rejects
    with this error. The admission gate treats it as transient.
    """


class UpstreamUnavailableError(WrapperError):
    """Connection to the backend failed while forwarding.

    Attributes:
        target: Upstream URL that could not be reached.
    """

    def __init__(self, message: str, *, target: str | None = None) -> None:
        super().__init__(message)
        self.target = target


class AuthError(WrapperError):
    """Setup gate rejected the request.

    Covers missing server-side password (500), rate limit (429) and
    missing/wrong credentials (401).

    Attributes:
        status_code: HTTP status to respond with.
        message: Plain-text body.
        headers: Extra response headers (e.g. WWW-Authenticate).
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.headers = headers or {}


class SetupValidationError(WrapperError):
    """Setup payload failed validation.

    Raised before any backend command runs. Rendered as 400 with the
    message as output.
    """


# =============================================================================
# Startup Failures
# =============================================================================


class StartupFailure(Exception):
    """Base exception for failures that prevent the wrapper from starting.

    Attributes:
        exit_code: Process exit code used by the CLI.
        failure_type: Category string for logging.
    """

    exit_code: int = 1
    failure_type: str = "unknown"


class ConfigurationError(StartupFailure):
    """Environment could not be resolved into a valid WrapperConfig.

    Raised when:
    - A numeric variable (PORT, INTERNAL_GATEWAY_PORT) is not a number
    - A value fails Pydantic validation (e.g. port out of range)

    Exit code 16 indicates configuration failure.
    """

    exit_code = 16
    failure_type = "configuration_failure"


class TokenStoreError(StartupFailure):
    """Gateway token could not be read, created or persisted.

    The wrapper cannot run safely without a stable token: the backend
    would reject every forwarded request after the next restart.

    Exit code 20 indicates token store failure.
    """

    exit_code = 20
    failure_type = "token_store_failure"
