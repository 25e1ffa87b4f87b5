"""Gateway token resolution and persistence.

The gateway token authenticates wrapper-to-backend traffic. It is passed
to the backend on its command line and injected as a bearer credential
into every forwarded request.

Resolution order:
1. Non-empty environment override (OPENCLAW_GATEWAY_TOKEN)
2. Persisted token file (<state_dir>/gateway.token)
3. Freshly generated token, persisted to the token file (0600)

Once resolved, the value never changes for the life of the process.
"""

from __future__ import annotations

__all__ = [
    "GatewayTokenStore",
    "TokenSource",
    "generate_token",
    "peek_gateway_token",
    "resolve_gateway_token",
]

import logging
import os
import secrets
import sys
from enum import Enum
from pathlib import Path

from gateway_wrapper.constants import TOKEN_BYTES
from gateway_wrapper.exceptions import TokenStoreError
from gateway_wrapper.log_config import log_event, token_prefix
from gateway_wrapper.models import WrapperSystemEvent

_FILE_PERMISSIONS = 0o600
_DIR_PERMISSIONS = 0o700


class TokenSource(str, Enum):
    """Where the resolved token came from."""

    ENVIRONMENT = "environment"
    FILE = "file"
    GENERATED = "generated"


def generate_token() -> str:
    """Generate a secure random token.

    Returns:
        64-character hex string (32 bytes of randomness).
    """
    return secrets.token_hex(TOKEN_BYTES)


def _read_token_file(token_path: Path) -> str | None:
    """Read and trim the token file. Empty files count as absent."""
    if not token_path.exists():
        return None
    try:
        token = token_path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise TokenStoreError(f"Cannot read gateway token file {token_path}: {e}") from e
    return token or None


def _write_token_file(token_path: Path, token: str) -> None:
    """Create the state directory and write the token owner-only."""
    try:
        token_path.parent.mkdir(mode=_DIR_PERMISSIONS, parents=True, exist_ok=True)
        fd = os.open(token_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_PERMISSIONS)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)
        if sys.platform != "win32":
            token_path.chmod(_FILE_PERMISSIONS)
    except OSError as e:
        raise TokenStoreError(f"Cannot persist gateway token to {token_path}: {e}") from e


def resolve_gateway_token(env_token: str | None, token_path: Path) -> tuple[str, TokenSource]:
    """Resolve the gateway token (get-or-create).

    Args:
        env_token: Value of the environment override, if any.
        token_path: Path of the persisted token file.

    Returns:
        Tuple of (token, source).

    Raises:
        TokenStoreError: If the token file cannot be read or written.
    """
    if env_token and env_token.strip():
        return env_token.strip(), TokenSource.ENVIRONMENT

    stored = _read_token_file(token_path)
    if stored is not None:
        return stored, TokenSource.FILE

    token = generate_token()
    _write_token_file(token_path, token)
    log_event(
        logging.INFO,
        WrapperSystemEvent(
            event="gateway_token_generated",
            message=f"Generated new gateway token: {token_prefix(token)}",
            details={"token_path": str(token_path)},
        ),
    )
    return token, TokenSource.GENERATED


def peek_gateway_token(env_token: str | None, token_path: Path) -> tuple[str | None, TokenSource | None]:
    """Like resolve_gateway_token() but never generates or writes a token.

    Returns:
        Tuple of (token, source), or (None, None) if no token exists yet.
    """
    if env_token and env_token.strip():
        return env_token.strip(), TokenSource.ENVIRONMENT
    stored = _read_token_file(token_path)
    if stored is not None:
        return stored, TokenSource.FILE
    return None, None


class GatewayTokenStore:
    """Memoizing get-or-create store for the gateway token.

    The first resolve() does the I/O; later calls return the same value
    even if the file changes on disk.
    """

    def __init__(self, token_path: Path, env_token: str | None = None) -> None:
        self._token_path = token_path
        self._env_token = env_token
        self._token: str | None = None
        self._source: TokenSource | None = None

    @property
    def token_path(self) -> Path:
        return self._token_path

    @property
    def source(self) -> TokenSource | None:
        """Source of the resolved token, None before resolve()."""
        return self._source

    def resolve(self) -> str:
        """Return the gateway token, resolving it on first call.

        Raises:
            TokenStoreError: If the token cannot be read or persisted.
        """
        if self._token is None:
            self._token, self._source = resolve_gateway_token(self._env_token, self._token_path)
        return self._token

    def is_persisted(self) -> bool:
        """Whether a token file exists on disk."""
        return self._token_path.exists()
