"""Wrapper configuration for gateway-wrapper.

Defines the typed configuration the core runs on. Values come from
environment variables (the hosting platform sets them); nothing is read
from a config file of our own.

Example usage:
    config = load_wrapper_config()
    if config.is_configured():
        ...
"""

from __future__ import annotations

__all__ = [
    "WrapperConfig",
    "load_wrapper_config",
]

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from gateway_wrapper.constants import (
    CONFIG_FILENAME,
    DEFAULT_BACKEND_ENTRY,
    DEFAULT_BACKEND_NODE,
    DEFAULT_INTERNAL_HOST,
    DEFAULT_INTERNAL_PORT,
    DEFAULT_PORT,
    DEFAULT_STATE_DIR,
    DEFAULT_WORKSPACE_DIR,
    ENV_CONFIG_PATH,
    ENV_ENTRY,
    ENV_GATEWAY_TOKEN,
    ENV_INTERNAL_HOST,
    ENV_INTERNAL_PORT,
    ENV_LOG_DIR,
    ENV_NODE,
    ENV_PORT,
    ENV_SETUP_PASSWORD,
    ENV_STATE_DIR,
    ENV_WORKSPACE_DIR,
    TOKEN_FILENAME,
)
from gateway_wrapper.exceptions import ConfigurationError


class WrapperConfig(BaseModel):
    """Resolved wrapper configuration.

    Attributes:
        port: Public HTTP port the wrapper listens on.
        state_dir: Backend state directory (token file, config file, locks).
        workspace_dir: Backend workspace directory.
        setup_password: Shared secret for the setup wizard. None disables it.
        gateway_token_override: Token from the environment, wins over the file.
        internal_host: Loopback host the backend binds to.
        internal_port: Port the backend listens on.
        backend_entry: Path to the backend's JS entry point.
        backend_node: Node executable used to run the entry point.
        config_path_override: Explicit path of the backend config file.
        log_dir: Directory for the wrapper's JSONL system log.
    """

    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    state_dir: Path = Field(default=Path(DEFAULT_STATE_DIR))
    workspace_dir: Path = Field(default=Path(DEFAULT_WORKSPACE_DIR))
    setup_password: str | None = None
    gateway_token_override: str | None = None
    internal_host: str = Field(default=DEFAULT_INTERNAL_HOST, min_length=1)
    internal_port: int = Field(default=DEFAULT_INTERNAL_PORT, ge=1, le=65535)
    backend_entry: str = Field(default=DEFAULT_BACKEND_ENTRY, min_length=1)
    backend_node: str = Field(default=DEFAULT_BACKEND_NODE, min_length=1)
    config_path_override: Path | None = None
    log_dir: Path | None = None

    model_config = {"extra": "ignore"}

    @property
    def gateway_target(self) -> str:
        """Base URL of the backend (loopback only)."""
        return f"http://{self.internal_host}:{self.internal_port}"

    @property
    def config_path(self) -> Path:
        """Path whose existence means first-run setup is done."""
        if self.config_path_override is not None:
            return self.config_path_override
        return self.state_dir / CONFIG_FILENAME

    @property
    def token_path(self) -> Path:
        """Path of the persisted gateway token."""
        return self.state_dir / TOKEN_FILENAME

    @property
    def effective_log_dir(self) -> Path:
        """Directory for wrapper logs (defaults to <state_dir>/logs)."""
        return self.log_dir if self.log_dir is not None else self.state_dir / "logs"

    def is_configured(self) -> bool:
        """Check whether the backend config file exists.

        Not cached: setup commands create the file asynchronously.
        """
        try:
            return self.config_path.exists()
        except OSError:
            return False


def _env(environ: Mapping[str, str], name: str) -> str | None:
    """Read an env var, treating blank values as unset."""
    value = environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _env_int(environ: Mapping[str, str], name: str) -> int | None:
    value = _env(environ, name)
    if value is None:
        return None
    try:
        return int(value, 10)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def load_wrapper_config(environ: Mapping[str, str] | None = None) -> WrapperConfig:
    """Resolve the wrapper configuration from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        WrapperConfig: Validated configuration.

    Raises:
        ConfigurationError: If a value is malformed or out of range.
    """
    env = os.environ if environ is None else environ

    data: dict[str, object] = {}
    port = _env_int(env, ENV_PORT)
    if port is not None:
        data["port"] = port
    internal_port = _env_int(env, ENV_INTERNAL_PORT)
    if internal_port is not None:
        data["internal_port"] = internal_port

    string_fields = {
        "state_dir": ENV_STATE_DIR,
        "workspace_dir": ENV_WORKSPACE_DIR,
        "setup_password": ENV_SETUP_PASSWORD,
        "gateway_token_override": ENV_GATEWAY_TOKEN,
        "internal_host": ENV_INTERNAL_HOST,
        "backend_entry": ENV_ENTRY,
        "backend_node": ENV_NODE,
        "config_path_override": ENV_CONFIG_PATH,
        "log_dir": ENV_LOG_DIR,
    }
    for field_name, env_name in string_fields.items():
        value = _env(env, env_name)
        if value is not None:
            data[field_name] = value

    try:
        return WrapperConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid wrapper configuration: {e}") from e
