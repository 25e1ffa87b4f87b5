"""One-shot invocations of the backend's command-line interface.

The setup wizard and the legacy device endpoints drive the backend
through its own CLI (`node <entry> <args...>`). Commands never raise for
failure: the exit code and combined stdout/stderr are returned so the
caller can show them verbatim.
"""

from __future__ import annotations

__all__ = [
    "BackendCli",
    "CommandResult",
    "command_summary",
    "redact_argv",
]

import asyncio
import logging
import os
from dataclasses import dataclass

from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.constants import (
    APP_NAME,
    COMMAND_NOT_FOUND_EXIT_CODE,
    COMMAND_TIMEOUT_EXIT_CODE,
    ENV_GATEWAY_TOKEN,
    ENV_STATE_DIR,
    ENV_WORKSPACE_DIR,
)

_logger = logging.getLogger(f"{APP_NAME}.backend_cli")

_REDACTED = "[REDACTED]"


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a backend CLI command.

    Attributes:
        code: Process exit code (127 = could not spawn, 124 = timed out).
        output: Combined stdout and stderr, decoded as UTF-8.
    """

    code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.code == 0


def redact_argv(argv: list[str], secret: str) -> list[str]:
    """Replace every occurrence of secret in argv for logging."""
    if not secret:
        return list(argv)
    return [_REDACTED if arg == secret else arg.replace(secret, _REDACTED) for arg in argv]


def command_summary(args: list[str]) -> str:
    """Leading subcommand words of args, safe to log.

    At most the first two words, stopping at the first flag. Flag values
    and positional payloads (API keys, bot tokens) never appear.
    """
    words: list[str] = []
    for arg in args[:2]:
        if arg.startswith("-"):
            break
        words.append(arg)
    return " ".join(words) or "(no subcommand)"


class BackendCli:
    """Builds and runs backend CLI commands.

    Args:
        config: Wrapper configuration (entry point, node binary, directories).
        token: Resolved gateway token, exported to the child environment.
    """

    def __init__(self, config: WrapperConfig, token: str) -> None:
        self._config = config
        self._token = token

    def argv(self, args: list[str]) -> list[str]:
        """Full argv for running the backend entry point with args."""
        return [self._config.backend_node, self._config.backend_entry, *args]

    def env(self) -> dict[str, str]:
        """Child environment: ours plus the backend's directory and token vars."""
        env = dict(os.environ)
        env[ENV_STATE_DIR] = str(self._config.state_dir)
        env[ENV_WORKSPACE_DIR] = str(self._config.workspace_dir)
        env[ENV_GATEWAY_TOKEN] = self._token
        return env

    async def run(self, args: list[str], timeout: float | None = None) -> CommandResult:
        """Run one backend command and capture its output.

        Args:
            args: Arguments after the entry point (e.g. ["devices", "list"]).
            timeout: Seconds before the command is killed. None waits forever.

        Returns:
            CommandResult with the exit code and combined output.
        """
        argv = self.argv(args)
        _logger.info(
            {
                "event": "backend_command_started",
                "message": f"Running backend command: {command_summary(args)}",
            }
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=self.env(),
            )
        except OSError as e:
            _logger.error(
                {
                    "event": "backend_command_spawn_failed",
                    "message": f"Could not run backend command: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            return CommandResult(code=COMMAND_NOT_FOUND_EXIT_CODE, output=f"\n[spawn error] {e}\n")

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            stdout, _ = await proc.communicate()
            output = (stdout or b"").decode("utf-8", errors="replace")
            _logger.warning(
                {
                    "event": "backend_command_timeout",
                    "message": f"Backend command timed out after {timeout}s: {args[0] if args else ''}",
                    "pid": proc.pid,
                }
            )
            return CommandResult(
                code=COMMAND_TIMEOUT_EXIT_CODE,
                output=output + f"\n[timeout] command killed after {timeout}s\n",
            )

        code = proc.returncode if proc.returncode is not None else 0
        return CommandResult(code=code, output=(stdout or b"").decode("utf-8", errors="replace"))
