"""First-run setup orchestration.

The setup wizard posts a small payload; we turn it into a sequence of
backend CLI invocations (onboard, config set, models set, channel
config) and restart the backend through the supervisor when onboarding
succeeded. Command failures are never raised: each step's exit code and
output are appended to a transcript returned to the wizard.
"""

from __future__ import annotations

__all__ = [
    "AUTH_GROUPS",
    "AUTH_SECRET_FLAGS",
    "SetupOrchestrator",
    "VALID_AUTH_CHOICES",
    "VALID_FLOWS",
    "build_onboard_args",
    "validate_setup_payload",
]

import asyncio
import json
import logging
import platform
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.constants import APP_NAME
from gateway_wrapper.exceptions import SetupValidationError, WrapperError
from gateway_wrapper.gateway.backend_cli import BackendCli
from gateway_wrapper.models import CommandOutputResponse, SetupRunRequest

if TYPE_CHECKING:
    from gateway_wrapper.gateway.supervisor import GatewaySupervisor

_logger = logging.getLogger(f"{APP_NAME}.setup")

VALID_FLOWS: tuple[str, ...] = ("quickstart", "advanced", "manual")
VALID_AUTH_CHOICES: tuple[str, ...] = (
    "openai-api-key",
    "apiKey",
    "gemini-api-key",
    "openrouter-api-key",
)

# onboard flag that carries the secret for each auth choice
AUTH_SECRET_FLAGS: dict[str, str] = {
    "openai-api-key": "--openai-api-key",
    "apiKey": "--anthropic-api-key",
    "openrouter-api-key": "--openrouter-api-key",
    "gemini-api-key": "--gemini-api-key",
}

# Provider picker shown by the wizard
AUTH_GROUPS: list[dict[str, Any]] = [
    {
        "value": "openai",
        "label": "OpenAI",
        "hint": "API key",
        "options": [{"value": "openai-api-key", "label": "OpenAI API key"}],
    },
    {
        "value": "anthropic",
        "label": "Anthropic",
        "hint": "Claude API key",
        "options": [{"value": "apiKey", "label": "Anthropic API key"}],
    },
    {
        "value": "google",
        "label": "Google",
        "hint": "Gemini API key",
        "options": [{"value": "gemini-api-key", "label": "Google Gemini API key"}],
    },
    {
        "value": "openrouter",
        "label": "OpenRouter",
        "hint": "API key",
        "options": [{"value": "openrouter-api-key", "label": "OpenRouter API key"}],
    },
]

_STRING_FIELDS = ("telegramToken", "discordToken", "authSecret", "model")

ALREADY_CONFIGURED_MESSAGE = "Already configured.\nUse Reset setup if you want to rerun onboarding.\n"


def validate_setup_payload(payload: Any) -> SetupRunRequest:
    """Validate the wizard payload before any backend command runs.

    Args:
        payload: Decoded JSON body (None is treated as empty).

    Returns:
        Typed request.

    Raises:
        SetupValidationError: With a message suitable for the wizard.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise SetupValidationError("Invalid payload: expected a JSON object")

    flow = payload.get("flow")
    if flow and flow not in VALID_FLOWS:
        raise SetupValidationError(f"Invalid flow: {flow}. Must be one of: {', '.join(VALID_FLOWS)}")

    auth_choice = payload.get("authChoice")
    if auth_choice and auth_choice not in VALID_AUTH_CHOICES:
        raise SetupValidationError(f"Invalid authChoice: {auth_choice}")

    for field in _STRING_FIELDS:
        if field in payload and payload[field] is not None and not isinstance(payload[field], str):
            raise SetupValidationError(f"Invalid {field}: must be a string")

    try:
        request = SetupRunRequest.model_validate(payload)
    except ValidationError as e:
        raise SetupValidationError(f"Invalid payload: {e.errors()[0].get('msg', 'validation failed')}") from e

    if not request.flow:
        request.flow = "quickstart"
    return request


def build_onboard_args(request: SetupRunRequest, config: WrapperConfig, token: str) -> list[str]:
    """Arguments for the non-interactive `onboard` command."""
    args = [
        "onboard",
        "--non-interactive",
        "--accept-risk",
        "--json",
        "--no-install-daemon",
        "--skip-health",
        "--workspace",
        str(config.workspace_dir),
        "--gateway-bind",
        "loopback",
        "--gateway-port",
        str(config.internal_port),
        "--gateway-auth",
        "token",
        "--gateway-token",
        token,
        "--flow",
        request.flow or "quickstart",
    ]

    if request.auth_choice:
        args.extend(["--auth-choice", request.auth_choice])
        secret = (request.auth_secret or "").strip()
        flag = AUTH_SECRET_FLAGS.get(request.auth_choice)
        if flag and secret:
            args.extend([flag, secret])

    return args


class SetupOrchestrator:
    """Runs the setup wizard's actions against the backend CLI.

    Args:
        config: Wrapper configuration.
        token: Resolved gateway token.
        cli: Backend CLI runner.
        supervisor: Restarted once onboarding has written the config.
    """

    def __init__(
        self,
        config: WrapperConfig,
        token: str,
        cli: BackendCli,
        supervisor: GatewaySupervisor,
    ) -> None:
        self._config = config
        self._token = token
        self._cli = cli
        self._supervisor = supervisor
        self._cached_version: str | None = None
        self._cached_channels_help: str | None = None

    async def _backend_info(self) -> tuple[str, str]:
        """Backend version and `channels add --help`, cached after first success."""
        if self._cached_version is not None and self._cached_channels_help is not None:
            return self._cached_version, self._cached_channels_help

        version, channels_help = await asyncio.gather(
            self._cli.run(["--version"]),
            self._cli.run(["channels", "add", "--help"]),
        )
        if version.ok and channels_help.ok:
            self._cached_version = version.output.strip()
            self._cached_channels_help = channels_help.output
        return version.output.strip(), channels_help.output

    async def status(self) -> dict[str, Any]:
        """Summary shown when the wizard loads."""
        version, channels_help = await self._backend_info()
        return {
            "configured": self._config.is_configured(),
            "gatewayTarget": self._config.gateway_target,
            "openclawVersion": version,
            "channelsAddHelp": channels_help,
            "authGroups": AUTH_GROUPS,
        }

    async def run(self, payload: Any) -> CommandOutputResponse:
        """Validate the payload and run onboarding.

        Raises:
            SetupValidationError: Payload rejected; no command was run.
        """
        request = validate_setup_payload(payload)

        if self._config.is_configured():
            await self._supervisor.ensure_running()
            return CommandOutputResponse(ok=True, output=ALREADY_CONFIGURED_MESSAGE)

        self._config.state_dir.mkdir(parents=True, exist_ok=True)
        self._config.workspace_dir.mkdir(parents=True, exist_ok=True)

        onboard = await self._cli.run(build_onboard_args(request, self._config, self._token))
        configured = self._config.is_configured()
        transcript = [f"\n[setup] Onboarding exit={onboard.code} configured={str(configured).lower()}\n"]
        ok = onboard.ok and configured

        _logger.info(
            {
                "event": "onboarding_finished",
                "message": f"Onboarding exit={onboard.code} configured={configured}",
                "exit_code": onboard.code,
                "flow": request.flow,
            }
        )

        if ok:
            transcript.append("\n[setup] Configuring gateway settings...\n")
            transcript.extend(await self._configure_gateway())
            transcript.extend(await self._configure_extras(request))

            transcript.append("\n[setup] Starting gateway...\n")
            try:
                ready = await self._supervisor.restart()
            except WrapperError as e:
                transcript.append(f"[setup] Gateway failed to start: {e}\n")
            else:
                transcript.append("[setup] Gateway started.\n" if ready else "[setup] Gateway not ready yet.\n")

        return CommandOutputResponse(ok=ok, output=onboard.output + "".join(transcript))

    async def _configure_gateway(self) -> list[str]:
        lines = []

        result = await self._cli.run(["config", "set", "gateway.auth.token", self._token])
        lines.append(f"[config] gateway.auth.token exit={result.code}\n")

        result = await self._cli.run(["config", "set", "gateway.controlUi.allowInsecureAuth", "true"])
        lines.append(f"[config] gateway.controlUi.allowInsecureAuth=true exit={result.code}\n")

        result = await self._cli.run(
            ["config", "set", "--json", "gateway.trustedProxies", json.dumps(["127.0.0.1"])]
        )
        lines.append(f"[config] gateway.trustedProxies exit={result.code}\n")
        return lines

    async def _configure_extras(self, request: SetupRunRequest) -> list[str]:
        lines = []

        model = (request.model or "").strip()
        if model:
            lines.append(f"[setup] Setting model to {model}...\n")
            result = await self._cli.run(["models", "set", model])
            lines.append(f"[models set] exit={result.code}\n{result.output}")

        telegram_token = (request.telegram_token or "").strip()
        if telegram_token:
            lines.append(
                await self._configure_channel(
                    "telegram",
                    {
                        "enabled": True,
                        "dmPolicy": "pairing",
                        "botToken": telegram_token,
                        "groupPolicy": "allowlist",
                        "streamMode": "partial",
                    },
                )
            )

        discord_token = (request.discord_token or "").strip()
        if discord_token:
            lines.append(
                await self._configure_channel(
                    "discord",
                    {
                        "enabled": True,
                        "token": discord_token,
                        "groupPolicy": "allowlist",
                        "dm": {"policy": "pairing"},
                    },
                )
            )
        return lines

    async def _configure_channel(self, name: str, settings: dict[str, Any]) -> str:
        result = await self._cli.run(["config", "set", "--json", f"channels.{name}", json.dumps(settings)])
        return f"\n[{name} config] exit={result.code}\n{result.output or '(no output)'}"

    async def debug(self) -> dict[str, Any]:
        """Diagnostics for the wizard. Reports token presence, never its value."""
        version = await self._cli.run(["--version"])
        process = self._supervisor.process
        return {
            "wrapper": {
                "python": platform.python_version(),
                "port": self._config.port,
                "stateDir": str(self._config.state_dir),
                "workspaceDir": str(self._config.workspace_dir),
                "configPath": str(self._config.config_path),
                "gatewayTokenFromEnv": bool(self._config.gateway_token_override),
                "gatewayTokenPersisted": self._config.token_path.exists(),
            },
            "gateway": {
                "state": self._supervisor.state.value,
                "pid": process.pid if process is not None else None,
                "lastExitCode": self._supervisor.last_exit_code,
            },
            "openclaw": {
                "entry": self._config.backend_entry,
                "node": self._config.backend_node,
                "version": version.output.strip(),
            },
        }

    async def approve_pairing(self, channel: str, code: str) -> CommandOutputResponse:
        result = await self._cli.run(["pairing", "approve", channel, code])
        return CommandOutputResponse(ok=result.ok, output=result.output)

    async def doctor(self) -> CommandOutputResponse:
        result = await self._cli.run(["doctor", "--non-interactive", "--repair"])
        return CommandOutputResponse(ok=result.ok, output=result.output)

    def reset(self) -> CommandOutputResponse:
        """Delete the backend config file so onboarding can run again."""
        try:
            self._config.config_path.unlink(missing_ok=True)
        except OSError as e:
            return CommandOutputResponse(ok=False, output=str(e))

        _logger.warning(
            {
                "event": "setup_reset",
                "message": f"Deleted backend config file {self._config.config_path}",
            }
        )
        return CommandOutputResponse(ok=True, output="OK - deleted config file. You can rerun setup now.")
