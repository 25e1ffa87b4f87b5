"""Tests for backend CLI invocation.

The backend entry point is replaced by a small Python script run with the
current interpreter, so these tests exercise real subprocesses.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.gateway.backend_cli import BackendCli, CommandResult, command_summary, redact_argv

SCRIPT = """
import os, sys, time
args = sys.argv[1:]
if args[:1] == ["sleep"]:
    time.sleep(float(args[1]))
print("args=" + " ".join(args))
print("token=" + os.environ.get("OPENCLAW_GATEWAY_TOKEN", ""))
print("state=" + os.environ.get("OPENCLAW_STATE_DIR", ""))
print("to-stderr", file=sys.stderr)
sys.exit(int(os.environ.get("FAKE_EXIT", "0")) if args[:1] != ["fail"] else 3)
"""


@pytest.fixture
def script_config(tmp_path: Path) -> WrapperConfig:
    entry = tmp_path / "entry.py"
    entry.write_text(SCRIPT)
    return WrapperConfig(
        state_dir=tmp_path / "state",
        workspace_dir=tmp_path / "workspace",
        backend_node=sys.executable,
        backend_entry=str(entry),
    )


class TestCommandResult:
    def test_ok_only_for_zero(self) -> None:
        assert CommandResult(0, "").ok is True
        assert CommandResult(1, "").ok is False
        assert CommandResult(127, "").ok is False


class TestRedactArgv:
    def test_replaces_secret_argument(self) -> None:
        argv = ["gateway", "run", "--token", "s3cr3t", "--port", "1"]

        assert redact_argv(argv, "s3cr3t") == ["gateway", "run", "--token", "[REDACTED]", "--port", "1"]

    def test_replaces_embedded_secret(self) -> None:
        assert redact_argv(["--token=s3cr3t"], "s3cr3t") == ["--token=[REDACTED]"]

    def test_empty_secret_is_noop(self) -> None:
        argv = ["a", "b"]

        assert redact_argv(argv, "") == argv


class TestBackendCliArgv:
    def test_argv_prefixes_node_and_entry(self, script_config: WrapperConfig) -> None:
        cli = BackendCli(script_config, "tok")

        assert cli.argv(["devices", "list"]) == [
            sys.executable,
            script_config.backend_entry,
            "devices",
            "list",
        ]

    def test_env_exports_directories_and_token(self, script_config: WrapperConfig) -> None:
        env = BackendCli(script_config, "tok").env()

        assert env["OPENCLAW_GATEWAY_TOKEN"] == "tok"
        assert env["OPENCLAW_STATE_DIR"] == str(script_config.state_dir)
        assert env["OPENCLAW_WORKSPACE_DIR"] == str(script_config.workspace_dir)


class TestBackendCliRun:
    async def test_captures_combined_output(self, script_config: WrapperConfig) -> None:
        # Act
        result = await BackendCli(script_config, "tok").run(["devices", "list"])

        # Assert
        assert result.code == 0
        assert "args=devices list" in result.output
        assert "token=tok" in result.output
        assert f"state={script_config.state_dir}" in result.output
        assert "to-stderr" in result.output

    async def test_nonzero_exit_is_returned_not_raised(self, script_config: WrapperConfig) -> None:
        result = await BackendCli(script_config, "tok").run(["fail"])

        assert result.code == 3
        assert result.ok is False
        assert "args=fail" in result.output

    async def test_spawn_failure_maps_to_127(self, tmp_path: Path) -> None:
        config = WrapperConfig(state_dir=tmp_path, backend_node=str(tmp_path / "no-such-node"))

        result = await BackendCli(config, "tok").run(["--version"])

        assert result.code == 127
        assert "[spawn error]" in result.output

    async def test_timeout_kills_command(self, script_config: WrapperConfig) -> None:
        result = await BackendCli(script_config, "tok").run(["sleep", "10"], timeout=0.3)

        assert result.code == 124
        assert "[timeout]" in result.output


class TestCommandSummary:
    @pytest.mark.parametrize(
        ("args", "expected"),
        [
            (["devices", "list"], "devices list"),
            (["devices", "approve", "abcdef123456"], "devices approve"),
            (["onboard", "--non-interactive", "--openai-api-key", "sk-x"], "onboard"),
            (["config", "set", "--json", "channels.telegram", '{"botToken": "1:x"}'], "config set"),
            (["--version"], "(no subcommand)"),
            ([], "(no subcommand)"),
        ],
    )
    def test_keeps_leading_words_only(self, args: list[str], expected: str) -> None:
        assert command_summary(args) == expected


class TestBackendCliLogging:
    @pytest.fixture
    def records(self) -> Iterator[list[logging.LogRecord]]:
        """Collect records from the wrapper logger (it does not propagate to root)."""
        captured: list[logging.LogRecord] = []
        handler = logging.Handler()
        handler.emit = captured.append  # type: ignore[method-assign]
        logger = logging.getLogger("gateway-wrapper")
        previous = logger.level
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        yield captured
        logger.removeHandler(handler)
        logger.setLevel(previous)

    async def test_provider_api_key_not_logged(
        self, script_config: WrapperConfig, records: list[logging.LogRecord]
    ) -> None:
        # Act
        result = await BackendCli(script_config, "tok").run(
            ["onboard", "--auth-choice", "openai-api-key", "--openai-api-key", "sk-live-SUPERSECRET"]
        )

        # Assert
        assert result.code == 0
        logged = " ".join(str(record.msg) for record in records)
        assert "Running backend command: onboard" in logged
        assert "sk-live-SUPERSECRET" not in logged

    async def test_channel_bot_token_not_logged(
        self, script_config: WrapperConfig, records: list[logging.LogRecord]
    ) -> None:
        await BackendCli(script_config, "tok").run(
            ["config", "set", "--json", "channels.telegram", '{"botToken": "123:TELEGRAMSECRET"}']
        )

        logged = " ".join(str(record.msg) for record in records)
        assert "TELEGRAMSECRET" not in logged
