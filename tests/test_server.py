"""Tests for daemon helpers (socket binding, boot sequence)."""

from __future__ import annotations

import socket
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeCli
from gateway_wrapper.exceptions import SpawnError
from gateway_wrapper.gateway.backend_cli import CommandResult
from gateway_wrapper.server import _bind_http_socket, _boot_backend


class TestBindHttpSocket:
    def test_binds_free_port(self) -> None:
        probe = socket.socket()
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
        probe.close()

        sock = _bind_http_socket(port)
        try:
            assert sock.getsockname()[1] == port
        finally:
            sock.close()

    def test_port_in_use_raises_runtime_error(self) -> None:
        # Arrange - hold a listening socket on an ephemeral port
        holder = socket.socket()
        holder.bind(("0.0.0.0", 0))
        holder.listen(1)
        port = holder.getsockname()[1]

        # Act / Assert
        try:
            with pytest.raises(RuntimeError, match="already in use"):
                _bind_http_socket(port)
        finally:
            holder.close()


class TestBootBackend:
    async def test_runs_doctor_then_starts(self) -> None:
        cli = FakeCli()
        supervisor = MagicMock()
        supervisor.ensure_running = AsyncMock(return_value=True)

        await _boot_backend(cli, supervisor)

        assert cli.calls == [["doctor", "--fix"]]
        supervisor.ensure_running.assert_awaited_once()

    async def test_doctor_failure_does_not_block_start(self) -> None:
        cli = FakeCli(responses={("doctor",): CommandResult(1, "broken")})
        supervisor = MagicMock()
        supervisor.ensure_running = AsyncMock(return_value=True)

        await _boot_backend(cli, supervisor)

        supervisor.ensure_running.assert_awaited_once()

    async def test_start_failure_is_logged_not_raised(self) -> None:
        supervisor = MagicMock()
        supervisor.ensure_running = AsyncMock(side_effect=SpawnError("node missing"))

        await _boot_backend(FakeCli(), supervisor)
