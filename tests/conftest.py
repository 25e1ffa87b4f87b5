"""Shared fixtures: fake backend processes, fake CLI and app factories.

Nothing here launches the real backend. The supervisor gets a fake
spawner and prober; routes get a fake CLI and an httpx MockTransport.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI

from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.gateway.backend_cli import CommandResult
from gateway_wrapper.gateway.supervisor import SupervisorState
from gateway_wrapper.routes import create_wrapper_app
from gateway_wrapper.security.rate_limiter import SetupRateLimiter

TEST_TOKEN = "a1b2c3d4e5f6a7b8c9d0" * 3 + "abcd"
SETUP_PASSWORD = "correct-horse"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path: Path) -> WrapperConfig:
    """Unconfigured wrapper rooted in tmp_path."""
    return WrapperConfig(
        state_dir=tmp_path / "state",
        workspace_dir=tmp_path / "workspace",
        setup_password=SETUP_PASSWORD,
    )


@pytest.fixture
def configured(config: WrapperConfig) -> WrapperConfig:
    """Same config with the backend config file present."""
    config.state_dir.mkdir(parents=True, exist_ok=True)
    config.config_path.write_text("{}")
    return config


# ---------------------------------------------------------------------------
# Fake backend process
# ---------------------------------------------------------------------------

_pids = itertools.count(4000)


class FakeProcess:
    """Stands in for asyncio.subprocess.Process.

    Args:
        ignore_terminate: Keep running after terminate() (forces SIGKILL).
    """

    def __init__(self, *, ignore_terminate: bool = False) -> None:
        self.pid = next(_pids)
        self.returncode: int | None = None
        self.ignore_terminate = ignore_terminate
        self.terminated = False
        self.killed = False
        self._exited = asyncio.Event()

    def exit(self, code: int) -> None:
        """Simulate the process exiting on its own."""
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeSpawner:
    """Records spawn calls and hands out FakeProcess instances.

    Args:
        gate: When set, the process is created first and the call then
            blocks on the event, like a fork that has not returned yet.
    """

    def __init__(
        self,
        *,
        error: OSError | None = None,
        ignore_terminate: bool = False,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.calls: list[tuple[list[str], dict[str, str]]] = []
        self.processes: list[FakeProcess] = []
        self.error = error
        self.ignore_terminate = ignore_terminate
        self.gate = gate

    async def __call__(self, argv: list[str], env: dict[str, str]) -> FakeProcess:
        self.calls.append((argv, env))
        if self.error is not None:
            raise self.error
        process = FakeProcess(ignore_terminate=self.ignore_terminate)
        self.processes.append(process)
        if self.gate is not None:
            await self.gate.wait()
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class FakeProber:
    """Readiness prober with a scripted outcome.

    Args:
        ready: Value returned by wait_until_ready().
        delay: Seconds to wait before answering.
    """

    def __init__(self, *, ready: bool = True, delay: float = 0.0) -> None:
        self.ready = ready
        self.delay = delay
        self.wait_calls = 0
        self.probe_calls = 0

    async def wait_until_ready(self, max_wait: float | None = None) -> bool:
        self.wait_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.ready

    async def probe_once(self, timeout: float = 3.0) -> bool:
        self.probe_calls += 1
        return self.ready


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Fake backend CLI
# ---------------------------------------------------------------------------


class FakeCli:
    """Records backend CLI invocations and returns canned results.

    Args:
        responses: Maps an argument prefix tuple to its CommandResult.
            The first matching prefix wins; unmatched commands succeed
            with empty output.
        on_run: Optional hook called with the args before answering.
    """

    def __init__(
        self,
        responses: dict[tuple[str, ...], CommandResult] | None = None,
        on_run: Callable[[list[str]], None] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.on_run = on_run
        self.calls: list[list[str]] = []

    async def run(self, args: list[str], timeout: float | None = None) -> CommandResult:
        self.calls.append(list(args))
        if self.on_run is not None:
            self.on_run(list(args))
        for prefix, result in self.responses.items():
            if tuple(args[: len(prefix)]) == prefix:
                return result
        return CommandResult(code=0, output="")

    def commands(self) -> list[tuple[str, ...]]:
        """First two words of every call, for order assertions."""
        return [tuple(call[:2]) for call in self.calls]


@pytest.fixture
def fake_cli() -> FakeCli:
    return FakeCli()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def make_supervisor(config: WrapperConfig, *, ready: bool = True, reachable: bool = True) -> MagicMock:
    """MagicMock supervisor whose configured state follows the config file."""
    supervisor = MagicMock()
    supervisor.is_configured.side_effect = config.is_configured
    supervisor.is_ready = ready
    supervisor.is_starting = False
    supervisor.state = SupervisorState.READY if ready else SupervisorState.STOPPED
    supervisor.process = None
    supervisor.last_exit_code = None
    supervisor.ensure_running = AsyncMock(return_value=ready)
    supervisor.restart = AsyncMock(return_value=True)
    supervisor.prober.probe_once = AsyncMock(return_value=reachable)
    return supervisor


class UpstreamRecorder:
    """httpx MockTransport handler that records forwarded requests."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.response = response if response is not None else httpx.Response(200, text="upstream ok")
        self.error = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def build_app(fake_cli: FakeCli, upstream: UpstreamRecorder) -> Iterator[Callable[..., FastAPI]]:
    """Factory for wrapper apps wired to fakes."""

    def _build(
        config: WrapperConfig,
        *,
        supervisor: Any = None,
        rate_limiter: SetupRateLimiter | None = None,
        cli: Any = None,
    ) -> FastAPI:
        return create_wrapper_app(
            config,
            TEST_TOKEN,
            supervisor if supervisor is not None else make_supervisor(config),
            cli=cli if cli is not None else fake_cli,
            rate_limiter=rate_limiter,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
        )

    yield _build
