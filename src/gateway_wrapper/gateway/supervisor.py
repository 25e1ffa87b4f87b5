"""Backend process supervisor.

Owns the one backend process and the one in-flight start. Every
transition goes through GatewaySupervisor's methods:

    Absent --ensure_running()--> Starting --probe ok--> Running
    Running --exit--> Absent (+ one auto-restart after restart_delay)
    Running --restart()--> Absent --> Starting --> Running
    any --stop()--> Absent (no auto-restart)

All state lives on one event loop. Each check of _process/_start_task is
followed by its mutation with no await in between; code that resumes
after an await (exit watcher, auto-restart) re-reads state before acting.
"""

from __future__ import annotations

__all__ = [
    "BackendProcess",
    "GatewaySupervisor",
    "ProcessHandle",
    "Spawner",
    "SupervisorState",
    "gateway_run_args",
    "spawn_backend",
]

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.constants import (
    APP_NAME,
    AUTO_RESTART_DELAY_SECONDS,
    RESTART_SETTLE_SECONDS,
    SHUTDOWN_GRACE_SECONDS,
    STALE_LOCK_PATHS,
    TERMINATE_GRACE_SECONDS,
)
from gateway_wrapper.exceptions import NotConfiguredError, SpawnError, WrapperError
from gateway_wrapper.gateway.backend_cli import BackendCli, redact_argv
from gateway_wrapper.gateway.prober import ReadinessProber

_logger = logging.getLogger(f"{APP_NAME}.supervisor")


def gateway_run_args(port: int, token: str) -> list[str]:
    """Backend launch contract: loopback bind, token auth, bootstrap mode."""
    return [
        "gateway",
        "run",
        "--bind",
        "loopback",
        "--port",
        str(port),
        "--auth",
        "token",
        "--token",
        token,
        "--allow-unconfigured",
    ]


class SupervisorState(str, Enum):
    """Derived backend state. Computed on every read, never stored."""

    NOT_CONFIGURED = "not_configured"
    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"


class ProcessHandle(Protocol):
    """What the supervisor needs from a child process.

    asyncio.subprocess.Process satisfies this; tests supply fakes.
    """

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> Optional[int]: ...

    async def wait(self) -> int: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


Spawner = Callable[[list[str], dict[str, str]], Awaitable[ProcessHandle]]


async def spawn_backend(argv: list[str], env: dict[str, str]) -> ProcessHandle:
    """Default spawner: inherit stdout/stderr so backend logs reach the platform."""
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        env=env,
    )


@dataclass(slots=True)
class BackendProcess:
    """The supervised child.

    Attributes:
        handle: Process handle returned by the spawner.
        started_at: time.monotonic() at spawn.
        exit_code: Set by the exit watcher once the process exits.
    """

    handle: ProcessHandle
    started_at: float
    exit_code: int | None = None

    @property
    def pid(self) -> int:
        return self.handle.pid

    @property
    def running(self) -> bool:
        return self.exit_code is None and self.handle.returncode is None


class GatewaySupervisor:
    """Lifecycle owner for the backend process.

    Args:
        config: Wrapper configuration.
        token: Resolved gateway token (passed on the backend command line).
        spawner: Coroutine that launches argv with env and returns a handle.
        prober: Readiness prober. Defaults to one aimed at the backend target.
        restart_delay: Seconds between an unexpected exit and auto-restart.
        terminate_grace: SIGTERM -> SIGKILL bound for restart().
        restart_settle: Pause between killing and respawning in restart().
        shutdown_grace: SIGTERM -> SIGKILL bound for stop().
    """

    def __init__(
        self,
        config: WrapperConfig,
        token: str,
        *,
        spawner: Spawner = spawn_backend,
        prober: ReadinessProber | None = None,
        restart_delay: float = AUTO_RESTART_DELAY_SECONDS,
        terminate_grace: float = TERMINATE_GRACE_SECONDS,
        restart_settle: float = RESTART_SETTLE_SECONDS,
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ) -> None:
        self._config = config
        self._token = token
        self._cli = BackendCli(config, token)
        self._spawner = spawner
        self._prober = prober if prober is not None else ReadinessProber(config.gateway_target, token)
        self._restart_delay = restart_delay
        self._terminate_grace = terminate_grace
        self._restart_settle = restart_settle
        self._shutdown_grace = shutdown_grace

        self._process: BackendProcess | None = None
        self._start_task: asyncio.Task[bool] | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._watch_tasks: set[asyncio.Task[None]] = set()
        self._shutting_down = False
        self._last_exit_code: int | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def is_configured(self) -> bool:
        return self._config.is_configured()

    @property
    def is_starting(self) -> bool:
        return self._start_task is not None

    @property
    def is_ready(self) -> bool:
        return self._process is not None and self._start_task is None

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def process(self) -> BackendProcess | None:
        return self._process

    @property
    def prober(self) -> ReadinessProber:
        return self._prober

    @property
    def last_exit_code(self) -> int | None:
        return self._last_exit_code

    @property
    def state(self) -> SupervisorState:
        if not self.is_configured():
            return SupervisorState.NOT_CONFIGURED
        if self._start_task is not None:
            return SupervisorState.STARTING
        if self._process is not None:
            return SupervisorState.READY
        return SupervisorState.STOPPED

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

    async def ensure_running(self) -> bool:
        """Make sure the backend is running and ready (single flight).

        Concurrent callers share one start task and observe the same
        outcome. A cancelled caller does not cancel the shared task.

        Returns:
            True if the backend is running and answered the probe.

        Raises:
            NotConfiguredError: If setup has not completed.
            SpawnError: If the backend could not be launched.
        """
        if self._start_task is None:
            if self._shutting_down:
                return False
            if self._process is not None:
                return True
            task = asyncio.create_task(self._start_and_wait())
            task.add_done_callback(self._on_start_done)
            self._start_task = task
        return await asyncio.shield(self._start_task)

    async def _start_and_wait(self) -> bool:
        try:
            await self.start()
            return await self._prober.wait_until_ready()
        finally:
            if self._start_task is asyncio.current_task():
                self._start_task = None

    def _on_start_done(self, task: asyncio.Task[bool]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error(
                {
                    "event": "gateway_start_failed",
                    "message": f"Gateway start failed: {exc}",
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                }
            )

    async def start(self) -> None:
        """Spawn the backend process.

        Callers normally go through ensure_running(), which guarantees at
        most one start in flight. No-op if a process already exists.

        Raises:
            NotConfiguredError: If the backend config file does not exist.
            SpawnError: If directories cannot be created or the spawn fails.
        """
        if not self.is_configured():
            raise NotConfiguredError(f"Backend is not configured: {self._config.config_path} does not exist")
        if self._process is not None:
            return

        try:
            self._config.state_dir.mkdir(parents=True, exist_ok=True)
            self._config.workspace_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SpawnError(f"Cannot create backend directories: {e}") from e

        self._remove_stale_locks()

        args = gateway_run_args(self._config.internal_port, self._token)
        argv = self._cli.argv(args)
        spawn = asyncio.ensure_future(self._spawner(argv, self._cli.env()))
        try:
            handle = await asyncio.shield(spawn)
        except asyncio.CancelledError:
            # a child forked before the cancel must be recorded for stop()
            try:
                self._adopt(await spawn, argv)
            except OSError:
                pass  # nothing was forked
            raise
        except OSError as e:
            self._process = None
            raise SpawnError(f"Failed to launch backend ({argv[0]}): {e}") from e

        self._adopt(handle, argv)

    def _adopt(self, handle: ProcessHandle, argv: list[str]) -> None:
        record = BackendProcess(handle=handle, started_at=time.monotonic())
        self._process = record
        _logger.info(
            {
                "event": "gateway_spawned",
                "message": f"Started gateway process (pid {handle.pid})",
                "pid": handle.pid,
                "argv": redact_argv(argv, self._token),
            }
        )

        watcher = asyncio.create_task(self._watch_exit(record))
        self._watch_tasks.add(watcher)
        watcher.add_done_callback(self._watch_tasks.discard)

    def _remove_stale_locks(self) -> None:
        for template in STALE_LOCK_PATHS:
            lock_path = Path(template.format(state_dir=self._config.state_dir))
            try:
                lock_path.unlink(missing_ok=True)
            except OSError as e:
                _logger.warning(
                    {
                        "event": "stale_lock_removal_failed",
                        "message": f"Could not remove stale lock file {lock_path}: {e}",
                        "error_type": type(e).__name__,
                    }
                )

    # -------------------------------------------------------------------------
    # Exit handling and auto-restart
    # -------------------------------------------------------------------------

    async def _watch_exit(self, record: BackendProcess) -> None:
        code = await record.handle.wait()
        record.exit_code = code
        self._last_exit_code = code

        # restart()/stop() detach the handle before terminating it
        if self._process is not record:
            return
        self._process = None

        _logger.warning(
            {
                "event": "gateway_exited",
                "message": f"Gateway process exited with code {code}",
                "pid": record.pid,
                "exit_code": code,
            }
        )

        if self._shutting_down or not self.is_configured():
            return
        self._schedule_auto_restart()

    def _schedule_auto_restart(self) -> None:
        if self._restart_task is not None and not self._restart_task.done():
            return
        self._restart_task = asyncio.create_task(self._auto_restart())
        _logger.info(
            {
                "event": "auto_restart_scheduled",
                "message": f"Scheduling gateway restart in {self._restart_delay}s",
            }
        )

    async def _auto_restart(self) -> None:
        await asyncio.sleep(self._restart_delay)
        self._restart_task = None

        if self._shutting_down or self._process is not None or self._start_task is not None:
            return
        if not self.is_configured():
            return

        try:
            ready = await self.ensure_running()
        except WrapperError as e:
            _logger.error(
                {
                    "event": "auto_restart_failed",
                    "message": f"Gateway auto-restart failed: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            return

        if not ready:
            _logger.warning(
                {
                    "event": "auto_restart_not_ready",
                    "message": "Gateway restarted but did not become ready",
                }
            )

    def _cancel_auto_restart(self) -> None:
        if self._restart_task is not None:
            self._restart_task.cancel()
            self._restart_task = None

    # -------------------------------------------------------------------------
    # Restart / stop
    # -------------------------------------------------------------------------

    async def _terminate(self, record: BackendProcess, grace: float) -> None:
        """SIGTERM, wait up to grace seconds, then SIGKILL."""
        handle = record.handle
        if handle.returncode is not None:
            return
        try:
            handle.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(handle.wait(), timeout=grace)
            return
        except asyncio.TimeoutError:
            _logger.warning(
                {
                    "event": "gateway_kill_escalated",
                    "message": f"Gateway did not exit within {grace}s of SIGTERM, sending SIGKILL",
                    "pid": record.pid,
                }
            )

        try:
            handle.kill()
        except ProcessLookupError:
            return
        await handle.wait()

    async def restart(self) -> bool:
        """Terminate the backend (if any) and start it again.

        Returns:
            Result of the following ensure_running().
        """
        if self._start_task is not None:
            try:
                await asyncio.shield(self._start_task)
            except WrapperError:
                # superseded by this restart
                pass

        self._cancel_auto_restart()
        record = self._process
        self._process = None
        if record is not None:
            _logger.info(
                {
                    "event": "gateway_restarting",
                    "message": f"Restarting gateway (pid {record.pid})",
                    "pid": record.pid,
                }
            )
            await self._terminate(record, self._terminate_grace)

        await asyncio.sleep(self._restart_settle)
        return await self.ensure_running()

    def begin_shutdown(self) -> None:
        """Stop auto-restarting without touching the running process."""
        self._shutting_down = True
        self._cancel_auto_restart()

    async def stop(self) -> None:
        """Shut the backend down for good."""
        self.begin_shutdown()

        task = self._start_task
        if task is not None:
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, WrapperError):
                pass
            self._start_task = None

        record = self._process
        self._process = None
        if record is not None:
            _logger.info(
                {
                    "event": "gateway_stopping",
                    "message": f"Stopping gateway (pid {record.pid})",
                    "pid": record.pid,
                }
            )
            await self._terminate(record, self._shutdown_grace)

        for watcher in list(self._watch_tasks):
            watcher.cancel()
