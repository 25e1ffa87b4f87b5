"""Wrapper daemon (run_wrapper entry point).

Resolves the token, builds the supervisor and HTTP app, runs uvicorn,
boots the backend when already configured, and shuts everything down
on SIGTERM/SIGINT:

1. Supervisor stops auto-restarting
2. HTTP server drains in-flight requests
3. Backend is terminated (SIGTERM, then SIGKILL after the grace period)
"""

from __future__ import annotations

__all__ = [
    "run_wrapper",
]

import asyncio
import errno
import logging
import os
import signal
import socket

import uvicorn

from gateway_wrapper.config import WrapperConfig, load_wrapper_config
from gateway_wrapper.constants import API_SERVER_SHUTDOWN_TIMEOUT_SECONDS, UI_ENTRY_PATH
from gateway_wrapper.exceptions import WrapperError
from gateway_wrapper.gateway.backend_cli import BackendCli
from gateway_wrapper.gateway.supervisor import GatewaySupervisor
from gateway_wrapper.gateway.token_store import GatewayTokenStore
from gateway_wrapper.log_config import configure_wrapper_logging, log_event, token_prefix
from gateway_wrapper.models import WrapperSystemEvent
from gateway_wrapper.routes import create_wrapper_app

# HTTP server backlog (number of pending connections)
HTTP_LISTEN_BACKLOG = 100

# Public interface: the platform routes external traffic to this port
HTTP_BIND_HOST = "0.0.0.0"


def _bind_http_socket(port: int) -> socket.socket:
    http_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    http_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        http_socket.bind((HTTP_BIND_HOST, port))
    except OSError as e:
        http_socket.close()
        if e.errno == errno.EADDRINUSE:
            raise RuntimeError(
                f"Port {port} is already in use.\n"
                f"Another process is using this port. "
                f"Use --port to specify a different port."
            ) from e
        raise
    http_socket.listen(HTTP_LISTEN_BACKLOG)
    http_socket.setblocking(False)
    return http_socket


async def _boot_backend(cli: BackendCli, supervisor: GatewaySupervisor) -> None:
    """Repair the backend config, then start it. Failures are logged only."""
    result = await cli.run(["doctor", "--fix"])
    log_event(
        logging.INFO if result.ok else logging.WARNING,
        WrapperSystemEvent(
            event="boot_doctor_finished",
            message=f"doctor --fix exit={result.code}",
            exit_code=result.code,
        ),
    )

    try:
        ready = await supervisor.ensure_running()
    except WrapperError as e:
        log_event(
            logging.ERROR,
            WrapperSystemEvent(
                event="boot_start_failed",
                message=f"Gateway failed to start at boot: {e}",
                error_type=type(e).__name__,
                error_message=str(e),
            ),
        )
        return

    log_event(
        logging.INFO if ready else logging.WARNING,
        WrapperSystemEvent(
            event="boot_gateway_ready" if ready else "boot_gateway_not_ready",
            message="Gateway ready" if ready else "Gateway did not become ready at boot; will retry on demand",
        ),
    )


async def run_wrapper(config: WrapperConfig | None = None, port: int | None = None) -> None:
    """Run the wrapper until SIGTERM/SIGINT.

    Args:
        config: Resolved configuration. Loaded from the environment if None.
        port: Overrides config.port.

    Raises:
        ConfigurationError: If the environment is invalid.
        TokenStoreError: If the gateway token cannot be persisted.
        RuntimeError: If the port is in use.
    """
    if config is None:
        config = load_wrapper_config()
    if port is not None:
        config = config.model_copy(update={"port": port})

    configure_wrapper_logging(config.effective_log_dir)

    store = GatewayTokenStore(config.token_path, config.gateway_token_override)
    token = store.resolve()

    log_event(
        logging.INFO,
        WrapperSystemEvent(
            event="wrapper_starting",
            message=f"Wrapper starting: port={config.port}, gateway={config.gateway_target}, pid={os.getpid()}",
            pid=os.getpid(),
            details={
                "port": config.port,
                "gateway_target": config.gateway_target,
                "state_dir": str(config.state_dir),
                "configured": config.is_configured(),
                "token": token_prefix(token),
                "token_source": store.source.value if store.source else None,
            },
        ),
    )

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(signum: int, frame: object) -> None:
        """Handle shutdown signals (SIGTERM, SIGINT)."""
        log_event(
            logging.INFO,
            WrapperSystemEvent(
                event="shutdown_signal_received",
                message=f"Received signal {signum}, initiating shutdown",
                details={"signal": signum},
            ),
        )
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    cli = BackendCli(config, token)
    supervisor = GatewaySupervisor(config, token)
    http_app = create_wrapper_app(config, token, supervisor, cli=cli)

    http_socket = _bind_http_socket(config.port)
    http_config = uvicorn.Config(http_app, log_config=None, lifespan="on")
    http_server = uvicorn.Server(http_config)

    async def run_server() -> None:
        try:
            await http_server._serve(sockets=[http_socket])
        except asyncio.CancelledError:
            pass

    server_task = asyncio.create_task(run_server())

    boot_task: asyncio.Task[None] | None = None
    if config.is_configured():
        boot_task = asyncio.create_task(_boot_backend(cli, supervisor))

    log_event(
        logging.INFO,
        WrapperSystemEvent(
            event="wrapper_started",
            message=f"Wrapper listening on port {config.port} (setup wizard: /setup, UI: {UI_ENTRY_PATH})",
        ),
    )

    try:
        await shutdown_event.wait()
    finally:
        log_event(
            logging.INFO,
            WrapperSystemEvent(
                event="wrapper_shutting_down",
                message="Wrapper shutting down",
            ),
        )

        supervisor.begin_shutdown()

        if boot_task is not None:
            boot_task.cancel()
            try:
                await boot_task
            except asyncio.CancelledError:
                pass

        # Graceful shutdown
        http_server.should_exit = True
        try:
            await asyncio.wait_for(server_task, timeout=API_SERVER_SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            log_event(
                logging.WARNING,
                WrapperSystemEvent(
                    event="shutdown_timeout",
                    message="Server shutdown timed out, cancelling",
                ),
            )
            server_task.cancel()
        except asyncio.CancelledError:
            pass

        await supervisor.stop()

        try:
            http_socket.close()
        except OSError:
            pass  # Non-critical cleanup

        log_event(
            logging.INFO,
            WrapperSystemEvent(
                event="wrapper_stopped",
                message="Wrapper shutdown complete",
            ),
        )
