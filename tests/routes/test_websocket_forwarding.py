"""Tests for WebSocket upgrade admission.

Refusals close the handshake before any upstream connection is
attempted. The relay tests run a loopback websockets server as the
gateway.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from websockets.sync.server import ServerConnection, serve

from conftest import TEST_TOKEN, make_supervisor
from gateway_wrapper.config import WrapperConfig


class TestWebSocketRefusals:
    @pytest.mark.parametrize("path", ["/healthz", "/health", "/setup/healthz"])
    def test_health_paths_refused_with_policy_violation(
        self, build_app: Callable[..., FastAPI], configured: WrapperConfig, path: str
    ) -> None:
        client = TestClient(build_app(configured))

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(path):
                pass

        assert exc_info.value.code == 1008

    def test_setup_path_refused(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        client = TestClient(build_app(configured))

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/setup/socket"):
                pass

        assert exc_info.value.code == 1008

    def test_unconfigured_refused_with_try_again_later(
        self, build_app: Callable[..., FastAPI], config: WrapperConfig
    ) -> None:
        client = TestClient(build_app(config, supervisor=make_supervisor(config, ready=False)))

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 1013

    def test_not_ready_refused_with_try_again_later(
        self, build_app: Callable[..., FastAPI], configured: WrapperConfig
    ) -> None:
        client = TestClient(build_app(configured, supervisor=make_supervisor(configured, ready=False)))

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 1013

    def test_upstream_connect_failure_refused(
        self, build_app: Callable[..., FastAPI], configured: WrapperConfig
    ) -> None:
        client = TestClient(build_app(configured))

        with patch("gateway_wrapper.routes.forwarding.websockets.connect", side_effect=OSError("refused")):
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/ws"):
                    pass

        assert exc_info.value.code == 1013


class EchoBackend:
    """Loopback WebSocket server standing in for the gateway.

    Echoes text as "echo:<text>" and bytes unchanged. The text "bye"
    makes it close with code 4000.
    """

    def __init__(self) -> None:
        self.authorization: list[str | None] = []
        self.paths: list[str] = []
        self._server = serve(self._handle, "127.0.0.1", 0)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self._server.socket.getsockname()[1]

    def _handle(self, connection: ServerConnection) -> None:
        self.authorization.append(connection.request.headers.get("Authorization"))
        self.paths.append(connection.request.path)
        for message in connection:
            if message == "bye":
                connection.close(code=4000, reason="done")
                return
            connection.send(f"echo:{message}" if isinstance(message, str) else message)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._thread.join(timeout=5)


@pytest.fixture
def echo_backend() -> Iterator[EchoBackend]:
    backend = EchoBackend()
    backend.start()
    yield backend
    backend.stop()


class TestWebSocketRelay:
    @pytest.fixture
    def client(
        self, build_app: Callable[..., FastAPI], configured: WrapperConfig, echo_backend: EchoBackend
    ) -> TestClient:
        config = configured.model_copy(update={"internal_port": echo_backend.port})
        return TestClient(build_app(config))

    def test_relays_frames_with_gateway_token(self, client: TestClient, echo_backend: EchoBackend) -> None:
        # Act
        with client.websocket_connect("/ws?x=1", headers={"Authorization": "Bearer stolen"}) as ws:
            ws.send_text("hi")
            reply = ws.receive_text()
            ws.send_bytes(b"\x00\x01")
            binary = ws.receive_bytes()

        # Assert
        assert reply == "echo:hi"
        assert binary == b"\x00\x01"
        assert echo_backend.authorization == [f"Bearer {TEST_TOKEN}"]
        assert echo_backend.paths == ["/ws?x=1"]

    def test_upstream_close_is_propagated(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("bye")
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == 4000
