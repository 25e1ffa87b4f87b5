"""Tests for the legacy device-management endpoints."""

from __future__ import annotations

from collections.abc import Callable

from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeCli
from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.gateway.backend_cli import CommandResult

DEVICE_ID = "abcdef0123456789"


class TestListDevices:
    def test_parses_cli_output(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        cli = FakeCli(responses={("devices", "list"): CommandResult(0, f"pending {DEVICE_ID} Firefox\n")})
        client = TestClient(build_app(configured, cli=cli))

        response = client.get("/api/devices")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["devices"] == [{"requestId": DEVICE_ID, "status": "pending", "info": f"pending {DEVICE_ID} Firefox"}]

    def test_not_gated_by_setup_auth(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        """Served without credentials, even before setup."""
        client = TestClient(build_app(config))

        assert client.get("/api/devices").status_code == 200

    def test_cli_failure_returns_500(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        cli = FakeCli(responses={("devices",): CommandResult(1, "gateway unreachable\n")})
        client = TestClient(build_app(configured, cli=cli))

        response = client.get("/api/devices")

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["error"] == "gateway unreachable"


class TestApproveDevice:
    def test_missing_request_id(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        client = TestClient(build_app(configured))

        response = client.post("/api/devices/approve", json={})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Missing requestId"}

    def test_approves_device(
        self, build_app: Callable[..., FastAPI], configured: WrapperConfig, fake_cli: FakeCli
    ) -> None:
        client = TestClient(build_app(configured))

        response = client.post("/api/devices/approve", json={"requestId": DEVICE_ID})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["message"] == f"Device {DEVICE_ID} approved"
        assert fake_cli.calls == [["devices", "approve", DEVICE_ID]]

    def test_cli_failure_reported_in_body(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        cli = FakeCli(responses={("devices", "approve"): CommandResult(1, "unknown request\n")})
        client = TestClient(build_app(configured, cli=cli))

        response = client.post("/api/devices/approve", json={"requestId": DEVICE_ID})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["output"] == "unknown request\n"

    def test_unknown_device_subpath_is_404(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        client = TestClient(build_app(configured))

        assert client.get("/api/devices/whatever").status_code == 404
