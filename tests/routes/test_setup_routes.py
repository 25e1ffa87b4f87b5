"""Tests for the setup wizard routes and their auth gate.

Tests use the AAA pattern (Arrange-Act-Assert) for clarity.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import SETUP_PASSWORD, TEST_TOKEN, FakeCli, make_supervisor
from gateway_wrapper.config import WrapperConfig
from gateway_wrapper.gateway.backend_cli import CommandResult
from gateway_wrapper.security.rate_limiter import SetupRateLimiter

AUTH = ("admin", SETUP_PASSWORD)


class TestSetupAuthGate:
    def test_missing_password_config_returns_500(self, build_app: Callable[..., FastAPI], tmp_path) -> None:
        config = WrapperConfig(state_dir=tmp_path / "state", setup_password=None)
        client = TestClient(build_app(config))

        response = client.get("/setup", auth=AUTH)

        assert response.status_code == 500
        assert "SETUP_PASSWORD is not set" in response.text

    def test_no_credentials_returns_401_challenge(
        self, build_app: Callable[..., FastAPI], config: WrapperConfig
    ) -> None:
        client = TestClient(build_app(config))

        response = client.get("/setup")

        assert response.status_code == 401
        assert response.text == "Auth required"
        assert response.headers["www-authenticate"] == 'Basic realm="OpenClaw Setup"'

    def test_wrong_password_returns_401(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        client = TestClient(build_app(config))

        response = client.get("/setup/api/status", auth=("admin", "wrong"))

        assert response.status_code == 401
        assert response.text == "Invalid password"

    def test_correct_password_serves_wizard(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        client = TestClient(build_app(config))

        response = client.get("/setup", auth=AUTH)

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "OpenClaw Setup" in response.text

    def test_rate_limited_after_max_attempts(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        """Attempt max+1 from one address is refused regardless of credentials."""
        # Arrange
        client = TestClient(build_app(config, rate_limiter=SetupRateLimiter(max_attempts=3)))
        for _ in range(3):
            assert client.get("/setup", auth=AUTH).status_code == 200

        # Act
        response = client.get("/setup", auth=AUTH)

        # Assert
        assert response.status_code == 429
        assert response.text == "Too many requests. Try again later."

    def test_setup_healthz_not_rate_limited(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        client = TestClient(build_app(config, rate_limiter=SetupRateLimiter(max_attempts=1)))

        for _ in range(5):
            assert client.get("/setup/healthz").status_code == 200


class TestSetupApi:
    def test_status(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        cli = FakeCli(responses={("--version",): CommandResult(0, "2026.2.1\n")})
        client = TestClient(build_app(config, cli=cli))

        data = client.get("/setup/api/status", auth=AUTH).json()

        assert data["configured"] is False
        assert data["openclawVersion"] == "2026.2.1"
        assert isinstance(data["authGroups"], list)

    def test_debug_hides_token(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        client = TestClient(build_app(config))

        response = client.get("/setup/api/debug", auth=AUTH)

        assert response.status_code == 200
        assert TEST_TOKEN not in response.text
        assert set(response.json()) == {"wrapper", "gateway", "openclaw"}

    def test_run_invalid_flow_returns_400(
        self, build_app: Callable[..., FastAPI], config: WrapperConfig, fake_cli: FakeCli
    ) -> None:
        client = TestClient(build_app(config))

        response = client.post("/setup/api/run", json={"flow": "bogus"}, auth=AUTH)

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert response.json()["output"].startswith("Invalid flow: bogus")
        assert fake_cli.calls == []

    def test_run_invalid_json_returns_400(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        client = TestClient(build_app(config))

        response = client.post(
            "/setup/api/run",
            content=b"{not json",
            headers={"content-type": "application/json"},
            auth=AUTH,
        )

        assert response.status_code == 400

    def test_run_success_restarts_gateway(self, build_app: Callable[..., FastAPI], config: WrapperConfig) -> None:
        # Arrange
        def onboard_writes_config(args: list[str]) -> None:
            if args[0] == "onboard":
                config.state_dir.mkdir(parents=True, exist_ok=True)
                config.config_path.write_text("{}")

        supervisor = make_supervisor(config)
        cli = FakeCli(on_run=onboard_writes_config)
        client = TestClient(build_app(config, supervisor=supervisor, cli=cli))

        # Act
        response = client.post("/setup/api/run", json={"flow": "quickstart"}, auth=AUTH)

        # Assert
        assert response.status_code == 200
        assert response.json()["ok"] is True
        supervisor.restart.assert_awaited_once()

    def test_run_failure_returns_500_with_output(
        self, build_app: Callable[..., FastAPI], config: WrapperConfig
    ) -> None:
        cli = FakeCli(responses={("onboard",): CommandResult(2, "onboard exploded\n")})
        client = TestClient(build_app(config, cli=cli))

        response = client.post("/setup/api/run", json={}, auth=AUTH)

        assert response.status_code == 500
        assert "onboard exploded" in response.json()["output"]

    def test_run_unexpected_error_returns_500(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        supervisor = make_supervisor(configured)
        supervisor.ensure_running.side_effect = RuntimeError("loop gone")
        client = TestClient(build_app(configured, supervisor=supervisor))

        response = client.post("/setup/api/run", json={}, auth=AUTH)

        assert response.status_code == 500
        assert response.json() == {"ok": False, "output": "Internal error: loop gone"}

    @pytest.mark.parametrize("body", [{}, {"channel": "telegram"}, {"code": "123"}])
    def test_pairing_requires_channel_and_code(
        self, build_app: Callable[..., FastAPI], config: WrapperConfig, body: dict
    ) -> None:
        client = TestClient(build_app(config))

        response = client.post("/setup/api/pairing/approve", json=body, auth=AUTH)

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "Missing channel or code"}

    def test_pairing_approve(self, build_app: Callable[..., FastAPI], config: WrapperConfig, fake_cli: FakeCli) -> None:
        client = TestClient(build_app(config))

        response = client.post("/setup/api/pairing/approve", json={"channel": "telegram", "code": 4821}, auth=AUTH)

        assert response.status_code == 200
        assert fake_cli.calls == [["pairing", "approve", "telegram", "4821"]]

    def test_reset(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        client = TestClient(build_app(configured))

        response = client.post("/setup/api/reset", auth=AUTH)

        assert response.status_code == 200
        assert response.text == "OK - deleted config file. You can rerun setup now."
        assert configured.is_configured() is False

    def test_doctor_failure_returns_500(self, build_app: Callable[..., FastAPI], configured: WrapperConfig) -> None:
        cli = FakeCli(responses={("doctor",): CommandResult(1, "problems found\n")})
        client = TestClient(build_app(configured, cli=cli))

        response = client.post("/setup/api/doctor", auth=AUTH)

        assert response.status_code == 500
        assert response.json() == {"ok": False, "output": "problems found\n"}
