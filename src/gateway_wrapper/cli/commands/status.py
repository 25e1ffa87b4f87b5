"""Status command: query a running wrapper's /healthz."""

from __future__ import annotations

__all__ = ["status"]

import sys

import click
import httpx

from gateway_wrapper.config import load_wrapper_config
from gateway_wrapper.exceptions import StartupFailure

from ..styling import style_dim, style_error, style_label, style_success

# Local status checks should answer fast
STATUS_TIMEOUT_SECONDS = 5.0


@click.command()
@click.option("--port", "-p", type=click.IntRange(1, 65535), default=None, help="Wrapper port (default: $PORT or 8080)")
def status(port: int | None) -> None:
    """Show whether the wrapper is up and the gateway state."""
    if port is None:
        try:
            port = load_wrapper_config().port
        except StartupFailure as e:
            click.echo(style_error(str(e)), err=True)
            sys.exit(e.exit_code)

    url = f"http://127.0.0.1:{port}/healthz"
    try:
        response = httpx.get(url, timeout=STATUS_TIMEOUT_SECONDS)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as e:
        click.echo(style_error(f"Wrapper not reachable at {url}: {e}"), err=True)
        sys.exit(1)
    except ValueError:
        click.echo(style_error(f"Unexpected response from {url}"), err=True)
        sys.exit(1)

    click.echo(style_success(f"Wrapper running on port {port}"))
    gateway = data.get("gateway", "unknown")
    click.echo(f"{style_label('Gateway')} {gateway}")
    if gateway == "unconfigured":
        click.echo(style_dim("  Open /setup to finish first-run configuration."))
