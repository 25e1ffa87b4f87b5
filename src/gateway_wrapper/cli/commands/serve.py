"""Serve command: run the wrapper in the foreground."""

from __future__ import annotations

__all__ = ["serve"]

import asyncio
import sys

import click

from gateway_wrapper.config import load_wrapper_config
from gateway_wrapper.exceptions import StartupFailure
from gateway_wrapper.server import run_wrapper

from ..styling import style_error


@click.command()
@click.option("--port", "-p", type=click.IntRange(1, 65535), default=None, help="Public HTTP port (default: $PORT or 8080)")
def serve(port: int | None) -> None:
    """Run the wrapper: supervise the gateway and proxy traffic to it.

    Configuration comes from the environment (PORT, OPENCLAW_STATE_DIR,
    SETUP_PASSWORD, ...). Stops on SIGTERM/SIGINT.
    """
    try:
        config = load_wrapper_config()
        asyncio.run(run_wrapper(config, port=port))
    except StartupFailure as e:
        click.echo(style_error(f"Startup failed ({e.failure_type}): {e}"), err=True)
        sys.exit(e.exit_code)
    except RuntimeError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)
