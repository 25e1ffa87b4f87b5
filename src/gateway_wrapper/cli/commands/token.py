"""Token command: show where the gateway token comes from."""

from __future__ import annotations

__all__ = ["token"]

import sys

import click

from gateway_wrapper.config import load_wrapper_config
from gateway_wrapper.exceptions import StartupFailure
from gateway_wrapper.gateway.token_store import peek_gateway_token
from gateway_wrapper.log_config import token_prefix

from ..styling import style_dim, style_error, style_label


@click.command()
def token() -> None:
    """Show the gateway token source and prefix (never the full value)."""
    try:
        config = load_wrapper_config()
        value, source = peek_gateway_token(config.gateway_token_override, config.token_path)
    except StartupFailure as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(e.exit_code)

    click.echo(f"{style_label('Token file')} {config.token_path}")
    if value is None or source is None:
        click.echo(style_dim("No gateway token yet; one is generated on first start."))
        return
    click.echo(f"{style_label('Source')} {source.value}")
    click.echo(f"{style_label('Prefix')} {token_prefix(value)}")
