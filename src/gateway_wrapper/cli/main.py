"""Main CLI entry point for gateway-wrapper.

Commands:
    serve   - Run the wrapper in the foreground
    status  - Query a running wrapper
    token   - Show gateway token source and prefix

Subcommand help:
    gateway-wrapper COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from gateway_wrapper import __version__

from .commands.serve import serve
from .commands.status import status
from .commands.token import token


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """gateway-wrapper: supervising reverse proxy for the OpenClaw gateway."""
    if version:
        click.echo(f"gateway-wrapper {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(serve)
cli.add_command(status)
cli.add_command(token)


def main() -> None:
    """CLI entry point."""
    cli()
