"""Command-line interface for gateway-wrapper."""

from .main import cli, main

__all__ = ["cli", "main"]
