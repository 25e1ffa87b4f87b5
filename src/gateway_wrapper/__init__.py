"""gateway-wrapper: supervising reverse proxy for the OpenClaw gateway."""

__version__ = "0.1.0"
