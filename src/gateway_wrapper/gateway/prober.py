"""Readiness probe for the supervised backend.

Polls the backend root over loopback until it answers. Any HTTP response
(whatever its status) means the backend is accepting connections and
counts as ready; connection errors and timeouts mean "not yet".
"""

from __future__ import annotations

__all__ = ["ReadinessProber"]

import asyncio
import logging
import time

import httpx

from gateway_wrapper.constants import (
    APP_NAME,
    PROBE_ATTEMPT_TIMEOUT_SECONDS,
    PROBE_DIAGNOSTIC_TIMEOUT_SECONDS,
    PROBE_INTERVAL_SECONDS,
    PROBE_MAX_WAIT_SECONDS,
)

_logger = logging.getLogger(f"{APP_NAME}.prober")


class ReadinessProber:
    """Polls the backend liveness endpoint with bounded retry.

    Args:
        target_url: Backend base URL (e.g. http://127.0.0.1:18789).
        token: Gateway token sent as a bearer credential.
        interval: Seconds between attempts.
        attempt_timeout: Per-attempt timeout in seconds.
        max_wait: Default overall deadline in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        target_url: str,
        token: str,
        *,
        interval: float = PROBE_INTERVAL_SECONDS,
        attempt_timeout: float = PROBE_ATTEMPT_TIMEOUT_SECONDS,
        max_wait: float = PROBE_MAX_WAIT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._target_url = target_url.rstrip("/")
        self._token = token
        self._interval = interval
        self._attempt_timeout = attempt_timeout
        self._max_wait = max_wait
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Authorization": f"Bearer {self._token}"},
            transport=self._transport,
        )

    async def wait_until_ready(self, max_wait: float | None = None) -> bool:
        """Poll until the backend responds or the deadline passes.

        Args:
            max_wait: Overall deadline in seconds. Defaults to the
                constructor value.

        Returns:
            True once any HTTP response is received, False on deadline.
        """
        deadline = time.monotonic() + (self._max_wait if max_wait is None else max_wait)
        attempts = 0

        async with self._client(self._attempt_timeout) as client:
            while True:
                attempts += 1
                try:
                    await client.get(f"{self._target_url}/")
                    _logger.info(
                        {
                            "event": "gateway_ready",
                            "message": f"Gateway ready after {attempts} probe attempt(s)",
                        }
                    )
                    return True
                except httpx.HTTPError:
                    pass

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(min(self._interval, remaining))

        _logger.warning(
            {
                "event": "gateway_probe_timeout",
                "message": f"Gateway did not become ready after {attempts} probe attempt(s)",
                "target": self._target_url,
            }
        )
        return False

    async def probe_once(self, timeout: float = PROBE_DIAGNOSTIC_TIMEOUT_SECONDS) -> bool:
        """Single reachability check for diagnostics."""
        async with self._client(timeout) as client:
            try:
                await client.get(f"{self._target_url}/")
            except httpx.HTTPError:
                return False
        return True
