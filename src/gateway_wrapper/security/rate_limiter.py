"""Per-IP rate limiting for the setup auth gate.

Fixed window per client address: the first attempt opens a window, each
further attempt inside it increments the count. Once the count exceeds
the limit the address is locked out until the window expires; locked-out
attempts do not increment the count.

Usage:
    limiter = SetupRateLimiter()
    if limiter.is_rate_limited(client_ip):
        # 429 without looking at credentials
        ...
"""

from __future__ import annotations

__all__ = [
    "RateLimitRecord",
    "SetupRateLimiter",
    "run_rate_limit_sweeper",
]

import asyncio
from dataclasses import dataclass, field
from time import monotonic
from typing import Callable

from gateway_wrapper.constants import (
    SETUP_RATE_MAX_ATTEMPTS,
    SETUP_RATE_SWEEP_INTERVAL_SECONDS,
    SETUP_RATE_WINDOW_SECONDS,
)


@dataclass(slots=True)
class RateLimitRecord:
    window_start: float
    count: int


@dataclass(slots=True)
class SetupRateLimiter:
    """Attempt counter keyed by client IP.

    Not thread-safe: mutated from the event loop only (requests and the
    sweep task).

    Attributes:
        window_seconds: Length of a window.
        max_attempts: Attempts allowed per window.
        clock: Monotonic time source (overridable in tests).
    """

    window_seconds: float = SETUP_RATE_WINDOW_SECONDS
    max_attempts: int = SETUP_RATE_MAX_ATTEMPTS
    clock: Callable[[], float] = monotonic

    _records: dict[str, RateLimitRecord] = field(default_factory=dict)

    def is_rate_limited(self, ip: str) -> bool:
        """Record an attempt from ip and report whether it is over the limit."""
        now = self.clock()
        record = self._records.get(ip)

        if record is None or now - record.window_start > self.window_seconds:
            self._records[ip] = RateLimitRecord(window_start=now, count=1)
            return False

        if record.count > self.max_attempts:
            return True

        record.count += 1
        return record.count > self.max_attempts

    def sweep(self) -> int:
        """Drop expired records. Returns how many were removed."""
        now = self.clock()
        expired = [ip for ip, record in self._records.items() if now - record.window_start > self.window_seconds]
        for ip in expired:
            del self._records[ip]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


async def run_rate_limit_sweeper(
    limiter: SetupRateLimiter,
    interval: float = SETUP_RATE_SWEEP_INTERVAL_SECONDS,
) -> None:
    """Sweep expired records every interval seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        limiter.sweep()
