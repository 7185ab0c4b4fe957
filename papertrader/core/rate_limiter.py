"""Token bucket for outbound market-data calls.

Tiingo enforces per-key hourly and daily quotas; one bucket per process
keeps bursts of dashboard refreshes from burning through them.
"""

from __future__ import annotations

import asyncio
import time

from papertrader.core.logging import get_logger


logger = get_logger("core.rate_limiter")


class RateLimiter:
    """Async token bucket shared by every request in the process."""

    def __init__(
        self,
        name: str,
        calls_per_second: float = 5.0,
        burst_size: int = 10,
    ):
        self.name = name
        self.calls_per_second = calls_per_second
        self.burst_size = burst_size
        self._tokens = float(burst_size)
        self._stamp = time.monotonic()
        self._lock: asyncio.Lock | None = None

    def _take(self) -> float:
        """Take a token if one is available; otherwise seconds until one is."""
        now = time.monotonic()
        self._tokens = min(
            float(self.burst_size),
            self._tokens + (now - self._stamp) * self.calls_per_second,
        )
        self._stamp = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0
        return (1.0 - self._tokens) / self.calls_per_second

    async def acquire(self, timeout: float = 10.0) -> bool:
        """Wait for a token. False when none frees up within `timeout` seconds."""
        # Created lazily so the limiter can be built outside an event loop
        if self._lock is None:
            self._lock = asyncio.Lock()

        deadline = time.monotonic() + timeout
        while True:
            async with self._lock:
                wait = self._take()
            if wait == 0.0:
                return True
            if time.monotonic() + wait > deadline:
                logger.warning(f"Rate limiter {self.name} gave up after {timeout}s")
                return False
            await asyncio.sleep(min(wait, 0.5))
