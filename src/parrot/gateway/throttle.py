"""Outbound flood control for chat lines."""

from __future__ import annotations

import asyncio
import time


class TokenBucket:
    """Allows a burst of ``limit`` lines, then ``refill_rate`` lines per second.

    The bridge awaits :meth:`wait` before every send so a long multi-line
    payload cannot trip the server's flood protection.
    """

    def __init__(self, limit: int, refill_rate: float = 1.0) -> None:
        if limit < 1 or refill_rate <= 0:
            raise ValueError(f"invalid token bucket: limit={limit} refill_rate={refill_rate}")
        self._limit = limit
        self._refill_rate = refill_rate
        self._tokens = float(limit)
        self._last_refill = time.monotonic()

    @property
    def limit(self) -> int:
        return self._limit

    def take(self) -> bool:
        """Spend one token if there is one."""
        self._refill()
        if self._tokens < 1:
            return False
        self._tokens -= 1
        return True

    def delay(self) -> float:
        """Seconds until the next token; 0.0 when one is ready."""
        self._refill()
        missing = 1 - self._tokens
        return max(0.0, missing / self._refill_rate)

    async def wait(self) -> None:
        """Sleep until a token is ready, then spend it."""
        while not self.take():
            await asyncio.sleep(self.delay())

    def _refill(self) -> None:
        now = time.monotonic()
        gained = (now - self._last_refill) * self._refill_rate
        self._tokens = min(float(self._limit), self._tokens + gained)
        self._last_refill = now
