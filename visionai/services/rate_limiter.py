"""
In-process rate limiter for the auth endpoints.

Counts attempts per client within a window that opens at the client's first
attempt. A background sweep forgets clients idle longer than cleanup_after.
State lives in this process only.
"""

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from structlog import get_logger

from visionai.models.domain import RateLimitDecision
from visionai.observability.metrics import metrics

logger = get_logger(__name__)


@dataclass
class _Entry:
    count: int
    window_start: float
    last_access: float


class SlidingWindowRateLimiter:
    """
    Usage:
        limiter = SlidingWindowRateLimiter("login", max_attempts=5, window_seconds=900)
        decision = limiter.check_and_record(client_id)
        if not decision.allowed:
            ...  # 429, Retry-After: decision.retry_after_seconds
    """

    def __init__(
        self,
        name: str,
        max_attempts: int,
        window_seconds: float,
        cleanup_after_seconds: float = 1800,
        sweep_interval_seconds: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1: {max_attempts}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive: {window_seconds}")

        self.name = name
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.cleanup_after_seconds = cleanup_after_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    def check_and_record(self, key: str) -> RateLimitDecision:
        """
        Decide whether key may make another attempt, and count it if so.

        Denied attempts are not counted, so a client that keeps retrying
        while blocked is released when its window ends.
        """
        now = self._clock()
        entry = self._entries.get(key)

        if entry is None:
            entry = _Entry(count=1, window_start=now, last_access=now)
            self._entries[key] = entry
            allowed = True
        elif now - entry.window_start > self.window_seconds:
            entry.count = 1
            entry.window_start = now
            entry.last_access = now
            allowed = True
        elif entry.count >= self.max_attempts:
            entry.last_access = now
            allowed = False
        else:
            entry.count += 1
            entry.last_access = now
            allowed = True

        metrics.record_rate_limit(self.name, allowed, len(self._entries))

        if not allowed:
            retry_after = math.ceil(entry.window_start + self.window_seconds - now)
            logger.warning(
                "rate_limit_denied",
                limiter=self.name,
                client=key,
                attempts=entry.count,
                retry_after_seconds=retry_after,
            )
            return RateLimitDecision(
                allowed=False,
                limit=self.max_attempts,
                remaining=0,
                retry_after_seconds=max(retry_after, 1),
            )

        return RateLimitDecision(
            allowed=True,
            limit=self.max_attempts,
            remaining=self.max_attempts - entry.count,
            retry_after_seconds=0,
        )

    def sweep(self) -> int:
        """Drop entries idle longer than cleanup_after. Returns how many went."""
        now = self._clock()
        stale = [
            key
            for key, entry in self._entries.items()
            if now - entry.last_access > self.cleanup_after_seconds
        ]
        for key in stale:
            del self._entries[key]

        metrics.rate_limit_entries.labels(limiter=self.name).set(len(self._entries))
        if stale:
            logger.debug("rate_limit_swept", limiter=self.name, removed=len(stale))
        return len(stale)

    def reset(self, key: str | None = None) -> None:
        """Forget one client, or everyone."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(
                self._sweep_forever(), name=f"rate-limit-sweep-{self.name}"
            )
            logger.info(
                "rate_limiter_started",
                limiter=self.name,
                max_attempts=self.max_attempts,
                window_seconds=self.window_seconds,
            )

    async def stop(self) -> None:
        """Cancel the periodic sweep and wait for it to finish."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limiter_stopped", limiter=self.name)
