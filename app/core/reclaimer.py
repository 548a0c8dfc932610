"""Periodic reclamation of expired rate limit records.

The sweep is pure housekeeping: the limiter resets expired records on its
own when they are next checked. Reclamation only bounds memory for keys that
stop sending traffic.

Usage:
    reclaimer = PeriodicReclaimer(limiter, interval_seconds=300)
    reclaimer.start()        # inside a running event loop (app startup)
    ...
    await reclaimer.stop()   # app shutdown
"""

from __future__ import annotations

import asyncio
import logging

from app.adapters.rate_limit.base import AbstractRateLimiter

logger = logging.getLogger(__name__)


class PeriodicReclaimer:
    """Runs ``limiter.reclaim()`` on a fixed period as an asyncio task."""

    def __init__(self, limiter: AbstractRateLimiter, *, interval_seconds: float = 300.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self._limiter = limiter
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self, now: float | None = None) -> int:
        """Perform a single sweep and return the number of removed records."""

        removed = self._limiter.reclaim(now)
        logger.info(
            "rate_limit.reclaimed",
            extra={
                "removed": removed,
                "tracked_keys": self._limiter.size(),
            },
        )
        return removed

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop.

        Calling start on an already running reclaimer does nothing.
        """

        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="rate-limit-reclaimer"
        )
        logger.info(
            "rate_limit.reclaimer_started",
            extra={"interval_s": self._interval},
        )

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""

        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limit.reclaimer_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception:
                # The next tick retries.
                logger.exception("rate_limit.reclaim_failed")
