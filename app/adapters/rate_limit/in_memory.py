"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: the store is split into shards, each guarded by its own lock,
  so calls for the same key are serialized while unrelated keys rarely
  contend.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable
from zlib import crc32

from app.adapters.rate_limit.base import AbstractRateLimiter, Policy, RateLimitDecision


@dataclass
class _UsageRecord:
    count: int
    window_reset_at: float


class _Shard:
    """One partition of the store and the lock guarding it."""

    __slots__ = ("lock", "records")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.records: dict[str, _UsageRecord] = {}


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    Each key gets its own window that starts with the first observed attempt
    and lasts ``policy.window_seconds``. Once the window has ended, the next
    attempt opens a fresh window regardless of how the previous one ended.
    Bursts of up to twice the limit are possible across a window boundary.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        shards: int = 64,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            shards: Number of independently locked store partitions.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If shards is invalid.
        """
        if shards < 1:
            raise ValueError("shards must be >= 1")

        self._clock = clock
        self._shards = [_Shard() for _ in range(shards)]

    def _shard_for(self, key: str) -> _Shard:
        return self._shards[crc32(key.encode()) % len(self._shards)]

    def check(self, key: str, policy: Policy) -> RateLimitDecision:
        """Count one attempt for the provided key.

        Args:
            key: Unique identifier for rate limiting.
            policy: Window length and ceiling to apply.

        Returns:
            RateLimitDecision with allowance decision and metadata.

        Raises:
            ValueError: If key is empty or policy is not a Policy.
        """
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")
        if not isinstance(policy, Policy):
            raise ValueError("policy must be a Policy instance")

        shard = self._shard_for(key)
        with shard.lock:
            now = self._clock()
            record = shard.records.get(key)

            if record is None or record.window_reset_at <= now:
                record = _UsageRecord(count=1, window_reset_at=now + policy.window_seconds)
                shard.records[key] = record
                return RateLimitDecision(
                    allowed=True,
                    remaining=policy.max_requests - 1,
                    reset_at=record.window_reset_at,
                    limit=policy.max_requests,
                )

            if record.count < policy.max_requests:
                record.count += 1
                return RateLimitDecision(
                    allowed=True,
                    remaining=policy.max_requests - record.count,
                    reset_at=record.window_reset_at,
                    limit=policy.max_requests,
                )

            retry_after = max(0, int(math.ceil(record.window_reset_at - now)))
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                reset_at=record.window_reset_at,
                limit=policy.max_requests,
                retry_after_seconds=retry_after,
            )

    def reclaim(self, now: float | None = None) -> int:
        """Remove records whose window ended at or before ``now``.

        Shards are swept one at a time; expiry is confirmed under the same
        lock ``check`` takes, so a record extended concurrently survives.

        Args:
            now: Sweep time in UNIX seconds; defaults to the limiter clock.

        Returns:
            Number of records removed.
        """
        removed = 0
        for shard in self._shards:
            with shard.lock:
                cutoff = self._clock() if now is None else now
                expired = [k for k, r in shard.records.items() if r.window_reset_at <= cutoff]
                for key in expired:
                    del shard.records[key]
                removed += len(expired)
        return removed

    def size(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.records)
        return total
