"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Policy:
    """Fixed-window limit for one traffic class.

    Attributes:
        window_seconds: Length of one counting window in seconds.
        max_requests: Maximum admitted requests per window.
        name: Optional preset name, used for logs and responses.

    Raises:
        ValueError: If window_seconds or max_requests are not positive.
    """

    window_seconds: float
    max_requests: int
    name: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.max_requests, bool) or not isinstance(self.max_requests, int):
            raise ValueError("max_requests must be an integer")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if not self.window_seconds > 0:
            raise ValueError("window_seconds must be > 0")


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a single admission check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        limit: Max requests per window for the applied policy.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    retry_after_seconds: int | None = None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def check(self, key: str, policy: Policy) -> RateLimitDecision:
        """Count one attempt for key against policy.

        Args:
            key: Unique identifier (e.g., "<ip>:<route>" or a user id).
            policy: Window and ceiling to apply.

        Returns:
            RateLimitDecision describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def reclaim(self, now: float | None = None) -> int:
        """Drop records whose window ended at or before now.

        Returns:
            Number of records removed.
        """
        raise NotImplementedError

    @abstractmethod
    def size(self) -> int:
        """Return the number of tracked keys."""
        raise NotImplementedError


def build_rate_limit_headers(
    decision: RateLimitDecision,
    limit: int | None = None,
) -> dict[str, str]:
    """Project a decision onto rate limit response headers.

    Args:
        decision: Outcome of a check.
        limit: Configured ceiling; defaults to the decision's own limit.

    Returns:
        Header mapping. Retry-After is only present for denials.
    """

    headers = {
        "X-RateLimit-Limit": str(decision.limit if limit is None else limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(math.ceil(decision.reset_at))),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds or 0)
    return headers
