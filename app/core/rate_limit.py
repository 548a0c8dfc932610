"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency factory only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind an
  abstract interface.
- Explicit ownership: the limiter lives on ``app.state`` and is created by
  the app factory, so every app instance (and every test) has its own store.

Keying strategy:
- Per caller and per route: ``"<identity>:<mounted route template>"``.
- Identity is ``api_key:<hash>`` when an API key is sent, else ``ip:<host>``.
- Keys submitted to the check endpoint live under ``check:`` and can never
  collide with an enforcement key.
"""

from __future__ import annotations

import logging
from typing import Annotated, Awaitable, Callable

from fastapi import Header, HTTPException, Request, Response, status

from app.adapters.rate_limit.base import AbstractRateLimiter, build_rate_limit_headers
from app.core.config import settings
from app.core.logging import hash_identifier, rate_limit_fields
from app.core.policies import get_policy

logger = logging.getLogger(__name__)

CHECK_KEY_PREFIX = "check:"


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter owned by the application handling this request."""

    return request.app.state.rate_limiter


def build_check_key(key: str) -> str:
    """Map a caller-supplied key into the check endpoint's own namespace."""

    return f"{CHECK_KEY_PREFIX}{key}"


def mounted_route_path(request: Request) -> str:
    """Return the matched route template including any router prefix.

    ``scope["route"]`` may be the route as declared on its ``APIRouter``,
    without the prefix given to ``include_router``. The prefix is whatever
    precedes the template's segments in the requested path. Templates with a
    ``:path`` converter span an unknown number of segments, so the concrete
    path is used for them.
    """

    path = request.url.path
    template = getattr(request.scope.get("route"), "path", None)
    if not template or ":path}" in template:
        return path

    depth = len([s for s in template.split("/") if s])
    segments = path.rstrip("/").split("/")
    if depth >= len(segments):
        return template
    prefix = "/".join(segments[: len(segments) - depth])
    return f"{prefix}{template}"


def build_rate_limit_key(request: Request, x_api_key: str | None) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.
        x_api_key: API key value from the X-API-Key header.

    Returns:
        str: Namespaced limiter key.
    """

    if x_api_key and settings.app.rate_limit_trust_api_key:
        identity = f"api_key:{hash_identifier(x_api_key)}"
    else:
        client_host = request.client.host if request.client else "unknown"
        identity = f"ip:{client_host}"

    return f"{identity}:{mounted_route_path(request)}"


def rate_limited(policy_name: str) -> Callable[..., Awaitable[None]]:
    """Create a FastAPI dependency enforcing the named preset.

    The preset is resolved immediately so a typo fails at import time rather
    than on the first request.

    Usage:
        @router.get("/items", dependencies=[Depends(rate_limited(READ_HEAVY))])

    Args:
        policy_name: Name of a preset from ``RATE_LIMIT_POLICIES``.

    Raises:
        ValidationAppError: If the preset does not exist.
    """

    policy = get_policy(policy_name)

    async def enforce_rate_limit(
        request: Request,
        response: Response,
        x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    ) -> None:
        """Consume one unit of the caller's budget or raise HTTP 429.

        Raises:
            HTTPException: 429 Too Many Requests when rate limit is exceeded.
        """

        if not settings.app.rate_limit_enabled:
            return

        limiter = get_rate_limiter(request)
        key = build_rate_limit_key(request, x_api_key)

        decision = limiter.check(key, policy)
        headers = build_rate_limit_headers(decision, policy.max_requests)

        if decision.allowed:
            logger.debug("rate_limit.allowed", extra=rate_limit_fields(key, decision, policy=policy.name))
            if settings.app.rate_limit_include_headers:
                response.headers.update(headers)
            return

        logger.warning("rate_limit.exceeded", extra=rate_limit_fields(key, decision, policy=policy.name))

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers=headers if settings.app.rate_limit_include_headers else None,
        )

    return enforce_rate_limit
