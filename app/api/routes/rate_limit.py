from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from app.adapters.rate_limit.base import build_rate_limit_headers
from app.core.config import settings
from app.core.logging import rate_limit_fields
from app.core.policies import READ_HEAVY, RATE_LIMIT_POLICIES, get_policy
from app.core.rate_limit import build_check_key, get_rate_limiter, rate_limited
from app.schemas.rate_limit import (
    CheckRequest,
    DecisionResponse,
    LimiterStatsResponse,
    PolicyListResponse,
    PolicyResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rate-limit", tags=["Rate Limit"])


@router.get(
    "/policies",
    response_model=PolicyListResponse,
    dependencies=[Depends(rate_limited(READ_HEAVY))],
    openapi_extra={"x-rate-limit-policy": READ_HEAVY},
)
async def list_policies() -> PolicyListResponse:
    """List the named presets and their limits."""

    return PolicyListResponse(
        policies=[
            PolicyResponse(
                name=name,
                window_seconds=policy.window_seconds,
                max_requests=policy.max_requests,
            )
            for name, policy in RATE_LIMIT_POLICIES.items()
        ]
    )


@router.post("/check", response_model=DecisionResponse)
async def check_rate_limit(body: CheckRequest, request: Request, response: Response) -> DecisionResponse:
    """Count one attempt for ``body.key`` and report the decision.

    A denial is reported as a normal response with ``allowed=false``; callers
    decide how to reject their own request. The X-RateLimit-* headers
    describe the checked key, not the caller of this endpoint.

    Submitted keys are counted in their own namespace, separate from the
    budgets the API enforces on its callers.

    Raises:
        ValidationAppError: If ``body.policy`` is not a known preset (400).
    """

    policy = get_policy(body.policy)
    key = build_check_key(body.key)
    decision = get_rate_limiter(request).check(key, policy)

    logger.info("rate_limit.checked", extra=rate_limit_fields(key, decision, policy=policy.name))

    if settings.app.rate_limit_include_headers:
        response.headers.update(build_rate_limit_headers(decision, policy.max_requests))

    return DecisionResponse(
        allowed=decision.allowed,
        remaining=decision.remaining,
        reset_at=decision.reset_at,
        limit=decision.limit,
        retry_after_seconds=decision.retry_after_seconds,
        policy=body.policy,
    )


@router.get(
    "/stats",
    response_model=LimiterStatsResponse,
    dependencies=[Depends(rate_limited(READ_HEAVY))],
    openapi_extra={"x-rate-limit-policy": READ_HEAVY},
)
async def limiter_stats(request: Request) -> LimiterStatsResponse:
    """Report how many keys the limiter currently holds."""

    reclaimer = request.app.state.reclaimer
    return LimiterStatsResponse(
        tracked_keys=get_rate_limiter(request).size(),
        reclaim_interval_seconds=reclaimer.interval_seconds,
        reclaimer_running=reclaimer.running,
    )
