"""Pydantic schemas for rate limit endpoints."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from app.core.policies import DEFAULT_POLICY_NAME


class PolicyResponse(BaseModel):
    """A named rate limit preset."""

    name: str = Field(..., description="Preset name, e.g. 'read-heavy'.")
    window_seconds: float = Field(..., description="Window length in seconds.")
    max_requests: int = Field(..., description="Admitted requests per window.")


class PolicyListResponse(BaseModel):
    policies: List[PolicyResponse] = Field(default_factory=list)


class CheckRequest(BaseModel):
    """Request to count one attempt for an arbitrary caller key."""

    key: str = Field(
        ...,
        min_length=1,
        description="Caller identifier, e.g. '<ip>:<route>' or a user id.",
    )
    policy: str = Field(
        DEFAULT_POLICY_NAME,
        description="Name of the preset to apply.",
    )


class DecisionResponse(BaseModel):
    """Outcome of one admission check."""

    allowed: bool = Field(..., description="Whether the attempt was admitted.")
    remaining: int = Field(..., ge=0, description="Attempts left in the current window.")
    reset_at: float = Field(..., description="UNIX seconds when the current window ends.")
    limit: int = Field(..., description="Configured ceiling of the applied policy.")
    retry_after_seconds: int | None = Field(
        None,
        description="Seconds to wait before retrying (denials only).",
    )
    policy: str = Field(..., description="Name of the applied preset.")


class LimiterStatsResponse(BaseModel):
    tracked_keys: int = Field(..., description="Keys currently held in memory.")
    reclaim_interval_seconds: float = Field(
        ..., description="Period of the background reclamation sweep."
    )
    reclaimer_running: bool
