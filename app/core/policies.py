"""Named rate limit presets for each traffic class.

Values are shared with existing deployments and must stay as they are.
"""

from __future__ import annotations

from types import MappingProxyType

from app.adapters.rate_limit.base import Policy
from app.core.errors import ValidationAppError

EXPENSIVE_GENERATION = "expensive-generation"
GENERAL_API = "general-api"
READ_HEAVY = "read-heavy"
AUTHENTICATION = "authentication"
PAYMENT = "payment"

DEFAULT_POLICY_NAME = GENERAL_API

RATE_LIMIT_POLICIES: MappingProxyType[str, Policy] = MappingProxyType(
    {
        # Strict limits for expensive AI generation calls
        EXPENSIVE_GENERATION: Policy(window_seconds=60, max_requests=10, name=EXPENSIVE_GENERATION),
        GENERAL_API: Policy(window_seconds=60, max_requests=60, name=GENERAL_API),
        READ_HEAVY: Policy(window_seconds=60, max_requests=120, name=READ_HEAVY),
        AUTHENTICATION: Policy(window_seconds=15 * 60, max_requests=5, name=AUTHENTICATION),
        PAYMENT: Policy(window_seconds=60 * 60, max_requests=3, name=PAYMENT),
    }
)


def get_policy(name: str) -> Policy:
    """Look up a preset by name.

    Args:
        name: Preset name, e.g. ``"read-heavy"``.

    Returns:
        The matching Policy.

    Raises:
        ValidationAppError: If no preset has that name.
    """

    try:
        return RATE_LIMIT_POLICIES[name]
    except KeyError:
        raise ValidationAppError(
            code="unknown_rate_limit_policy",
            message=f"Unknown rate limit policy: {name}",
            details={"hint": "Use one of: " + ", ".join(RATE_LIMIT_POLICIES)},
        ) from None
