"""OpenAPI customization utilities.

Adds tags metadata and documents the rate limit headers on every operation
tagged with a rate limit policy, keeping documentation concerns decoupled
from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMIT_HEADERS: Dict[str, Dict[str, Any]] = {
    "X-RateLimit-Limit": {
        "description": "Configured request ceiling of the route's policy.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "UNIX seconds when the current window ends.",
        "schema": {"type": "integer"},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation.

    - Adds tags metadata if not present
    - Documents X-RateLimit-* headers and the 429 response on operations
      tagged with an ``x-rate-limit-policy`` extension
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Rate Limit",
                "description": "Policy presets, admission checks and limiter stats.",
            },
            {
                "name": "Health",
                "description": "Liveness and readiness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict) or "x-rate-limit-policy" not in method_obj:
                    continue
                responses = method_obj.setdefault("responses", {})
                for response in responses.values():
                    response.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)
                responses.setdefault(
                    "429",
                    {
                        "description": "Rate limit exceeded",
                        "headers": {
                            **_RATE_LIMIT_HEADERS,
                            "Retry-After": {
                                "description": "Seconds until the window resets.",
                                "schema": {"type": "integer"},
                            },
                        },
                    },
                )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
