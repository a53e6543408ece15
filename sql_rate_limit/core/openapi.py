"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- 429/503 responses and ``X-RateLimit-*`` headers on rate limited operations

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Max requests per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "HTTP date at which the current window ends.",
        "schema": {"type": "string"},
    },
}


def apply_openapi_customizations(app: FastAPI, *, rate_limited_prefix: str = "/v1") -> None:
    """Patch FastAPI's OpenAPI generation to document rate limiting.

    Operations whose path starts with ``rate_limited_prefix`` get the
    rate limit headers on their 200 response plus 429 and 503 responses.
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
                "name": "Demo",
                "description": "Endpoints protected by the fixed-window rate limiter.",
            },
            {
                "name": "Health",
                "description": "Liveness checks (never rate limited).",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if not path.startswith(rate_limited_prefix):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                ok = responses.get("200")
                if isinstance(ok, dict):
                    ok.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)
                responses.setdefault(
                    "429",
                    {
                        "description": "Rate limit exceeded.",
                        "headers": {
                            **_RATE_LIMIT_HEADERS,
                            "Retry-After": {
                                "description": "Seconds until the window resets.",
                                "schema": {"type": "integer"},
                            },
                        },
                    },
                )
                responses.setdefault("503", {"description": "Counter store unavailable."})

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
