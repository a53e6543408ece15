from __future__ import annotations

from pydantic import BaseModel, Field

from sql_rate_limit.adapters.rate_limit.base import RateLimitResult


class RateLimitStatus(BaseModel):
    """Rate limit budget after the current request was recorded."""

    limit: int = Field(..., description="Max requests per window", ge=1)
    remaining: int = Field(..., description="Requests left in the current window", ge=0)
    reset_ms: int = Field(..., description="Milliseconds until the window resets", ge=0)

    @classmethod
    def from_result(cls, result: RateLimitResult) -> "RateLimitStatus":
        return cls(limit=result.limit, remaining=result.remaining, reset_ms=result.reset)


class HelloResponse(BaseModel):
    message: str = Field(..., description="Greeting payload")
    rate_limit: RateLimitStatus | None = Field(
        None,
        description="Budget information (absent when rate limiting is disabled)",
    )
