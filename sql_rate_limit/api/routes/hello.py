from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from sql_rate_limit.adapters.rate_limit.base import RateLimitResult
from sql_rate_limit.core.rate_limit import enforce_rate_limit
from sql_rate_limit.schemas.rate_limit import HelloResponse, RateLimitStatus

router = APIRouter(tags=["Demo"])


@router.get("/hello", response_model=HelloResponse)
def hello(
    result: Annotated[RateLimitResult | None, Depends(enforce_rate_limit)],
) -> HelloResponse:
    """Rate limited demo endpoint.

    Each call consumes one unit of the caller's per-IP budget. Once the
    budget is spent the dependency answers 429 before this handler runs.
    """

    return HelloResponse(
        message="Hello from the API!",
        rate_limit=RateLimitStatus.from_result(result) if result else None,
    )
