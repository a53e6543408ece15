from __future__ import annotations

from sql_rate_limit.api.routes.health import router as health_router
from sql_rate_limit.api.routes.hello import router as hello_router

__all__ = ["health_router", "hello_router"]
