from __future__ import annotations

from ratelimit_api.api.routes.decisions import router as decisions_router
from ratelimit_api.api.routes.health import router as health_router

__all__ = ["decisions_router", "health_router"]
