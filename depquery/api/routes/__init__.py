"""
API Routes - FastAPI route modules.
"""

from depquery.api.routes.health import router as health_router
from depquery.api.routes.query import router as query_router
from depquery.api.routes.summary import router as summary_router

__all__ = [
    "health_router",
    "query_router",
    "summary_router",
]
