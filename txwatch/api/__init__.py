"""API routers package."""
from txwatch.api.transactions import router as transactions_router
from txwatch.api.health import router as health_router

__all__ = [
    "transactions_router",
    "health_router",
]
