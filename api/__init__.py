"""
API Module
FastAPI routers for the DoseSentinel application
"""

from api.doses import router as doses_router
from api.sweeps import router as sweeps_router
from api.analytics import router as analytics_router
from api.medications import router as medications_router

from api.deps import (
    get_db,
    get_current_user_id,
    pagination_params,
    services,
)


__all__ = [
    # Routers
    "doses_router",
    "sweeps_router",
    "analytics_router",
    "medications_router",
    # Dependencies
    "get_db",
    "get_current_user_id",
    "pagination_params",
    "services",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(doses_router, prefix=prefix)
    app.include_router(sweeps_router, prefix=prefix)
    app.include_router(analytics_router, prefix=prefix)
    app.include_router(medications_router, prefix=prefix)
