"""
API Module
FastAPI routers for the CareWatch application
"""

from api.elders import router as elders_router
from api.caretakers import router as caretakers_router
from api.medicines import router as medicines_router
from api.schedules import router as schedules_router
from api.notifications import router as notifications_router

from api.deps import (
    get_db,
    get_current_elder_id,
    get_current_caretaker_id,
    get_coordinator,
    get_now,
    services,
)


__all__ = [
    # Routers
    "elders_router",
    "caretakers_router",
    "medicines_router",
    "schedules_router",
    "notifications_router",
    # Dependencies
    "get_db",
    "get_current_elder_id",
    "get_current_caretaker_id",
    "get_coordinator",
    "get_now",
    "services",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(elders_router, prefix=prefix)
    app.include_router(caretakers_router, prefix=prefix)
    app.include_router(medicines_router, prefix=prefix)
    app.include_router(schedules_router, prefix=prefix)
    app.include_router(notifications_router, prefix=prefix)
