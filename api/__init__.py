"""
API Module
FastAPI routers for the DoseRight backend
"""

from api.auth import router as auth_router
from api.dashboard import router as dashboard_router
from api.hardware import router as hardware_router
from api.hardware import device_router

from api.deps import (
    get_db,
    get_clock,
    get_current_user,
    require_role,
    verify_device_key,
    services,
)


__all__ = [
    # Routers
    "auth_router",
    "dashboard_router",
    "hardware_router",
    "device_router",
    # Dependencies
    "get_db",
    "get_clock",
    "get_current_user",
    "require_role",
    "verify_device_key",
    "services",
]


def include_routers(app, prefix: str = "/api"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app, settings.API_PREFIX)
    """
    app.include_router(auth_router, prefix=prefix)
    app.include_router(dashboard_router, prefix=prefix)
    app.include_router(hardware_router, prefix=prefix)
    app.include_router(device_router, prefix=prefix)
