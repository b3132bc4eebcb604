# app/api/v1/__init__.py
"""
Versioned API v1. Aggregates all sub-routers under ``/api/v1``.

Usage in ``main.py``::

    from app.api.v1 import v1_router
    app.include_router(v1_router)
"""

from fastapi import APIRouter

from app.api.v1.routes.analytics import router as analytics_router
from app.api.v1.routes.gst_portal import router as gst_portal_router
from app.api.v1.routes.notifications import router as notifications_router
from app.api.v1.routes.records import (
    clients_router,
    invoices_router,
    notices_router,
    payments_router,
    registrations_router,
    returns_router,
)

v1_router = APIRouter(prefix="/api/v1")

# Compliance records (all writes go through the compliance engine)
v1_router.include_router(clients_router)
v1_router.include_router(registrations_router)
v1_router.include_router(returns_router)
v1_router.include_router(payments_router)
v1_router.include_router(notices_router)
v1_router.include_router(invoices_router)

# Inbox, dashboard, portal read-through
v1_router.include_router(notifications_router)
v1_router.include_router(analytics_router)
v1_router.include_router(gst_portal_router)

__all__ = ["v1_router"]
