"""Routers package."""

from .auth import router as auth_router
from .commissions import router as commissions_router
from .dashboard import router as dashboard_router
from .debug import router as debug_router
from .establishments import router as establishments_router
from .leads import router as leads_router
from .profile import router as profile_router
from .users import router as users_router

__all__ = [
    "auth_router",
    "commissions_router",
    "dashboard_router",
    "debug_router",
    "establishments_router",
    "leads_router",
    "profile_router",
    "users_router",
]
