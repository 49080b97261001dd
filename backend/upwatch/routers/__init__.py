"""API routers."""
from .monitors import router as monitors_router
from .agents import router as agents_router
from .notifications import router as notifications_router

__all__ = ["monitors_router", "agents_router", "notifications_router"]
