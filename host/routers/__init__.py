"""API routers package."""

from .dispatch import router as dispatch_router
from .plugins import router as plugins_router

__all__ = ["dispatch_router", "plugins_router"]
