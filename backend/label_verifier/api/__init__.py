"""API routes."""

from .routes import router, ping_router

__all__ = ["router", "ping_router"]
