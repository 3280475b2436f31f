"""API routes for the Social Connect service."""

from social_connect.api.routes.connections import router as connections_router
from social_connect.api.routes.health import router as health_router


__all__ = [
    "connections_router",
    "health_router",
]
