"""Liveness endpoint."""

from typing import Any

from fastapi import APIRouter, Request

from social_connect import __version__


router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Report liveness and whether the refresh scheduler is running."""
    container = getattr(request.app.state, "container", None)
    return {
        "status": "ok" if container is not None else "starting",
        "version": __version__,
        "refresh_scheduler": bool(container and container.scheduler.running),
    }
