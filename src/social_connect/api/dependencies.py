"""FastAPI dependencies resolving services from application state."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Path, Request, status

from social_connect.container import ServiceContainer
from social_connect.services.token_lifecycle import TokenLifecycleManager


def get_container(request: Request) -> ServiceContainer:
    """Get the service container from app state."""
    container: ServiceContainer | None = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return container


def get_manager(
    container: Annotated[ServiceContainer, Depends(get_container)],
    provider: Annotated[str, Path(description="Provider slug, e.g. twitter")],
) -> TokenLifecycleManager:
    """Resolve the lifecycle manager for the provider in the route path."""
    if provider != container.settings.provider.name:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown provider: {provider}",
        )
    return container.manager


def get_current_user_id(
    x_user_id: Annotated[str | None, Header(description="Authenticated application user")] = None,
) -> str:
    """Application user id set by the upstream authentication gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


ManagerDep = Annotated[TokenLifecycleManager, Depends(get_manager)]
UserIdDep = Annotated[str, Depends(get_current_user_id)]
