"""
FastAPI dependency functions resolving collaborators from the service container.
"""

from fastapi import Request

from app.clients import PlatformRegistry
from app.dependencies.container import ServiceContainer
from app.services import ConnectionService, IdentityService, OAuthStateService


def get_container(request: Request) -> ServiceContainer:
    """Return the container attached to the application at startup."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container is not initialised; was the lifespan run?")
    return container


def get_platform_registry(request: Request) -> PlatformRegistry:
    return get_container(request).platforms


def get_oauth_state_service(request: Request) -> OAuthStateService:
    return get_container(request).state_service


def get_identity_service(request: Request) -> IdentityService:
    return get_container(request).identity_service


def get_connection_service(request: Request) -> ConnectionService:
    return get_container(request).connection_service


__all__ = [
    "get_connection_service",
    "get_container",
    "get_identity_service",
    "get_oauth_state_service",
    "get_platform_registry",
]
