"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_connection_service,
    get_container,
    get_identity_service,
    get_oauth_state_service,
    get_platform_registry,
)
from .config import SettingsDependency, get_app_settings
from .container import ServiceContainer, build_container

__all__ = [
    "ServiceContainer",
    "SettingsDependency",
    "build_container",
    "get_app_settings",
    "get_connection_service",
    "get_container",
    "get_identity_service",
    "get_oauth_state_service",
    "get_platform_registry",
]
