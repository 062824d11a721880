"""
FastAPI dependency utilities for injecting configuration.
"""

from typing import Annotated

from fastapi import Depends, Request

from app.core.config import AppSettings
from app.dependencies.clients import get_container


def get_app_settings(request: Request) -> AppSettings:
    """FastAPI dependency returning the settings the container was built from."""
    return get_container(request).settings


SettingsDependency = Annotated[AppSettings, Depends(get_app_settings)]

__all__ = ["SettingsDependency", "get_app_settings"]
