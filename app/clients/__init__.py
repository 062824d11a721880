"""Expose storage gateways and platform client wrappers."""

from .agency_store import AgencyStore
from .connection_store import ConnectionStore
from .oauth_state_store import OAuthStateStore
from .platform_oauth import (
    PlatformConfig,
    PlatformOAuthClient,
    PlatformRegistry,
    build_platform_registry,
)
from .session_tokens import SessionTokenCodec
from .sqlite_store import SQLiteDatabase

__all__ = [
    "AgencyStore",
    "ConnectionStore",
    "OAuthStateStore",
    "PlatformConfig",
    "PlatformOAuthClient",
    "PlatformRegistry",
    "SQLiteDatabase",
    "SessionTokenCodec",
    "build_platform_registry",
]
