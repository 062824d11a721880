"""
Explicitly constructed collaborators with process-wide lifetime.

``build_container`` runs once during application startup; ``aclose`` runs on
shutdown. Request handlers reach the container through ``app.state``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.clients import (
    AgencyStore,
    ConnectionStore,
    OAuthStateStore,
    PlatformRegistry,
    SessionTokenCodec,
    SQLiteDatabase,
    build_platform_registry,
)
from app.core.config import AppSettings
from app.services import (
    ConnectionService,
    IdentityService,
    OAuthStateService,
    TokenCipherService,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: AppSettings
    database: SQLiteDatabase
    http_client: httpx.AsyncClient
    platforms: PlatformRegistry
    agency_store: AgencyStore
    state_service: OAuthStateService
    identity_service: IdentityService
    connection_service: ConnectionService

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_container(
    settings: AppSettings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    platforms: Optional[PlatformRegistry] = None,
) -> ServiceContainer:
    """Wire every collaborator from ``settings``; tests may inject the HTTP client or platforms."""
    database = SQLiteDatabase(
        settings.database.path,
        busy_timeout=settings.database.busy_timeout_seconds,
    )
    http_client = http_client or httpx.AsyncClient(
        timeout=settings.oauth.http_timeout_seconds
    )
    if platforms is None:
        platforms = build_platform_registry(settings, http_client)

    agency_store = AgencyStore(database)
    token_cipher = TokenCipherService(secret=settings.security.token_encryption_secret)
    codec = SessionTokenCodec(
        settings.security.session_secret,
        ttl_seconds=settings.security.session_ttl_seconds,
    )

    container = ServiceContainer(
        settings=settings,
        database=database,
        http_client=http_client,
        platforms=platforms,
        agency_store=agency_store,
        state_service=OAuthStateService(
            OAuthStateStore(database),
            ttl_seconds=settings.oauth.state_ttl_seconds,
        ),
        identity_service=IdentityService(
            codec=codec,
            agency_store=agency_store,
            cookie_name=settings.security.session_cookie_name,
        ),
        connection_service=ConnectionService(
            store=ConnectionStore(database),
            agency_store=agency_store,
            token_cipher=token_cipher,
            platforms=platforms,
            pending_ttl_seconds=settings.oauth.pending_ttl_seconds,
        ),
    )
    logger.info(
        "Service container ready (database=%s, platforms=%s)",
        database.path,
        ", ".join(client.platform.value for client in platforms) or "none",
    )
    return container


__all__ = ["ServiceContainer", "build_container"]
