"""
Staging and completing ad-platform connections.

A successful callback stores the encrypted platform tokens as a pending grant
together with the accounts the user may choose from. Choosing an account
promotes the grant to the client's data connection for that platform.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from app.clients.agency_store import AgencyStore
from app.clients.connection_store import ConnectionStore
from app.clients.platform_oauth import PlatformConfig, PlatformRegistry
from app.core.errors import NotFoundError, PlatformOAuthError, UnauthorizedError
from app.models.oauth import (
    AdAccount,
    ConnectionStatus,
    DataConnection,
    OAuthStateData,
    PendingConnection,
    PlatformTokens,
    utcnow,
)
from app.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

PENDING_NOT_FOUND_MESSAGE = "Invalid or expired connection session. Please start again."
RECONNECT_MESSAGE = "Access expired. Please reconnect this account."
UNREADABLE_TOKEN_MESSAGE = "Stored credentials could not be read. Please reconnect this account."

# Tokens expiring within this window are refreshed before use.
REFRESH_WINDOW = timedelta(minutes=5)


class ConnectionService:
    def __init__(
        self,
        *,
        store: ConnectionStore,
        agency_store: AgencyStore,
        token_cipher: TokenCipherService,
        platforms: Optional[PlatformRegistry] = None,
        pending_ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._agencies = agency_store
        self._cipher = token_cipher
        self._platforms = platforms if platforms is not None else PlatformRegistry([])
        self._pending_ttl = timedelta(seconds=pending_ttl_seconds)
        self._clock = clock

    def stage_pending(
        self,
        *,
        state: OAuthStateData,
        user_id: str,
        tokens: PlatformTokens,
        accounts: List[AdAccount],
    ) -> str:
        """Persist encrypted tokens awaiting account selection and return the pending id."""
        now = self._clock()
        pending = PendingConnection(
            id=uuid4().hex,
            client_id=state.client_id,
            agency_id=state.agency_id,
            platform=state.platform,
            user_id=user_id,
            access_token=self._cipher.encrypt(tokens.access_token),
            refresh_token=self._cipher.encrypt_optional(tokens.refresh_token),
            token_expires_at=now + timedelta(seconds=tokens.expires_in),
            properties=accounts,
            created_at=now,
        )
        self._store.insert_pending(pending)
        logger.info(
            "Staged %s grant %s for client %s with %d account(s)",
            pending.platform.value,
            pending.id,
            pending.client_id,
            len(accounts),
        )
        return pending.id

    def complete(
        self,
        *,
        user_id: str,
        platform_config: PlatformConfig,
        pending_ref: str,
        client_id: str,
        account_id: str,
        account_name: str,
    ) -> DataConnection:
        """Promote a pending grant to the client's connection for the selected account."""
        pending = self._store.get_pending(
            pending_id=pending_ref, client_id=client_id, platform=platform_config.platform
        )
        if pending is None or pending.created_at < self._clock() - self._pending_ttl:
            raise NotFoundError(PENDING_NOT_FOUND_MESSAGE)
        if not self._agencies.is_member(agency_id=pending.agency_id, user_id=user_id):
            raise UnauthorizedError(
                detail=f"User {user_id} cannot complete connections for agency {pending.agency_id}."
            )
        if self._agencies.get_client_agency(pending.client_id) != pending.agency_id:
            raise UnauthorizedError(
                detail=f"Client {pending.client_id} does not belong to agency {pending.agency_id}."
            )

        now = self._clock()
        connection = DataConnection(
            id=uuid4().hex,
            client_id=pending.client_id,
            agency_id=pending.agency_id,
            platform=pending.platform,
            account_id=account_id,
            account_name=account_name,
            access_token=pending.access_token,
            refresh_token=pending.refresh_token,
            token_expires_at=pending.token_expires_at,
            scopes=list(platform_config.scopes),
            status=ConnectionStatus.CONNECTED,
            created_at=now,
            updated_at=now,
        )
        stored = self._store.promote_pending(pending.id, connection)
        logger.info(
            "Connected %s account %s for client %s",
            stored.platform.value,
            stored.account_id,
            stored.client_id,
        )
        return stored

    def disconnect(self, *, user_id: str, client_id: str, connection_id: str) -> None:
        agency_id = self._agencies.get_client_agency(client_id)
        if agency_id is None:
            raise NotFoundError("Client not found")
        if not self._agencies.is_member(agency_id=agency_id, user_id=user_id):
            raise UnauthorizedError(
                detail=f"User {user_id} is not a member of agency {agency_id}."
            )
        removed = self._store.delete_connection(connection_id=connection_id, client_id=client_id)
        logger.info(
            "Disconnected connection %s for client %s (%d row(s) removed)",
            connection_id,
            client_id,
            removed,
        )

    async def ensure_valid_token(self, connection_id: str) -> Optional[str]:
        """
        Return a usable plaintext access token for ``connection_id``.

        Tokens that expire within ``REFRESH_WINDOW`` are renewed with the stored
        refresh token and re-encrypted. When renewal is impossible the
        connection is flagged ``expired`` (or ``error`` for unreadable
        credentials) so the agency can reconnect it, and ``None`` is returned.
        """
        connection = self._store.get_connection_by_id(connection_id)
        if connection is None:
            return None

        now = self._clock()
        expires_at = connection.token_expires_at
        if expires_at is not None and expires_at > now + REFRESH_WINDOW:
            try:
                return self._cipher.decrypt(connection.access_token)
            except ValueError:
                self._flag(connection, ConnectionStatus.ERROR, UNREADABLE_TOKEN_MESSAGE)
                return None

        if not connection.refresh_token:
            self._flag(connection, ConnectionStatus.EXPIRED, RECONNECT_MESSAGE)
            return None

        oauth_client = self._platforms.get(connection.platform)
        if oauth_client is None:
            logger.warning(
                "Cannot refresh connection %s: %s is not configured",
                connection.id,
                connection.platform.value,
            )
            return None

        try:
            refresh_token = self._cipher.decrypt(connection.refresh_token)
        except ValueError:
            self._flag(connection, ConnectionStatus.ERROR, UNREADABLE_TOKEN_MESSAGE)
            return None

        try:
            tokens = await oauth_client.refresh_access_token(refresh_token)
        except PlatformOAuthError as exc:
            logger.warning("Token refresh failed for connection %s: %s", connection.id, exc)
            self._flag(connection, ConnectionStatus.EXPIRED, RECONNECT_MESSAGE)
            return None

        refreshed_at = self._clock()
        self._store.update_tokens(
            connection.id,
            access_token=self._cipher.encrypt(tokens.access_token),
            # Google keeps the original refresh token; LinkedIn may rotate it.
            refresh_token=self._cipher.encrypt_optional(tokens.refresh_token)
            or connection.refresh_token,
            token_expires_at=refreshed_at + timedelta(seconds=tokens.expires_in),
            updated_at=refreshed_at,
        )
        logger.info("Refreshed %s token for connection %s", connection.platform.value, connection.id)
        return tokens.access_token

    def _flag(self, connection: DataConnection, status: ConnectionStatus, message: str) -> None:
        self._store.mark_status(
            connection.id, status=status, error_message=message, updated_at=self._clock()
        )
        logger.info("Marked connection %s as %s", connection.id, status.value)

    def purge_stale_pending(self) -> int:
        purged = self._store.delete_pending_before(self._clock() - self._pending_ttl)
        if purged:
            logger.info("Purged %d stale pending connection(s)", purged)
        return purged


__all__ = [
    "ConnectionService",
    "PENDING_NOT_FOUND_MESSAGE",
    "RECONNECT_MESSAGE",
    "UNREADABLE_TOKEN_MESSAGE",
]
