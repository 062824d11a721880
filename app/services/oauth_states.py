"""
Issuing and consuming single-use OAuth state tokens.

A state token correlates an outbound consent redirect with the callback that
follows it. Tokens are random, expire after a short window and can be
consumed once.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.clients.oauth_state_store import OAuthStateStore
from app.core.errors import InvalidOrExpiredStateError
from app.models.oauth import OAuthStateData, OAuthStateRecord, Platform, utcnow

logger = logging.getLogger(__name__)

STATE_TOKEN_BYTES = 32


class OAuthStateService:
    """Issue, consume and reap OAuth correlation records."""

    def __init__(
        self,
        store: OAuthStateStore,
        *,
        ttl_seconds: int = 600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def issue(
        self,
        client_id: str,
        agency_id: str,
        platform: Platform | str,
        user_id: str,
    ) -> str:
        """
        Persist a new state record and return its token.

        Raises ``PersistenceError`` when the write fails; no token is returned
        in that case.
        """
        now = self._clock()
        record = OAuthStateRecord(
            state=secrets.token_urlsafe(STATE_TOKEN_BYTES),
            client_id=client_id,
            agency_id=agency_id,
            platform=Platform(platform),
            user_id=user_id,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._store.insert(record)
        logger.info(
            "Issued OAuth state for client %s (agency %s, platform %s, user %s)",
            client_id,
            agency_id,
            record.platform.value,
            user_id,
        )
        return record.state

    def consume(self, token: str) -> Optional[OAuthStateData]:
        """
        Validate and delete ``token``, returning its correlation data.

        Unknown, already consumed and expired tokens all yield ``None``.
        """
        if not token:
            return None
        record = self._store.take(token)
        if record is None:
            return None
        if record.is_expired(self._clock()):
            logger.info("Discarded expired OAuth state for client %s", record.client_id)
            return None
        return record.to_data()

    def redeem(self, token: str, *, platform: Platform) -> OAuthStateData:
        """Consume ``token`` for a callback on ``platform`` or raise ``InvalidOrExpiredStateError``."""
        data = self.consume(token)
        if data is None:
            raise InvalidOrExpiredStateError(detail="OAuth state is unknown, used or expired.")
        if data.platform != platform:
            raise InvalidOrExpiredStateError(
                detail=f"OAuth state was issued for {data.platform.value}, not {platform.value}."
            )
        return data

    def purge_expired(self) -> int:
        """Delete abandoned records whose expiry has passed."""
        purged = self._store.delete_expired(self._clock())
        if purged:
            logger.info("Purged %d expired OAuth state record(s)", purged)
        return purged


__all__ = ["OAuthStateService", "STATE_TOKEN_BYTES"]
