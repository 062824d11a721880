"""
Signed session cookies.

The session value is ``base64(hmac_sha256(payload) + payload)`` where the
payload is compact JSON holding the user id and an expiry timestamp.
"""

from __future__ import annotations

import base64
import hmac
import json
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Optional

_SIGNATURE_LENGTH = 32


class SessionTokenCodec:
    """Encode and verify session values to guard against tampering."""

    def __init__(self, secret_key: str, *, ttl_seconds: int = 86400) -> None:
        if not secret_key:
            raise ValueError("Session secret must be provided.")
        self._secret_key = secret_key.encode("utf-8")
        self._ttl = timedelta(seconds=ttl_seconds)

    def encode(self, user_id: str, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "expires_at": int((issued_at + self._ttl).timestamp()),
        }
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized).decode("utf-8")

    def decode(self, token: str, *, now: Optional[datetime] = None) -> Optional[str]:
        """Return the user id carried by ``token``, or ``None`` if it is not trustworthy."""
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except ValueError:
            return None
        signature, serialized = decoded[:_SIGNATURE_LENGTH], decoded[_SIGNATURE_LENGTH:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            return None

        try:
            payload = json.loads(serialized)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None

        user_id = payload.get("user_id")
        expires_at = payload.get("expires_at")
        if not isinstance(user_id, str) or not user_id or not isinstance(expires_at, int):
            return None

        current = now or datetime.now(timezone.utc)
        if current.timestamp() >= expires_at:
            return None
        return user_id


__all__ = ["SessionTokenCodec"]
