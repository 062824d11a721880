"""Resolve the signed-in user and check agency membership."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from app.clients.agency_store import AgencyStore
from app.clients.session_tokens import SessionTokenCodec
from app.core.errors import UnauthorizedError


class IdentityService:
    def __init__(
        self,
        *,
        codec: SessionTokenCodec,
        agency_store: AgencyStore,
        cookie_name: str = "session",
    ) -> None:
        self._codec = codec
        self._agencies = agency_store
        self._cookie_name = cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def current_user_id(self, request: Request) -> Optional[str]:
        """Return the user id from the session cookie, or ``None`` when anonymous."""
        token = request.cookies.get(self._cookie_name)
        if not token:
            return None
        return self._codec.decode(token)

    def is_member(self, user_id: str, agency_id: str) -> bool:
        return self._agencies.is_member(agency_id=agency_id, user_id=user_id)

    def require_membership(self, user_id: str, agency_id: str) -> None:
        if not self.is_member(user_id, agency_id):
            raise UnauthorizedError(
                detail=f"User {user_id} is not a member of agency {agency_id}."
            )

    def require_client_of_agency(self, client_id: str, agency_id: str) -> None:
        """Reject clients that are unknown or managed by a different agency."""
        owner = self._agencies.get_client_agency(client_id)
        if owner != agency_id:
            raise UnauthorizedError(
                detail=f"Client {client_id} does not belong to agency {agency_id}."
            )


__all__ = ["IdentityService"]
