"""
Domain models for OAuth state correlation and ad-platform connections.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    """Ad platforms an agency can connect for a client."""

    META_ADS = "meta_ads"
    LINKEDIN_ADS = "linkedin_ads"
    GOOGLE_ANALYTICS = "google_analytics"


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    ERROR = "error"
    EXPIRED = "expired"


class OAuthStateData(BaseModel):
    """Correlation fields handed back to the callback when a state is consumed."""

    client_id: str
    agency_id: str
    platform: Platform
    user_id: str


class OAuthStateRecord(OAuthStateData):
    """Represents a single-use state row stored in ``oauth_states``."""

    id: Optional[int] = None
    state: str = Field(..., description="Opaque random token sent as the OAuth state.")
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_data(self) -> OAuthStateData:
        return OAuthStateData(
            client_id=self.client_id,
            agency_id=self.agency_id,
            platform=self.platform,
            user_id=self.user_id,
        )


class AdAccount(BaseModel):
    """An ad account (or analytics property) the user may pick after consent."""

    id: str
    name: str


class PlatformTokens(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int


class PendingConnection(BaseModel):
    """Encrypted tokens waiting for the user to select an account."""

    id: str
    client_id: str
    agency_id: str
    platform: Platform
    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    properties: List[AdAccount] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class DataConnection(BaseModel):
    """A connected ad account for a client; one per (client, platform)."""

    id: str
    client_id: str
    agency_id: str
    platform: Platform
    account_id: str
    account_name: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    last_synced_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


__all__ = [
    "AdAccount",
    "ConnectionStatus",
    "DataConnection",
    "OAuthStateData",
    "OAuthStateRecord",
    "PendingConnection",
    "Platform",
    "PlatformTokens",
    "utcnow",
]
