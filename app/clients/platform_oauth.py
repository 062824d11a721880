"""
Ad-platform OAuth utilities.

Every platform shares the same consent-URL construction, driven by a
``PlatformConfig`` record. Token exchange and account discovery differ per
platform API and live in small subclasses.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from fastapi import status

from app.core.config import AppSettings
from app.core.errors import PlatformOAuthError, UnsupportedPlatformError
from app.models.oauth import AdAccount, Platform, PlatformTokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformConfig:
    """Everything that distinguishes one platform's authorization redirect from another."""

    platform: Platform
    slug: str
    display_name: str
    authorization_url: str
    scopes: Tuple[str, ...]
    scope_delimiter: str
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str
    extra_params: Tuple[Tuple[str, str], ...] = ()
    empty_accounts_message: str = ""

    @property
    def scope(self) -> str:
        return self.scope_delimiter.join(self.scopes)


class PlatformOAuthClient(ABC):
    """Build consent URLs and exchange authorization codes for one platform."""

    def __init__(self, config: PlatformConfig, http_client: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http_client

    @property
    def config(self) -> PlatformConfig:
        return self._config

    @property
    def platform(self) -> Platform:
        return self._config.platform

    def build_authorization_url(self, state: str) -> str:
        """Construct the consent URL carrying ``state``."""
        params = {
            "response_type": "code",
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "state": state,
            "scope": self._config.scope,
        }
        params.update(self._config.extra_params)
        return f"{self._config.authorization_url}?{urlencode(params)}"

    @abstractmethod
    async def exchange_authorization_code(self, code: str) -> PlatformTokens:
        """Trade an authorization code for platform tokens."""

    @abstractmethod
    async def list_ad_accounts(self, access_token: str) -> List[AdAccount]:
        """Return the accounts the granted token can report on."""

    async def refresh_access_token(self, refresh_token: str) -> PlatformTokens:
        """Renew an access token; platforms that issue no refresh tokens refuse."""
        raise PlatformOAuthError(
            detail=f"{self._config.display_name} tokens cannot be refreshed."
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise PlatformOAuthError(
                detail=f"{self._config.display_name} request to {url} failed: {exc}"
            ) from exc

    def _token_payload(self, response: httpx.Response) -> Dict[str, Any]:
        if response.status_code != status.HTTP_200_OK:
            raise PlatformOAuthError(detail=response.text)
        payload = response.json()
        if not payload.get("access_token"):
            raise PlatformOAuthError(
                detail=f"Incomplete token payload returned from {self._config.display_name}."
            )
        return payload

    async def _refresh_grant(self, token_url: str, refresh_token: str) -> PlatformTokens:
        response = await self._send(
            "POST",
            token_url,
            data={
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        payload = self._token_payload(response)
        if not payload.get("expires_in"):
            raise PlatformOAuthError(
                detail=f"Incomplete refresh payload returned from {self._config.display_name}."
            )
        return PlatformTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=int(payload["expires_in"]),
        )


class MetaAdsOAuthClient(PlatformOAuthClient):
    GRAPH_URL = "https://graph.facebook.com/v19.0"
    TOKEN_URL = f"{GRAPH_URL}/oauth/access_token"
    LONG_LIVED_TOKEN_SECONDS = 60 * 24 * 60 * 60
    ACTIVE_ACCOUNT_STATUS = 1

    async def exchange_authorization_code(self, code: str) -> PlatformTokens:
        """Exchange the code for a short-lived token, then upgrade it to a long-lived one."""
        response = await self._send(
            "GET",
            self.TOKEN_URL,
            params={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
                "code": code,
            },
        )
        short_lived = self._token_payload(response)

        access_token = short_lived["access_token"]
        try:
            long_response = await self._send(
                "GET",
                self.TOKEN_URL,
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "fb_exchange_token": access_token,
                },
            )
            access_token = self._token_payload(long_response)["access_token"]
        except PlatformOAuthError as exc:
            logger.warning("Meta long-lived token exchange failed; keeping short-lived token: %s", exc)

        return PlatformTokens(
            access_token=access_token,
            refresh_token=None,
            expires_in=self.LONG_LIVED_TOKEN_SECONDS,
        )

    async def list_ad_accounts(self, access_token: str) -> List[AdAccount]:
        response = await self._send(
            "GET",
            f"{self.GRAPH_URL}/me/adaccounts",
            params={"fields": "id,name,account_status", "access_token": access_token},
        )
        if response.status_code != status.HTTP_200_OK:
            return []
        accounts = response.json().get("data") or []
        return [
            AdAccount(id=str(account["id"]), name=account.get("name") or str(account["id"]))
            for account in accounts
            if account.get("account_status") == self.ACTIVE_ACCOUNT_STATUS
        ]


class LinkedInAdsOAuthClient(PlatformOAuthClient):
    TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
    AD_ACCOUNTS_URL = (
        "https://api.linkedin.com/v2/adAccountsV2?q=search&search.status.values[0]=ACTIVE"
    )

    async def exchange_authorization_code(self, code: str) -> PlatformTokens:
        response = await self._send(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
        )
        payload = self._token_payload(response)
        if not payload.get("expires_in"):
            raise PlatformOAuthError(detail="LinkedIn token payload is missing expires_in.")
        return PlatformTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=int(payload["expires_in"]),
        )

    async def refresh_access_token(self, refresh_token: str) -> PlatformTokens:
        return await self._refresh_grant(self.TOKEN_URL, refresh_token)

    async def list_ad_accounts(self, access_token: str) -> List[AdAccount]:
        response = await self._send(
            "GET",
            self.AD_ACCOUNTS_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code != status.HTTP_200_OK:
            return []
        accounts: List[AdAccount] = []
        for element in response.json().get("elements") or []:
            account_id = str(element.get("reference") or element["id"])
            localized = (element.get("name") or {}).get("localized") or {}
            name = localized.get("en_US") or "".join(localized.values()) or account_id
            accounts.append(AdAccount(id=account_id, name=name))
        return accounts


class GoogleAnalyticsOAuthClient(PlatformOAuthClient):
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    ACCOUNT_SUMMARIES_URL = "https://analyticsadmin.googleapis.com/v1beta/accountSummaries"

    async def exchange_authorization_code(self, code: str) -> PlatformTokens:
        response = await self._send(
            "POST",
            self.TOKEN_URL,
            data={
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        payload = self._token_payload(response)
        if not payload.get("expires_in"):
            raise PlatformOAuthError(detail="Google token payload is missing expires_in.")
        return PlatformTokens(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=int(payload["expires_in"]),
        )

    async def refresh_access_token(self, refresh_token: str) -> PlatformTokens:
        """Renew the access token with the offline grant stored at connection time."""
        return await self._refresh_grant(self.TOKEN_URL, refresh_token)

    async def list_ad_accounts(self, access_token: str) -> List[AdAccount]:
        response = await self._send(
            "GET",
            self.ACCOUNT_SUMMARIES_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code != status.HTTP_200_OK:
            return []
        properties: List[AdAccount] = []
        for summary in response.json().get("accountSummaries") or []:
            for prop in summary.get("propertySummaries") or []:
                property_id = prop.get("property") or prop.get("name")
                if not property_id:
                    continue
                properties.append(
                    AdAccount(id=property_id, name=prop.get("displayName") or property_id)
                )
        return properties


class PlatformRegistry:
    """Resolve a URL path segment (``meta`` or ``meta_ads``) to its configured client."""

    def __init__(self, clients: Iterable[PlatformOAuthClient]) -> None:
        self._clients: Dict[str, PlatformOAuthClient] = {}
        for client in clients:
            self._clients[client.platform.value] = client
            self._clients[client.config.slug] = client

    def resolve(self, key: str) -> PlatformOAuthClient:
        client = self._clients.get(key.lower())
        if client is None:
            raise UnsupportedPlatformError(detail=f"No configured platform for {key!r}.")
        return client

    def get(self, platform: Platform) -> Optional[PlatformOAuthClient]:
        return self._clients.get(platform.value)

    def __iter__(self) -> Iterator[PlatformOAuthClient]:
        seen = set()
        for client in self._clients.values():
            if client.platform not in seen:
                seen.add(client.platform)
                yield client


def build_platform_configs(settings: AppSettings) -> List[PlatformConfig]:
    """Create configs for every platform whose credentials are present."""
    configs: List[PlatformConfig] = []

    if settings.meta.configured:
        configs.append(
            PlatformConfig(
                platform=Platform.META_ADS,
                slug="meta",
                display_name="Meta",
                authorization_url="https://www.facebook.com/v19.0/dialog/oauth",
                scopes=("ads_read", "read_insights", "business_management"),
                scope_delimiter=",",
                client_id=settings.meta.app_id,
                client_secret=settings.meta.app_secret,
                redirect_uri=str(settings.meta.redirect_uri),
                empty_accounts_message="No active ad accounts found on this Meta account.",
            )
        )

    if settings.linkedin.configured:
        configs.append(
            PlatformConfig(
                platform=Platform.LINKEDIN_ADS,
                slug="linkedin",
                display_name="LinkedIn",
                authorization_url="https://www.linkedin.com/oauth/v2/authorization",
                scopes=("r_ads", "r_ads_reporting", "r_organization_social"),
                scope_delimiter=" ",
                client_id=settings.linkedin.client_id,
                client_secret=settings.linkedin.client_secret,
                redirect_uri=str(settings.linkedin.redirect_uri),
                empty_accounts_message="No active ad accounts found on this LinkedIn account.",
            )
        )

    if settings.google.configured:
        configs.append(
            PlatformConfig(
                platform=Platform.GOOGLE_ANALYTICS,
                slug="google",
                display_name="Google",
                authorization_url="https://accounts.google.com/o/oauth2/v2/auth",
                scopes=("https://www.googleapis.com/auth/analytics.readonly",),
                scope_delimiter=" ",
                client_id=settings.google.client_id,
                client_secret=settings.google.client_secret,
                redirect_uri=str(settings.google.redirect_uri),
                extra_params=(("access_type", "offline"), ("prompt", "consent")),
                empty_accounts_message="No active GA4 properties found on this Google account.",
            )
        )

    return configs


_CLIENT_TYPES = {
    Platform.META_ADS: MetaAdsOAuthClient,
    Platform.LINKEDIN_ADS: LinkedInAdsOAuthClient,
    Platform.GOOGLE_ANALYTICS: GoogleAnalyticsOAuthClient,
}


def build_platform_registry(
    settings: AppSettings, http_client: httpx.AsyncClient
) -> PlatformRegistry:
    clients = [
        _CLIENT_TYPES[config.platform](config, http_client)
        for config in build_platform_configs(settings)
    ]
    return PlatformRegistry(clients)


__all__ = [
    "GoogleAnalyticsOAuthClient",
    "LinkedInAdsOAuthClient",
    "MetaAdsOAuthClient",
    "PlatformConfig",
    "PlatformOAuthClient",
    "PlatformRegistry",
    "build_platform_configs",
    "build_platform_registry",
]
