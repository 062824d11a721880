from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs

import httpx
import pytest

from app.clients.platform_oauth import (
    GoogleAnalyticsOAuthClient,
    LinkedInAdsOAuthClient,
    MetaAdsOAuthClient,
    PlatformOAuthClient,
    PlatformRegistry,
    build_platform_configs,
    build_platform_registry,
)
from app.core.config import AppSettings
from app.core.errors import PlatformOAuthError, UnsupportedPlatformError
from app.models.oauth import Platform


def _config(settings: AppSettings, platform: Platform):
    return next(c for c in build_platform_configs(settings) if c.platform is platform)


@pytest.mark.anyio
async def test_linkedin_exchange_and_account_listing(settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/oauth/v2/accessToken":
            return httpx.Response(
                200,
                json={"access_token": "li-access", "expires_in": 5184000, "refresh_token": "li-refresh"},
            )
        return httpx.Response(
            200,
            json={
                "elements": [
                    {"id": 1, "reference": "urn:li:sponsoredAccount:1", "name": {"localized": {"en_US": "Acme"}}},
                    {"id": 2, "name": {"localized": {"de_DE": "Beispiel"}}},
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = LinkedInAdsOAuthClient(_config(settings, Platform.LINKEDIN_ADS), http)
        tokens = await client.exchange_authorization_code("the-code")
        accounts = await client.list_ad_accounts(tokens.access_token)

    assert tokens.access_token == "li-access"
    assert tokens.refresh_token == "li-refresh"
    assert tokens.expires_in == 5184000

    token_request = requests[0]
    assert token_request.method == "POST"
    form = parse_qs(token_request.content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["the-code"]
    assert form["client_secret"] == ["test-linkedin-secret"]

    assert requests[1].headers["authorization"] == "Bearer li-access"
    assert [(a.id, a.name) for a in accounts] == [
        ("urn:li:sponsoredAccount:1", "Acme"),
        ("2", "Beispiel"),
    ]


@pytest.mark.anyio
async def test_meta_upgrades_to_long_lived_token_and_filters_accounts(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if request.url.path.endswith("/oauth/access_token"):
            if params.get("grant_type") == "fb_exchange_token":
                assert params["fb_exchange_token"] == "short-token"
                return httpx.Response(200, json={"access_token": "long-token"})
            assert params["code"] == "meta-code"
            return httpx.Response(200, json={"access_token": "short-token"})
        assert params["access_token"] == "long-token"
        return httpx.Response(
            200,
            json={
                "data": [
                    {"id": "act_1", "name": "Live", "account_status": 1},
                    {"id": "act_2", "name": "Disabled", "account_status": 2},
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = MetaAdsOAuthClient(_config(settings, Platform.META_ADS), http)
        tokens = await client.exchange_authorization_code("meta-code")
        accounts = await client.list_ad_accounts(tokens.access_token)

    assert tokens.access_token == "long-token"
    assert tokens.refresh_token is None
    assert tokens.expires_in == MetaAdsOAuthClient.LONG_LIVED_TOKEN_SECONDS
    assert [a.id for a in accounts] == ["act_1"]


@pytest.mark.anyio
async def test_meta_keeps_short_token_when_upgrade_fails(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("grant_type") == "fb_exchange_token":
            return httpx.Response(400, json={"error": {"message": "nope"}})
        return httpx.Response(200, json={"access_token": "short-token"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = MetaAdsOAuthClient(_config(settings, Platform.META_ADS), http)
        tokens = await client.exchange_authorization_code("meta-code")

    assert tokens.access_token == "short-token"


@pytest.mark.anyio
async def test_google_lists_properties_across_accounts(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "g-access", "expires_in": 3599})
        return httpx.Response(
            200,
            json={
                "accountSummaries": [
                    {"propertySummaries": [{"property": "properties/1", "displayName": "Site"}]},
                    {"propertySummaries": [{"property": "properties/2", "displayName": "Shop"}]},
                    {},
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GoogleAnalyticsOAuthClient(_config(settings, Platform.GOOGLE_ANALYTICS), http)
        tokens = await client.exchange_authorization_code("g-code")
        accounts = await client.list_ad_accounts(tokens.access_token)

    assert tokens.refresh_token is None
    assert [(a.id, a.name) for a in accounts] == [("properties/1", "Site"), ("properties/2", "Shop")]


@pytest.mark.anyio
async def test_rejected_code_raises_platform_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = LinkedInAdsOAuthClient(_config(settings, Platform.LINKEDIN_ADS), http)
        with pytest.raises(PlatformOAuthError):
            await client.exchange_authorization_code("bad-code")


@pytest.mark.anyio
async def test_network_failure_raises_platform_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GoogleAnalyticsOAuthClient(_config(settings, Platform.GOOGLE_ANALYTICS), http)
        with pytest.raises(PlatformOAuthError):
            await client.exchange_authorization_code("g-code")


@pytest.mark.anyio
async def test_failed_account_listing_returns_no_accounts(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "forbidden"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = MetaAdsOAuthClient(_config(settings, Platform.META_ADS), http)
        assert await client.list_ad_accounts("token") == []


@pytest.mark.anyio
async def test_registry_resolves_slug_and_identifier(settings, platform_http):
    registry = build_platform_registry(settings, platform_http)

    assert registry.resolve("meta").platform is Platform.META_ADS
    assert registry.resolve("meta_ads").platform is Platform.META_ADS
    assert registry.resolve("LinkedIn").platform is Platform.LINKEDIN_ADS
    assert {client.platform for client in registry} == set(Platform)
    with pytest.raises(UnsupportedPlatformError):
        registry.resolve("snapchat")


def test_unconfigured_platform_is_not_registered(settings):
    partial = settings.model_copy(
        update={"meta": settings.meta.model_copy(update={"app_id": None})}
    )

    platforms = {config.platform for config in build_platform_configs(partial)}

    assert Platform.META_ADS not in platforms
    assert Platform.LINKEDIN_ADS in platforms
    registry = PlatformRegistry([])
    with pytest.raises(UnsupportedPlatformError):
        registry.resolve("meta")


@pytest.mark.anyio
async def test_google_refresh_posts_refresh_grant(settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"access_token": "renewed", "expires_in": 3599})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GoogleAnalyticsOAuthClient(_config(settings, Platform.GOOGLE_ANALYTICS), http)
        tokens = await client.refresh_access_token("stored-refresh")

    assert tokens.access_token == "renewed"
    assert tokens.refresh_token is None
    assert tokens.expires_in == 3599
    form = parse_qs(requests[0].content.decode())
    assert str(requests[0].url) == GoogleAnalyticsOAuthClient.TOKEN_URL
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["stored-refresh"]
    assert form["client_id"] == ["test-google-client"]


@pytest.mark.anyio
async def test_refresh_without_expiry_is_rejected(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"access_token": "renewed"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = LinkedInAdsOAuthClient(_config(settings, Platform.LINKEDIN_ADS), http)
        with pytest.raises(PlatformOAuthError):
            await client.refresh_access_token("stored-refresh")


@pytest.mark.anyio
async def test_meta_tokens_cannot_be_refreshed(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("Meta refresh must not call the network")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = MetaAdsOAuthClient(_config(settings, Platform.META_ADS), http)
        with pytest.raises(PlatformOAuthError):
            await client.refresh_access_token("anything")


def test_base_client_cannot_be_instantiated(settings):
    with pytest.raises(TypeError):
        PlatformOAuthClient(_config(settings, Platform.META_ADS), None)  # type: ignore[abstract]
