"""
FastAPI routes for ad-platform OAuth connections.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from app.clients import PlatformRegistry
from app.core.errors import (
    InvalidOrExpiredStateError,
    InvalidRequestError,
    NotAuthenticatedError,
    PersistenceError,
    PlatformOAuthError,
)
from app.dependencies import (
    SettingsDependency,
    get_connection_service,
    get_identity_service,
    get_oauth_state_service,
    get_platform_registry,
)
from app.schemas import CompleteConnectionPayload, DisconnectPayload
from app.services import ConnectionService, IdentityService, OAuthStateService

router = APIRouter()
logger = logging.getLogger(__name__)

RegistryDependency = Annotated[PlatformRegistry, Depends(get_platform_registry)]
IdentityDependency = Annotated[IdentityService, Depends(get_identity_service)]
StateServiceDependency = Annotated[OAuthStateService, Depends(get_oauth_state_service)]
ConnectionServiceDependency = Annotated[ConnectionService, Depends(get_connection_service)]

INTERNAL_ERROR_MESSAGE = "Internal error. Please try again."


def require_user_id(request: Request, identity: IdentityDependency) -> str:
    """Dependency for JSON endpoints: anonymous callers get a 401 body."""
    user_id = identity.current_user_id(request)
    if user_id is None:
        raise NotAuthenticatedError()
    return user_id


def _redirect(request: Request, path: str, **params: str) -> RedirectResponse:
    target = request.url.replace(path=path, query=urlencode(params), fragment="")
    return RedirectResponse(url=str(target), status_code=HTTPStatus.FOUND)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/oauth/{platform}/authorize")
async def start_platform_oauth_flow(
    platform: str,
    request: Request,
    registry: RegistryDependency,
    identity: IdentityDependency,
    state_service: StateServiceDependency,
    settings: SettingsDependency,
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    agency_id: Optional[str] = Query(default=None, alias="agencyId"),
) -> RedirectResponse:
    """
    Send the browser to the platform consent screen with a fresh state token.

    Anonymous users are redirected to the login page instead.
    """
    if not client_id or not agency_id:
        raise InvalidRequestError("Missing clientId or agencyId")

    oauth_client = registry.resolve(platform)

    user_id = identity.current_user_id(request)
    if user_id is None:
        return _redirect(request, settings.login_path)

    identity.require_membership(user_id, agency_id)
    identity.require_client_of_agency(client_id, agency_id)

    state = state_service.issue(client_id, agency_id, oauth_client.platform, user_id)
    authorization_url = oauth_client.build_authorization_url(state)
    return RedirectResponse(url=authorization_url, status_code=HTTPStatus.FOUND)


@router.get("/oauth/{platform}/callback")
async def handle_platform_oauth_callback(
    platform: str,
    request: Request,
    registry: RegistryDependency,
    identity: IdentityDependency,
    state_service: StateServiceDependency,
    connection_service: ConnectionServiceDependency,
    settings: SettingsDependency,
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
) -> RedirectResponse:
    """Consume the state, exchange the code and stage the grant for account selection."""
    oauth_client = registry.resolve(platform)

    state_service.purge_expired()
    connection_service.purge_stale_pending()

    if error:
        logger.info("User denied %s consent: %s", oauth_client.platform.value, error)
        return _redirect(request, "/clients", error="oauth_denied")

    if not code or not state:
        return _redirect(request, "/clients", error="invalid_callback")

    try:
        state_data = state_service.redeem(state, platform=oauth_client.platform)
    except InvalidOrExpiredStateError as exc:
        logger.warning("Rejected OAuth callback: %s", exc)
        return _redirect(request, "/clients", error="expired_state")

    connections_path = f"/clients/{state_data.client_id}/connections"

    user_id = identity.current_user_id(request)
    if user_id is None:
        return _redirect(request, settings.login_path)
    if user_id != state_data.user_id:
        logger.warning(
            "OAuth callback for client %s arrived in a different user's session",
            state_data.client_id,
        )
        return _redirect(request, "/clients", error="expired_state")

    try:
        tokens = await oauth_client.exchange_authorization_code(code)
        accounts = await oauth_client.list_ad_accounts(tokens.access_token)
    except PlatformOAuthError as exc:
        logger.warning(
            "%s token exchange failed for client %s: %s",
            oauth_client.config.display_name,
            state_data.client_id,
            exc,
        )
        return _redirect(request, connections_path, error=exc.public_message)

    if not accounts:
        return _redirect(
            request, connections_path, error=oauth_client.config.empty_accounts_message
        )

    try:
        pending_id = connection_service.stage_pending(
            state=state_data, user_id=user_id, tokens=tokens, accounts=accounts
        )
    except PersistenceError:
        logger.exception("Failed to stage pending connection for client %s", state_data.client_id)
        return _redirect(request, connections_path, error=INTERNAL_ERROR_MESSAGE)

    return _redirect(
        request,
        connections_path,
        platform=oauth_client.platform.value,
        pending=pending_id,
        step="select-account",
    )


@router.post("/oauth/{platform}/complete", status_code=HTTPStatus.OK)
async def complete_platform_connection(
    platform: str,
    payload: CompleteConnectionPayload,
    user_id: Annotated[str, Depends(require_user_id)],
    registry: RegistryDependency,
    connection_service: ConnectionServiceDependency,
) -> dict:
    """Attach the account the user selected to the client."""
    oauth_client = registry.resolve(platform)
    connection_service.complete(
        user_id=user_id,
        platform_config=oauth_client.config,
        pending_ref=payload.pending_ref,
        client_id=payload.client_id,
        account_id=payload.property_id,
        account_name=payload.property_name,
    )
    return {"success": True}


@router.delete("/connections/disconnect", status_code=HTTPStatus.OK)
async def disconnect_connection(
    payload: DisconnectPayload,
    user_id: Annotated[str, Depends(require_user_id)],
    connection_service: ConnectionServiceDependency,
) -> dict:
    """Remove a client's platform connection."""
    connection_service.disconnect(
        user_id=user_id,
        client_id=payload.client_id,
        connection_id=payload.connection_id,
    )
    return {"success": True}


__all__ = ["router"]
