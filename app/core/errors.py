"""
Error taxonomy shared by the services and HTTP layer.

Every error carries the HTTP status it maps to and a message that is safe to
show to the end user. ``str(exc)`` may hold more detail for the logs.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional


class AppError(Exception):
    """Base class for errors rendered as ``{"error": ...}`` JSON bodies."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "Internal error. Please try again."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.public_message = message or self.default_message
        super().__init__(detail or self.public_message)


class InvalidRequestError(AppError):
    """Required parameters are missing or malformed."""

    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid request"


class NotAuthenticatedError(AppError):
    """No authenticated identity is attached to the request."""

    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Unauthorized"


class UnauthorizedError(AppError):
    """The identity is not a member of the target agency."""

    status_code = HTTPStatus.FORBIDDEN
    default_message = "Unauthorized"


class NotFoundError(AppError):
    status_code = HTTPStatus.NOT_FOUND
    default_message = "Not found"


class UnsupportedPlatformError(NotFoundError):
    default_message = "Unsupported platform"


class PersistenceError(AppError):
    """A read or write against the state store failed."""


class InvalidOrExpiredStateError(AppError):
    """The OAuth state token is unknown, expired, already used, or for another platform."""

    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Connection failed, please retry."


class PlatformOAuthError(AppError):
    """An ad platform rejected a token exchange or returned an unusable payload."""

    status_code = HTTPStatus.BAD_GATEWAY
    default_message = (
        "Could not connect. Please check your account has the required permissions."
    )


__all__ = [
    "AppError",
    "InvalidOrExpiredStateError",
    "InvalidRequestError",
    "NotAuthenticatedError",
    "NotFoundError",
    "PersistenceError",
    "PlatformOAuthError",
    "UnauthorizedError",
    "UnsupportedPlatformError",
]
