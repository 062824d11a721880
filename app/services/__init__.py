"""Service layer exports."""

from .connections import ConnectionService
from .identity import IdentityService
from .oauth_states import OAuthStateService
from .token_cipher import TokenCipherService

__all__ = [
    "ConnectionService",
    "IdentityService",
    "OAuthStateService",
    "TokenCipherService",
]
