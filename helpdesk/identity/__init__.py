"""Caller identities and the session-token provider interface."""

from .models import Identity, Role, Session
from .provider import (
    AuthenticationError,
    IdentityProvider,
    IdentityProviderUnavailableError,
    SqlIdentityProvider,
    StaticIdentityProvider,
)

__all__ = [
    "AuthenticationError",
    "Identity",
    "IdentityProvider",
    "IdentityProviderUnavailableError",
    "Role",
    "Session",
    "SqlIdentityProvider",
    "StaticIdentityProvider",
]
