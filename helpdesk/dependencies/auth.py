from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.core.config import get_settings
from helpdesk.identity import AuthenticationError, Identity, IdentityProvider, IdentityProviderUnavailableError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def extract_session_token(request: Request, credentials: HTTPAuthorizationCredentials | None) -> str | None:
    """Prefer an explicit bearer token, then fall back to the session cookie."""

    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name) or None


async def get_identity_provider(request: Request) -> IdentityProvider:
    provider = getattr(request.app.state, "identity_provider", None)
    if provider is None:
        raise HTTPException(status_code=503, detail="Identity provider is not configured")
    return provider


async def get_current_identity(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    provider: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> Identity | None:
    """Resolve the caller, or ``None`` when the request carries no token.

    Whether an anonymous caller may proceed is decided by the ticket guard, not
    here. A token that does not resolve is rejected immediately.
    """

    cached = getattr(request.state, "identity", None)
    if isinstance(cached, Identity):
        return cached

    token = extract_session_token(request, credentials)
    if token is None:
        return None
    try:
        identity = await provider.authenticate(token)
    except AuthenticationError as exc:
        logger.info("Rejected session token: %s", exc)
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except IdentityProviderUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    request.state.identity = identity
    return identity


CurrentIdentity = Annotated[Identity | None, Depends(get_current_identity)]
