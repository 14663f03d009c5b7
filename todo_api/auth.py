"""
Auth guard for protected API routes. Rejects before any protected resource is touched.

session mode: verify the app-issued `session` cookie (HS256, fixed window).
bearer mode: verify the provider access token (JWKS signature, iss, aud, exp) on every request.
"""
import logging
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from todo_api import config
from todo_api.session import verify_session_token
from todo_auth.claims import IdentityClaims
from todo_auth.client import OIDCClient
from todo_auth.errors import TokenVerificationError, Unauthorized

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_oidc_client(request: Request) -> OIDCClient:
    """The OIDC client built at startup (tests assign app.state.oidc directly)."""
    client = getattr(request.app.state, "oidc", None)
    if client is None:
        raise RuntimeError("OIDC client not initialised (application lifespan did not run)")
    return client


def claims_from_session_cookie(request: Request) -> IdentityClaims:
    return verify_session_token(
        request.cookies.get(config.SESSION_COOKIE),
        secret=config.SESSION_SECRET,
        issuer=config.SESSION_ISSUER,
    )


async def claims_from_bearer(request: Request, credentials: HTTPAuthorizationCredentials | None) -> IdentityClaims:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthorized("Authorization header missing")
    client = get_oidc_client(request)
    try:
        payload = await client.verify_access_token(credentials.credentials, audience=config.API_AUDIENCE)
        return IdentityClaims.from_payload(payload)
    except TokenVerificationError as e:
        logger.info("Bearer token rejected: %s", e)
        raise Unauthorized("Invalid bearer token") from e


async def require_auth(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> IdentityClaims:
    """Dependency: current user's claims, or Unauthorized (401)."""
    if config.AUTH_MODE == "bearer":
        claims = await claims_from_bearer(request, credentials)
    else:
        claims = claims_from_session_cookie(request)
    request.state.user = claims
    return claims


CurrentUser = Annotated[IdentityClaims, Depends(require_auth)]
