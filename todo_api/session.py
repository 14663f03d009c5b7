"""
Application-issued session token (HS256) and the short-lived signed flow cookie.

The session token embeds only sub / email / name and has a fixed validity window;
it is delivered solely as an httpOnly cookie. The flow cookie carries state, PKCE
verifier and nonce between /api/auth/login and /api/auth/callback.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt

from todo_auth.claims import IdentityClaims
from todo_auth.errors import TokenVerificationError, Unauthorized
from todo_auth.flow import FLOW_TTL, FlowState

logger = logging.getLogger(__name__)

SESSION_ALGORITHM = "HS256"
DEFAULT_SESSION_LIFETIME = timedelta(days=30)
# A flow cookie is never accepted as a session and vice versa
_SESSION_AUDIENCE = "todo-session"
_FLOW_AUDIENCE = "todo-login-flow"


def mint_session_token(
    claims: IdentityClaims,
    *,
    secret: str,
    issuer: str,
    lifetime: timedelta = DEFAULT_SESSION_LIFETIME,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": claims.sub,
        "email": claims.email,
        "name": claims.name,
        "iss": issuer,
        "aud": _SESSION_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    token = jwt.encode(payload, secret, algorithm=SESSION_ALGORITHM)
    logger.info("session issued for sub=%s (expires in %s)", claims.sub, lifetime)
    return token


def verify_session_token(token: str | None, *, secret: str, issuer: str) -> IdentityClaims:
    """Valid (signature, iss, aud, exp, sub) or Unauthorized; no partially-trusted state."""
    if not token:
        raise Unauthorized("No session cookie")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[SESSION_ALGORITHM],
            audience=_SESSION_AUDIENCE,
            issuer=issuer,
            options={"require": ["exp", "iat", "sub"]},
        )
        return IdentityClaims.from_payload(payload)
    except jwt.ExpiredSignatureError as e:
        raise Unauthorized("Session expired") from e
    except (jwt.PyJWTError, TokenVerificationError) as e:
        logger.debug("Session token rejected: %s", e)
        raise Unauthorized("Invalid session") from e


def encode_flow_cookie(flow: FlowState, *, secret: str, issuer: str) -> str:
    payload = {
        **flow.to_dict(),
        "iss": issuer,
        "aud": _FLOW_AUDIENCE,
        "exp": int(flow.created_at + FLOW_TTL),
    }
    return jwt.encode(payload, secret, algorithm=SESSION_ALGORITHM)


def decode_flow_cookie(value: str | None, *, secret: str, issuer: str) -> FlowState | None:
    """Pending flow from the cookie, or None when absent, tampered with or older than 5 minutes."""
    if not value:
        return None
    try:
        payload = jwt.decode(
            value,
            secret,
            algorithms=[SESSION_ALGORITHM],
            audience=_FLOW_AUDIENCE,
            issuer=issuer,
            options={"require": ["exp", "state", "code_verifier", "created_at"]},
        )
        return FlowState.from_dict(payload)
    except (jwt.PyJWTError, KeyError, TypeError, ValueError) as e:
        logger.info("Flow cookie rejected: %s", type(e).__name__)
        return None
