"""
Session variant: the backend terminates the OIDC flow and issues its own session cookie.
GET /api/auth/login, /api/auth/callback, /api/auth/logout, /api/auth/me.
"""
import logging
from datetime import timedelta
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from todo_api import config
from todo_api.auth import claims_from_session_cookie, get_oidc_client
from todo_api.rate_limit import enforce
from todo_api.session import decode_flow_cookie, encode_flow_cookie, mint_session_token
from todo_auth.client import OIDCClient
from todo_auth.errors import AuthError
from todo_auth.flow import FLOW_TTL, LoginAttempt

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth")

_FLOW_COOKIE_PATH = "/api/auth"


def _app_redirect(**params) -> RedirectResponse:
    url = config.APP_URL
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    return RedirectResponse(url=url, status_code=302)


def _clear_flow_cookie(response: RedirectResponse) -> None:
    response.delete_cookie(
        config.FLOW_COOKIE,
        path=_FLOW_COOKIE_PATH,
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )


@router.get("/login")
async def login(request: Request, prompt: str | None = None, oidc: OIDCClient = Depends(get_oidc_client)):
    """
    Generate state, nonce, PKCE verifier + challenge; keep them in a 5-minute httpOnly
    cookie; redirect to the provider's authorization endpoint.
    """
    enforce(request.app.state.login_limiter, request, "login")
    attempt = LoginAttempt(oidc)
    try:
        url = await attempt.begin(use_nonce=True, prompt="login" if prompt == "login" else None)
    except AuthError as e:
        logger.error("Cannot start login: %s: %s", type(e).__name__, e)
        return _app_redirect(auth_error="1")

    response = RedirectResponse(url=url, status_code=302)
    response.set_cookie(
        config.FLOW_COOKIE,
        encode_flow_cookie(attempt.flow, secret=config.SESSION_SECRET, issuer=config.SESSION_ISSUER),
        max_age=FLOW_TTL,
        path=_FLOW_COOKIE_PATH,
        secure=config.COOKIE_SECURE,
        httponly=True,
        # Lax: the callback is a top-level cross-site navigation from the provider
        samesite="lax",
    )
    return response


@router.get("/callback")
async def callback(request: Request, oidc: OIDCClient = Depends(get_oidc_client)):
    """
    Complete the flow: check error/state (before any network call), exchange the code,
    verify the ID token (signature, iss, aud, exp, nonce), set the session cookie and
    redirect to a clean app URL. The flow cookie is removed whatever the outcome.
    """
    enforce(request.app.state.login_limiter, request, "callback")
    flow = decode_flow_cookie(
        request.cookies.get(config.FLOW_COOKIE),
        secret=config.SESSION_SECRET,
        issuer=config.SESSION_ISSUER,
    )
    attempt = LoginAttempt(oidc, flow)
    try:
        result = await attempt.complete(dict(request.query_params), verify_id_token=True)
    except AuthError:
        # Detail is logged by LoginAttempt; the user only sees a generic failure
        response = _app_redirect(auth_error="1")
        _clear_flow_cookie(response)
        return response

    response = _app_redirect()
    response.set_cookie(
        config.SESSION_COOKIE,
        mint_session_token(
            result.claims,
            secret=config.SESSION_SECRET,
            issuer=config.SESSION_ISSUER,
            lifetime=timedelta(seconds=config.SESSION_TTL_SECONDS),
        ),
        max_age=config.SESSION_TTL_SECONDS,
        path="/",
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )
    _clear_flow_cookie(response)
    return response


@router.get("/logout")
async def logout(oidc: OIDCClient = Depends(get_oidc_client)):
    """Clear the session cookie; continue to the provider's end-session endpoint when it has one."""
    url = None
    try:
        url = await oidc.logout_url(config.POST_LOGOUT_REDIRECT_URI)
    except AuthError as e:
        logger.warning("Provider logout URL unavailable: %s", e)
    response = RedirectResponse(url=url or config.POST_LOGOUT_REDIRECT_URI, status_code=302)
    response.delete_cookie(
        config.SESSION_COOKIE,
        path="/",
        secure=config.COOKIE_SECURE,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/me")
def me(request: Request):
    """Claims of the current session, or 401."""
    return claims_from_session_cookie(request).to_dict()
