"""
PKCE (RFC 7636) and authorization request helpers.
S256 only; state and nonce generation; provider logout URL.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import urlencode


def generate_verifier() -> str:
    """43-char base64url code_verifier (32 random bytes, 256 bits entropy)."""
    return secrets.token_urlsafe(32)


def derive_challenge(verifier: str) -> str:
    """S256 code_challenge: base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """Returns (code_verifier, code_challenge)."""
    verifier = generate_verifier()
    return verifier, derive_challenge(verifier)


def generate_state() -> str:
    """Opaque value for CSRF protection; echoed back in the callback."""
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    """Random value bound into the ID token; checked at callback to detect replay."""
    return secrets.token_urlsafe(32)


def _append_query(url: str, params: dict) -> str:
    return f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"


def build_authorize_url(
    authorization_endpoint: str,
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str,
    nonce: str | None = None,
    prompt: str | None = None,
) -> str:
    """Build the provider authorization URL with required and optional params."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if nonce:
        params["nonce"] = nonce
    if prompt:
        params["prompt"] = prompt
    return _append_query(authorization_endpoint, params)


def build_logout_url(
    end_session_endpoint: str,
    *,
    post_logout_redirect_uri: str,
    id_token_hint: str | None = None,
    client_id: str | None = None,
) -> str:
    """RP-initiated logout URL (OIDC end_session_endpoint)."""
    params = {"post_logout_redirect_uri": post_logout_redirect_uri}
    if id_token_hint:
        params["id_token_hint"] = id_token_hint
    if client_id:
        params["client_id"] = client_id
    return _append_query(end_session_endpoint, params)
