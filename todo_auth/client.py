"""
OIDC relying-party operations against the provider: authorization URL, authorization code
exchange, refresh_token grant, ID token / access token verification, logout URL.

Used by both the API backend (confidential client, derives its own session) and the web
client (public client, holds the provider's tokens).
"""
import base64
import json
import logging
import secrets
from dataclasses import dataclass

import httpx
import jwt

from todo_auth.discovery import MetadataCache
from todo_auth.errors import (
    NonceMismatchError,
    ProviderTimeoutError,
    RefreshFailedError,
    TokenExchangeError,
    TokenVerificationError,
)
from todo_auth.keys import KeySetCache
from todo_auth.pkce import build_authorize_url, build_logout_url, derive_challenge

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "openid email profile"

# Provider tokens are verified with public keys only; HS* would let a key-set entry act as a secret
ASYMMETRIC_ALGORITHMS = {"RS256", "RS384", "RS512", "PS256", "PS384", "PS512", "ES256", "ES384", "ES512"}

_REQUIRED_ID_TOKEN_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]
_REQUIRED_ACCESS_TOKEN_CLAIMS = ["exp", "iss", "sub"]


@dataclass
class TokenSet:
    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None
    scope: str = ""

    @classmethod
    def from_response(cls, data: dict) -> "TokenSet":
        """KeyError / TypeError unless the body carries a non-empty string access_token."""
        access_token = data["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise TypeError("access_token must be a non-empty string")
        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            token_type=data.get("token_type") or "Bearer",
            refresh_token=data.get("refresh_token") or None,
            id_token=data.get("id_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=data.get("scope") or "",
        )


def decode_unverified(token: str) -> dict | None:
    """
    Best-effort decode of a JWT payload WITHOUT signature verification.
    Only for UI display and expiry bookkeeping on the client; never for authorization.
    """
    try:
        payload_b64 = token.split(".")[1]
        padded = payload_b64 + "=" * (-len(payload_b64) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (IndexError, ValueError, UnicodeError):
        return None
    return payload if isinstance(payload, dict) else None


def _error_body(r: httpx.Response) -> dict:
    if r.headers.get("content-type", "").startswith("application/json"):
        try:
            body = r.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
    return {}


class OIDCClient:
    def __init__(
        self,
        *,
        issuer: str,
        client_id: str,
        redirect_uri: str,
        metadata: MetadataCache,
        keys: KeySetCache,
        http: httpx.AsyncClient,
        scope: str = DEFAULT_SCOPE,
        client_secret: str | None = None,
    ):
        self.issuer = issuer
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        # Only set for server-side (confidential) exchange; a browser-held client has none
        self.client_secret = client_secret
        self.metadata = metadata
        self.keys = keys
        self._http = http

    async def authorization_url(
        self,
        *,
        state: str,
        code_verifier: str,
        nonce: str | None = None,
        prompt: str | None = None,
    ) -> str:
        meta = await self.metadata.discover()
        return build_authorize_url(
            meta.authorization_endpoint,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scope=self.scope,
            state=state,
            code_challenge=derive_challenge(code_verifier),
            nonce=nonce,
            prompt=prompt,
        )

    async def _post_token(self, form: dict) -> httpx.Response:
        meta = await self.metadata.discover()
        if self.client_secret:
            form["client_secret"] = self.client_secret
        return await self._http.post(
            meta.token_endpoint,
            data=form,
            headers={"Accept": "application/json"},
        )

    async def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        """
        authorization_code grant. Never retried here: codes are single-use, so a protocol
        error is final. Transport failures are flagged retryable for the caller to decide.
        """
        try:
            r = await self._post_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "client_id": self.client_id,
                    "code_verifier": code_verifier,
                }
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError("Token endpoint timed out") from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token endpoint unreachable: {e}", retryable=True) from e

        if not 200 <= r.status_code < 300:
            err = _error_body(r)
            raise TokenExchangeError(
                f"Token exchange failed: {err.get('error_description') or err.get('error') or r.status_code}",
                status_code=r.status_code,
                error=err.get("error"),
            )
        try:
            tokens = TokenSet.from_response(r.json())
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExchangeError("Token response has no access_token", status_code=r.status_code) from e
        logger.info("authorization_code exchanged for tokens (client_id=%s)", self.client_id)
        return tokens

    async def refresh(self, refresh_token: str) -> TokenSet:
        """refresh_token grant. Any failure means the refresh token is unusable."""
        try:
            r = await self._post_token(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                }
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError("Token endpoint timed out during refresh") from e
        except httpx.HTTPError as e:
            raise RefreshFailedError(f"Token endpoint unreachable: {e}") from e

        if not 200 <= r.status_code < 300:
            err = _error_body(r)
            raise RefreshFailedError(f"Refresh failed: {err.get('error') or r.status_code}")
        try:
            tokens = TokenSet.from_response(r.json())
        except (ValueError, KeyError, TypeError) as e:
            raise RefreshFailedError("Refresh response has no access_token") from e
        logger.info("refresh_token grant succeeded (client_id=%s)", self.client_id)
        return tokens

    async def _verify(self, token: str, *, audience: str, required: list[str]) -> dict:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise TokenVerificationError(f"Malformed token: {e}") from e
        key = await self.keys.get_signing_key(header.get("kid"))
        algorithm = header.get("alg")
        if algorithm not in ASYMMETRIC_ALGORITHMS or (key.algorithm_name and key.algorithm_name != algorithm):
            raise TokenVerificationError(f"Unexpected token algorithm {algorithm!r}")
        try:
            return jwt.decode(
                token,
                key.key,
                algorithms=[algorithm],
                audience=audience,
                issuer=self.issuer,
                options={"require": required, "verify_exp": True, "verify_aud": True, "verify_iss": True},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenVerificationError("Token expired") from e
        except jwt.InvalidAudienceError as e:
            raise TokenVerificationError("Invalid audience") from e
        except jwt.InvalidIssuerError as e:
            raise TokenVerificationError("Invalid issuer") from e
        except jwt.PyJWTError as e:
            raise TokenVerificationError(f"Token verification failed: {e}") from e

    async def verify_id_token(self, id_token: str, *, nonce: str | None) -> dict:
        """
        Verify ID token signature (provider JWKS), iss, aud == client_id, exp.
        When a nonce was issued at login start the token must carry the same value.
        """
        claims = await self._verify(id_token, audience=self.client_id, required=_REQUIRED_ID_TOKEN_CLAIMS)
        if nonce is not None:
            token_nonce = claims.get("nonce")
            if not isinstance(token_nonce, str) or not _constant_time_equal(token_nonce, nonce):
                raise NonceMismatchError("ID token nonce does not match the issued nonce")
        return claims

    async def verify_access_token(self, token: str, *, audience: str) -> dict:
        """Resource-server check of a provider access token presented as a bearer credential."""
        return await self._verify(token, audience=audience, required=_REQUIRED_ACCESS_TOKEN_CLAIMS)

    async def logout_url(self, post_logout_redirect_uri: str, id_token_hint: str | None = None) -> str | None:
        """Provider end-session URL, or None when the provider does not advertise one."""
        meta = await self.metadata.discover()
        if not meta.end_session_endpoint:
            return None
        return build_logout_url(
            meta.end_session_endpoint,
            post_logout_redirect_uri=post_logout_redirect_uri,
            id_token_hint=id_token_hint,
            client_id=self.client_id,
        )


def _constant_time_equal(a: str, b: str) -> bool:
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
