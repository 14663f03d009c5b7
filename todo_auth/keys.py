"""
Provider signing keys (JWKS) for verifying ID tokens and bearer access tokens.
Fetched lazily via the discovered jwks_uri and memoized; one refetch on an unknown kid
covers provider key rotation.
"""
import logging

import httpx
import jwt

from todo_auth.discovery import MetadataCache
from todo_auth.errors import DiscoveryError, ProviderTimeoutError, UnknownKeyError

logger = logging.getLogger(__name__)


class KeySetCache:
    """Verification-only key set. Never used to sign."""

    def __init__(self, metadata: MetadataCache, http: httpx.AsyncClient):
        self._metadata = metadata
        self._http = http
        self._jwk_set: jwt.PyJWKSet | None = None

    async def _fetch(self) -> jwt.PyJWKSet:
        jwks_uri = (await self._metadata.discover()).jwks_uri
        try:
            r = await self._http.get(jwks_uri, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"JWKS fetch timed out: {jwks_uri}") from e
        except httpx.HTTPError as e:
            raise DiscoveryError(f"JWKS endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise DiscoveryError(f"JWKS returned HTTP {r.status_code}")
        try:
            jwk_set = jwt.PyJWKSet.from_dict(r.json())
        except (ValueError, jwt.PyJWTError) as e:
            raise DiscoveryError(f"JWKS could not be parsed: {e}") from e
        logger.info("Loaded %d signing key(s) from %s", len(jwk_set.keys), jwks_uri)
        return jwk_set

    async def get_signing_keys(self) -> jwt.PyJWKSet:
        if self._jwk_set is None:
            self._jwk_set = await self._fetch()
        return self._jwk_set

    @staticmethod
    def _find(jwk_set: jwt.PyJWKSet, kid: str | None) -> jwt.PyJWK | None:
        if kid is None:
            # No kid in the token header: only unambiguous with a single-key set
            return jwk_set.keys[0] if len(jwk_set.keys) == 1 else None
        for key in jwk_set.keys:
            if key.key_id == kid:
                return key
        return None

    async def get_signing_key(self, kid: str | None) -> jwt.PyJWK:
        """Resolve a key by kid; invalidate and refetch once before giving up."""
        key = self._find(await self.get_signing_keys(), kid)
        if key is not None:
            return key
        logger.info("Signing key kid=%s not in cached JWKS; refetching", kid)
        self.invalidate()
        key = self._find(await self.get_signing_keys(), kid)
        if key is None:
            raise UnknownKeyError(f"No signing key with kid={kid}")
        return key

    def invalidate(self) -> None:
        self._jwk_set = None
