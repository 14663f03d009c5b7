"""
OIDC discovery: fetch and memoize the provider's openid-configuration.
One MetadataCache per application, created at startup and passed to whatever needs it.
"""
import logging
from dataclasses import dataclass

import httpx

from todo_auth.errors import DiscoveryError, ProviderTimeoutError

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("authorization_endpoint", "token_endpoint", "jwks_uri")


@dataclass(frozen=True)
class ProviderMetadata:
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    end_session_endpoint: str | None = None

    @classmethod
    def from_document(cls, doc: dict, default_issuer: str) -> "ProviderMetadata":
        missing = [f for f in _REQUIRED_FIELDS if not isinstance(doc.get(f), str) or not doc.get(f)]
        if missing:
            raise DiscoveryError(f"Discovery document missing {', '.join(missing)}")
        return cls(
            issuer=doc.get("issuer") or default_issuer,
            authorization_endpoint=doc["authorization_endpoint"],
            token_endpoint=doc["token_endpoint"],
            jwks_uri=doc["jwks_uri"],
            end_session_endpoint=doc.get("end_session_endpoint") or None,
        )


def discovery_url(issuer: str) -> str:
    # Issuers such as Authentik end in "/"; the well-known path is appended either way
    return f"{issuer.rstrip('/')}/.well-known/openid-configuration"


class MetadataCache:
    """
    Process-lifetime cache of the discovery document. Never invalidated automatically;
    a failed fetch is not cached so the next caller retries.
    """

    def __init__(self, issuer: str, http: httpx.AsyncClient):
        self.issuer = issuer
        self._http = http
        self._metadata: ProviderMetadata | None = None

    async def discover(self) -> ProviderMetadata:
        if self._metadata is not None:
            return self._metadata
        url = discovery_url(self.issuer)
        try:
            r = await self._http.get(url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Discovery timed out: {url}") from e
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Discovery endpoint unreachable: {e}") from e
        if r.status_code != 200:
            raise DiscoveryError(f"Discovery returned HTTP {r.status_code}")
        try:
            doc = r.json()
        except ValueError as e:
            raise DiscoveryError("Discovery returned invalid JSON") from e
        if not isinstance(doc, dict):
            raise DiscoveryError("Discovery document is not a JSON object")
        # A concurrent first call may have populated it meanwhile; the value is identical
        self._metadata = ProviderMetadata.from_document(doc, self.issuer)
        logger.info("Loaded OIDC discovery for issuer %s", self.issuer)
        return self._metadata

    def invalidate(self) -> None:
        self._metadata = None
