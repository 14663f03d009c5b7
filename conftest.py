"""
Shared pytest setup: environment for both apps (set before they are imported) and a fake
OIDC provider served through httpx.MockTransport.
"""
import os
import time
from functools import lru_cache
from urllib.parse import parse_qs

ISSUER = "https://idp.test/application/o/todo-app/"
CLIENT_ID = "todo-app"

# In-memory SQLite; todo_api.database uses StaticPool so all connections share the same DB
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OIDC_ISSUER"] = ISSUER
os.environ["OIDC_CLIENT_ID"] = CLIENT_ID
os.environ["AUTH_MODE"] = "session"
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef0123456789"
# TestClient talks plain http to "testserver"; Secure cookies would never be sent back
os.environ["COOKIE_SECURE"] = "false"
os.environ["APP_URL"] = "http://app.test/"
os.environ["RATE_LIMIT_LOGIN_PER_MINUTE"] = "1000"
# Web client keeps tokens in memory only during tests
os.environ["TODO_WEB_TOKEN_STORE"] = ""
os.environ["TODO_API_URL"] = "http://api.test"

import httpx  # noqa: E402
import jwt  # noqa: E402
import pytest  # noqa: E402
from cryptography.hazmat.backends import default_backend  # noqa: E402
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key  # noqa: E402

from todo_auth.client import OIDCClient  # noqa: E402
from todo_auth.discovery import MetadataCache  # noqa: E402
from todo_auth.keys import KeySetCache  # noqa: E402


@lru_cache(maxsize=None)
def rsa_key(name: str = "default"):
    """RSA keys are slow to generate; one per name for the whole session."""
    return generate_private_key(65537, 2048, default_backend())


def _int_to_b64url(value: int) -> str:
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


def public_jwk(key, kid: str) -> dict:
    pub = key.public_key().public_numbers()
    return {"kty": "RSA", "kid": kid, "alg": "RS256", "use": "sig", "n": _int_to_b64url(pub.n), "e": _int_to_b64url(pub.e)}


class FakeProvider:
    """Authentik-style provider: discovery, JWKS, token endpoint. Records every request."""

    base = "https://idp.test/application/o"
    issuer = ISSUER
    client_id = CLIENT_ID

    def __init__(self):
        self.key = rsa_key()
        self.kid = "idp-key-1"
        self.jwks = {"keys": [public_jwk(self.key, self.kid)]}
        self.discovery_doc = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{self.base}/authorize/",
            "token_endpoint": f"{self.base}/token/",
            "end_session_endpoint": f"{self.base}/todo-app/end-session/",
            "jwks_uri": f"{self.base}/todo-app/jwks/",
        }
        self.requests: list[httpx.Request] = []
        self.token_forms: list[dict] = []
        # (status, body) served for grant_type=authorization_code / refresh_token
        self.code_response: tuple[int, dict] = (400, {"error": "invalid_grant"})
        self.refresh_response: tuple[int, dict] = (400, {"error": "invalid_grant"})
        self.timeout_paths: set[str] = set()

    def add_key(self, key, kid: str) -> None:
        """Publish another signing key (provider key rotation)."""
        self.jwks = {"keys": self.jwks["keys"] + [public_jwk(key, kid)]}

    # --- tokens ---

    def sign(self, payload: dict, *, key=None, kid: str | None = "default", algorithm: str = "RS256") -> str:
        headers = {}
        if kid is not None:
            headers["kid"] = self.kid if kid == "default" else kid
        return jwt.encode(payload, key or self.key, algorithm=algorithm, headers=headers)

    def id_token(self, *, nonce: str | None, sub: str = "user-1", **overrides) -> str:
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "sub": sub,
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + 300,
            "email": "ada@example.com",
            "name": "Ada Lovelace",
        }
        if nonce is not None:
            payload["nonce"] = nonce
        payload.update(overrides)
        return self.sign(payload)

    def access_token(self, *, expires_in: int = 300, sub: str = "user-1", **overrides) -> str:
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "sub": sub,
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + expires_in,
            "email": "ada@example.com",
            "preferred_username": "ada",
        }
        payload.update(overrides)
        return self.sign(payload)

    # --- transport ---

    def calls_to(self, path_suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(path_suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.timeout_paths:
            raise httpx.ReadTimeout("timed out", request=request)
        if path.endswith("/.well-known/openid-configuration"):
            return httpx.Response(200, json=self.discovery_doc)
        if path == "/application/o/todo-app/jwks/":
            return httpx.Response(200, json=self.jwks)
        if path == "/application/o/token/":
            form = {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}
            self.token_forms.append(form)
            if form.get("grant_type") == "authorization_code":
                status, body = self.code_response
            elif form.get("grant_type") == "refresh_token":
                status, body = self.refresh_response
            else:
                status, body = 400, {"error": "unsupported_grant_type"}
            return httpx.Response(status, json=body)
        return httpx.Response(404, json={"error": "not_found"})

    def http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def oidc_client(self, *, redirect_uri: str, client_secret: str | None = None, http: httpx.AsyncClient | None = None) -> OIDCClient:
        http = http or self.http()
        metadata = MetadataCache(ISSUER, http)
        return OIDCClient(
            issuer=ISSUER,
            client_id=CLIENT_ID,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            metadata=metadata,
            keys=KeySetCache(metadata, http),
            http=http,
        )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def other_key():
    """An RSA key the provider has not published."""
    return rsa_key("other")
