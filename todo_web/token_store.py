"""
Provider tokens held by the web client: in memory, mirrored to a JSON file so a restart
(the equivalent of a page reload) keeps the user signed in.
Expiry comes from the access token's own exp claim. Single stored set (no per-user sessions).
"""
import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from todo_auth.claims import IdentityClaims
from todo_auth.client import TokenSet, decode_unverified
from todo_auth.errors import TokenVerificationError

logger = logging.getLogger(__name__)


@dataclass
class StoredTokens:
    access_token: str
    expires_at: float
    refresh_token: str | None = None
    id_token: str | None = None

    @classmethod
    def from_token_set(cls, tokens: TokenSet, *, previous_refresh_token: str | None = None, now: float | None = None) -> "StoredTokens":
        now = time.time() if now is None else now
        payload = decode_unverified(tokens.access_token) or {}
        exp = payload.get("exp")
        if isinstance(exp, (int, float)):
            expires_at = float(exp)
        elif tokens.expires_in is not None:
            expires_at = now + tokens.expires_in
        else:
            # Unknown lifetime: treat as expired so the next use refreshes
            expires_at = 0.0
        return cls(
            access_token=tokens.access_token,
            expires_at=expires_at,
            # Providers that do not rotate refresh tokens omit them from refresh responses
            refresh_token=tokens.refresh_token or previous_refresh_token,
            id_token=tokens.id_token,
        )

    def access_token_expired_or_soon(self, buffer_seconds: int = 60, now: float | None = None) -> bool:
        """True if the access token expires within buffer_seconds (or already has)."""
        now = time.time() if now is None else now
        return self.expires_at < now + buffer_seconds

    def claims(self) -> IdentityClaims | None:
        """UI-only identity decoded from the (unverified) access token."""
        payload = decode_unverified(self.access_token)
        if payload is None:
            return None
        try:
            return IdentityClaims.from_payload(payload)
        except TokenVerificationError:
            return None


class TokenStore:
    def __init__(self, path: str | None = None):
        self._path = Path(path) if path else None
        self._tokens: StoredTokens | None = self._load()

    def _load(self) -> StoredTokens | None:
        if self._path is None or not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return StoredTokens(
                access_token=data["access_token"],
                expires_at=float(data["expires_at"]),
                refresh_token=data.get("refresh_token"),
                id_token=data.get("id_token"),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable token store %s: %s", self._path, type(e).__name__)
            return None

    def _persist(self) -> None:
        if self._path is None:
            return
        try:
            if self._tokens is None:
                self._path.unlink(missing_ok=True)
                return
            self._path.write_text(json.dumps(asdict(self._tokens)), encoding="utf-8")
            self._path.chmod(0o600)
        except OSError as e:
            logger.warning("Could not update token store %s: %s", self._path, e)

    def get(self) -> StoredTokens | None:
        return self._tokens

    def save(self, tokens: TokenSet) -> StoredTokens:
        previous = self._tokens.refresh_token if self._tokens else None
        self._tokens = StoredTokens.from_token_set(tokens, previous_refresh_token=previous)
        self._persist()
        return self._tokens

    def clear(self) -> None:
        """Drop all credential material, in memory and on disk."""
        self._tokens = None
        self._persist()
