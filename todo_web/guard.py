"""
Client-side auth guard: hand out a fresh access token or nothing.
Refresh runs (and finishes) before the caller issues any API request with the result.
Concurrent requests share one refresh: the first one through the lock refreshes, the rest
reuse its tokens.
"""
import asyncio
import logging

from todo_auth.claims import IdentityClaims
from todo_auth.client import OIDCClient
from todo_auth.errors import RefreshFailedError
from todo_web.token_store import TokenStore

logger = logging.getLogger(__name__)


class AuthGuard:
    def __init__(self, client: OIDCClient, store: TokenStore, *, buffer_seconds: int = 60):
        self.client = client
        self.store = store
        self.buffer_seconds = buffer_seconds
        self._refresh_lock = asyncio.Lock()

    async def refresh(self) -> bool:
        """
        One refresh_token grant. A rejected refresh token never recovers, so failure clears
        the store, unless the store already holds a newer refresh token than the one rejected.
        """
        tokens = self.store.get()
        if tokens is None or not tokens.refresh_token:
            return False
        try:
            new_tokens = await self.client.refresh(tokens.refresh_token)
        except RefreshFailedError as e:
            current = self.store.get()
            if current is not None and current.refresh_token != tokens.refresh_token:
                logger.info("Refresh with a superseded refresh token failed; keeping newer tokens: %s", e)
                return False
            logger.info("Refresh failed, signing out: %s", e)
            self.store.clear()
            return False
        self.store.save(new_tokens)
        return True

    def _fresh_access_token(self) -> str | None:
        tokens = self.store.get()
        if tokens is None or tokens.access_token_expired_or_soon(self.buffer_seconds):
            return None
        return tokens.access_token

    async def get_valid_credential(self) -> str | None:
        """
        The stored access token if it expires more than buffer_seconds from now; otherwise
        the result of one silent refresh; otherwise None. Never a token known to be stale.
        """
        if self.store.get() is None:
            return None
        token = self._fresh_access_token()
        if token is not None:
            return token
        async with self._refresh_lock:
            # Another request may have refreshed while this one waited
            token = self._fresh_access_token()
            if token is not None:
                return token
            if self.store.get() is None:
                return None
            refreshed = await self.refresh()
            token = self._fresh_access_token()
            if token is not None:
                return token
            if refreshed:
                logger.warning("Refreshed access token is already near expiry; signing out")
            self.store.clear()
            return None

    def is_authenticated(self) -> bool:
        tokens = self.store.get()
        if tokens is None:
            return False
        return not tokens.access_token_expired_or_soon(self.buffer_seconds) or bool(tokens.refresh_token)

    def current_user(self) -> IdentityClaims | None:
        """For display only; the API re-derives identity from its own verification."""
        if not self.is_authenticated():
            return None
        return self.store.get().claims()

    def sign_out(self) -> None:
        self.store.clear()
