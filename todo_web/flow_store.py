"""
Holder for the single pending authorization flow (state, PKCE verifier) between
/login and /callback. One slot, like per-tab session storage: starting a new login
replaces any earlier pending flow. Memory only; never written to disk.
"""
from todo_auth.flow import FlowState


class FlowHolder:
    def __init__(self):
        self._pending: FlowState | None = None

    def put(self, flow: FlowState) -> None:
        self._pending = flow

    def take(self) -> FlowState | None:
        """Remove and return the pending flow (single use). Expiry is checked by the caller."""
        flow, self._pending = self._pending, None
        return flow

    def clear(self) -> None:
        self._pending = None
