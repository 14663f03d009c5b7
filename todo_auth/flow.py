"""
One login attempt: authorization code flow with PKCE, state and (optionally) nonce.

    IDLE -> CHALLENGE_ISSUED -> REDIRECTED -> CALLBACK_RECEIVED -> CODE_EXCHANGED
         -> TOKEN_VERIFIED -> SESSION_ESTABLISHED          (FAILED from any step)

The FlowState lives only between the redirect and the callback; whoever holds it
(cookie, in-memory holder) must drop it after complete() whatever the outcome.
"""
import logging
import secrets
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Mapping

from todo_auth.claims import IdentityClaims
from todo_auth.client import OIDCClient, TokenSet, decode_unverified
from todo_auth.errors import AuthError, ProviderDeniedError, StateMismatchError, TokenVerificationError
from todo_auth.pkce import generate_nonce, generate_state, generate_verifier

logger = logging.getLogger(__name__)

# Pending flow lifetime (seconds); the flow cookie uses the same max-age
FLOW_TTL = 300


@dataclass
class FlowState:
    state: str
    code_verifier: str
    nonce: str | None = None
    created_at: float = field(default_factory=time.time)

    @classmethod
    def new(cls, *, use_nonce: bool) -> "FlowState":
        return cls(
            state=generate_state(),
            code_verifier=generate_verifier(),
            nonce=generate_nonce() if use_nonce else None,
        )

    def expired(self, now: float | None = None) -> bool:
        return ((now if now is not None else time.time()) - self.created_at) > FLOW_TTL

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "FlowState":
        return cls(
            state=data["state"],
            code_verifier=data["code_verifier"],
            nonce=data.get("nonce"),
            created_at=float(data["created_at"]),
        )

    def __repr__(self) -> str:
        # Never let the verifier or nonce reach a log line
        return f"FlowState(state={self.state[:8]}..., nonce={'yes' if self.nonce else 'no'})"


class FlowStage(str, Enum):
    IDLE = "idle"
    CHALLENGE_ISSUED = "challenge_issued"
    REDIRECTED = "redirected"
    CALLBACK_RECEIVED = "callback_received"
    CODE_EXCHANGED = "code_exchanged"
    TOKEN_VERIFIED = "token_verified"
    SESSION_ESTABLISHED = "session_established"
    FAILED = "failed"


@dataclass
class LoginResult:
    tokens: TokenSet
    claims: IdentityClaims | None


def check_callback(params: Mapping[str, str], flow: FlowState | None) -> str:
    """
    Validate the provider redirect before any network call. Returns the authorization code.
    Provider error -> ProviderDeniedError; absent/expired flow or state mismatch -> StateMismatchError.
    """
    error = params.get("error")
    if error:
        raise ProviderDeniedError(error, params.get("error_description"))
    state = params.get("state")
    if flow is None:
        raise StateMismatchError("No pending login flow for this callback")
    if not state or not secrets.compare_digest(state.encode("utf-8"), flow.state.encode("utf-8")):
        raise StateMismatchError("Callback state does not match the stored state")
    if flow.expired():
        raise StateMismatchError("Pending login flow expired")
    code = params.get("code")
    if not code:
        raise ProviderDeniedError("invalid_request", "Missing code parameter")
    return code


class LoginAttempt:
    """
    Drives a single login. begin() on the login request; a fresh LoginAttempt built with
    the stored FlowState runs complete() on the callback request.
    """

    def __init__(self, client: OIDCClient, flow: FlowState | None = None):
        self.client = client
        self.flow = flow
        self.stage = FlowStage.IDLE if flow is None else FlowStage.REDIRECTED

    def _advance(self, stage: FlowStage) -> None:
        logger.debug("login flow %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    async def begin(self, *, use_nonce: bool, prompt: str | None = None) -> str:
        """Generate PKCE + state (+ nonce); return the authorization URL. Caller stores self.flow."""
        try:
            self.flow = FlowState.new(use_nonce=use_nonce)
            self._advance(FlowStage.CHALLENGE_ISSUED)
            url = await self.client.authorization_url(
                state=self.flow.state,
                code_verifier=self.flow.code_verifier,
                nonce=self.flow.nonce,
                prompt=prompt,
            )
        except AuthError:
            self.flow = None
            self._advance(FlowStage.FAILED)
            raise
        self._advance(FlowStage.REDIRECTED)
        return url

    async def complete(self, params: Mapping[str, str], *, verify_id_token: bool) -> LoginResult:
        """
        Check the callback, exchange the code, then either verify the ID token (server-side
        session; nonce enforced) or best-effort decode the access token (client-held tokens).
        The flow is consumed either way.
        """
        flow, self.flow = self.flow, None
        try:
            self._advance(FlowStage.CALLBACK_RECEIVED)
            code = check_callback(params, flow)
            tokens = await self.client.exchange_code(code, flow.code_verifier)
            self._advance(FlowStage.CODE_EXCHANGED)
            if verify_id_token:
                if not tokens.id_token:
                    raise TokenVerificationError("Token response has no id_token")
                payload = await self.client.verify_id_token(tokens.id_token, nonce=flow.nonce)
                claims = IdentityClaims.from_payload(payload)
            else:
                claims = _claims_from_access_token(tokens.access_token)
            self._advance(FlowStage.TOKEN_VERIFIED)
        except AuthError as e:
            logger.warning("login flow failed at %s: %s: %s", self.stage.value, type(e).__name__, e)
            self._advance(FlowStage.FAILED)
            raise
        self._advance(FlowStage.SESSION_ESTABLISHED)
        return LoginResult(tokens=tokens, claims=claims)


def _claims_from_access_token(access_token: str) -> IdentityClaims | None:
    """UI-only claims from an unverified access token; None when opaque or subject-less."""
    payload = decode_unverified(access_token)
    if payload is None:
        return None
    try:
        return IdentityClaims.from_payload(payload)
    except TokenVerificationError:
        return None
