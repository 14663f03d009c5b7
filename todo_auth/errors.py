"""
Error taxonomy for the OIDC login protocol and the auth guards.
Messages are for server-side logs; callers show users a generic failure only.
"""


class AuthError(Exception):
    """Base class for every authentication / session failure."""


class DiscoveryError(AuthError):
    """Provider discovery document or key set could not be fetched or parsed."""


class ProviderTimeoutError(AuthError):
    """A call to the provider timed out (distinct from an explicit error response)."""


class ProviderDeniedError(AuthError):
    """Provider redirected back with ?error=... (user denied, invalid request, ...)."""

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description
        super().__init__(f"{error}: {error_description}" if error_description else error)


class StateMismatchError(AuthError):
    """Callback state missing or not equal to the stored flow state (possible CSRF)."""


class TokenExchangeError(AuthError):
    """Token endpoint rejected the authorization code (or could not be reached)."""

    def __init__(self, message: str, *, status_code: int | None = None, error: str | None = None, retryable: bool = False):
        self.status_code = status_code
        self.error = error
        # True only for transport failures; protocol errors (single-use code) are never retryable
        self.retryable = retryable
        super().__init__(message)


class TokenVerificationError(AuthError):
    """Signature, issuer, audience, expiry or required-claim check failed."""


class NonceMismatchError(TokenVerificationError):
    """ID token nonce differs from the nonce issued at login start (possible replay)."""


class UnknownKeyError(TokenVerificationError):
    """No key with the token's kid in the provider key set, even after one refetch."""


class RefreshFailedError(AuthError):
    """refresh_token grant failed; the stored credential must be discarded."""


class Unauthorized(AuthError):
    """Guard-level rejection: no valid credential for this request."""
