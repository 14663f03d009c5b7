"""
Identity claims the application derives from a verified (or, client-side, decoded) token.
"""
from dataclasses import asdict, dataclass

from todo_auth.errors import TokenVerificationError


@dataclass(frozen=True)
class IdentityClaims:
    sub: str
    email: str = ""
    name: str = ""

    @classmethod
    def from_payload(cls, payload: dict) -> "IdentityClaims":
        """sub is required and must be non-empty; name falls back to preferred_username."""
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub:
            raise TokenVerificationError("Token has no subject")
        return cls(
            sub=sub,
            email=payload.get("email") or "",
            name=payload.get("name") or payload.get("preferred_username") or "",
        )

    def to_dict(self) -> dict:
        return asdict(self)
