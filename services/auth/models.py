"""Authentication models for the request-token based Kite session flow."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .kite_client import KiteClient


@dataclass(frozen=True)
class CredentialContext:
    """Authentication material for one brokerage account."""
    api_key: str
    api_secret: str
    request_token: str

    def __repr__(self) -> str:
        return f"CredentialContext(api_key={self.api_key!r})"


@dataclass
class KiteSession:
    """The single live broker session held by a SessionManager."""
    owner_api_key: str
    client: Optional["KiteClient"]
    access_token: Optional[str]
    issued_at: float
    user_id: Optional[str] = None

    def age(self, now: float) -> float:
        return now - self.issued_at

    def is_valid(self, now: float, ttl_seconds: float) -> bool:
        """Valid only while inside the TTL with a token and a handle."""
        return (
            self.client is not None
            and bool(self.access_token)
            and self.age(now) < ttl_seconds
        )


@dataclass(frozen=True)
class SessionHealth:
    """Point-in-time view of the session store. Durations are in seconds."""
    is_authenticated: bool
    has_valid_token: bool
    session_age: float
    time_until_expiry: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserProfile:
    """User profile structure from Zerodha API."""
    user_id: str
    user_name: str
    user_shortname: str
    email: str
    broker: str

    @classmethod
    def from_kite_response(cls, data: Dict[str, Any]) -> "UserProfile":
        """Create from KiteConnect API response."""
        return cls(
            user_id=data.get("user_id", ""),
            user_name=data.get("user_name", ""),
            user_shortname=data.get("user_shortname", ""),
            email=data.get("email", ""),
            broker=data.get("broker", "zerodha"),
        )
