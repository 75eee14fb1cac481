"""Automated Kite login: TOTP codes and the login collaborator contract."""

import time
from dataclasses import dataclass
from typing import Optional, Protocol

import pyotp


@dataclass(frozen=True)
class LoginResult:
    """What a login run hands back. Only the request token is required."""
    request_token: str
    access_token: Optional[str] = None


@dataclass(frozen=True)
class TotpCode:
    code: str
    remaining_seconds: int


class LoginAutomation(Protocol):
    """Drives the Kite login page and returns a fresh request token.

    Implementations usually wrap a headless browser; the sync flow only
    depends on this call.
    """

    async def login(
        self,
        api_key: str,
        api_secret: str,
        user_id: str,
        password: str,
        one_time_code: str,
    ) -> LoginResult:
        ...


def generate_totp(secret: str, now: Optional[float] = None) -> TotpCode:
    """Current 6-digit code for a base32 TOTP secret and how long it stays valid."""
    if not secret:
        raise ValueError("TOTP secret is empty")

    totp = pyotp.TOTP(secret.replace(" ", "").upper())
    at = time.time() if now is None else now
    remaining = int(totp.interval - at % totp.interval)
    return TotpCode(code=totp.at(at), remaining_seconds=remaining)
