"""Kite Connect authentication: session lifecycle, broker client and login automation."""

from .session_manager import SessionManager
from .kite_client import KiteClient
from .login import LoginAutomation, LoginResult, TotpCode, generate_totp
from .models import CredentialContext, KiteSession, SessionHealth, UserProfile
from .exceptions import (
    BrokerErrorKind,
    BrokerAPIError,
    TokenExpiredError,
    BrokerAuthenticationError,
    SessionNotInitializedError,
    classify_kite_exception,
    error_kind,
)

__all__ = [
    "SessionManager",
    "KiteClient",
    "LoginAutomation",
    "LoginResult",
    "TotpCode",
    "generate_totp",
    "CredentialContext",
    "KiteSession",
    "SessionHealth",
    "UserProfile",
    "BrokerErrorKind",
    "BrokerAPIError",
    "TokenExpiredError",
    "BrokerAuthenticationError",
    "SessionNotInitializedError",
    "classify_kite_exception",
    "error_kind",
]
