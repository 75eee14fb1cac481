"""Broker authentication and API exceptions for Portfolio Sync."""

from enum import Enum
from typing import Optional

from kiteconnect import exceptions as kite_exceptions

from core.utils.exceptions import SyncError


class BrokerErrorKind(str, Enum):
    """How a broker failure should be treated by the retry layer."""
    TOKEN_EXPIRED = "token_expired"     # Needs a fresh request token from the login flow
    AUTHENTICATION = "authentication"   # Session staleness or races, worth one more try
    OTHER = "other"                     # Everything else fails fast


class BrokerAPIError(SyncError):
    """A Kite Connect call failed; `kind` is fixed where the failure is first seen."""

    kind = BrokerErrorKind.OTHER

    def __init__(self, message: str, kind: Optional[BrokerErrorKind] = None,
                 error_type: Optional[str] = None, code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        if kind is not None:
            self.kind = kind
        self.error_type = error_type
        self.code = code


class TokenExpiredError(BrokerAPIError):
    """Access token rejected as invalid or expired."""
    kind = BrokerErrorKind.TOKEN_EXPIRED


class BrokerAuthenticationError(BrokerAPIError):
    """Invalid api_key/access_token that is not an expiry."""
    kind = BrokerErrorKind.AUTHENTICATION


class SessionNotInitializedError(BrokerAuthenticationError):
    """An operation ran without a live session."""
    pass


_EXPIRY_MARKERS = ("token is invalid", "expired")
_AUTH_MARKERS = ("invalid", "api_key", "access_token")


def error_kind(error: BaseException) -> BrokerErrorKind:
    """Return the retry classification of any exception."""
    if isinstance(error, BrokerAPIError):
        return error.kind
    return BrokerErrorKind.OTHER


def classify_kite_exception(exc: Exception) -> BrokerAPIError:
    """Translate a kiteconnect SDK exception into a classified BrokerAPIError.

    TokenException always means the token is no longer usable. Other SDK
    errors are treated as authentication failures only when their message
    names the credentials; network, data and order errors stay OTHER.
    """
    if isinstance(exc, BrokerAPIError):
        return exc

    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    error_type = type(exc).__name__
    code = getattr(exc, "code", None)

    if not isinstance(exc, kite_exceptions.KiteException):
        return BrokerAPIError(message, error_type=error_type, code=code)

    if isinstance(exc, kite_exceptions.TokenException) or any(m in lowered for m in _EXPIRY_MARKERS):
        return TokenExpiredError(message, error_type="TokenException", code=code)

    if isinstance(exc, (kite_exceptions.NetworkException, kite_exceptions.DataException)):
        return BrokerAPIError(message, error_type=error_type, code=code)

    if any(m in lowered for m in _AUTH_MARKERS):
        return BrokerAuthenticationError(message, error_type=error_type, code=code)

    return BrokerAPIError(message, error_type=error_type, code=code)
