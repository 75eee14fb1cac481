# Structured exception hierarchy for Portfolio Sync

from typing import Dict, Any, Optional
from datetime import datetime, timezone


class SyncError(Exception):
    """Base exception for all Portfolio Sync specific errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)


class MissingCredentialsError(SyncError):
    """Account lacks the credential fields a sync needs"""

    def __init__(self, message: str, account_id: int, missing: list, **kwargs):
        super().__init__(message, **kwargs)
        self.account_id = account_id
        self.missing = missing


def create_error_context(error: Exception, operation: str,
                         additional_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Flatten an exception into log fields: type, message, operation, and kind for broker errors."""
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "operation": operation,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if isinstance(error, SyncError):
        context.update({
            "error_details": error.details,
            "error_timestamp": error.timestamp.isoformat(),
        })

    kind = getattr(error, "kind", None)
    if kind is not None:
        context["error_kind"] = getattr(kind, "value", str(kind))

    if additional_context:
        context.update(additional_context)

    return context
