"""Account and sync result models for broker synchronization."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from services.auth.models import CredentialContext


class AccountRecord(BaseModel):
    """A brokerage account as stored locally, with its credential fields."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    request_token: Optional[str] = None
    user_id: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    totp_secret: Optional[str] = Field(default=None, repr=False)
    is_active: bool = True
    last_sync: Optional[datetime] = None

    def missing_credentials(self) -> List[str]:
        """Names of credential fields a sync cannot run without."""
        return [
            field for field in ("api_key", "api_secret", "request_token")
            if not getattr(self, field)
        ]

    def credentials(self) -> CredentialContext:
        return CredentialContext(
            api_key=self.api_key or "",
            api_secret=self.api_secret or "",
            request_token=self.request_token or "",
        )


class AccountSyncResult(BaseModel):
    """Raw broker responses returned by a full account sync."""
    account_id: int
    holdings: List[Dict[str, Any]] = []
    positions: Dict[str, Any] = {}
    margins: Dict[str, Any] = {}


class SyncStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class AccountSyncOutcome(BaseModel):
    account_id: int
    account_name: str
    status: SyncStatus
    message: str
    error: Optional[Dict[str, Any]] = None


class SyncAllSummary(BaseModel):
    synced_accounts: int = 0
    failed_accounts: int = 0
    results: List[AccountSyncOutcome] = []

    @property
    def message(self) -> str:
        return f"Sync all completed: {self.synced_accounts} successful, {self.failed_accounts} failed"
