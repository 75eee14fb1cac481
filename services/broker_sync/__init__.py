"""Holdings, positions and margins sync from Kite Connect into the local store."""

from .margin_enricher import MarginEnricher
from .models import AccountRecord, AccountSyncOutcome, AccountSyncResult, SyncAllSummary, SyncStatus
from .repository import SyncRepository
from .retry import RetryOrchestrator
from .service import BrokerSyncService

__all__ = [
    "BrokerSyncService",
    "RetryOrchestrator",
    "MarginEnricher",
    "SyncRepository",
    "AccountRecord",
    "AccountSyncResult",
    "AccountSyncOutcome",
    "SyncAllSummary",
    "SyncStatus",
]
