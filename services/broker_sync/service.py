"""
Broker sync service: pulls holdings, positions and margins from Kite Connect
and reconciles the local snapshot store.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.config.settings import Settings
from core.database.models import Holding, Margin, Position
from core.logging import get_error_logger_safe, get_trading_logger_safe
from core.utils.exceptions import MissingCredentialsError, create_error_context
from services.auth.exceptions import BrokerErrorKind, error_kind
from services.auth.login import LoginAutomation, generate_totp
from services.auth.models import SessionHealth
from services.auth.session_manager import SessionManager
from .margin_enricher import MarginEnricher
from .models import (
    AccountRecord,
    AccountSyncOutcome,
    AccountSyncResult,
    SyncAllSummary,
    SyncStatus,
)
from .normalizers import normalize_holdings, normalize_margin, normalize_positions
from .repository import SyncRepository
from .retry import RetryOrchestrator


class BrokerSyncService:
    """Sync operations for one or many brokerage accounts.

    Each single-resource sync fetches through the retry orchestrator,
    normalizes the response and replaces the account's rows. Errors from the
    broker or the store propagate unchanged; `describe_sync_error` turns them
    into the user-facing shape.
    """

    def __init__(
        self,
        settings: Settings,
        session_manager: SessionManager,
        retry_orchestrator: RetryOrchestrator,
        margin_enricher: MarginEnricher,
        repository: SyncRepository,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.session_manager = session_manager
        self.retry = retry_orchestrator
        self.margin_enricher = margin_enricher
        self.repository = repository
        self._sleep = sleep
        self.logger = get_trading_logger_safe("broker_sync")
        self.error_logger = get_error_logger_safe("broker_sync")

    @staticmethod
    def _require_credentials(account: AccountRecord) -> None:
        missing = account.missing_credentials()
        if missing:
            raise MissingCredentialsError(
                f"Account {account.id} is missing {', '.join(missing)}",
                account_id=account.id,
                missing=missing,
            )

    async def sync_holdings(self, account: AccountRecord) -> List[Dict[str, Any]]:
        self._require_credentials(account)
        raw = await self.retry.run_with_retry(lambda client: client.holdings(), account.credentials())

        rows = normalize_holdings(raw, account.id)
        await self.repository.replace_for_account(Holding, account.id, rows)
        self.logger.info("Holdings synced", account_id=account.id, count=len(rows))
        return raw

    async def sync_positions(self, account: AccountRecord) -> Dict[str, Any]:
        self._require_credentials(account)
        async def fetch(client):
            return client, await client.positions()

        # Margins are priced on the same client the positions came from
        client, raw = await self.retry.run_with_retry(fetch, account.credentials())

        net = (raw or {}).get("net") or []
        rows = normalize_positions(net, account.id, self.settings.sync.excluded_position_suffix)
        rows = await self.margin_enricher.enrich(client, rows)

        await self.repository.replace_for_account(Position, account.id, rows)
        self.logger.info("Positions synced", account_id=account.id, count=len(rows),
                         excluded=len(net) - len(rows))
        return raw

    async def sync_margins(self, account: AccountRecord) -> Dict[str, Any]:
        self._require_credentials(account)
        segment = self.settings.sync.margin_segment
        raw = await self.retry.run_with_retry(lambda client: client.margins(segment), account.credentials())

        row = normalize_margin(raw or {}, account.id)
        row.pop("account_id")
        await self.repository.upsert_singleton(Margin, account.id, row)
        self.logger.info("Margins synced", account_id=account.id, net=row["net"])
        return raw

    async def sync_account(self, account: AccountRecord) -> AccountSyncResult:
        """Holdings, positions and margins in order, then stamp last_sync."""
        self.logger.info("Syncing account", account_id=account.id, account_name=account.name)

        holdings = await self.sync_holdings(account)
        positions = await self.sync_positions(account)
        margins = await self.sync_margins(account)
        await self.repository.touch_last_sync(account.id)

        return AccountSyncResult(
            account_id=account.id,
            holdings=holdings or [],
            positions=positions or {},
            margins=margins or {},
        )

    @staticmethod
    def _skip_reason(account: AccountRecord, requires_totp: bool) -> Optional[str]:
        if not account.api_key or not account.api_secret:
            return "Missing API credentials"
        if not account.request_token:
            return "Missing request token - please complete login flow"
        if requires_totp and not account.totp_secret:
            return "Missing TOTP secret - please configure TOTP secret for this account"
        return None

    async def _login(self, account: AccountRecord, login: LoginAutomation) -> AccountRecord:
        totp = generate_totp(account.totp_secret)
        self.logger.info("Starting login for account", account_id=account.id,
                         totp_valid_for=totp.remaining_seconds)

        result = await login.login(
            account.api_key,
            account.api_secret,
            account.user_id or account.name,
            account.password or "",
            totp.code,
        )
        self.logger.info("Login completed", account_id=account.id,
                         request_token="received" if result.request_token else "not received")

        if not result.request_token:
            return account

        await self.repository.update_request_token(account.id, result.request_token)
        return account.model_copy(update={"request_token": result.request_token})

    async def sync_all_accounts(
        self,
        accounts: Optional[List[AccountRecord]] = None,
        login: Optional[LoginAutomation] = None,
    ) -> SyncAllSummary:
        """Sync accounts one at a time; a failing account never stops the run.

        With a login collaborator each account first gets a fresh request
        token from a TOTP login. Without one the stored request token is used.
        """
        if accounts is None:
            accounts = await self.repository.list_active_accounts()

        summary = SyncAllSummary()
        if not accounts:
            self.logger.info("No active accounts found to sync")
            return summary

        self.logger.info("Starting sync of all accounts", accounts=len(accounts))

        for index, account in enumerate(accounts):
            reason = self._skip_reason(account, requires_totp=login is not None)
            if reason:
                self.logger.warning("Skipping account", account_id=account.id, reason=reason)
                summary.results.append(AccountSyncOutcome(
                    account_id=account.id,
                    account_name=account.name,
                    status=SyncStatus.SKIPPED,
                    message=reason,
                ))
                summary.failed_accounts += 1
                continue

            try:
                if login is not None:
                    account = await self._login(account, login)
                await self.sync_account(account)
            except Exception as e:
                self.error_logger.error(
                    "Failed to sync account",
                    **create_error_context(e, "sync_all_accounts", {"account_id": account.id}),
                )
                summary.results.append(AccountSyncOutcome(
                    account_id=account.id,
                    account_name=account.name,
                    status=SyncStatus.FAILED,
                    message=str(e) or "Unknown error occurred",
                    error=self.describe_sync_error(e, account.api_key),
                ))
                summary.failed_accounts += 1
                continue

            summary.results.append(AccountSyncOutcome(
                account_id=account.id,
                account_name=account.name,
                status=SyncStatus.SUCCESS,
                message="Login and data sync completed successfully" if login else "Data sync completed successfully",
            ))
            summary.synced_accounts += 1

            if index < len(accounts) - 1:
                await self._sleep(self.settings.sync.account_delay_seconds)

        self.logger.info(summary.message)
        return summary

    def describe_sync_error(self, error: BaseException, api_key: Optional[str]) -> Dict[str, Any]:
        """User-facing description of a sync failure."""
        kind = error_kind(error)
        if kind is BrokerErrorKind.TOKEN_EXPIRED:
            return {
                "error": "Authentication failed",
                "message": "Token is invalid or has expired. Please login again to get a new request token.",
                "error_type": "TokenException",
                "login_url": self.session_manager.get_login_url(api_key or ""),
            }
        if kind is BrokerErrorKind.AUTHENTICATION:
            return {
                "error": "Authentication failed",
                "message": "Invalid API credentials. Please check your API key and secret.",
                "error_type": "AuthenticationError",
            }
        return {"error": "Internal server error", "message": "Failed to sync account data"}

    def get_session_health(self) -> SessionHealth:
        return self.session_manager.get_session_health()

    def reset_session(self) -> None:
        self.session_manager.reset_session()
