"""Session-aware retry wrapper for Kite API operations."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from core.config.settings import Settings
from core.logging import get_trading_logger_safe
from core.utils.exceptions import create_error_context
from services.auth.exceptions import BrokerErrorKind, error_kind
from services.auth.kite_client import KiteClient
from services.auth.models import CredentialContext
from services.auth.session_manager import SessionManager

T = TypeVar("T")

Operation = Callable[[KiteClient], Awaitable[T]]


class RetryOrchestrator:
    """Runs broker operations against an assured session.

    Only authentication-class failures are retried, after a session reset and
    a linear backoff of `attempt * backoff_base_seconds`. Token expiry needs a
    new request token from the login flow, so it is raised at once, as is
    every other failure.
    """

    def __init__(
        self,
        settings: Settings,
        session_manager: SessionManager,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_manager = session_manager
        self.max_attempts = settings.session.max_attempts
        self.backoff_base_seconds = settings.session.backoff_base_seconds
        self._sleep = sleep
        self.logger = get_trading_logger_safe("retry_orchestrator")

    async def _ensure(self, credentials: CredentialContext) -> KiteClient:
        return await self.session_manager.ensure_session(
            credentials.api_key, credentials.request_token, credentials.api_secret
        )

    async def run_with_retry(
        self,
        operation: Operation,
        credentials: CredentialContext,
        max_attempts: Optional[int] = None,
    ) -> T:
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, attempts + 1):
            try:
                client = await self._ensure(credentials)

                if attempt > 1 and not await self.session_manager.validate_session():
                    self.logger.info("Session invalid before retry, re-initializing", attempt=attempt)
                    self.session_manager.reset_session()
                    client = await self._ensure(credentials)

                result = await operation(client)
                if attempt > 1:
                    self.logger.info("Broker call succeeded after retry", attempt=attempt)
                return result

            except Exception as e:
                kind = error_kind(e)
                self.logger.warning(
                    "Broker call attempt failed",
                    **create_error_context(e, "run_with_retry", {"attempt": attempt, "max_attempts": attempts}),
                )

                if kind is BrokerErrorKind.TOKEN_EXPIRED:
                    self.logger.error("Token expiry detected - re-authentication required")
                    raise

                if kind is BrokerErrorKind.AUTHENTICATION and attempt < attempts:
                    delay = attempt * self.backoff_base_seconds
                    self.logger.info("Authentication error, retrying", retry_in_seconds=delay)
                    self.session_manager.reset_session()
                    await self._sleep(delay)
                    continue

                if kind is BrokerErrorKind.AUTHENTICATION:
                    self.logger.error("All attempts failed", max_attempts=attempts)
                raise

        # Unreachable: the final attempt either returns or raises
        raise RuntimeError("retry loop exited without a result")
