"""Kite session lifecycle: one live session per manager, one exchange in flight."""

import asyncio
import functools
import time
from typing import Callable, Optional

from core.config.settings import Settings
from core.logging import get_audit_logger_safe, get_trading_logger_safe
from .exceptions import BrokerAPIError
from .kite_client import KiteClient
from .models import KiteSession, SessionHealth, UserProfile

ClientFactory = Callable[[str], KiteClient]


class SessionManager:
    """Owns the authenticated Kite connection for this process.

    Construct one per process and share it. Callers never touch the session
    store directly; they go through `ensure_session`, `reset_session` and the
    read-only introspection methods.

    Concurrency: initialization is published as a pending future under
    `_init_lock`. A caller that finds a pending future waits for it instead of
    starting its own exchange, so at most one `generate_session` call is in
    flight at any moment.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.ttl_seconds = settings.session.ttl_seconds
        self._client_factory = client_factory or functools.partial(
            KiteClient.create, request_timeout=settings.zerodha.request_timeout_seconds
        )
        self._clock = clock
        self._session: Optional[KiteSession] = None
        self._pending_init: Optional[asyncio.Future] = None
        self._init_lock = asyncio.Lock()
        self._user_profile: Optional[UserProfile] = None
        self.logger = get_trading_logger_safe("session_manager")
        self.audit_logger = get_audit_logger_safe("session_manager")

    @property
    def session(self) -> Optional[KiteSession]:
        return self._session

    @property
    def client(self) -> Optional[KiteClient]:
        return self._session.client if self._session else None

    @property
    def user_profile(self) -> Optional[UserProfile]:
        return self._user_profile

    def _live_session_for(self, api_key: str) -> Optional[KiteSession]:
        session = self._session
        if (
            session is not None
            and session.owner_api_key == api_key
            and session.is_valid(self._clock(), self.ttl_seconds)
        ):
            return session
        return None

    async def ensure_session(self, api_key: str, request_token: str, api_secret: str) -> KiteClient:
        """Return a live client for `api_key`, authenticating only if needed."""
        while True:
            async with self._init_lock:
                live = self._live_session_for(api_key)
                if live is not None:
                    return live.client

                pending = self._pending_init
                if pending is None:
                    # Publish before releasing the lock; later callers will wait on it
                    pending = asyncio.get_running_loop().create_future()
                    self._pending_init = pending
                    break

            self.logger.debug("Session initialization in flight, waiting")
            await pending

        try:
            return await self._initialize_new_session(api_key, request_token, api_secret)
        finally:
            if self._pending_init is pending:
                self._pending_init = None
            if not pending.done():
                pending.set_result(None)

    async def _initialize_new_session(self, api_key: str, request_token: str, api_secret: str) -> KiteClient:
        self.logger.info("Initializing new Kite session")
        try:
            client = self._client_factory(api_key)
            response = await client.generate_session(request_token, api_secret)

            access_token = response.get("access_token") if isinstance(response, dict) else None
            if not access_token:
                raise BrokerAPIError("Session exchange returned no access token",
                                     details={"response_type": type(response).__name__})

            client.set_access_token(access_token)
            self._session = KiteSession(
                owner_api_key=api_key,
                client=client,
                access_token=access_token,
                issued_at=self._clock(),
                user_id=response.get("user_id"),
            )
            self._user_profile = UserProfile.from_kite_response(response)
        except Exception as e:
            self.logger.error("Session initialization failed", error=str(e))
            self._clear_session()
            raise

        self.audit_logger.info(
            "Kite session created",
            user_id=self._session.user_id,
            token_suffix=f"***{access_token[-4:]}",
        )
        return client

    def _clear_session(self) -> None:
        self._session = None
        self._user_profile = None

    def reset_session(self) -> None:
        """Drop the live session and any pending-initialization marker."""
        had_session = self._session is not None
        self._clear_session()
        self._pending_init = None
        if had_session:
            self.logger.info("Kite session reset")

    def is_authenticated(self) -> bool:
        """True iff a session exists, has a token and is inside the TTL."""
        session = self._session
        return session is not None and session.is_valid(self._clock(), self.ttl_seconds)

    async def validate_session(self) -> bool:
        """Probe the broker with a profile call; resets the session on failure.

        Not idempotent: a failed probe tears the session down.
        """
        session = self._session
        if session is None or session.client is None or not session.access_token:
            return False

        try:
            profile = await session.client.profile()
        except Exception as e:
            self.logger.warning("Session validation failed", error=str(e))
            self.reset_session()
            return False

        if isinstance(profile, dict):
            self._user_profile = UserProfile.from_kite_response(profile)
        return True

    def get_session_health(self) -> SessionHealth:
        session = self._session
        issued_at = session.issued_at if session else 0.0
        session_age = self._clock() - issued_at
        return SessionHealth(
            is_authenticated=self.is_authenticated(),
            has_valid_token=bool(session and session.access_token),
            session_age=session_age,
            time_until_expiry=max(0.0, self.ttl_seconds - session_age),
        )

    def get_login_url(self, api_key: str) -> str:
        """Kite Connect login page that issues a new request token."""
        return self.settings.zerodha.login_url_template.format(api_key=api_key)
