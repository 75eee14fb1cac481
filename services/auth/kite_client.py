# portfolio_sync/services/auth/kite_client.py

"""Zerodha KiteConnect integration utilities."""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional

from kiteconnect import KiteConnect

from .exceptions import BrokerAPIError, SessionNotInitializedError, classify_kite_exception

logger = logging.getLogger(__name__)


class KiteClient:
    """Async wrapper around one KiteConnect handle.

    The SDK is blocking, so every call runs in the default executor under a
    timeout. SDK failures leave this class as classified BrokerAPIErrors.
    """

    def __init__(self, kite: KiteConnect, request_timeout: Optional[float] = None):
        self.kite = kite
        self.request_timeout = request_timeout
        self._access_token: Optional[str] = None

    @classmethod
    def create(cls, api_key: str, request_timeout: Optional[float] = None) -> "KiteClient":
        """Build a client bound to `api_key` with no access token yet."""
        kite = KiteConnect(api_key=api_key, timeout=int(request_timeout) if request_timeout else None)
        return cls(kite, request_timeout=request_timeout)

    @property
    def api_key(self) -> str:
        return self.kite.api_key

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def set_access_token(self, access_token: str) -> None:
        """Sets the access token for subsequent API calls."""
        self.kite.set_access_token(access_token)
        self._access_token = access_token

    async def _call(self, name: str, fn, *args, timeout: Optional[float] = None,
                    requires_token: bool = True, **kwargs) -> Any:
        if requires_token and not self._access_token:
            raise SessionNotInitializedError(f"Kite {name} called without an access token")
        loop = asyncio.get_running_loop()
        bound = functools.partial(fn, *args, **kwargs)
        limit = timeout if timeout is not None else self.request_timeout
        try:
            if limit:
                return await asyncio.wait_for(loop.run_in_executor(None, bound), timeout=limit)
            return await loop.run_in_executor(None, bound)
        except asyncio.TimeoutError as e:
            raise BrokerAPIError(
                f"Kite {name} timed out after {limit}s", error_type="TimeoutError"
            ) from e
        except BrokerAPIError:
            raise
        except Exception as e:
            error = classify_kite_exception(e)
            logger.debug(f"Kite {name} failed [{error.kind.value}]: {error}")
            raise error from e

    async def generate_session(self, request_token: str, api_secret: str) -> Dict[str, Any]:
        """Exchange a request token for an access token."""
        return await self._call("generate_session", self.kite.generate_session, request_token, api_secret,
                                requires_token=False)

    async def profile(self) -> Dict[str, Any]:
        """Fetches the user profile; the cheapest call that proves a token works."""
        return await self._call("profile", self.kite.profile)

    async def holdings(self) -> List[Dict[str, Any]]:
        return await self._call("holdings", self.kite.holdings)

    async def positions(self) -> Dict[str, List[Dict[str, Any]]]:
        return await self._call("positions", self.kite.positions)

    async def margins(self, segment: Optional[str] = None) -> Dict[str, Any]:
        return await self._call("margins", self.kite.margins, segment)

    async def order_margins(self, orders: List[Dict[str, Any]], timeout: Optional[float] = None) -> Any:
        """Broker-computed margins for a basket of hypothetical orders."""
        return await self._call("order_margins", self.kite.order_margins, orders, timeout=timeout)
