"""Attach broker-computed blocked margin to position rows."""

from typing import Any, Dict, List, Optional

from core.config.settings import Settings
from core.logging import get_trading_logger_safe
from services.auth.kite_client import KiteClient
from .normalizers import to_float


class MarginCalculationError(Exception):
    """Order-margin response could not be used."""
    pass


class MarginEnricher:
    """One batched order-margins request per positions sync.

    Failures never propagate: every row keeps `margin_blocked = None` and the
    sync carries on.
    """

    def __init__(self, settings: Settings):
        self.timeout_seconds = settings.sync.margin_timeout_seconds
        self.default_product = settings.sync.default_margin_product
        self.logger = get_trading_logger_safe("margin_enricher")

    def build_orders(self, positions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Express each open position as the order that would recreate it."""
        orders = []
        for position in positions:
            if position["quantity"] == 0:
                continue
            last_price = position.get("last_price") or 0
            product = position.get("product")
            if not product or product == "UNKNOWN":
                product = self.default_product
            has_price = last_price > 0
            orders.append({
                "exchange": position["exchange"],
                "tradingsymbol": position["trading_symbol"],
                "transaction_type": position["side"],
                "variety": "regular",
                "product": product,
                "order_type": "LIMIT" if has_price else "MARKET",
                "quantity": abs(position["quantity"]),
                "price": last_price if has_price else 0,
                "trigger_price": 0,
            })
        return orders

    @staticmethod
    def parse_margins(response: Any) -> Dict[str, float]:
        if not isinstance(response, list):
            raise MarginCalculationError(f"Unexpected order margins payload: {type(response).__name__}")

        margins: Dict[str, float] = {}
        for entry in response:
            if not isinstance(entry, dict):
                continue
            symbol = entry.get("tradingsymbol")
            if symbol and entry.get("total") is not None:
                margins[symbol] = to_float(entry.get("total"))
        return margins

    @staticmethod
    def _without_margins(positions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [{**p, "margin_blocked": None} for p in positions]

    async def enrich(self, client: Optional[KiteClient], positions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if client is None or not client.access_token or not positions:
            return self._without_margins(positions)

        orders = self.build_orders(positions)
        if not orders:
            return self._without_margins(positions)

        try:
            self.logger.info("Calculating margins for positions", orders=len(orders))
            response = await client.order_margins(orders, timeout=self.timeout_seconds)
            margins = self.parse_margins(response)
        except Exception as e:
            self.logger.warning("Margin calculation failed, continuing without margins", error=str(e))
            return self._without_margins(positions)

        enriched = []
        for position in positions:
            blocked: Optional[float] = None
            if position["quantity"] != 0:
                blocked = margins.get(position["trading_symbol"])
            enriched.append({**position, "margin_blocked": blocked})

        self.logger.info("Calculated margins for positions", orders=len(orders), priced=len(margins))
        return enriched
