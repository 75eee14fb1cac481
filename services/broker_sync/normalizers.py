"""Turn raw Kite Connect records into rows for the local store.

Missing or unparseable numeric fields become zero. All functions are pure.
"""

import math
from typing import Any, Dict, Iterable, List, Optional

BUY = "BUY"
SELL = "SELL"
NONE = "NONE"


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce broker numerics (numbers, numeric strings, None) to float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def to_int(value: Any, default: int = 0) -> int:
    return int(round(to_float(value, float(default))))


def position_side(quantity: int) -> str:
    if quantity > 0:
        return BUY
    if quantity < 0:
        return SELL
    return NONE


def pnl_percentage(pnl: float, market_value: float) -> float:
    """PnL as a percentage of absolute market value, 2 decimals; 0 if either is 0."""
    if not pnl or not market_value:
        return 0.0
    return round(pnl / abs(market_value) * 100, 2)


def is_excluded_position(trading_symbol: str, excluded_suffix: Optional[str]) -> bool:
    """Intraday duplicate rows carry a suffix and double-count the net position."""
    if not excluded_suffix:
        return False
    return trading_symbol.lower().endswith(excluded_suffix.lower())


def normalize_holding(raw: Dict[str, Any], account_id: int) -> Dict[str, Any]:
    quantity = to_int(raw.get("quantity"))
    collateral_quantity = to_int(raw.get("collateral_quantity"))
    last_price = to_float(raw.get("last_price"))

    return {
        "trading_symbol": str(raw.get("tradingsymbol") or ""),
        "exchange": str(raw.get("exchange") or ""),
        "quantity": quantity,
        "average_price": to_float(raw.get("average_price")),
        "last_price": last_price,
        # Pledged shares still belong to the account
        "market_value": last_price * (quantity + collateral_quantity),
        "pnl": to_float(raw.get("pnl")),
        "pnl_percentage": to_float(raw.get("day_change_percentage")),
        "instrument_token": raw.get("instrument_token"),
        "isin": raw.get("isin"),
        "product": raw.get("product"),
        "collateral_quantity": collateral_quantity,
        "collateral_type": raw.get("collateral_type"),
        "t1_quantity": to_int(raw.get("t1_quantity")),
        "realised_quantity": to_int(raw.get("realised_quantity")),
        "account_id": account_id,
    }


def normalize_holdings(raw_holdings: Optional[Iterable[Dict[str, Any]]], account_id: int) -> List[Dict[str, Any]]:
    return [normalize_holding(h, account_id) for h in raw_holdings or []]


def normalize_position(raw: Dict[str, Any], account_id: int) -> Dict[str, Any]:
    quantity = to_int(raw.get("quantity"))
    market_value = to_float(raw.get("value"))
    pnl = to_float(raw.get("pnl"))

    return {
        "trading_symbol": str(raw.get("tradingsymbol") or ""),
        "exchange": str(raw.get("exchange") or ""),
        "quantity": quantity,
        "average_price": to_float(raw.get("average_price")),
        "last_price": to_float(raw.get("last_price")),
        "market_value": market_value,
        "pnl": pnl,
        "pnl_percentage": pnl_percentage(pnl, market_value),
        "product": str(raw.get("product") or "UNKNOWN"),
        "side": position_side(quantity),
        "margin_blocked": None,
        "account_id": account_id,
    }


def normalize_positions(
    raw_net_positions: Optional[Iterable[Dict[str, Any]]],
    account_id: int,
    excluded_suffix: Optional[str] = "_day",
) -> List[Dict[str, Any]]:
    """Normalize the consolidated `net` positions, dropping suffixed duplicates."""
    return [
        normalize_position(p, account_id)
        for p in raw_net_positions or []
        if not is_excluded_position(str(p.get("tradingsymbol") or ""), excluded_suffix)
    ]


_UTILISED_FIELDS = (
    "debits", "payout", "liquid_collateral", "stock_collateral", "span",
    "exposure", "additional", "delivery", "option_premium", "holding_sales",
    "turnover", "equity", "m2m_realised", "m2m_unrealised",
)


def normalize_margin(raw: Dict[str, Any], account_id: int) -> Dict[str, Any]:
    """Flatten a segment margin response into a single row."""
    utilised = raw.get("utilised") or {}
    row = {
        "account_id": account_id,
        "segment": str(raw.get("segment") or "EQUITY"),
        "enabled": bool(raw.get("enabled", True)),
        "net": to_float(raw.get("net")),
    }
    for field in _UTILISED_FIELDS:
        row[field] = to_float(utilised.get(field))
    return row
