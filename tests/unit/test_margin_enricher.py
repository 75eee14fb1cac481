from unittest.mock import AsyncMock, MagicMock

import pytest

from services.auth.exceptions import BrokerAPIError
from services.broker_sync.margin_enricher import MarginCalculationError, MarginEnricher
from services.broker_sync.normalizers import normalize_positions


@pytest.fixture
def enricher(test_settings):
    return MarginEnricher(test_settings)


@pytest.fixture
def positions():
    return normalize_positions([
        {"tradingsymbol": "NIFTY24DECFUT", "exchange": "NFO", "quantity": -50, "last_price": 24000.5,
         "value": -1200000, "pnl": 500, "product": "NRML"},
        {"tradingsymbol": "INFY", "exchange": "NSE", "quantity": 10, "last_price": 0, "value": 15000,
         "pnl": 100},
        {"tradingsymbol": "TCS", "exchange": "NSE", "quantity": 0, "last_price": 4000, "value": 0, "pnl": 20},
    ], account_id=1)


def _client(response=None, error=None):
    client = MagicMock()
    client.access_token = "access-token"
    client.order_margins = AsyncMock(return_value=response, side_effect=error)
    return client


def test_build_orders_skips_flat_positions(enricher, positions):
    orders = enricher.build_orders(positions)

    assert [o["tradingsymbol"] for o in orders] == ["NIFTY24DECFUT", "INFY"]
    future, equity = orders
    assert future["transaction_type"] == "SELL"
    assert future["order_type"] == "LIMIT"
    assert future["price"] == 24000.5
    assert future["quantity"] == 50
    assert future["product"] == "NRML"
    assert equity["transaction_type"] == "BUY"
    assert equity["order_type"] == "MARKET"
    assert equity["price"] == 0
    assert equity["product"] == "NRML"


@pytest.mark.asyncio
async def test_enrich_maps_totals_by_symbol(enricher, positions):
    client = _client([
        {"tradingsymbol": "NIFTY24DECFUT", "total": 180000.0},
        {"tradingsymbol": "INFY", "total": "15000"},
    ])

    rows = await enricher.enrich(client, positions)

    assert [r["margin_blocked"] for r in rows] == [180000.0, 15000.0, None]
    client.order_margins.assert_awaited_once()
    assert client.order_margins.await_args.kwargs["timeout"] == 30.0


@pytest.mark.asyncio
async def test_enrich_soft_fails_on_broker_error(enricher, positions):
    client = _client(error=BrokerAPIError("Kite order_margins timed out after 30.0s", error_type="TimeoutError"))

    rows = await enricher.enrich(client, positions)

    assert len(rows) == 3
    assert all(r["margin_blocked"] is None for r in rows)


@pytest.mark.asyncio
async def test_enrich_soft_fails_on_unexpected_shape(enricher, positions):
    rows = await enricher.enrich(_client({"status": "error"}), positions)

    assert all(r["margin_blocked"] is None for r in rows)


@pytest.mark.asyncio
async def test_enrich_without_session_makes_no_request(enricher, positions):
    rows = await enricher.enrich(None, positions)

    assert all(r["margin_blocked"] is None for r in rows)


def test_parse_margins_rejects_non_list():
    with pytest.raises(MarginCalculationError):
        MarginEnricher.parse_margins({"data": []})
