"""Tests for tradedesk.broker — REST adapters with mocked HTTP responses."""

import pytest
import httpx

from tradedesk.broker.base import BrokerAdapter
from tradedesk.broker.paper import PaperBrokerAdapter
from tradedesk.broker.registry import build_adapters, get_adapter
from tradedesk.broker.rest_client import BinanceAdapter, DhanAdapter
from tradedesk.config import Config
from tradedesk.errors import ExternalFetchError, InsufficientFunds
from tradedesk.ledger.store import LedgerStore
from tradedesk.models.ledger import AssetType, BrokerId, Funds, TradeSide

DHAN_CREDS = {"DHAN_CLIENT_ID": "client-1", "DHAN_ACCESS_TOKEN": "token-1"}


def _dhan(**kwargs) -> DhanAdapter:
    adapter = DhanAdapter("https://dhan.test", credentials=DHAN_CREDS, **kwargs)
    adapter.retry_base_delay = 0
    return adapter


# ── Mock gateway responses ───────────────────────────────────────────────

MOCK_HOLDINGS_RESPONSE = {
    "holdings": [
        {"symbol": "TCS", "quantity": 5, "avgCost": 3000.0},
        {"symbol": "GOLD", "quantity": "1", "avgCost": "60000", "assetType": "MCX"},
    ]
}

MOCK_BALANCE_RESPONSE = {"balance": "25000.50"}


# ── Credentials ──────────────────────────────────────────────────────────


def test_has_credentials():
    assert _dhan().has_credentials() is True
    partial = DhanAdapter("https://dhan.test", credentials={"DHAN_CLIENT_ID": "x"})
    assert partial.has_credentials() is False
    no_url = DhanAdapter("", credentials=DHAN_CREDS)
    assert no_url.has_credentials() is False


def test_adapters_satisfy_protocol():
    ledger = LedgerStore(Funds(stock=1.0, mcx=1.0, forex=1.0, crypto=1.0))
    assert isinstance(_dhan(), BrokerAdapter)
    assert isinstance(PaperBrokerAdapter(ledger), BrokerAdapter)


# ── Holdings & balance ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fetch_holdings(monkeypatch):
    """Rows normalised to Holding, tagged with the broker."""
    captured = {}

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        captured["url"] = url
        captured["headers"] = headers
        return httpx.Response(200, json=MOCK_HOLDINGS_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    holdings = await _dhan().fetch_holdings()
    assert captured["url"] == "https://dhan.test/v1/holdings"
    assert captured["headers"]["access-token"] == "token-1"

    tcs, gold = holdings
    assert tcs.asset_type is AssetType.STOCK
    assert tcs.total_cost == pytest.approx(15_000.0)
    assert tcs.broker is BrokerId.DHAN
    assert gold.asset_type is AssetType.MCX
    assert gold.quantity == 1.0


@pytest.mark.asyncio
async def test_crypto_broker_defaults_asset_type(monkeypatch):
    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        body = {"holdings": [{"symbol": "BTCUSDT", "quantity": 0.1, "avgCost": 40000}]}
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    adapter = BinanceAdapter("https://binance.test", credentials={"BINANCE_API_KEY": "k"})
    (h,) = await adapter.fetch_holdings()
    assert h.asset_type is AssetType.CRYPTO
    assert h.broker is BrokerId.BINANCE


@pytest.mark.asyncio
async def test_fetch_balance(monkeypatch):
    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        return httpx.Response(200, json=MOCK_BALANCE_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    assert await _dhan().fetch_balance() == pytest.approx(25_000.5)


@pytest.mark.asyncio
async def test_malformed_payload_raises_fetch_error(monkeypatch):
    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        body = {"holdings": [{"symbol": "TCS"}], "balance": "lots"}
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    adapter = _dhan()
    with pytest.raises(ExternalFetchError):
        await adapter.fetch_holdings()
    with pytest.raises(ExternalFetchError):
        await adapter.fetch_balance()


@pytest.mark.asyncio
async def test_non_finite_balance_rejected(monkeypatch):
    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        return httpx.Response(200, json={"balance": "inf"}, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(ExternalFetchError, match="not finite"):
        await _dhan().fetch_balance()


# ── Retry ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_retry_then_success(monkeypatch):
    """A 503 is retried and the next good response used."""
    calls = {"n": 0}

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503, request=httpx.Request("GET", url))
        return httpx.Response(200, json=MOCK_BALANCE_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    assert await _dhan().fetch_balance() == pytest.approx(25_000.5)
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_retries_exhausted(monkeypatch):
    calls = {"n": 0}

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        calls["n"] += 1
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(ExternalFetchError, match="DHAN"):
        await _dhan().fetch_holdings()
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_client_error_not_retried(monkeypatch):
    calls = {"n": 0}

    async def _mock_get(self, url, *, headers=None, params=None, timeout=None):
        calls["n"] += 1
        return httpx.Response(401, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(ExternalFetchError):
        await _dhan().fetch_balance()
    assert calls["n"] == 1


# ── Orders ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_place_order_success(monkeypatch):
    captured = {}

    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        captured["url"] = url
        captured["json"] = json
        return httpx.Response(
            200, json={"status": "success", "message": "filled"},
            request=httpx.Request("POST", url),
        )

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    result = await _dhan().place_order("TCS", 2, TradeSide.BUY, 3100.0, AssetType.STOCK)
    assert result.success is True
    assert result.message == "filled"
    assert result.transaction is None
    assert captured["url"] == "https://dhan.test/v1/orders"
    assert captured["json"] == {
        "symbol": "TCS", "quantity": 2, "side": "BUY", "price": 3100.0, "assetType": "STOCK",
    }


@pytest.mark.asyncio
async def test_place_order_rejected(monkeypatch):
    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        return httpx.Response(
            200, json={"status": "error", "message": "margin shortfall"},
            request=httpx.Request("POST", url),
        )

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    result = await _dhan().place_order("TCS", 2, TradeSide.BUY, 3100.0, AssetType.STOCK)
    assert result.success is False
    assert result.message == "margin shortfall"


@pytest.mark.asyncio
async def test_place_order_transport_failure(monkeypatch):
    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        return httpx.Response(400, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    result = await _dhan().place_order("TCS", 2, TradeSide.SELL, 3100.0, AssetType.STOCK)
    assert result.success is False
    assert result.message


# ── Paper adapter ────────────────────────────────────────────────────────


class TestPaperAdapter:
    def _ledger(self) -> LedgerStore:
        return LedgerStore(Funds(stock=10_000.0, mcx=0.0, forex=0.0, crypto=0.0))

    @pytest.mark.asyncio
    async def test_buy_fills_against_ledger(self):
        ledger = self._ledger()
        adapter = PaperBrokerAdapter(ledger)

        result = await adapter.place_order("INFY", 5, TradeSide.BUY, 1_000.0, AssetType.STOCK)

        assert result.success is True
        assert result.transaction.side is TradeSide.BUY
        assert ledger.funds.stock == pytest.approx(5_000.0)
        assert [h.symbol for h in await adapter.fetch_holdings()] == ["INFY"]
        assert await adapter.fetch_balance() == pytest.approx(5_000.0)

    @pytest.mark.asyncio
    async def test_business_errors_propagate(self):
        adapter = PaperBrokerAdapter(self._ledger())
        with pytest.raises(InsufficientFunds):
            await adapter.place_order("INFY", 50, TradeSide.BUY, 1_000.0, AssetType.STOCK)


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def _config(self) -> Config:
        return Config(
            broker_credentials={BrokerId.DHAN: dict(DHAN_CREDS)},
            broker_base_urls={BrokerId.DHAN: "https://dhan.test"},
        )

    def test_get_adapter(self):
        adapter = get_adapter(BrokerId.DHAN, self._config())
        assert isinstance(adapter, DhanAdapter)
        assert adapter.has_credentials() is True

    def test_get_adapter_missing_url(self):
        adapter = get_adapter(BrokerId.BINANCE, self._config())
        assert adapter.has_credentials() is False

    def test_paper_has_no_external_adapter(self):
        with pytest.raises(KeyError, match="PAPER"):
            get_adapter(BrokerId.PAPER, self._config())

    def test_build_always_includes_paper(self):
        ledger = LedgerStore(Funds(stock=1.0, mcx=1.0, forex=1.0, crypto=1.0))
        adapters = build_adapters(self._config(), ledger, [BrokerId.DHAN])
        assert set(adapters) == {BrokerId.PAPER, BrokerId.DHAN}
        assert isinstance(adapters[BrokerId.PAPER], PaperBrokerAdapter)
