"""Tests for tradedesk.ledger.valuation and tradedesk.ledger.history."""

from datetime import datetime

import pytest

from tradedesk.ledger import valuation
from tradedesk.ledger.history import MAX_HISTORY_POINTS, record_point, time_label
from tradedesk.models.ledger import AssetType, BrokerId, Funds, Holding, PortfolioHistoryPoint

FUNDS = Funds(stock=90_000.0, mcx=50_000.0, forex=50_000.0, crypto=0.0)

PAPER = [
    Holding("INFY", AssetType.STOCK, 10, 1_000.0, 10_000.0),
    Holding("GOLD", AssetType.MCX, 1, 60_000.0, 60_000.0),
]
EXTERNAL = [
    Holding("TCS", AssetType.STOCK, 5, 3_000.0, 15_000.0, broker=BrokerId.DHAN),
    Holding("BTCUSDT", AssetType.CRYPTO, 0.5, 40_000.0, 20_000.0, broker=BrokerId.BINANCE),
]


# ── Unified views ────────────────────────────────────────────────────────


class TestUnifiedViews:
    def test_unified_holdings_paper_first(self):
        unified = valuation.unified_holdings(PAPER, EXTERNAL)
        assert [h.symbol for h in unified] == ["INFY", "GOLD", "TCS", "BTCUSDT"]

    def test_unified_cash(self):
        balances = {BrokerId.DHAN: 1_000.0, BrokerId.BINANCE: 500.0}
        assert valuation.unified_cash(FUNDS, balances) == pytest.approx(191_500.0)

    def test_price_falls_back_to_avg_cost(self):
        assert valuation.market_price(PAPER[0], {}) == 1_000.0
        assert valuation.market_price(PAPER[0], {"INFY": 1_100.0}) == 1_100.0

    def test_total_value(self):
        holdings = valuation.unified_holdings(PAPER, EXTERNAL)
        total = valuation.total_portfolio_value(FUNDS, holdings, {"INFY": 1_200.0})
        # cash 190k + INFY 12k + GOLD 60k + TCS 15k + BTC 20k
        assert total == pytest.approx(297_000.0)


# ── P&L ──────────────────────────────────────────────────────────────────


class TestAssetClassPnl:
    def test_stock_pnl(self):
        holdings = valuation.unified_holdings(PAPER, EXTERNAL)
        pnl = valuation.asset_class_pnl(
            AssetType.STOCK, FUNDS, holdings, 100_000.0, {"INFY": 1_100.0}
        )
        # 90k cash + 11k INFY + 15k TCS − 100k
        assert pnl.pnl == pytest.approx(16_000.0)
        assert pnl.percent == pytest.approx(16.0)

    def test_zero_initial_fund_percent_is_zero(self):
        pnl = valuation.asset_class_pnl(AssetType.CRYPTO, FUNDS, EXTERNAL, 0.0, {})
        assert pnl.pnl == pytest.approx(20_000.0)
        assert pnl.percent == 0.0

    def test_all_classes(self):
        initial = {a: 50_000.0 for a in AssetType}
        result = valuation.all_asset_class_pnl(FUNDS, PAPER, initial, {})
        assert set(result) == set(AssetType)
        assert result[AssetType.FOREX].pnl == pytest.approx(0.0)
        assert result[AssetType.MCX].pnl == pytest.approx(60_000.0)


class TestBrokerPnl:
    def test_per_broker(self):
        holdings = valuation.unified_holdings(PAPER, EXTERNAL)
        rows = valuation.broker_pnl(
            [BrokerId.PAPER, BrokerId.DHAN, BrokerId.BINANCE],
            holdings,
            {BrokerId.DHAN: 2_500.0},
            {"TCS": 3_300.0, "BTCUSDT": 36_000.0},
        )
        by_broker = {r.broker: r for r in rows}

        assert by_broker[BrokerId.PAPER].pnl == pytest.approx(0.0)
        assert by_broker[BrokerId.PAPER].active == 2

        dhan = by_broker[BrokerId.DHAN]
        assert dhan.pnl == pytest.approx(1_500.0)
        assert dhan.percent == pytest.approx(10.0)
        assert dhan.cash == 2_500.0

        binance = by_broker[BrokerId.BINANCE]
        assert binance.pnl == pytest.approx(-2_000.0)
        assert binance.percent == pytest.approx(-10.0)
        assert binance.cash == 0.0

    def test_broker_without_holdings(self):
        (row,) = valuation.broker_pnl([BrokerId.SHOONYA], PAPER, {}, {})
        assert row.pnl == 0.0
        assert row.percent == 0.0
        assert row.active == 0


# ── History ──────────────────────────────────────────────────────────────


class TestHistory:
    def test_label_is_zero_padded(self):
        assert time_label(datetime(2024, 5, 1, 9, 5)) == "09:05"

    def test_same_minute_returns_same_object(self):
        history = record_point([], 100.0, datetime(2024, 1, 1, 9, 30))
        again = record_point(history, 150.0, datetime(2024, 1, 1, 9, 30, 59))
        assert again is history

    def test_keeps_last_fifty(self):
        history: list[PortfolioHistoryPoint] = []
        for i in range(60):
            history = record_point(history, float(i), datetime(2024, 1, 1, i // 60 + 10, i % 60))
        assert len(history) == MAX_HISTORY_POINTS
        assert history[0].value == 10.0
        assert history[-1].value == 59.0

    def test_input_not_mutated(self):
        history = [PortfolioHistoryPoint("09:00", 1.0)]
        record_point(history, 2.0, datetime(2024, 1, 1, 9, 1))
        assert len(history) == 1
