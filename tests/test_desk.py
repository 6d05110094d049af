"""Tests for tradedesk.desk — wiring, settings changes and lifecycle."""

import asyncio
from datetime import datetime

import pytest

from tradedesk.cli.report import print_pnl_report
from tradedesk.config import Config
from tradedesk.desk import TradeDesk
from tradedesk.errors import ValidationError
from tradedesk.models.ledger import AssetType, BrokerId
from tradedesk.models.settings import AutoTradeMode
from tradedesk.repos import state_repo
from tradedesk.repos.state_repo import StateRepo


def _config(tmp_path, brokers=(BrokerId.PAPER,)) -> Config:
    return Config(
        db_path=str(tmp_path / "desk.db"),
        active_brokers=brokers,
        reconcile_interval_seconds=1,
    )


# ── Build ────────────────────────────────────────────────────────────────


class TestBuild:
    def test_first_run_persists_default_settings(self, tmp_path):
        config = _config(tmp_path)
        desk = TradeDesk.build(config)

        stored = StateRepo(config.db_path).get(state_repo.SETTINGS_KEY)
        assert stored["activeBrokers"] == ["PAPER"]
        assert desk.ledger.funds.total == pytest.approx(2_500_000.0)

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, tmp_path):
        config = _config(tmp_path)
        first = TradeDesk.build(config)
        await first.trades.buy("INFY", 10, 1_000.0)
        first.update_settings({"autoTradeConfig": {"mode": "FIXED", "value": 20_000}})

        second = TradeDesk.build(config)
        assert second.ledger.snapshot().holding("INFY").quantity == 10
        assert second.ledger.funds.stock == pytest.approx(990_000.0)
        assert second.settings.auto_trade_config.mode is AutoTradeMode.FIXED

    def test_paper_adapter_always_present(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path, brokers=(BrokerId.DHAN,)))
        assert set(desk.adapters) == {BrokerId.PAPER, BrokerId.DHAN}
        assert desk.coordinator.brokers == [BrokerId.DHAN]


# ── Settings ─────────────────────────────────────────────────────────────


class TestSettings:
    def test_initial_funds_change_resets_pools(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        desk.ledger.buy("INFY", 10, 1_000.0, AssetType.STOCK)

        desk.update_settings({"initialFunds": {"stock": 50_000}})

        assert desk.ledger.funds.stock == 50_000.0
        assert desk.ledger.funds.mcx == 500_000.0
        # holdings are not touched by a fund reset
        assert desk.ledger.snapshot().holding("INFY") is not None

    def test_broker_change_restarts_coordinator(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        old = desk.coordinator

        desk.update_settings({"activeBrokers": ["PAPER", "BINANCE"]})

        assert old.active is False
        assert desk.coordinator is not old
        assert desk.coordinator.brokers == [BrokerId.BINANCE]
        assert BrokerId.BINANCE in desk.adapters

    def test_unrelated_change_keeps_coordinator(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        old = desk.coordinator
        desk.update_settings({"enabledMarkets": {"forex": False}})
        assert desk.coordinator is old
        assert desk.settings.enabled_markets.forex is False

    def test_invalid_update_applies_nothing(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        before = desk.settings
        with pytest.raises(ValidationError, match="initialFunds"):
            desk.update_settings({
                "initialFunds": {"stock": -1},
                "activeBrokers": ["PAPER", "DHAN"],
            })
        assert desk.settings == before


# ── Views ────────────────────────────────────────────────────────────────


class TestViews:
    def test_pnl_after_trade(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        desk.ledger.buy("INFY", 10, 1_000.0, AssetType.STOCK)

        pnl = desk.pnl()

        # valued at cost until a price is known
        assert pnl["assetClasses"]["STOCK"] == {"pnl": 0.0, "percent": 0.0}
        assert pnl["totalValue"] == pytest.approx(2_500_000.0)
        assert pnl["totalCash"] == pytest.approx(2_490_000.0)
        assert pnl["brokers"][0]["active"] == 1

    def test_report(self, tmp_path, capsys):
        desk = TradeDesk.build(_config(tmp_path))
        output = print_pnl_report(desk.pnl())
        assert "TradeDesk P&L" in output
        assert "₹2,500,000.00" in output
        assert "STOCK" in output
        assert "PAPER" in output
        assert capsys.readouterr().out.strip() == output.strip()

    def test_record_history_once_per_minute(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        now = datetime(2024, 3, 1, 10, 15)
        assert desk.record_history(now) is True
        assert desk.record_history(now) is False
        assert desk.ledger.snapshot().history[0].time == "10:15"


# ── Lifecycle ────────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_refresh_market_prices_holdings(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        await desk.trades.buy("INFY", 10, 1_000.0)
        await desk.trades.buy("GOLD", 1, 60_000.0)

        count = await desk.refresh_market()

        assert count == 2
        assert set(desk.market.prices) == {"INFY", "GOLD"}
        assert len(desk.ledger.snapshot().history) == 1

    @pytest.mark.asyncio
    async def test_refresh_market_skips_disabled_markets(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        await desk.trades.buy("INFY", 10, 1_000.0)
        await desk.trades.buy("GOLD", 1, 60_000.0)
        desk.update_settings({"enabledMarkets": {"mcx": False}})

        count = await desk.refresh_market()

        assert count == 1
        assert set(desk.market.prices) == {"INFY"}
        # disabled markets are still valued in the sample
        assert len(desk.ledger.snapshot().history) == 1

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, tmp_path):
        desk = TradeDesk.build(_config(tmp_path))
        task = asyncio.create_task(desk.run())
        await asyncio.sleep(0.05)

        desk.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert desk.coordinator.active is False
        assert desk.coordinator.running is False
