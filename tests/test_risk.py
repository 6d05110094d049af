"""Tests for the risk module.

Covers auto-trade position sizing and the ATR target ladder.
"""

import pytest

from tradedesk.models.settings import AutoTradeConfig, AutoTradeMode
from tradedesk.risk.position_sizer import calculate_quantity
from tradedesk.risk.targets import PriceTargets, calculate_atr_targets


# ── Position sizing ──────────────────────────────────────────────────────


class TestPositionSizing:
    """Unit tests for calculate_quantity()."""

    def test_percentage_mode(self):
        """₹1,00,000 pool, 5% budget, ₹1,200 price → 4 shares."""
        qty = calculate_quantity(100_000.0, AutoTradeConfig(AutoTradeMode.PERCENTAGE, 5), 1_200.0)
        # budget = 5000; 5000 / 1200 = 4.17 → 4
        assert qty == 4

    def test_fixed_mode(self):
        """Fixed ₹10,000 budget at ₹3,000 → 3 shares."""
        qty = calculate_quantity(100_000.0, AutoTradeConfig(AutoTradeMode.FIXED, 10_000), 3_000.0)
        assert qty == 3

    def test_fixed_mode_capped_by_cash(self):
        qty = calculate_quantity(5_000.0, AutoTradeConfig(AutoTradeMode.FIXED, 10_000), 1_000.0)
        assert qty == 5

    def test_lot_size_rounds_down_to_whole_lots(self):
        """MCX-style lots: budget for 7.5 units with lot 2 → 6 units."""
        qty = calculate_quantity(
            15_000.0, AutoTradeConfig(AutoTradeMode.FIXED, 15_000), 2_000.0, lot_size=2
        )
        assert qty == 6

    def test_budget_below_one_lot(self):
        qty = calculate_quantity(1_000.0, AutoTradeConfig(AutoTradeMode.PERCENTAGE, 5), 100.0)
        assert qty == 0

    def test_rejects_zero_price(self):
        with pytest.raises(ValueError, match="price"):
            calculate_quantity(1_000.0, AutoTradeConfig(), 0)

    def test_rejects_zero_lot(self):
        with pytest.raises(ValueError, match="lot_size"):
            calculate_quantity(1_000.0, AutoTradeConfig(), 10.0, lot_size=0)

    def test_rejects_negative_cash(self):
        with pytest.raises(ValueError, match="available_cash"):
            calculate_quantity(-1.0, AutoTradeConfig(), 10.0)

    def test_rejects_negative_value(self):
        with pytest.raises(ValueError, match="auto-trade value"):
            calculate_quantity(1_000.0, AutoTradeConfig(AutoTradeMode.FIXED, -5), 10.0)


# ── ATR targets ──────────────────────────────────────────────────────────


class TestAtrTargets:
    def test_ladder(self):
        targets = calculate_atr_targets(100.0, 2.5)
        assert targets == PriceTargets(t1=105.0, t2=107.5, t3=110.0)

    def test_zero_atr_collapses_onto_price(self):
        targets = calculate_atr_targets(50.0, 0.0)
        assert targets.t1 == targets.t2 == targets.t3 == 50.0

    def test_to_dict(self):
        assert calculate_atr_targets(10.0, 1.0).to_dict() == {"t1": 12.0, "t2": 13.0, "t3": 14.0}

    def test_rejects_bad_input(self):
        with pytest.raises(ValueError, match="price"):
            calculate_atr_targets(0.0, 1.0)
        with pytest.raises(ValueError, match="atr"):
            calculate_atr_targets(10.0, -1.0)
