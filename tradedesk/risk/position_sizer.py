"""Auto-trade position sizing — pure math, no I/O.

Turns the available cash of an asset class and the auto-trade setting
into a whole number of lots.
"""

import math

from tradedesk.models.settings import AutoTradeConfig, AutoTradeMode


def calculate_quantity(
    available_cash: float,
    config: AutoTradeConfig,
    price: float,
    lot_size: float = 1,
) -> float:
    """Calculate the quantity to buy.

    Formula::

        budget   = cash × (value / 100)     # PERCENTAGE
        budget   = min(value, cash)         # FIXED
        quantity = floor(budget / (price × lot_size)) × lot_size

    Args:
        available_cash: Paper cash of the asset class being traded.
        config: Auto-trade mode and value.
        price: Current price per unit.
        lot_size: Minimum tradable unit (1 for cash equities).

    Returns:
        Quantity rounded down to whole lots; 0 when the budget does not
        cover a single lot.

    Raises:
        ValueError: If *price* or *lot_size* is non-positive, or
            *available_cash* or the config value is negative.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    if lot_size <= 0:
        raise ValueError(f"lot_size must be positive, got {lot_size}")
    if available_cash < 0:
        raise ValueError(f"available_cash must be non-negative, got {available_cash}")
    if config.value < 0:
        raise ValueError(f"auto-trade value must be non-negative, got {config.value}")

    if config.mode is AutoTradeMode.PERCENTAGE:
        budget = available_cash * (config.value / 100.0)
    else:
        budget = min(config.value, available_cash)

    lots = math.floor(budget / (price * lot_size))
    return lots * lot_size
