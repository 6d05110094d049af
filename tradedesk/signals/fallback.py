"""Synthetic price history for symbols the price lookup cannot serve."""

import random
import time
from typing import Optional

from tradedesk.signals.models import Candle

CANDLE_SPACING_MS = 300_000  # 5 minutes
VOLATILITY = 0.002


def generate_fallback_history(
    start_price: float,
    count: int = 50,
    rng: Optional[random.Random] = None,
    end_time_ms: Optional[int] = None,
) -> list[Candle]:
    """Random-walk *count* candles starting at *start_price*.

    Each close moves at most ±0.2% from the previous close; highs and lows
    add up to 0.1% of wick.  Candles are 5 minutes apart and end at
    *end_time_ms* (defaults to now).  Pass a seeded *rng* for repeatable
    output.

    Raises ``ValueError`` if *start_price* is not positive or *count* < 1.
    """
    if start_price <= 0:
        raise ValueError(f"start_price must be positive, got {start_price}")
    if count < 1:
        raise ValueError(f"count must be at least 1, got {count}")

    rng = rng or random.Random()
    if end_time_ms is None:
        end_time_ms = int(time.time() * 1000)

    candles: list[Candle] = []
    price = start_price
    t = end_time_ms - count * CANDLE_SPACING_MS

    for _ in range(count):
        change = (rng.random() - 0.5) * 2 * VOLATILITY
        close = price * (1 + change)
        high = max(price, close) * (1 + rng.random() * 0.001)
        low = min(price, close) * (1 - rng.random() * 0.001)
        candles.append(
            Candle(
                time=t,
                open=price,
                high=high,
                low=low,
                close=close,
                volume=rng.randrange(10_000),
            )
        )
        price = close
        t += CANDLE_SPACING_MS

    return candles
