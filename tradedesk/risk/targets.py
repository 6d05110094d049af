"""ATR target bands — pure math, no I/O.

Three upside targets at 2×, 3× and 4× ATR above the current price.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PriceTargets:
    """Computed take-profit ladder for a long position."""
    t1: float
    t2: float
    t3: float

    def to_dict(self) -> dict:
        return {"t1": self.t1, "t2": self.t2, "t3": self.t3}


def calculate_atr_targets(price: float, atr: float) -> PriceTargets:
    """Calculate the target ladder.

    Args:
        price: Current price.
        atr: Current ATR(14) value (0 collapses all targets onto price).

    Returns:
        ``PriceTargets`` with t1 = price + 2·ATR, t2 = +3·ATR, t3 = +4·ATR.

    Raises:
        ValueError: If *price* is non-positive or *atr* is negative.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    if atr < 0:
        raise ValueError(f"atr must be non-negative, got {atr}")
    return PriceTargets(
        t1=price + 2 * atr,
        t2=price + 3 * atr,
        t3=price + 4 * atr,
    )
