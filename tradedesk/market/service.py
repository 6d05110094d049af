"""MarketDataService — price history, technicals and targets per symbol.

Looks the symbol up; when the lookup has nothing (or fails) the history is
synthesised from a fallback price so the dashboard always has something
to analyse.  The last price of every analysed symbol is cached and feeds
portfolio valuation.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from tradedesk.errors import ExternalFetchError, ValidationError
from tradedesk.market.price_lookup import PriceLookup
from tradedesk.risk.targets import PriceTargets, calculate_atr_targets
from tradedesk.signals.engine import compute_signals, validate_history
from tradedesk.signals.fallback import generate_fallback_history
from tradedesk.signals.models import Candle, TechnicalSignals

logger = logging.getLogger("tradedesk.market")

HISTORY_LENGTH = 50


@dataclass(frozen=True)
class MarketSnapshot:
    symbol: str
    price: float
    change: float
    change_percent: float
    history: tuple[Candle, ...]
    technicals: TechnicalSignals
    targets: PriceTargets
    synthetic: bool

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "changePercent": self.change_percent,
            "history": [
                {
                    "time": c.time,
                    "open": c.open,
                    "high": c.high,
                    "low": c.low,
                    "close": c.close,
                    "volume": c.volume,
                }
                for c in self.history
            ],
            "technicals": self.technicals.to_dict(),
            "targets": self.targets.to_dict(),
            "synthetic": self.synthetic,
        }


class MarketDataService:
    """Analyses symbols and remembers their last price.

    Args:
        lookup: Candle source; ``None`` means always synthesise.
        rng: Random source for synthetic history (seed it in tests).
    """

    def __init__(
        self,
        lookup: Optional[PriceLookup] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._lookup = lookup
        self._rng = rng or random.Random()
        self._prices: dict[str, float] = {}

    @property
    def prices(self) -> dict[str, float]:
        """Last known price per symbol."""
        return dict(self._prices)

    def last_price(self, symbol: str) -> Optional[float]:
        return self._prices.get(symbol)

    async def analyze(self, symbol: str, fallback_price: float = 100.0) -> MarketSnapshot:
        """Build a snapshot for *symbol*.

        Raises:
            ValidationError: If a synthetic history is needed and
                *fallback_price* is not positive.
        """
        history = await self._lookup_history(symbol)
        synthetic = history is None
        if synthetic:
            if fallback_price <= 0:
                raise ValidationError(
                    f"fallback price must be positive, got {fallback_price}"
                )
            history = generate_fallback_history(
                fallback_price, HISTORY_LENGTH, rng=self._rng
            )
            logger.info("Using synthetic history for %s from %.4f", symbol, fallback_price)

        technicals = compute_signals(history)
        price = history[-1].close
        if synthetic or len(history) < 2:
            change = 0.0
            change_percent = 0.0
        else:
            prev = history[-2].close
            change = price - prev
            change_percent = (change / prev) * 100.0

        self._prices[symbol] = price
        return MarketSnapshot(
            symbol=symbol,
            price=price,
            change=change,
            change_percent=change_percent,
            history=tuple(history),
            technicals=technicals,
            targets=calculate_atr_targets(price, technicals.atr),
            synthetic=synthetic,
        )

    async def _lookup_history(self, symbol: str) -> Optional[list[Candle]]:
        if self._lookup is None:
            return None
        try:
            history = await self._lookup.fetch_history(symbol, HISTORY_LENGTH)
        except ExternalFetchError as exc:
            logger.warning("Price lookup failed for %s: %s", symbol, exc)
            return None
        if not history:
            return None
        try:
            validate_history(history)
        except ValidationError as exc:
            logger.warning("Discarding invalid history for %s: %s", symbol, exc)
            return None
        return list(history)
