"""Error taxonomy for ledger, signal and broker operations."""

from typing import Optional


class TradeDeskError(Exception):
    """Base class for all TradeDesk errors."""


class ValidationError(TradeDeskError, ValueError):
    """Malformed input rejected before any state change."""


class InsufficientFunds(TradeDeskError):
    """A paper buy costs more than the asset class's cash pool holds."""

    def __init__(self, asset_type, required: float, available: float) -> None:
        self.asset_type = asset_type
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {asset_type.value} funds: need {required:.2f}, "
            f"have {available:.2f}"
        )


class InsufficientHoldings(TradeDeskError):
    """A paper sell asks for more units than are held."""

    def __init__(self, symbol: str, requested: float, held: float) -> None:
        self.symbol = symbol
        self.requested = requested
        self.held = held
        super().__init__(
            f"Insufficient holdings of {symbol}: requested {requested}, held {held}"
        )


class ExternalFetchError(TradeDeskError):
    """A broker or data source could not be reached or returned garbage."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class ExternalOrderRejected(TradeDeskError):
    """A broker declined an order; nothing was recorded."""

    def __init__(self, broker, message: Optional[str] = None) -> None:
        self.broker = broker
        self.message = message or "Unknown error"
        name = getattr(broker, "value", broker)
        super().__init__(f"{name} rejected order: {self.message}")
