"""Broker adapter protocol and shared result type.

Defines the interface every broker variant (PAPER included) implements.
The trade service and the reconciliation coordinator depend only on this
protocol, never on a named broker.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from tradedesk.models.ledger import AssetType, BrokerId, Holding, TradeSide, Transaction


@dataclass(frozen=True)
class OrderResult:
    """Outcome of an order placement.

    ``transaction`` is set when the adapter itself recorded the trade
    (the PAPER adapter does; external adapters leave it to the caller).
    """

    success: bool
    message: Optional[str] = None
    transaction: Optional[Transaction] = None


@runtime_checkable
class BrokerAdapter(Protocol):
    """Interface that all broker variants must satisfy."""

    broker_id: BrokerId

    def has_credentials(self) -> bool:
        """``True`` when the adapter is configured well enough to be called."""
        ...

    async def place_order(
        self,
        symbol: str,
        quantity: float,
        side: TradeSide,
        price: float,
        asset_type: AssetType,
    ) -> OrderResult:
        """Place an order and report whether the broker accepted it."""
        ...

    async def fetch_holdings(self) -> list[Holding]:
        """Return the broker's current holdings. May raise ``ExternalFetchError``."""
        ...

    async def fetch_balance(self) -> float:
        """Return the broker's cash balance. May raise ``ExternalFetchError``."""
        ...
