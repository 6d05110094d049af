"""PAPER broker — simulated fills against the local ledger."""

from tradedesk.broker.base import OrderResult
from tradedesk.ledger.store import LedgerStore
from tradedesk.models.ledger import AssetType, BrokerId, Holding, TradeSide


class PaperBrokerAdapter:
    """Fills every order immediately at the requested price.

    Business-rule failures (``InsufficientFunds``, ``InsufficientHoldings``,
    ``ValidationError``) propagate to the caller unchanged.

    Args:
        ledger: The ``LedgerStore`` that owns paper cash and holdings.
    """

    broker_id = BrokerId.PAPER

    def __init__(self, ledger: LedgerStore) -> None:
        self._ledger = ledger

    def has_credentials(self) -> bool:
        return True

    async def place_order(
        self,
        symbol: str,
        quantity: float,
        side: TradeSide,
        price: float,
        asset_type: AssetType,
    ) -> OrderResult:
        if side is TradeSide.BUY:
            tx = self._ledger.buy(symbol, quantity, price, asset_type)
        else:
            tx = self._ledger.sell(symbol, quantity, price, asset_type)
        return OrderResult(
            success=True,
            message=f"Paper: {side.value} {symbol}",
            transaction=tx,
        )

    async def fetch_holdings(self) -> list[Holding]:
        return list(self._ledger.snapshot().holdings)

    async def fetch_balance(self) -> float:
        return self._ledger.funds.total
