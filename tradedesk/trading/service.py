"""TradeService — routes buy/sell intents to the right broker adapter.

PAPER orders fill against the ledger.  External orders are sent to the
broker; a confirmed order is appended to the transaction log and triggers
an on-demand reconciliation so the new position shows up promptly.
"""

import logging
from typing import Mapping, Optional

from tradedesk.broker.base import BrokerAdapter
from tradedesk.errors import ExternalOrderRejected, ValidationError
from tradedesk.ledger.store import LedgerStore, validate_trade
from tradedesk.market.instruments import infer_asset_type
from tradedesk.models.ledger import AssetType, BrokerId, TradeSide, Transaction
from tradedesk.models.settings import AutoTradeConfig
from tradedesk.reconcile.coordinator import ReconciliationCoordinator
from tradedesk.risk.position_sizer import calculate_quantity

logger = logging.getLogger("tradedesk.trading")


class TradeService:
    """Entry point for every trade intent.

    Args:
        ledger: Paper ledger; also receives confirmed external trades.
        adapters: Broker adapters keyed by id (PAPER included).
        coordinator: Optional reconciliation coordinator to nudge after
            external fills.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        adapters: Mapping[BrokerId, BrokerAdapter],
        coordinator: Optional[ReconciliationCoordinator] = None,
    ) -> None:
        self._ledger = ledger
        self._adapters = dict(adapters)
        self._coordinator = coordinator

    def set_adapters(
        self,
        adapters: Mapping[BrokerId, BrokerAdapter],
        coordinator: Optional[ReconciliationCoordinator] = None,
    ) -> None:
        """Swap in a rebuilt adapter map (after an active-broker change)."""
        self._adapters = dict(adapters)
        self._coordinator = coordinator

    async def buy(
        self,
        symbol: str,
        quantity: float,
        price: float,
        broker: BrokerId = BrokerId.PAPER,
        asset_type: Optional[AssetType] = None,
    ) -> Transaction:
        return await self._execute(TradeSide.BUY, symbol, quantity, price, broker, asset_type)

    async def sell(
        self,
        symbol: str,
        quantity: float,
        price: float,
        broker: BrokerId = BrokerId.PAPER,
        asset_type: Optional[AssetType] = None,
    ) -> Transaction:
        return await self._execute(TradeSide.SELL, symbol, quantity, price, broker, asset_type)

    async def auto_buy(
        self,
        symbol: str,
        price: float,
        config: AutoTradeConfig,
        broker: BrokerId = BrokerId.PAPER,
        lot_size: float = 1,
    ) -> Transaction:
        """Buy as much as the auto-trade setting allows from the paper pool.

        Raises ``ValidationError`` when the budget does not cover one lot.
        """
        asset_type = infer_asset_type(symbol, self._ledger.snapshot().holdings)
        cash = self._ledger.funds[asset_type]
        try:
            quantity = calculate_quantity(cash, config, price, lot_size)
        except ValueError as exc:
            raise ValidationError(str(exc))
        if quantity <= 0:
            raise ValidationError(
                f"auto-trade budget too small for {symbol} at {price}"
            )
        return await self.buy(symbol, quantity, price, broker, asset_type)

    async def _execute(
        self,
        side: TradeSide,
        symbol: str,
        quantity: float,
        price: float,
        broker: BrokerId,
        asset_type: Optional[AssetType],
    ) -> Transaction:
        validate_trade(symbol, quantity, price, asset_type)
        if asset_type is None:
            asset_type = infer_asset_type(symbol, self._ledger.snapshot().holdings)

        adapter = self._adapters.get(broker)
        if adapter is None:
            raise ExternalOrderRejected(broker, "broker not active")
        if not adapter.has_credentials():
            raise ExternalOrderRejected(broker, "credentials not configured")

        result = await adapter.place_order(symbol, quantity, side, price, asset_type)
        if not result.success:
            logger.warning(
                "%s %s %s x%s rejected: %s",
                broker.value, side.value, symbol, quantity, result.message,
            )
            raise ExternalOrderRejected(broker, result.message)

        if result.transaction is not None:
            return result.transaction

        tx = self._ledger.record_external_trade(
            side, symbol, quantity, price, asset_type, broker
        )
        if self._coordinator is not None:
            self._coordinator.request_refresh()
        return tx
