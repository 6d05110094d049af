"""Broker registry — maps broker ids to adapter classes.

Used at startup (and on settings changes) to build the adapter map for the
active brokers.
"""

from typing import Iterable

from tradedesk.broker.base import BrokerAdapter
from tradedesk.broker.paper import PaperBrokerAdapter
from tradedesk.broker.rest_client import (
    BinanceAdapter,
    CoinDCXAdapter,
    CoinSwitchAdapter,
    DhanAdapter,
    RestBrokerAdapter,
    ShoonyaAdapter,
)
from tradedesk.config import Config
from tradedesk.ledger.store import LedgerStore
from tradedesk.models.ledger import BrokerId


BROKER_REGISTRY: dict[BrokerId, type[RestBrokerAdapter]] = {
    BrokerId.DHAN: DhanAdapter,
    BrokerId.SHOONYA: ShoonyaAdapter,
    BrokerId.BINANCE: BinanceAdapter,
    BrokerId.COINDCX: CoinDCXAdapter,
    BrokerId.COINSWITCH: CoinSwitchAdapter,
}


def get_adapter(broker: BrokerId, config: Config) -> RestBrokerAdapter:
    """Instantiate the external adapter for *broker* from config.

    Raises ``KeyError`` for PAPER or an unregistered broker.
    """
    if broker not in BROKER_REGISTRY:
        raise KeyError(
            f"No external adapter for '{broker.value}'. "
            f"Available: {', '.join(b.value for b in BROKER_REGISTRY)}"
        )
    return BROKER_REGISTRY[broker](
        base_url=config.broker_base_urls.get(broker, ""),
        credentials=config.credentials_for(broker),
        timeout=config.broker_fetch_timeout_seconds,
    )


def build_adapters(
    config: Config,
    ledger: LedgerStore,
    active_brokers: Iterable[BrokerId],
) -> dict[BrokerId, BrokerAdapter]:
    """Build one adapter per active broker.

    PAPER is always present so paper trading keeps working when it has
    been left out of *active_brokers*.
    """
    adapters: dict[BrokerId, BrokerAdapter] = {BrokerId.PAPER: PaperBrokerAdapter(ledger)}
    for broker in active_brokers:
        if broker is BrokerId.PAPER:
            continue
        adapters[broker] = get_adapter(broker, config)
    return adapters
