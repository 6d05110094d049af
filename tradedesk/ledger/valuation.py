"""Valuation and P&L — pure functions over snapshots, no I/O.

Prices come from a ``{symbol: price}`` map; a symbol without a known price
is valued at its average cost.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping

from tradedesk.models.ledger import AssetType, BrokerId, Funds, Holding


@dataclass(frozen=True)
class PnL:
    pnl: float
    percent: float


@dataclass(frozen=True)
class BrokerPnL:
    broker: BrokerId
    pnl: float
    percent: float
    active: int  # number of holdings at this broker
    cash: float


def unified_holdings(
    paper: Iterable[Holding],
    external: Iterable[Holding],
) -> list[Holding]:
    """Paper holdings followed by external ones (disjoint by broker)."""
    return [*paper, *external]


def unified_cash(funds: Funds, broker_balances: Mapping[BrokerId, float]) -> float:
    """Display total: every paper pool plus every external cash balance."""
    return funds.total + sum(broker_balances.values())


def market_price(holding: Holding, prices: Mapping[str, float]) -> float:
    price = prices.get(holding.symbol)
    return price if price else holding.avg_cost


def market_value(holdings: Iterable[Holding], prices: Mapping[str, float]) -> float:
    return sum(market_price(h, prices) * h.quantity for h in holdings)


def total_portfolio_value(
    funds: Funds,
    holdings: Iterable[Holding],
    prices: Mapping[str, float],
) -> float:
    """Paper cash plus the market value of all unified holdings."""
    return funds.total + market_value(holdings, prices)


def asset_class_pnl(
    asset_type: AssetType,
    funds: Funds,
    holdings: Iterable[Holding],
    initial_fund: float,
    prices: Mapping[str, float],
) -> PnL:
    """P&L of one asset class against its initial fund.

    ``pnl = paper pool + value of that class's holdings − initial fund``.
    The percentage is defined as 0 when *initial_fund* is not positive.
    """
    value = market_value((h for h in holdings if h.asset_type is asset_type), prices)
    pnl = funds[asset_type] + value - initial_fund
    percent = (pnl / initial_fund) * 100.0 if initial_fund > 0 else 0.0
    return PnL(pnl=pnl, percent=percent)


def all_asset_class_pnl(
    funds: Funds,
    holdings: Iterable[Holding],
    initial_funds: Mapping[AssetType, float],
    prices: Mapping[str, float],
) -> dict[AssetType, PnL]:
    holdings = list(holdings)
    return {
        asset: asset_class_pnl(asset, funds, holdings, initial_funds.get(asset, 0.0), prices)
        for asset in AssetType
    }


def broker_pnl(
    brokers: Iterable[BrokerId],
    holdings: Iterable[Holding],
    broker_balances: Mapping[BrokerId, float],
    prices: Mapping[str, float],
) -> list[BrokerPnL]:
    """Per-broker unrealised P&L: market value minus cost basis."""
    holdings = list(holdings)
    result: list[BrokerPnL] = []
    for broker in brokers:
        mine = [h for h in holdings if h.broker is broker]
        value = market_value(mine, prices)
        cost = sum(h.total_cost for h in mine)
        pnl = value - cost
        result.append(
            BrokerPnL(
                broker=broker,
                pnl=pnl,
                percent=(pnl / cost) * 100.0 if cost > 0 else 0.0,
                active=len(mine),
                cash=broker_balances.get(broker, 0.0),
            )
        )
    return result
