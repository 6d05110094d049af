"""Ledger <-> JSON conversion with default filling for partial documents.

Loaders never raise on shape: missing fields take documented defaults and
rows that cannot be repaired are skipped with a warning.

Defaults:
    funds         missing or non-numeric pool -> that class's initial fund
    portfolio     missing ``type`` -> STOCK; non-PAPER rows dropped
    transactions  rows missing id/symbol/side/quantity/price skipped;
                  missing ``assetType`` -> STOCK, ``broker`` -> PAPER,
                  ``timestamp`` -> 0
    history       rows missing ``time`` or ``value`` skipped
"""

import logging
import math
from typing import Any, Optional

from tradedesk.models.ledger import (
    AssetType,
    BrokerId,
    Funds,
    Holding,
    PortfolioHistoryPoint,
    TradeSide,
    Transaction,
    enum_member,
)

logger = logging.getLogger("tradedesk.ledger")


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


# ── Funds ────────────────────────────────────────────────────────────────


def funds_to_dict(funds: Funds) -> dict:
    return {a.pool_key: funds[a] for a in AssetType}


def funds_from_dict(data: Any, initial_funds: dict[AssetType, float]) -> Funds:
    """Rebuild funds, backfilling any missing pool from *initial_funds*."""
    raw = data if isinstance(data, dict) else {}
    pools: dict[AssetType, float] = {}
    for asset in AssetType:
        value = _number(raw.get(asset.pool_key))
        if value is None or value < 0:
            value = initial_funds.get(asset, 0.0)
        pools[asset] = value
    return Funds.from_pools(pools)


# ── Holdings ─────────────────────────────────────────────────────────────


def holding_to_dict(holding: Holding) -> dict:
    return {
        "symbol": holding.symbol,
        "type": holding.asset_type.value,
        "quantity": holding.quantity,
        "avgCost": holding.avg_cost,
        "totalCost": holding.total_cost,
        "broker": holding.broker.value,
    }


def holding_from_dict(data: Any) -> Optional[Holding]:
    """Parse one holding row; ``None`` if it cannot be repaired."""
    if not isinstance(data, dict):
        return None
    symbol = data.get("symbol")
    quantity = _number(data.get("quantity"))
    avg_cost = _number(data.get("avgCost"))
    if not symbol or quantity is None or quantity <= 0 or avg_cost is None or avg_cost <= 0:
        return None
    asset_type = enum_member(AssetType, data.get("type", AssetType.STOCK.value))
    broker = enum_member(BrokerId, data.get("broker", BrokerId.PAPER.value))
    if asset_type is None or broker is None:
        return None
    total_cost = _number(data.get("totalCost"))
    if total_cost is None or total_cost < 0:
        total_cost = avg_cost * quantity
    return Holding(
        symbol=str(symbol),
        asset_type=asset_type,
        quantity=quantity,
        avg_cost=avg_cost,
        total_cost=total_cost,
        broker=broker,
    )


def paper_holdings_from_list(data: Any) -> list[Holding]:
    """Load PAPER holdings; other brokers' rows belong to reconciliation."""
    if not isinstance(data, list):
        return []
    holdings: list[Holding] = []
    seen: set[str] = set()
    for row in data:
        holding = holding_from_dict(row)
        if holding is None:
            logger.warning("Skipping malformed holding row: %r", row)
            continue
        if holding.broker is not BrokerId.PAPER:
            continue
        if holding.symbol in seen:
            logger.warning("Skipping duplicate PAPER holding for %s", holding.symbol)
            continue
        seen.add(holding.symbol)
        holdings.append(holding)
    return holdings


# ── Transactions ─────────────────────────────────────────────────────────


def transaction_to_dict(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "type": tx.side.value,
        "symbol": tx.symbol,
        "assetType": tx.asset_type.value,
        "quantity": tx.quantity,
        "price": tx.price,
        "timestamp": tx.timestamp,
        "broker": tx.broker.value,
    }


def transaction_from_dict(data: Any) -> Optional[Transaction]:
    if not isinstance(data, dict):
        return None
    side = enum_member(TradeSide, data.get("type"))
    quantity = _number(data.get("quantity"))
    price = _number(data.get("price"))
    if (
        not data.get("id")
        or not data.get("symbol")
        or side is None
        or quantity is None
        or quantity <= 0
        or price is None
        or price <= 0
    ):
        return None
    asset_type = enum_member(AssetType, data.get("assetType", AssetType.STOCK.value))
    broker = enum_member(BrokerId, data.get("broker", BrokerId.PAPER.value))
    timestamp = _number(data.get("timestamp"))
    return Transaction(
        id=str(data["id"]),
        side=side,
        symbol=str(data["symbol"]),
        asset_type=asset_type or AssetType.STOCK,
        quantity=quantity,
        price=price,
        timestamp=int(timestamp) if timestamp is not None else 0,
        broker=broker or BrokerId.PAPER,
    )


def transactions_from_list(data: Any) -> list[Transaction]:
    if not isinstance(data, list):
        return []
    transactions: list[Transaction] = []
    for row in data:
        tx = transaction_from_dict(row)
        if tx is None:
            logger.warning("Skipping malformed transaction row: %r", row)
            continue
        transactions.append(tx)
    return transactions


# ── History ──────────────────────────────────────────────────────────────


def history_to_list(points) -> list[dict]:
    return [{"time": p.time, "value": p.value} for p in points]


def history_from_list(data: Any) -> list[PortfolioHistoryPoint]:
    if not isinstance(data, list):
        return []
    points: list[PortfolioHistoryPoint] = []
    for row in data:
        if not isinstance(row, dict):
            continue
        value = _number(row.get("value"))
        if row.get("time") is None or value is None:
            continue
        points.append(PortfolioHistoryPoint(time=str(row["time"]), value=value))
    return points
