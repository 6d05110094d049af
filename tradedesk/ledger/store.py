"""Ledger store — paper cash pools, paper holdings and the transaction log.

All mutations go through one lock and build the next state from copies.
The next state is persisted before it replaces the in-memory state, so a
buy or sell either applies completely (memory and disk) or not at all.
"""

import logging
import math
import sqlite3
import threading
import time
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

from tradedesk.errors import InsufficientFunds, InsufficientHoldings, ValidationError
from tradedesk.ledger import history as history_series
from tradedesk.ledger import serialization
from tradedesk.models.ledger import (
    AssetType,
    BrokerId,
    Funds,
    Holding,
    LedgerSnapshot,
    PortfolioHistoryPoint,
    TradeSide,
    Transaction,
)
from tradedesk.repos import state_repo
from tradedesk.repos.state_repo import StateRepo

logger = logging.getLogger("tradedesk.ledger")

DEFAULT_ZERO_EPSILON = 1e-4


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def validate_trade(
    symbol: str,
    quantity: float,
    price: float,
    asset_type: Optional[AssetType] = None,
) -> None:
    """Raise ``ValidationError`` unless the trade intent is well formed."""
    if asset_type is not None and not isinstance(asset_type, AssetType):
        raise ValidationError(f"unknown asset type {asset_type!r}")
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError("symbol must be a non-empty string")
    for name, value in (("quantity", quantity), ("price", price)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value):
            raise ValidationError(f"{name} must be finite, got {value}")
        if value <= 0:
            raise ValidationError(f"{name} must be positive, got {value}")


def _check_asset_class(existing: Optional[Holding], asset_type: AssetType) -> None:
    # a holding's cash always moves through the pool it was bought from
    if existing is not None and existing.asset_type is not asset_type:
        raise ValidationError(
            f"{existing.symbol} is held as {existing.asset_type.value}, "
            f"not {asset_type.value}"
        )


def adjust_pool(
    pools: dict[AssetType, float],
    asset_type: AssetType,
    delta: float,
) -> dict[AssetType, float]:
    """Return a copy of *pools* with *delta* applied to one asset class.

    Raises ``InsufficientFunds`` instead of letting the pool go negative.
    """
    available = pools.get(asset_type, 0.0)
    if available + delta < 0:
        raise InsufficientFunds(asset_type, required=-delta, available=available)
    updated = dict(pools)
    updated[asset_type] = available + delta
    return updated


class LedgerStore:
    """Single-writer in-memory ledger with save-on-mutation persistence.

    Args:
        funds: Starting paper cash pools.
        holdings: Starting PAPER holdings (unique by symbol).
        transactions: Existing transaction log, oldest first.
        history: Existing portfolio-value samples, oldest first.
        repo: Optional ``StateRepo``; when set, every mutation is saved.
        zero_epsilon: Remaining quantity below which a sell closes the
            holding entirely.
        clock: Returns the current epoch time in milliseconds.
        id_factory: Returns a fresh transaction id.
    """

    def __init__(
        self,
        funds: Funds,
        holdings: Iterable[Holding] = (),
        transactions: Iterable[Transaction] = (),
        history: Iterable[PortfolioHistoryPoint] = (),
        repo: Optional[StateRepo] = None,
        zero_epsilon: float = DEFAULT_ZERO_EPSILON,
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        if zero_epsilon < 0:
            raise ValueError(f"zero_epsilon must be non-negative, got {zero_epsilon}")
        self._lock = threading.Lock()
        self._pools: dict[AssetType, float] = funds.as_pools()
        self._holdings: dict[str, Holding] = {}
        for h in holdings:
            if h.broker is not BrokerId.PAPER:
                raise ValueError(f"LedgerStore only holds PAPER positions, got {h.broker.value}")
            self._holdings[h.symbol] = h
        self._transactions: list[Transaction] = list(transactions)
        self._history: list[PortfolioHistoryPoint] = list(history)
        self._repo = repo
        self._zero_epsilon = zero_epsilon
        self._clock = clock
        self._id_factory = id_factory

    @classmethod
    def load(
        cls,
        repo: StateRepo,
        initial_funds: dict[AssetType, float],
        **kwargs,
    ) -> "LedgerStore":
        """Load persisted ledger state, filling gaps with defaults."""
        funds = serialization.funds_from_dict(repo.get(state_repo.FUNDS_KEY), initial_funds)
        holdings = serialization.paper_holdings_from_list(repo.get(state_repo.PORTFOLIO_KEY))
        transactions = serialization.transactions_from_list(
            repo.get(state_repo.TRANSACTIONS_KEY)
        )
        history = serialization.history_from_list(repo.get(state_repo.HISTORY_KEY))
        logger.info(
            "Loaded ledger: %d holding(s), %d transaction(s), cash %.2f",
            len(holdings), len(transactions), funds.total,
        )
        return cls(
            funds=funds,
            holdings=holdings,
            transactions=transactions,
            history=history,
            repo=repo,
            **kwargs,
        )

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def zero_epsilon(self) -> float:
        return self._zero_epsilon

    def snapshot(self) -> LedgerSnapshot:
        """Return a consistent, immutable view of the ledger."""
        with self._lock:
            return LedgerSnapshot(
                funds=Funds.from_pools(self._pools),
                holdings=tuple(self._holdings.values()),
                transactions=tuple(self._transactions),
                history=tuple(self._history),
            )

    @property
    def funds(self) -> Funds:
        return self.snapshot().funds

    # ── Mutations ────────────────────────────────────────────────────────

    def buy(
        self,
        symbol: str,
        quantity: float,
        price: float,
        asset_type: AssetType,
    ) -> Transaction:
        """Buy into a PAPER holding using weighted-average cost basis.

        Raises ``ValidationError`` for malformed input and
        ``InsufficientFunds`` when the asset class's pool cannot pay.
        """
        validate_trade(symbol, quantity, price, asset_type)
        cost = quantity * price

        with self._lock:
            _check_asset_class(self._holdings.get(symbol), asset_type)
            pools = adjust_pool(self._pools, asset_type, -cost)

            holdings = dict(self._holdings)
            existing = holdings.get(symbol)
            if existing is not None:
                new_quantity = existing.quantity + quantity
                new_total = existing.total_cost + cost
                holdings[symbol] = Holding(
                    symbol=symbol,
                    asset_type=existing.asset_type,
                    quantity=new_quantity,
                    avg_cost=new_total / new_quantity,
                    total_cost=new_total,
                    broker=BrokerId.PAPER,
                )
            else:
                holdings[symbol] = Holding(
                    symbol=symbol,
                    asset_type=asset_type,
                    quantity=quantity,
                    avg_cost=price,
                    total_cost=cost,
                    broker=BrokerId.PAPER,
                )

            tx = self._new_transaction(
                TradeSide.BUY, symbol, quantity, price, asset_type, BrokerId.PAPER
            )
            self._commit(pools, holdings, self._transactions + [tx])

        logger.info(
            "Paper BUY %s x%s @ %.4f (%s) — %s pool now %.2f",
            symbol, quantity, price, asset_type.value,
            asset_type.value, pools[asset_type],
        )
        return tx

    def sell(
        self,
        symbol: str,
        quantity: float,
        price: float,
        asset_type: AssetType,
    ) -> Transaction:
        """Sell out of a PAPER holding.

        A partial sell keeps ``avg_cost`` and shrinks ``total_cost``
        proportionally.  Raises ``InsufficientHoldings`` when the holding
        is absent or smaller than *quantity*.
        """
        validate_trade(symbol, quantity, price, asset_type)

        with self._lock:
            existing = self._holdings.get(symbol)
            held = existing.quantity if existing else 0.0
            if existing is None or existing.quantity < quantity:
                raise InsufficientHoldings(symbol, requested=quantity, held=held)
            _check_asset_class(existing, asset_type)

            proceeds = quantity * price
            pools = adjust_pool(self._pools, asset_type, proceeds)

            holdings = dict(self._holdings)
            remaining = existing.quantity - quantity
            if abs(remaining) < self._zero_epsilon:
                del holdings[symbol]
            else:
                holdings[symbol] = Holding(
                    symbol=symbol,
                    asset_type=existing.asset_type,
                    quantity=remaining,
                    avg_cost=existing.avg_cost,
                    total_cost=existing.avg_cost * remaining,
                    broker=BrokerId.PAPER,
                )

            tx = self._new_transaction(
                TradeSide.SELL, symbol, quantity, price, asset_type, BrokerId.PAPER
            )
            self._commit(pools, holdings, self._transactions + [tx])

        logger.info(
            "Paper SELL %s x%s @ %.4f (%s)%s",
            symbol, quantity, price, asset_type.value,
            " — position closed" if symbol not in holdings else "",
        )
        return tx

    def record_external_trade(
        self,
        side: TradeSide,
        symbol: str,
        quantity: float,
        price: float,
        asset_type: AssetType,
        broker: BrokerId,
    ) -> Transaction:
        """Append a broker-confirmed trade to the log.

        Funds and holdings are untouched; external positions arrive through
        reconciliation.
        """
        if broker is BrokerId.PAPER:
            raise ValueError("PAPER trades must go through buy() or sell()")
        validate_trade(symbol, quantity, price, asset_type)

        with self._lock:
            tx = self._new_transaction(side, symbol, quantity, price, asset_type, broker)
            self._commit(self._pools, self._holdings, self._transactions + [tx])

        logger.info(
            "%s %s %s x%s @ %.4f recorded",
            broker.value, side.value, symbol, quantity, price,
        )
        return tx

    def reset_funds(self, pools: dict[AssetType, float]) -> Funds:
        """Replace every paper cash pool, e.g. after initial funds change."""
        new_pools = {a: float(pools.get(a, 0.0)) for a in AssetType}
        for asset, value in new_pools.items():
            if not math.isfinite(value) or value < 0:
                raise ValidationError(f"{asset.value} fund must be non-negative, got {value}")
        with self._lock:
            self._commit(new_pools, self._holdings, self._transactions)
        logger.info("Paper funds reset to %s", {a.value: v for a, v in new_pools.items()})
        return Funds.from_pools(new_pools)

    def record_history(self, total_value: float, now: Optional[datetime] = None) -> bool:
        """Add a portfolio-value sample; ``False`` if this minute already has one."""
        now = now or datetime.now()
        with self._lock:
            updated = history_series.record_point(self._history, total_value, now)
            if updated is self._history:
                return False
            if self._repo is not None:
                self._repo.put(state_repo.HISTORY_KEY, serialization.history_to_list(updated))
            self._history = updated
        return True

    # ── Internals ────────────────────────────────────────────────────────

    def _new_transaction(
        self,
        side: TradeSide,
        symbol: str,
        quantity: float,
        price: float,
        asset_type: AssetType,
        broker: BrokerId,
    ) -> Transaction:
        return Transaction(
            id=self._id_factory(),
            side=side,
            symbol=symbol,
            asset_type=asset_type,
            quantity=quantity,
            price=price,
            timestamp=self._clock(),
            broker=broker,
        )

    def _commit(
        self,
        pools: dict[AssetType, float],
        holdings: dict[str, Holding],
        transactions: list[Transaction],
    ) -> None:
        """Persist then swap in the next state. Caller holds the lock."""
        if self._repo is not None:
            try:
                self._repo.put_many({
                    state_repo.FUNDS_KEY: serialization.funds_to_dict(Funds.from_pools(pools)),
                    state_repo.PORTFOLIO_KEY: [
                        serialization.holding_to_dict(h) for h in holdings.values()
                    ],
                    state_repo.TRANSACTIONS_KEY: [
                        serialization.transaction_to_dict(t) for t in transactions
                    ],
                })
            except sqlite3.Error as exc:
                logger.error("Failed to persist ledger state: %s", exc)
                raise
        self._pools = pools
        self._holdings = holdings
        self._transactions = transactions
