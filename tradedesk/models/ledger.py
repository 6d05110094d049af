"""Ledger data models — typed representations of cash, holdings and trades."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AssetType(str, Enum):
    """Asset class; each one owns an independent paper cash pool."""

    STOCK = "STOCK"
    MCX = "MCX"
    FOREX = "FOREX"
    CRYPTO = "CRYPTO"

    @property
    def pool_key(self) -> str:
        """Key of this asset class's pool in the persisted funds object."""
        return self.value.lower()


class BrokerId(str, Enum):
    PAPER = "PAPER"
    DHAN = "DHAN"
    SHOONYA = "SHOONYA"
    BINANCE = "BINANCE"
    COINDCX = "COINDCX"
    COINSWITCH = "COINSWITCH"


class TradeSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


def enum_member(enum_cls, value):
    """Member of *enum_cls* named *value*, or ``None`` for anything else."""
    if isinstance(value, str) and value in enum_cls.__members__:
        return enum_cls[value]
    return None


@dataclass(frozen=True)
class Funds:
    """Paper cash pools, one per asset class. No cross-class transfer."""

    stock: float = 0.0
    mcx: float = 0.0
    forex: float = 0.0
    crypto: float = 0.0

    def __getitem__(self, asset_type: AssetType) -> float:
        return getattr(self, asset_type.pool_key)

    @property
    def total(self) -> float:
        return self.stock + self.mcx + self.forex + self.crypto

    def as_pools(self) -> dict[AssetType, float]:
        """Return a fresh ``{AssetType: amount}`` dict."""
        return {a: self[a] for a in AssetType}

    @classmethod
    def from_pools(cls, pools: dict[AssetType, float]) -> "Funds":
        return cls(**{a.pool_key: float(pools.get(a, 0.0)) for a in AssetType})


@dataclass(frozen=True)
class Holding:
    """A position in one symbol at one broker.

    For PAPER holdings ``total_cost`` tracks ``avg_cost × quantity``.
    """

    symbol: str
    asset_type: AssetType
    quantity: float
    avg_cost: float
    total_cost: float
    broker: BrokerId = BrokerId.PAPER

    @property
    def key(self) -> tuple[str, BrokerId]:
        return (self.symbol, self.broker)


@dataclass(frozen=True)
class Transaction:
    """Append-only log entry. Never mutated after creation."""

    id: str
    side: TradeSide
    symbol: str
    asset_type: AssetType
    quantity: float
    price: float
    timestamp: int  # epoch milliseconds
    broker: BrokerId


@dataclass(frozen=True)
class PortfolioHistoryPoint:
    """One sample of total portfolio value."""

    time: str  # "HH:MM" label
    value: float


@dataclass(frozen=True)
class LedgerSnapshot:
    """Consistent read-only view of the ledger at one instant."""

    funds: Funds
    holdings: tuple[Holding, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    history: tuple[PortfolioHistoryPoint, ...] = ()

    def holding(self, symbol: str) -> Optional[Holding]:
        """PAPER holding for *symbol*, or ``None``."""
        for h in self.holdings:
            if h.symbol == symbol:
                return h
        return None
