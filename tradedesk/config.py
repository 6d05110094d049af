"""TradeDesk — application configuration.

Loads .env variables into a typed config object.
Validates values on startup; nothing is required for paper trading.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from tradedesk.models.ledger import AssetType, BrokerId


_DEFAULT_BASE_URLS: dict[BrokerId, str] = {
    BrokerId.DHAN: "https://api.dhan.co",
    BrokerId.SHOONYA: "https://api.shoonya.com",
    BrokerId.BINANCE: "https://api.binance.com",
    BrokerId.COINDCX: "https://api.coindcx.com",
    BrokerId.COINSWITCH: "https://coinswitch.co",
}

# Credential variables per broker; a broker counts as configured only when
# every listed variable is non-empty.
BROKER_CREDENTIAL_VARS: dict[BrokerId, tuple[str, ...]] = {
    BrokerId.DHAN: ("DHAN_CLIENT_ID", "DHAN_ACCESS_TOKEN"),
    BrokerId.SHOONYA: ("SHOONYA_USER_ID", "SHOONYA_PASSWORD"),
    BrokerId.BINANCE: ("BINANCE_API_KEY",),
    BrokerId.COINDCX: ("COINDCX_API_KEY",),
    BrokerId.COINSWITCH: ("COINSWITCH_API_KEY",),
}

_OPTIONAL_SECRET_VARS: dict[BrokerId, tuple[str, ...]] = {
    BrokerId.BINANCE: ("BINANCE_SECRET",),
    BrokerId.COINDCX: ("COINDCX_SECRET",),
}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str = "data/tradedesk.db"
    log_level: str = "INFO"
    api_port: int = 8080
    reconcile_interval_seconds: int = 30
    broker_fetch_timeout_seconds: float = 10.0
    zero_quantity_epsilon: float = 1e-4
    initial_funds: dict[AssetType, float] = field(
        default_factory=lambda: {
            AssetType.STOCK: 1_000_000.0,
            AssetType.MCX: 500_000.0,
            AssetType.FOREX: 500_000.0,
            AssetType.CRYPTO: 500_000.0,
        }
    )
    active_brokers: tuple[BrokerId, ...] = tuple(BrokerId)
    market_data_url: str = ""
    broker_credentials: dict[BrokerId, dict[str, str]] = field(default_factory=dict)
    broker_base_urls: dict[BrokerId, str] = field(
        default_factory=lambda: dict(_DEFAULT_BASE_URLS)
    )

    def credentials_for(self, broker: BrokerId) -> dict[str, str]:
        """Return the credential map for *broker* (empty if none set)."""
        return dict(self.broker_credentials.get(broker, {}))


def _float_var(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}")


def _int_var(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


def _parse_brokers(raw: str) -> tuple[BrokerId, ...]:
    names = [n.strip().upper() for n in raw.split(",") if n.strip()]
    unknown = [n for n in names if n not in BrokerId.__members__]
    if unknown:
        raise ValueError(
            f"Unknown broker(s) in ACTIVE_BROKERS: {', '.join(unknown)}. "
            f"Available: {', '.join(BrokerId.__members__)}"
        )
    return tuple(BrokerId[n] for n in names)


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a value cannot be parsed.
    """
    load_dotenv(dotenv_path=env_path)

    credentials: dict[BrokerId, dict[str, str]] = {}
    for broker, names in BROKER_CREDENTIAL_VARS.items():
        values = {
            n: os.environ.get(n, "")
            for n in names + _OPTIONAL_SECRET_VARS.get(broker, ())
        }
        credentials[broker] = values

    base_urls = {
        broker: os.environ.get(f"{broker.value}_BASE_URL", default)
        for broker, default in _DEFAULT_BASE_URLS.items()
    }

    interval = _int_var("RECONCILE_INTERVAL_SECONDS", "30")
    if interval <= 0:
        raise ValueError(
            f"RECONCILE_INTERVAL_SECONDS must be positive, got {interval}"
        )

    return Config(
        db_path=os.environ.get("DB_PATH", "data/tradedesk.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_int_var("API_PORT", "8080"),
        reconcile_interval_seconds=interval,
        broker_fetch_timeout_seconds=_float_var("BROKER_FETCH_TIMEOUT_SECONDS", "10"),
        zero_quantity_epsilon=_float_var("ZERO_QUANTITY_EPSILON", "1e-4"),
        initial_funds={
            AssetType.STOCK: _float_var("INITIAL_FUNDS_STOCK", "1000000"),
            AssetType.MCX: _float_var("INITIAL_FUNDS_MCX", "500000"),
            AssetType.FOREX: _float_var("INITIAL_FUNDS_FOREX", "500000"),
            AssetType.CRYPTO: _float_var("INITIAL_FUNDS_CRYPTO", "500000"),
        },
        active_brokers=_parse_brokers(
            os.environ.get("ACTIVE_BROKERS", ",".join(BrokerId.__members__))
        ),
        market_data_url=os.environ.get("MARKET_DATA_URL", ""),
        broker_credentials=credentials,
        broker_base_urls=base_urls,
    )
