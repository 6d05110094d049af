"""User settings — initial capital, auto-trade sizing, brokers and markets."""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from tradedesk.models.ledger import AssetType, BrokerId, enum_member

logger = logging.getLogger("tradedesk")


class AutoTradeMode(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


@dataclass(frozen=True)
class AutoTradeConfig:
    """How much cash an automated buy may spend.

    ``value`` is a percentage of the pool (e.g. 5) in PERCENTAGE mode and an
    absolute amount in FIXED mode.
    """

    mode: AutoTradeMode = AutoTradeMode.PERCENTAGE
    value: float = 5.0


@dataclass(frozen=True)
class MarketSettings:
    stocks: bool = True
    mcx: bool = True
    forex: bool = True
    crypto: bool = True

    def is_enabled(self, asset_type: AssetType) -> bool:
        key = "stocks" if asset_type is AssetType.STOCK else asset_type.pool_key
        return getattr(self, key)


@dataclass(frozen=True)
class AppSettings:
    """Persisted user settings.

    ``initial_funds`` is the P&L baseline; trading never mutates it.
    """

    initial_funds: dict[AssetType, float]
    auto_trade_config: AutoTradeConfig = field(default_factory=AutoTradeConfig)
    active_brokers: tuple[BrokerId, ...] = tuple(BrokerId)
    enabled_markets: MarketSettings = field(default_factory=MarketSettings)

    def initial_fund(self, asset_type: AssetType) -> float:
        return self.initial_funds.get(asset_type, 0.0)

    @property
    def total_initial(self) -> float:
        return sum(self.initial_funds.get(a, 0.0) for a in AssetType)


def settings_to_dict(settings: AppSettings) -> dict:
    """Serialise settings to the persisted JSON shape."""
    return {
        "initialFunds": {a.pool_key: v for a, v in settings.initial_funds.items()},
        "autoTradeConfig": {
            "mode": settings.auto_trade_config.mode.value,
            "value": settings.auto_trade_config.value,
        },
        "activeBrokers": [b.value for b in settings.active_brokers],
        "enabledMarkets": {
            "stocks": settings.enabled_markets.stocks,
            "mcx": settings.enabled_markets.mcx,
            "forex": settings.enabled_markets.forex,
            "crypto": settings.enabled_markets.crypto,
        },
    }


def settings_from_dict(data: Optional[dict], defaults: AppSettings) -> AppSettings:
    """Build settings from persisted JSON, filling every gap from *defaults*.

    Missing or unparseable fields fall back to the default value; this never
    raises on a partially shaped document.
    """
    if not isinstance(data, dict):
        return defaults

    initial = dict(defaults.initial_funds)
    raw_initial = data.get("initialFunds")
    if isinstance(raw_initial, dict):
        for asset in AssetType:
            value = _as_float(raw_initial.get(asset.pool_key))
            if value is not None and value >= 0:
                initial[asset] = value

    auto = defaults.auto_trade_config
    raw_auto = data.get("autoTradeConfig")
    if isinstance(raw_auto, dict):
        mode = enum_member(AutoTradeMode, raw_auto.get("mode", auto.mode.value))
        value = _as_float(raw_auto.get("value", auto.value))
        if mode is not None and value is not None and value > 0:
            auto = AutoTradeConfig(mode=mode, value=value)

    brokers = defaults.active_brokers
    raw_brokers = data.get("activeBrokers")
    if isinstance(raw_brokers, list):
        known = [enum_member(BrokerId, b) for b in raw_brokers]
        if None in known:
            logger.warning("Ignoring unknown brokers in settings: %s", raw_brokers)
        brokers = tuple(b for b in known if b is not None)

    markets = defaults.enabled_markets
    raw_markets = data.get("enabledMarkets")
    if isinstance(raw_markets, dict):
        markets = MarketSettings(
            stocks=bool(raw_markets.get("stocks", markets.stocks)),
            mcx=bool(raw_markets.get("mcx", markets.mcx)),
            forex=bool(raw_markets.get("forex", markets.forex)),
            crypto=bool(raw_markets.get("crypto", markets.crypto)),
        )

    return AppSettings(
        initial_funds=initial,
        auto_trade_config=auto,
        active_brokers=brokers,
        enabled_markets=markets,
    )


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def validate_settings_update(data: Any) -> list[str]:
    """Check a settings update from the API; returns human-readable errors.

    Unlike :func:`settings_from_dict`, which is lenient with stored
    documents, an update with a bad field is rejected as a whole.
    """
    if not isinstance(data, dict):
        return ["settings body must be an object"]

    errors: list[str] = []

    raw_initial = data.get("initialFunds")
    if raw_initial is not None:
        if not isinstance(raw_initial, dict):
            errors.append("initialFunds must be an object")
        else:
            pools = {a.pool_key for a in AssetType}
            for key, value in raw_initial.items():
                number = _as_float(value)
                if key not in pools:
                    errors.append(f"initialFunds.{key} is not an asset class")
                elif number is None or number < 0:
                    errors.append(f"initialFunds.{key} must be a non-negative number")

    raw_auto = data.get("autoTradeConfig")
    if raw_auto is not None:
        if not isinstance(raw_auto, dict):
            errors.append("autoTradeConfig must be an object")
        else:
            if "mode" in raw_auto and enum_member(AutoTradeMode, raw_auto["mode"]) is None:
                errors.append("autoTradeConfig.mode must be PERCENTAGE or FIXED")
            if "value" in raw_auto:
                value = _as_float(raw_auto["value"])
                if value is None or value <= 0:
                    errors.append("autoTradeConfig.value must be a positive number")
                elif raw_auto.get("mode") == "PERCENTAGE" and value > 100:
                    errors.append("autoTradeConfig.value must be 0–100 in PERCENTAGE mode")

    raw_brokers = data.get("activeBrokers")
    if raw_brokers is not None:
        if not isinstance(raw_brokers, list):
            errors.append("activeBrokers must be a list")
        else:
            unknown = [b for b in raw_brokers if enum_member(BrokerId, b) is None]
            if unknown:
                errors.append(f"activeBrokers has unknown broker(s): {unknown}")

    raw_markets = data.get("enabledMarkets")
    if raw_markets is not None:
        if not isinstance(raw_markets, dict):
            errors.append("enabledMarkets must be an object")
        else:
            for key, value in raw_markets.items():
                if key not in ("stocks", "mcx", "forex", "crypto"):
                    errors.append(f"enabledMarkets.{key} is not a market")
                elif not isinstance(value, bool):
                    errors.append(f"enabledMarkets.{key} must be true or false")

    return errors
