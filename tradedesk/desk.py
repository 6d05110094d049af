"""TradeDesk — wires the ledger, brokers, reconciliation and market data.

Owns every long-lived component and their lifecycle: builds them from
config and persisted settings, applies settings changes (fund reset,
adapter rebuild plus coordinator restart), and runs the background loops.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from tradedesk.broker.base import BrokerAdapter
from tradedesk.broker.registry import build_adapters
from tradedesk.config import Config
from tradedesk.errors import ValidationError
from tradedesk.ledger import valuation
from tradedesk.ledger.store import LedgerStore
from tradedesk.market.price_lookup import HttpPriceLookup, PriceLookup
from tradedesk.market.service import MarketDataService
from tradedesk.models.ledger import BrokerId, Holding
from tradedesk.models.settings import (
    AppSettings,
    settings_from_dict,
    settings_to_dict,
    validate_settings_update,
)
from tradedesk.reconcile.coordinator import ReconciliationCoordinator
from tradedesk.repos import state_repo
from tradedesk.repos.db import init_db
from tradedesk.repos.state_repo import StateRepo
from tradedesk.trading.service import TradeService

logger = logging.getLogger("tradedesk")

MARKET_REFRESH_SECONDS = 60


def default_settings(config: Config) -> AppSettings:
    return AppSettings(
        initial_funds=dict(config.initial_funds),
        active_brokers=config.active_brokers,
    )


class TradeDesk:
    """Lifecycle manager for one trading desk.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        ledger: The paper ``LedgerStore``.
        settings: Current user settings.
        repo: Optional ``StateRepo`` for persisting settings changes.
        market: Optional ``MarketDataService``; a synthetic-only one is
            created when omitted.
    """

    def __init__(
        self,
        config: Config,
        ledger: LedgerStore,
        settings: AppSettings,
        repo: Optional[StateRepo] = None,
        market: Optional[MarketDataService] = None,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._settings = settings
        self._repo = repo
        self._market = market or MarketDataService()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None
        self._adapters, self._coordinator = self._build_brokers(settings)
        self._trades = TradeService(ledger, self._adapters, self._coordinator)

    @classmethod
    def build(cls, config: Config, lookup: Optional[PriceLookup] = None) -> "TradeDesk":
        """Initialise the database and load settings and ledger from it."""
        init_db(config.db_path)
        repo = StateRepo(config.db_path)

        stored = repo.get(state_repo.SETTINGS_KEY)
        settings = settings_from_dict(stored, default_settings(config))
        if stored is None:
            repo.put(state_repo.SETTINGS_KEY, settings_to_dict(settings))

        ledger = LedgerStore.load(
            repo,
            settings.initial_funds,
            zero_epsilon=config.zero_quantity_epsilon,
        )
        if lookup is None:
            lookup = HttpPriceLookup(
                config.market_data_url, timeout=config.broker_fetch_timeout_seconds
            )
        return cls(config, ledger, settings, repo=repo, market=MarketDataService(lookup))

    # ── Components ───────────────────────────────────────────────────────

    @property
    def config(self) -> Config:
        return self._config

    @property
    def ledger(self) -> LedgerStore:
        return self._ledger

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def market(self) -> MarketDataService:
        return self._market

    @property
    def trades(self) -> TradeService:
        return self._trades

    @property
    def coordinator(self) -> ReconciliationCoordinator:
        return self._coordinator

    @property
    def adapters(self) -> dict[BrokerId, BrokerAdapter]:
        return dict(self._adapters)

    # ── Views ────────────────────────────────────────────────────────────

    def unified_holdings(self) -> list[Holding]:
        return self._coordinator.unified_holdings(self._ledger.snapshot().holdings)

    def total_value(self) -> float:
        return valuation.total_portfolio_value(
            self._ledger.funds, self.unified_holdings(), self._market.prices
        )

    def pnl(self) -> dict:
        """P&L per asset class and per active broker, plus totals."""
        funds = self._ledger.funds
        holdings = self.unified_holdings()
        prices = self._market.prices
        balances = self._coordinator.broker_balances

        per_class = valuation.all_asset_class_pnl(
            funds, holdings, self._settings.initial_funds, prices
        )
        brokers = valuation.broker_pnl(
            self._settings.active_brokers, holdings, balances, prices
        )
        total_initial = self._settings.total_initial
        total_pnl = sum(p.pnl for p in per_class.values())
        return {
            "assetClasses": {
                a.value: {"pnl": p.pnl, "percent": p.percent} for a, p in per_class.items()
            },
            "brokers": [
                {
                    "broker": b.broker.value,
                    "pnl": b.pnl,
                    "percent": b.percent,
                    "active": b.active,
                    "cash": b.cash,
                }
                for b in brokers
            ],
            "totalValue": valuation.total_portfolio_value(funds, holdings, prices),
            "totalCash": valuation.unified_cash(funds, balances),
            "totalPnl": total_pnl,
            "totalPercent": (total_pnl / total_initial) * 100.0 if total_initial > 0 else 0.0,
        }

    def record_history(self, now: Optional[datetime] = None) -> bool:
        return self._ledger.record_history(self.total_value(), now)

    # ── Settings ─────────────────────────────────────────────────────────

    def update_settings(self, body: dict) -> AppSettings:
        """Apply a (partial) settings update.

        Raises ``ValidationError`` listing every bad field; nothing is
        applied in that case.
        """
        errors = validate_settings_update(body)
        if errors:
            raise ValidationError("; ".join(errors))

        old = self._settings
        new = settings_from_dict(body, old)
        if self._repo is not None:
            self._repo.put(state_repo.SETTINGS_KEY, settings_to_dict(new))
        self._settings = new

        if new.initial_funds != old.initial_funds:
            self._ledger.reset_funds(new.initial_funds)
        if new.active_brokers != old.active_brokers:
            self._restart_brokers(new)

        logger.info("Settings updated: %s", settings_to_dict(new))
        return new

    def _build_brokers(
        self, settings: AppSettings
    ) -> tuple[dict[BrokerId, BrokerAdapter], ReconciliationCoordinator]:
        adapters = build_adapters(self._config, self._ledger, settings.active_brokers)
        coordinator = ReconciliationCoordinator(
            adapters,
            interval_seconds=self._config.reconcile_interval_seconds,
            fetch_timeout=self._config.broker_fetch_timeout_seconds,
        )
        return adapters, coordinator

    def _restart_brokers(self, settings: AppSettings) -> None:
        # In-flight fetches of the old coordinator are discarded by stop()
        self._coordinator.stop()
        self._adapters, self._coordinator = self._build_brokers(settings)
        self._trades.set_adapters(self._adapters, self._coordinator)
        logger.info(
            "Active brokers now %s; reconciliation restarted.",
            ", ".join(b.value for b in settings.active_brokers),
        )

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def refresh_market(self) -> int:
        """Re-price every held symbol in an enabled market, then sample
        portfolio value.

        Returns the number of symbols analysed.
        """
        markets = self._settings.enabled_markets
        seen: dict[str, float] = {}
        for h in self.unified_holdings():
            if not markets.is_enabled(h.asset_type):
                continue
            seen.setdefault(h.symbol, h.avg_cost)
        for symbol, fallback in seen.items():
            price = self._market.last_price(symbol) or fallback
            try:
                await self._market.analyze(symbol, price)
            except ValidationError as exc:
                logger.warning("Could not analyse %s: %s", symbol, exc)
        self.record_history()
        return len(seen)

    async def run(self) -> None:
        """Run reconciliation and the market refresh loop until stopped."""
        self._running = True
        self._stop_event = asyncio.Event()
        await asyncio.gather(self._reconcile_loop(), self._market_loop())
        logger.info("TradeDesk stopped.")

    def stop(self) -> None:
        self._running = False
        self._coordinator.stop()
        if self._stop_event is not None:
            self._stop_event.set()

    async def _reconcile_loop(self) -> None:
        while self._running:
            coordinator = self._coordinator
            await coordinator.run()
            if coordinator is self._coordinator:
                break
            # A broker change swapped in a new coordinator; keep going with it

    async def _market_loop(self) -> None:
        while self._running:
            try:
                await self.refresh_market()
            except Exception as exc:
                logger.error("Market refresh error: %s", exc)
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=MARKET_REFRESH_SECONDS
                )
            except asyncio.TimeoutError:
                pass
