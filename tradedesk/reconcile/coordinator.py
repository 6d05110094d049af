"""ReconciliationCoordinator — keeps the external-holdings snapshot fresh.

Each refresh fans out one holdings fetch and one balance fetch per
configured external broker, waits for all of them, and replaces the
previous snapshot wholesale (last fetch wins).  Failures are isolated per
broker: failed holdings count as empty for the cycle, a failed balance
keeps its previous value.  The ledger is never touched.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from tradedesk.broker.base import BrokerAdapter
from tradedesk.ledger import valuation
from tradedesk.models.ledger import BrokerId, Holding

logger = logging.getLogger("tradedesk.reconcile")


@dataclass(frozen=True)
class ReconcileResult:
    """What one refresh did."""

    applied: bool  # False when discarded (coordinator stopped or superseded)
    changed: bool
    refreshed: tuple[BrokerId, ...] = ()
    failed: tuple[BrokerId, ...] = ()
    skipped: tuple[BrokerId, ...] = ()


@dataclass(frozen=True)
class _BrokerFetch:
    broker: BrokerId
    holdings: tuple[Holding, ...]
    balance: Optional[float]
    failed: bool


class ReconciliationCoordinator:
    """Periodic and on-demand refresh of external broker state.

    Args:
        adapters: Broker adapters keyed by id.  PAPER is ignored.
        interval_seconds: Delay between timed refreshes.
        fetch_timeout: Per-call timeout; a slower broker counts as failed.
    """

    def __init__(
        self,
        adapters: Mapping[BrokerId, BrokerAdapter],
        interval_seconds: float = 30,
        fetch_timeout: float = 10.0,
    ) -> None:
        self._adapters = {
            b: a for b, a in adapters.items() if b is not BrokerId.PAPER
        }
        self._interval = interval_seconds
        self._fetch_timeout = fetch_timeout
        self._holdings: tuple[Holding, ...] = ()
        self._balances: dict[BrokerId, float] = {}
        self._active = True
        self._running = False
        self._generation = 0
        self._started_seq = 0
        self._committed_seq = 0
        self._cycle_count = 0
        self._last_refresh_at: Optional[str] = None
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def external_holdings(self) -> tuple[Holding, ...]:
        return self._holdings

    @property
    def broker_balances(self) -> dict[BrokerId, float]:
        return dict(self._balances)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def running(self) -> bool:
        return self._running

    @property
    def brokers(self) -> list[BrokerId]:
        """External brokers this coordinator knows about."""
        return list(self._adapters)

    def unified_holdings(self, paper: Iterable[Holding]) -> list[Holding]:
        return valuation.unified_holdings(paper, self._holdings)

    def get_status(self) -> dict:
        return {
            "active": self._active,
            "running": self._running,
            "cycle_count": self._cycle_count,
            "last_refresh_at": self._last_refresh_at,
            "brokers": [b.value for b in self._adapters],
            "external_holdings": len(self._holdings),
        }

    async def refresh(self) -> ReconcileResult:
        """Fetch every configured broker once and commit the new snapshot.

        Brokers without credentials are skipped silently.  The result is
        discarded if the coordinator was stopped while fetching, or if a
        refresh started later has already committed.
        """
        generation = self._generation
        self._started_seq += 1
        seq = self._started_seq

        configured = [b for b, a in self._adapters.items() if a.has_credentials()]
        skipped = tuple(b for b in self._adapters if b not in configured)

        fetches = await asyncio.gather(
            *(self._fetch_broker(b, self._adapters[b]) for b in configured)
        )

        if not self._active or generation != self._generation:
            logger.info("Reconciliation stopped mid-refresh; discarding results.")
            return ReconcileResult(applied=False, changed=False, skipped=skipped)
        if seq < self._committed_seq:
            logger.debug("Refresh #%d superseded by #%d; discarding.", seq, self._committed_seq)
            return ReconcileResult(applied=False, changed=False, skipped=skipped)

        holdings = tuple(h for f in fetches for h in f.holdings)
        balances = dict(self._balances)
        for f in fetches:
            if f.balance is not None:
                balances[f.broker] = f.balance

        changed = holdings != self._holdings or balances != self._balances
        self._committed_seq = seq
        self._last_refresh_at = datetime.now(timezone.utc).isoformat()
        if changed:
            # Identical content keeps the previous objects
            self._holdings = holdings
            self._balances = balances
            logger.info(
                "External snapshot updated: %d holding(s) across %d broker(s).",
                len(holdings), len(configured),
            )

        return ReconcileResult(
            applied=True,
            changed=changed,
            refreshed=tuple(f.broker for f in fetches if not f.failed),
            failed=tuple(f.broker for f in fetches if f.failed),
            skipped=skipped,
        )

    def request_refresh(self) -> Optional[asyncio.Task]:
        """Schedule an on-demand refresh (e.g. after a confirmed trade).

        Returns the task, or ``None`` when the coordinator is stopped.
        """
        if not self._active:
            return None
        task = asyncio.create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def run(self, max_cycles: int = 0) -> int:
        """Refresh every ``interval_seconds`` until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            Number of cycles run.
        """
        self._running = True
        self._wake.clear()
        cycles = 0

        while self._running and self._active:
            cycles += 1
            self._cycle_count += 1
            try:
                result = await self.refresh()
                if result.failed:
                    logger.warning(
                        "Cycle %d: fetch failed for %s",
                        cycles, ", ".join(b.value for b in result.failed),
                    )
            except Exception as exc:
                logger.error("Reconciliation cycle %d error: %s", cycles, exc)

            if max_cycles > 0 and cycles >= max_cycles:
                break

            # Interruptible sleep; stop() wakes it
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

        self._running = False
        return cycles

    def start(self) -> asyncio.Task:
        """(Re)activate and launch the timed loop as a background task."""
        self._active = True
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.info(
                "Reconciliation started for %d broker(s), every %ss.",
                len(self._adapters), self._interval,
            )
        return self._task

    def stop(self) -> None:
        """Stop the loop; fetches in flight finish but are not applied."""
        self._active = False
        self._running = False
        self._generation += 1
        self._wake.set()
        logger.info("Reconciliation stopped.")

    # ── Internals ────────────────────────────────────────────────────────

    async def _fetch_broker(self, broker: BrokerId, adapter: BrokerAdapter) -> _BrokerFetch:
        holdings_res, balance_res = await asyncio.gather(
            asyncio.wait_for(adapter.fetch_holdings(), self._fetch_timeout),
            asyncio.wait_for(adapter.fetch_balance(), self._fetch_timeout),
            return_exceptions=True,
        )

        failed = False
        if isinstance(holdings_res, BaseException):
            logger.warning("%s holdings unavailable this cycle: %s", broker.value, holdings_res)
            holdings: tuple[Holding, ...] = ()
            failed = True
        else:
            holdings = tuple(
                h if h.broker is broker else dataclasses.replace(h, broker=broker)
                for h in holdings_res
            )

        balance: Optional[float]
        if isinstance(balance_res, BaseException):
            logger.warning("%s balance unavailable this cycle: %s", broker.value, balance_res)
            balance = None
            failed = True
        else:
            balance = float(balance_res)

        return _BrokerFetch(broker=broker, holdings=holdings, balance=balance, failed=failed)
