"""Internal API routers — /funds, /holdings, /trades, /signals, /settings endpoints.

No business logic, no DB access. Delegates to the TradeDesk components.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from tradedesk.errors import (
    ExternalOrderRejected,
    InsufficientFunds,
    InsufficientHoldings,
    ValidationError,
)
from tradedesk.ledger import serialization
from tradedesk.models.ledger import AssetType, BrokerId
from tradedesk.models.settings import settings_to_dict
from tradedesk.signals.engine import compute_signals, parse_candles

logger = logging.getLogger("tradedesk")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_desk = None  # Set via configure_routers()


def configure_routers(desk) -> None:
    """Inject dependencies from the application startup.

    Args:
        desk: A ``TradeDesk`` instance (or duck-type for tests).
    """
    global _desk  # noqa: PLW0603
    _desk = desk


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


def _not_ready() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "NotReady", "detail": "desk not configured"},
    )


def _parse_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be one of {[e.value for e in enum_cls]}")


def _parse_trade_body(body: dict) -> tuple[str, Any, Any, BrokerId, Optional[AssetType]]:
    if not isinstance(body, dict):
        raise ValidationError("trade body must be an object")
    broker = _parse_enum(BrokerId, body.get("broker", BrokerId.PAPER.value), "broker")
    asset_type = None
    if body.get("assetType") is not None:
        asset_type = _parse_enum(AssetType, body["assetType"], "assetType")
    return body.get("symbol"), body.get("quantity"), body.get("price"), broker, asset_type


# ── Ledger ───────────────────────────────────────────────────────────────


@router.get("/funds")
async def get_funds():
    """Paper pools per asset class plus external broker cash."""
    if _desk is None:
        return _not_ready()
    funds = _desk.ledger.funds
    balances = _desk.coordinator.broker_balances
    return {
        "funds": serialization.funds_to_dict(funds),
        "paperTotal": funds.total,
        "brokerBalances": {b.value: v for b, v in balances.items()},
        "totalCash": funds.total + sum(balances.values()),
    }


@router.get("/holdings")
async def get_holdings():
    """Unified holdings: PAPER first, then the external snapshot."""
    if _desk is None:
        return {"holdings": []}
    return {
        "holdings": [serialization.holding_to_dict(h) for h in _desk.unified_holdings()]
    }


@router.get("/transactions")
async def get_transactions(limit: int = Query(default=50, ge=1, le=1000)):
    """Return the most recent transactions, newest first."""
    if _desk is None:
        return {"transactions": [], "total": 0}
    txs = _desk.ledger.snapshot().transactions
    recent = list(reversed(txs))[:limit]
    return {
        "transactions": [serialization.transaction_to_dict(t) for t in recent],
        "total": len(txs),
    }


@router.get("/history")
async def get_history():
    if _desk is None:
        return {"history": []}
    return {"history": serialization.history_to_list(_desk.ledger.snapshot().history)}


@router.get("/pnl")
async def get_pnl():
    if _desk is None:
        return _not_ready()
    return _desk.pnl()


# ── Trades ───────────────────────────────────────────────────────────────


async def _trade(side: str, body: dict):
    if _desk is None:
        return _not_ready()
    try:
        symbol, quantity, price, broker, asset_type = _parse_trade_body(body)
        execute = _desk.trades.buy if side == "buy" else _desk.trades.sell
        tx = await execute(symbol, quantity, price, broker, asset_type)
    except ValidationError as exc:
        return _error(422, exc)
    except (InsufficientFunds, InsufficientHoldings) as exc:
        logger.warning("Trade rejected: %s", exc)
        return _error(409, exc)
    except ExternalOrderRejected as exc:
        return _error(502, exc)

    _desk.record_history()
    return {"status": "ok", "transaction": serialization.transaction_to_dict(tx)}


@router.post("/trades/buy")
async def post_buy(body: dict):
    return await _trade("buy", body)


@router.post("/trades/sell")
async def post_sell(body: dict):
    return await _trade("sell", body)


@router.post("/trades/auto")
async def post_auto_buy(body: dict):
    """Buy using the auto-trade sizing from settings."""
    if _desk is None:
        return _not_ready()
    try:
        symbol, _, price, broker, _ = _parse_trade_body(body)
        tx = await _desk.trades.auto_buy(
            symbol, price, _desk.settings.auto_trade_config, broker
        )
    except ValidationError as exc:
        return _error(422, exc)
    except (InsufficientFunds, InsufficientHoldings) as exc:
        return _error(409, exc)
    except ExternalOrderRejected as exc:
        return _error(502, exc)

    _desk.record_history()
    return {"status": "ok", "transaction": serialization.transaction_to_dict(tx)}


# ── Signals & market ─────────────────────────────────────────────────────


@router.post("/signals")
async def post_signals(body: dict):
    """Compute technical signals for the candles in the body."""
    try:
        candles = parse_candles(body.get("candles") or [])
        signals = compute_signals(candles)
    except ValidationError as exc:
        return _error(422, exc)
    return signals.to_dict()


@router.get("/market/{symbol}")
async def get_market(symbol: str, fallback_price: float = Query(default=100.0)):
    if _desk is None:
        return _not_ready()
    try:
        snapshot = await _desk.market.analyze(symbol, fallback_price)
    except ValidationError as exc:
        return _error(422, exc)
    return snapshot.to_dict()


# ── Reconciliation ───────────────────────────────────────────────────────


@router.post("/reconcile")
async def post_reconcile():
    """Run one reconciliation refresh now and report what it did."""
    if _desk is None:
        return _not_ready()
    result = await _desk.coordinator.refresh()
    return {
        "applied": result.applied,
        "changed": result.changed,
        "refreshed": [b.value for b in result.refreshed],
        "failed": [b.value for b in result.failed],
        "skipped": [b.value for b in result.skipped],
    }


@router.get("/status")
async def get_status():
    if _desk is None:
        return _not_ready()
    return _desk.coordinator.get_status()


# ── Settings ─────────────────────────────────────────────────────────────


@router.get("/settings")
async def get_settings():
    if _desk is None:
        return _not_ready()
    return settings_to_dict(_desk.settings)


@router.post("/settings")
async def post_settings(body: dict):
    """Apply a partial settings update. Returns the full updated settings."""
    if _desk is None:
        return _not_ready()
    try:
        settings = _desk.update_settings(body)
    except ValidationError as exc:
        return JSONResponse(
            status_code=422,
            content={"status": "error", "errors": str(exc).split("; ")},
        )
    return {"status": "ok", **settings_to_dict(settings)}
