"""REST broker adapters — async httpx clients for external brokers.

Every external broker is reached through a gateway exposing the same JSON
contract; variants differ only in credentials, auth headers and the asset
class their holdings default to.

    GET  {base}/v1/holdings -> {"holdings": [{"symbol", "quantity",
                                 "avgCost", "assetType"?}]}
    GET  {base}/v1/balance  -> {"balance": number}
    POST {base}/v1/orders   <- {"symbol", "quantity", "side", "price",
                                "assetType"}
                            -> {"status": "success" | ..., "message"?}
"""

import asyncio
import logging
import math
from typing import Optional

import httpx

from tradedesk.broker.base import OrderResult
from tradedesk.errors import ExternalFetchError
from tradedesk.models.ledger import AssetType, BrokerId, Holding, TradeSide

logger = logging.getLogger("tradedesk.broker")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


class RestBrokerAdapter:
    """Async client for one external broker.

    Subclasses set ``broker_id``, ``credential_keys``, ``default_asset_type``
    and implement :meth:`_auth_headers`.

    Args:
        base_url: Gateway base URL, e.g. ``"https://api.dhan.co"``.
        credentials: Map of credential variable name to value.
        timeout: Per-request timeout in seconds.
    """

    broker_id: BrokerId
    credential_keys: tuple[str, ...] = ()
    default_asset_type: AssetType = AssetType.STOCK

    def __init__(
        self,
        base_url: str,
        credentials: Optional[dict[str, str]] = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = dict(credentials or {})
        self._timeout = timeout
        self.retry_base_delay = _RETRY_BASE_DELAY

    def has_credentials(self) -> bool:
        return bool(self._base_url) and all(
            self._credentials.get(k) for k in self.credential_keys
        )

    def _auth_headers(self) -> dict[str, str]:
        raise NotImplementedError

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable errors are raised immediately.
        """
        url = f"{self._base_url}{path}"
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=headers,
                        timeout=self._timeout,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "%s %s %s returned %d, retry %d/%d in %.1fs",
                        self.broker_id.value, method.upper(), path, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "%s %s %s transport error (%s), retry %d/%d in %.1fs",
                    self.broker_id.value, method.upper(), path, exc,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        # All retries exhausted
        raise last_exc  # type: ignore[misc]

    # ── Holdings & balance ───────────────────────────────────────────────

    async def fetch_holdings(self) -> list[Holding]:
        """Fetch and normalise the broker's holdings.

        Raises ``ExternalFetchError`` on transport, HTTP or payload errors.
        """
        try:
            resp = await self._request_with_retry("get", "/v1/holdings")
            rows = resp.json().get("holdings", [])
            return [self._parse_holding(row) for row in rows]
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as exc:
            raise ExternalFetchError(self.broker_id.value, f"holdings fetch failed: {exc}")

    async def fetch_balance(self) -> float:
        """Fetch the broker's available cash.

        Raises ``ExternalFetchError`` on transport, HTTP or payload errors.
        """
        try:
            resp = await self._request_with_retry("get", "/v1/balance")
            balance = float(resp.json()["balance"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            raise ExternalFetchError(self.broker_id.value, f"balance fetch failed: {exc}")
        if not math.isfinite(balance):
            raise ExternalFetchError(self.broker_id.value, "balance is not finite")
        return balance

    def _parse_holding(self, row: dict) -> Holding:
        quantity = float(row["quantity"])
        avg_cost = float(row["avgCost"])
        if not (math.isfinite(quantity) and math.isfinite(avg_cost)):
            raise ValueError(f"non-finite holding values for {row.get('symbol')}")
        asset = row.get("assetType")
        asset_type = AssetType(asset) if asset else self.default_asset_type
        return Holding(
            symbol=str(row["symbol"]),
            asset_type=asset_type,
            quantity=quantity,
            avg_cost=avg_cost,
            total_cost=float(row.get("totalCost", avg_cost * quantity)),
            broker=self.broker_id,
        )

    # ── Orders ───────────────────────────────────────────────────────────

    async def place_order(
        self,
        symbol: str,
        quantity: float,
        side: TradeSide,
        price: float,
        asset_type: AssetType,
    ) -> OrderResult:
        """Submit an order.  Transport and HTTP failures become a failed result."""
        body = {
            "symbol": symbol,
            "quantity": quantity,
            "side": side.value,
            "price": price,
            "assetType": asset_type.value,
        }
        try:
            resp = await self._request_with_retry("post", "/v1/orders", json=body)
            data = resp.json()
            if not isinstance(data, dict):
                raise ValueError(f"unexpected order response: {data!r}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("%s order %s %s failed: %s", self.broker_id.value, side.value, symbol, exc)
            return OrderResult(success=False, message=str(exc))

        success = str(data.get("status", "")).lower() == "success"
        return OrderResult(success=success, message=data.get("message"))


# ── Variants ─────────────────────────────────────────────────────────────


class DhanAdapter(RestBrokerAdapter):
    broker_id = BrokerId.DHAN
    credential_keys = ("DHAN_CLIENT_ID", "DHAN_ACCESS_TOKEN")
    default_asset_type = AssetType.STOCK

    def _auth_headers(self) -> dict[str, str]:
        return {
            "client-id": self._credentials.get("DHAN_CLIENT_ID", ""),
            "access-token": self._credentials.get("DHAN_ACCESS_TOKEN", ""),
        }


class ShoonyaAdapter(RestBrokerAdapter):
    broker_id = BrokerId.SHOONYA
    credential_keys = ("SHOONYA_USER_ID", "SHOONYA_PASSWORD")
    default_asset_type = AssetType.STOCK

    def _auth_headers(self) -> dict[str, str]:
        return {
            "X-User-Id": self._credentials.get("SHOONYA_USER_ID", ""),
            "Authorization": f"Bearer {self._credentials.get('SHOONYA_PASSWORD', '')}",
        }


class BinanceAdapter(RestBrokerAdapter):
    broker_id = BrokerId.BINANCE
    credential_keys = ("BINANCE_API_KEY",)
    default_asset_type = AssetType.CRYPTO

    def _auth_headers(self) -> dict[str, str]:
        return {"X-MBX-APIKEY": self._credentials.get("BINANCE_API_KEY", "")}


class CoinDCXAdapter(RestBrokerAdapter):
    broker_id = BrokerId.COINDCX
    credential_keys = ("COINDCX_API_KEY",)
    default_asset_type = AssetType.CRYPTO

    def _auth_headers(self) -> dict[str, str]:
        return {"X-AUTH-APIKEY": self._credentials.get("COINDCX_API_KEY", "")}


class CoinSwitchAdapter(RestBrokerAdapter):
    broker_id = BrokerId.COINSWITCH
    credential_keys = ("COINSWITCH_API_KEY",)
    default_asset_type = AssetType.CRYPTO

    def _auth_headers(self) -> dict[str, str]:
        return {"X-AUTH-APIKEY": self._credentials.get("COINSWITCH_API_KEY", "")}
