"""Price-history lookup — async httpx client for the market-data gateway.

    GET {base}/candles/{symbol}?count=N -> {"candles": [{"time", "open",
                                            "high", "low", "close",
                                            "volume"?}, ...]}
"""

import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from tradedesk.errors import ExternalFetchError, ValidationError
from tradedesk.signals.engine import parse_candles
from tradedesk.signals.models import Candle

logger = logging.getLogger("tradedesk.market")


@runtime_checkable
class PriceLookup(Protocol):
    """Source of recent candles for a symbol."""

    async def fetch_history(self, symbol: str, count: int = 50) -> Optional[list[Candle]]:
        """Return candles oldest-first, or ``None`` when the symbol is unknown.

        May raise ``ExternalFetchError``.
        """
        ...


class HttpPriceLookup:
    """Fetches candles from ``MARKET_DATA_URL``.

    An empty *base_url* means no data source is configured: every lookup
    returns ``None`` and callers fall back to synthetic history.
    """

    def __init__(self, base_url: str, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch_history(self, symbol: str, count: int = 50) -> Optional[list[Candle]]:
        if not self._base_url:
            return None

        url = f"{self._base_url}/candles/{symbol}"
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.get(url, params={"count": count}, timeout=self._timeout)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            rows = resp.json().get("candles", [])
            return parse_candles(rows)
        except (httpx.HTTPError, AttributeError, ValidationError, ValueError) as exc:
            raise ExternalFetchError("market-data", f"{symbol}: {exc}")
