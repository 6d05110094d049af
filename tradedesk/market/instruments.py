"""Static instrument lists and asset-class inference."""

from typing import Iterable, Optional

from tradedesk.models.ledger import AssetType, Holding

STATIC_MCX_LIST: tuple[str, ...] = (
    "GOLD", "GOLDM", "SILVER", "SILVERM", "CRUDEOIL", "CRUDEOILM",
    "NATURALGAS", "COPPER", "ZINC", "ALUMINIUM", "LEAD", "NICKEL",
)

STATIC_FOREX_LIST: tuple[str, ...] = (
    "USDINR", "EURINR", "GBPINR", "JPYINR",
    "EURUSD", "GBPUSD", "USDJPY", "AUDUSD", "USDCHF", "USDCAD",
)

STATIC_CRYPTO_LIST: tuple[str, ...] = (
    "BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT", "XRPUSDT",
    "ADAUSDT", "DOGEUSDT", "MATICUSDT", "DOTUSDT", "LTCUSDT",
)


def infer_asset_type(
    symbol: str,
    holdings: Optional[Iterable[Holding]] = None,
) -> AssetType:
    """Asset class for *symbol*.

    An existing holding wins, then the static lists; anything else is a
    stock.
    """
    for h in holdings or ():
        if h.symbol == symbol:
            return h.asset_type
    upper = symbol.upper()
    if upper in STATIC_MCX_LIST:
        return AssetType.MCX
    if upper in STATIC_FOREX_LIST:
        return AssetType.FOREX
    if upper in STATIC_CRYPTO_LIST:
        return AssetType.CRYPTO
    return AssetType.STOCK
