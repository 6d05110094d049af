"""Signal engine — price history in, indicator bundle and signal label out.

``compute_signals`` validates the history at the boundary, then computes
every indicator for the last candle.  An indicator whose lookback window is
longer than the history takes a neutral value instead of failing, so a short
or synthetic history still yields a complete ``TechnicalSignals``.

Composite score (votes are summed):

    ======================================  =======
    Condition                               Vote
    ======================================  =======
    RSI ≤ 30 / RSI ≥ 70                     +2 / −2
    MACD histogram turns positive/negative  +2 / −2
    MACD histogram positive/negative        +1 / −1
    close > EMA9 > EMA21 / reverse          +1 / −1
    EMA9 crosses above/below EMA21          +1 / −1
    %B ≤ 0 / %B ≥ 1                         +1 / −1
    %K < 20 rising over %D / %K > 80 under  +1 / −1
    ADX ≥ 25 with EMA9 above/below EMA21    +1 / −1
    OBV and close both up/down over 5 bars  +0.5 / −0.5
    ======================================  =======

Signal strength bands: ``score ≥ 4`` STRONG_BUY, ``score ≥ 2`` BUY,
``score > −2`` HOLD, otherwise SELL.
"""

import math
from typing import Iterable, Sequence

from tradedesk.errors import ValidationError
from tradedesk.signals import indicators
from tradedesk.signals.models import (
    BollingerValues,
    Candle,
    EMAValues,
    MACDValues,
    SignalStrength,
    StochasticValues,
    TechnicalSignals,
)

STRONG_BUY_THRESHOLD = 4.0
BUY_THRESHOLD = 2.0
SELL_THRESHOLD = -2.0

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
STOCH_OVERSOLD = 20.0
STOCH_OVERBOUGHT = 80.0
ADX_TRENDING = 25.0
OBV_LOOKBACK = 5


def classify_score(score: float) -> SignalStrength:
    """Map a composite score onto its signal band (monotonic in *score*)."""
    if score >= STRONG_BUY_THRESHOLD:
        return SignalStrength.STRONG_BUY
    if score >= BUY_THRESHOLD:
        return SignalStrength.BUY
    if score > SELL_THRESHOLD:
        return SignalStrength.HOLD
    return SignalStrength.SELL


# ── Boundary validation ──────────────────────────────────────────────────


def validate_history(history: Sequence[Candle]) -> list[Candle]:
    """Reject histories the engine must never see.

    Raises ``ValidationError`` for an empty history, non-finite or
    non-positive prices, ``high < low``, negative volume, or timestamps that
    are not strictly increasing.
    """
    candles = list(history)
    if not candles:
        raise ValidationError("Price history must contain at least one candle")

    prev_time = None
    for i, c in enumerate(candles):
        for name in ("open", "high", "low", "close"):
            value = getattr(c, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValidationError(f"Candle {i}: {name} is not a finite number")
            if value <= 0:
                raise ValidationError(f"Candle {i}: {name} must be positive, got {value}")
        if c.high < c.low:
            raise ValidationError(f"Candle {i}: high {c.high} is below low {c.low}")
        if not math.isfinite(c.volume) or c.volume < 0:
            raise ValidationError(f"Candle {i}: volume must be non-negative")
        if prev_time is not None and c.time <= prev_time:
            raise ValidationError(
                f"Candle {i}: time {c.time} is not after previous candle {prev_time}"
            )
        prev_time = c.time
    return candles


def parse_candles(rows: Iterable[dict]) -> list[Candle]:
    """Build candles from JSON-like dicts, raising ``ValidationError`` on bad rows."""
    candles: list[Candle] = []
    for i, row in enumerate(rows):
        try:
            candles.append(
                Candle(
                    time=int(row["time"]),
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=int(row.get("volume", 0)),
                )
            )
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise ValidationError(f"Candle {i} is malformed: {exc}")
    return candles


# ── Engine ───────────────────────────────────────────────────────────────


def _last(series: list[float], default: float) -> float:
    value = series[-1] if series else default
    return default if math.isnan(value) else value


def _prev(series: list[float]) -> float:
    return series[-2] if len(series) >= 2 else float("nan")


def compute_signals(history: Sequence[Candle]) -> TechnicalSignals:
    """Compute the indicator bundle and composite signal for *history*.

    Deterministic and side-effect free.  Raises ``ValidationError`` only for
    malformed input; short input degrades to neutral indicator values.
    """
    candles = validate_history(history)
    price = candles[-1].close

    try:
        rsi = _last(indicators.calculate_rsi(candles), 50.0)
    except ValueError:
        rsi = 50.0

    try:
        macd_line, signal_line, hist = indicators.calculate_macd(candles)
        macd = MACDValues(
            macd=_last(macd_line, 0.0),
            signal=_last(signal_line, 0.0),
            histogram=_last(hist, 0.0),
        )
        prev_hist = _prev(hist)
    except ValueError:
        macd = MACDValues()
        prev_hist = float("nan")

    try:
        k_values, d_values = indicators.calculate_stochastic(candles)
        stochastic = StochasticValues(k=_last(k_values, 50.0), d=_last(d_values, 50.0))
    except ValueError:
        stochastic = StochasticValues()

    try:
        adx = _last(indicators.calculate_adx(candles), 0.0)
    except ValueError:
        adx = 0.0

    try:
        atr = indicators.calculate_atr(candles)
    except ValueError:
        atr = 0.0

    try:
        upper, middle, lower = indicators.calculate_bollinger(candles)
        up, mid, low = upper[-1], middle[-1], lower[-1]
        bollinger = BollingerValues(
            upper=up,
            middle=mid,
            lower=low,
            percent_b=indicators.percent_b(price, up, low),
        )
    except ValueError:
        bollinger = BollingerValues(upper=price, middle=price, lower=price)

    try:
        ema9_series = indicators.calculate_ema(candles, 9)
        ema9 = _last(ema9_series, price)
    except ValueError:
        ema9_series, ema9 = [], price
    try:
        ema21_series = indicators.calculate_ema(candles, 21)
        ema21 = _last(ema21_series, price)
    except ValueError:
        ema21_series, ema21 = [], price
    ema = EMAValues(ema9=ema9, ema21=ema21)

    obv_series = indicators.calculate_obv(candles)
    obv = obv_series[-1]

    score = 0.0
    active: set[str] = set()

    def vote(weight: float, label: str) -> None:
        nonlocal score
        score += weight
        active.add(label)

    if rsi <= RSI_OVERSOLD:
        vote(2.0, "RSI Oversold")
    elif rsi >= RSI_OVERBOUGHT:
        vote(-2.0, "RSI Overbought")

    if macd.histogram > 0:
        if not math.isnan(prev_hist) and prev_hist <= 0:
            vote(2.0, "MACD Bullish Crossover")
        else:
            vote(1.0, "MACD Bullish")
    elif macd.histogram < 0:
        if not math.isnan(prev_hist) and prev_hist >= 0:
            vote(-2.0, "MACD Bearish Crossover")
        else:
            vote(-1.0, "MACD Bearish")

    if price > ema9 > ema21:
        vote(1.0, "Price Above EMAs")
    elif price < ema9 < ema21:
        vote(-1.0, "Price Below EMAs")

    prev9, prev21 = _prev(ema9_series), _prev(ema21_series)
    if not (math.isnan(prev9) or math.isnan(prev21)):
        if prev9 <= prev21 and ema9 > ema21:
            vote(1.0, "EMA Golden Cross")
        elif prev9 >= prev21 and ema9 < ema21:
            vote(-1.0, "EMA Death Cross")

    if bollinger.upper > bollinger.lower:
        if bollinger.percent_b <= 0:
            vote(1.0, "Below Lower Band")
        elif bollinger.percent_b >= 1:
            vote(-1.0, "Above Upper Band")

    if stochastic.k < STOCH_OVERSOLD and stochastic.k > stochastic.d:
        vote(1.0, "Stochastic Oversold Turn")
    elif stochastic.k > STOCH_OVERBOUGHT and stochastic.k < stochastic.d:
        vote(-1.0, "Stochastic Overbought Turn")

    if adx >= ADX_TRENDING:
        if ema9 > ema21:
            vote(1.0, "Strong Uptrend")
        elif ema9 < ema21:
            vote(-1.0, "Strong Downtrend")

    if len(candles) > OBV_LOOKBACK:
        obv_change = obv - obv_series[-1 - OBV_LOOKBACK]
        price_change = price - candles[-1 - OBV_LOOKBACK].close
        if obv_change > 0 and price_change > 0:
            vote(0.5, "OBV Accumulation")
        elif obv_change < 0 and price_change < 0:
            vote(-0.5, "OBV Distribution")

    return TechnicalSignals(
        rsi=rsi,
        macd=macd,
        stochastic=stochastic,
        adx=adx,
        atr=atr,
        bollinger=bollinger,
        ema=ema,
        obv=obv,
        score=score,
        active_signals=frozenset(active),
        signal_strength=classify_score(score),
    )
