"""Technical indicators — ATR, EMA, RSI, MACD, Stochastic, ADX, Bollinger, OBV.

Pure functions, no I/O. Each function raises ``ValueError`` when the
history is shorter than its lookback window; callers that must not fail
decide what a missing value means.
"""

import math

from tradedesk.signals.models import Candle


def calculate_atr(candles: list[Candle], period: int = 14) -> float:
    """Mean true range of the last *period* bars.

    TR = max(high − low, |high − prev close|, |low − prev close|), so the
    first bar only supplies a previous close and ``period + 1`` candles
    are needed.
    """
    if len(candles) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} candles for ATR({period}), "
            f"got {len(candles)}"
        )

    true_ranges = [
        max(
            cur.high - cur.low,
            abs(cur.high - prev.close),
            abs(cur.low - prev.close),
        )
        for prev, cur in zip(candles, candles[1:])
    ]
    return sum(true_ranges[-period:]) / period


def ema_series(values: list[float], period: int) -> list[float]:
    """EMA of a plain float series, seeded with the SMA of the first *period*.

    Returns a list the same length as *values*; entries before the seed
    are ``float('nan')``.
    """
    if len(values) < period:
        raise ValueError(
            f"Need at least {period} values for EMA({period}), got {len(values)}"
        )

    k = 2.0 / (period + 1)
    ema: list[float] = [float("nan")] * len(values)
    ema[period - 1] = sum(values[:period]) / period

    for i in range(period, len(values)):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


def calculate_ema(candles: list[Candle], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series of closes.

    Uses the standard EMA formula:
        ``EMA_today = close × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    Raises ``ValueError`` if fewer than *period* candles are provided.
    """
    if len(candles) < period:
        raise ValueError(
            f"Need at least {period} candles for EMA({period}), "
            f"got {len(candles)}"
        )
    return ema_series([c.close for c in candles], period)


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(candles: list[Candle], period: int = 14) -> list[float]:
    """RSI per bar with Wilder smoothing of average gain and loss.

    The first value sits on candle *period* and is seeded from the plain
    mean of the first *period* close-to-close moves; each later bar
    updates ``avg = (avg × (period − 1) + move) / period``.  A bar with
    no average loss reads 100, or 50 when there is no gain either.

    Output is aligned with *candles*; unset entries are ``nan``.
    """
    if len(candles) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} candles for RSI({period}), "
            f"got {len(candles)}"
        )

    closes = [c.close for c in candles]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [float("nan")] * len(candles)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 50.0 if ag == 0 else 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas[i] ends on candle i + 1
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    candles: list[Candle],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """Calculate MACD line, signal line and histogram.

    MACD      = EMA(close, *fast*) − EMA(close, *slow*)
    Signal    = EMA(MACD, *signal*)
    Histogram = MACD − Signal

    Requires at least ``slow + signal - 1`` candles.

    Returns ``(macd, signal, histogram)``, each the same length as
    *candles* with ``float('nan')`` before the values are ready.
    """
    min_candles = slow + signal - 1
    if len(candles) < min_candles:
        raise ValueError(
            f"Need at least {min_candles} candles for MACD({fast},{slow},{signal}), "
            f"got {len(candles)}"
        )

    n = len(candles)
    fast_ema = calculate_ema(candles, fast)
    slow_ema = calculate_ema(candles, slow)

    macd_line: list[float] = [float("nan")] * n
    for i in range(slow - 1, n):
        macd_line[i] = fast_ema[i] - slow_ema[i]

    signal_tail = ema_series(macd_line[slow - 1 :], signal)
    signal_line: list[float] = [float("nan")] * (slow - 1) + signal_tail

    histogram = [m - s for m, s in zip(macd_line, signal_line)]
    return macd_line, signal_line, histogram


# ── Stochastic ───────────────────────────────────────────────────────────


def calculate_stochastic(
    candles: list[Candle],
    k_period: int = 14,
    d_period: int = 3,
) -> tuple[list[float], list[float]]:
    """Calculate the stochastic oscillator %K and %D.

    %K = 100 × (close − lowest low) / (highest high − lowest low)
    over the last *k_period* bars; %D = SMA(%K, *d_period*).
    A bar whose range is zero reads 50.

    Requires at least ``k_period + d_period - 1`` candles.
    """
    min_candles = k_period + d_period - 1
    if len(candles) < min_candles:
        raise ValueError(
            f"Need at least {min_candles} candles for Stochastic({k_period},{d_period}), "
            f"got {len(candles)}"
        )

    n = len(candles)
    k_values: list[float] = [float("nan")] * n
    for i in range(k_period - 1, n):
        window = candles[i - k_period + 1 : i + 1]
        lowest = min(c.low for c in window)
        highest = max(c.high for c in window)
        span = highest - lowest
        if span == 0:
            k_values[i] = 50.0
        else:
            k_values[i] = 100.0 * (candles[i].close - lowest) / span

    d_values: list[float] = [float("nan")] * n
    for i in range(min_candles - 1, n):
        d_values[i] = sum(k_values[i - d_period + 1 : i + 1]) / d_period

    return k_values, d_values


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(candles: list[Candle], period: int = 14) -> list[float]:
    """Trend strength per bar (0–100), direction-agnostic.

    Directional movement (+DM/−DM) and true range are Wilder-smoothed
    over *period*; DX = 100 × |+DI − −DI| / (+DI + −DI) and the ADX is
    DX smoothed again the same way.  Zero range or zero DI sum reads 0.

    Needs ``2 × period + 1`` candles; earlier entries are ``nan``.
    """
    min_candles = 2 * period + 1
    if len(candles) < min_candles:
        raise ValueError(
            f"Need at least {min_candles} candles for ADX({period}), "
            f"got {len(candles)}"
        )

    n = len(candles)

    plus_dm_raw: list[float] = [0.0]
    minus_dm_raw: list[float] = [0.0]
    tr_raw: list[float] = [0.0]

    for i in range(1, n):
        high = candles[i].high
        low = candles[i].low
        prev_high = candles[i - 1].high
        prev_low = candles[i - 1].low
        prev_close = candles[i - 1].close

        up_move = high - prev_high
        down_move = prev_low - low

        pdm = up_move if (up_move > down_move and up_move > 0) else 0.0
        mdm = down_move if (down_move > up_move and down_move > 0) else 0.0

        tr = max(high - low, abs(high - prev_close), abs(low - prev_close))

        plus_dm_raw.append(pdm)
        minus_dm_raw.append(mdm)
        tr_raw.append(tr)

    # bar 0 has no predecessor, so smoothing starts from bars 1..period
    smoothed_plus_dm = sum(plus_dm_raw[1 : period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1 : period + 1])
    smoothed_tr = sum(tr_raw[1 : period + 1])

    dx_values: list[float] = []

    def _compute_dx(s_pdm: float, s_mdm: float, s_tr: float) -> float:
        if s_tr == 0:
            return 0.0
        plus_di = 100.0 * s_pdm / s_tr
        minus_di = 100.0 * s_mdm / s_tr
        di_sum = plus_di + minus_di
        if di_sum == 0:
            return 0.0
        return 100.0 * abs(plus_di - minus_di) / di_sum

    dx_values.append(_compute_dx(smoothed_plus_dm, smoothed_minus_dm, smoothed_tr))

    for i in range(period + 1, n):
        smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
        smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
        smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]
        dx_values.append(
            _compute_dx(smoothed_plus_dm, smoothed_minus_dm, smoothed_tr)
        )

    adx_result: list[float] = [float("nan")] * n

    # dx_values[j] is candle period + j
    adx_seed = sum(dx_values[:period]) / period
    adx_result[2 * period - 1] = adx_seed

    adx_prev = adx_seed
    for j in range(period, len(dx_values)):
        adx_val = (adx_prev * (period - 1) + dx_values[j]) / period
        adx_result[period + j] = adx_val
        adx_prev = adx_val

    return adx_result


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    candles: list[Candle],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Bands at *std_dev* population standard deviations around SMA(*period*).

    Returns ``(upper, middle, lower)`` aligned with *candles*, ``nan``
    until *period* closes are available.
    """
    if len(candles) < period:
        raise ValueError(
            f"Need at least {period} candles for Bollinger({period}), "
            f"got {len(candles)}"
        )

    closes = [c.close for c in candles]
    n = len(closes)

    upper: list[float] = [float("nan")] * n
    middle: list[float] = [float("nan")] * n
    lower: list[float] = [float("nan")] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        sma = sum(window) / period
        variance = sum((x - sma) ** 2 for x in window) / period
        sigma = math.sqrt(variance)

        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

    return upper, middle, lower


def percent_b(price: float, upper: float, lower: float) -> float:
    """Position of *price* inside the bands: 0 at lower, 1 at upper.

    Collapsed bands (upper == lower) read 0.5.
    """
    width = upper - lower
    if width == 0:
        return 0.5
    return (price - lower) / width


# ── OBV ──────────────────────────────────────────────────────────────────


def calculate_obv(candles: list[Candle]) -> list[float]:
    """Calculate cumulative On-Balance Volume.

    Starts at 0 on the first bar; each later bar adds its volume on an up
    close, subtracts it on a down close and carries on an unchanged close.
    """
    if not candles:
        raise ValueError("Need at least 1 candle for OBV, got 0")

    obv: list[float] = [0.0]
    for i in range(1, len(candles)):
        if candles[i].close > candles[i - 1].close:
            obv.append(obv[-1] + candles[i].volume)
        elif candles[i].close < candles[i - 1].close:
            obv.append(obv[-1] - candles[i].volume)
        else:
            obv.append(obv[-1])
    return obv
