"""Signal engine data models — candles in, indicator bundle out."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar."""

    time: int  # epoch milliseconds
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


class SignalStrength(str, Enum):
    """Coarse signal label, ordered SELL < HOLD < BUY < STRONG_BUY."""

    SELL = "SELL"
    HOLD = "HOLD"
    BUY = "BUY"
    STRONG_BUY = "STRONG_BUY"

    @property
    def rank(self) -> int:
        return _STRENGTH_ORDER.index(self)


_STRENGTH_ORDER = [
    SignalStrength.SELL,
    SignalStrength.HOLD,
    SignalStrength.BUY,
    SignalStrength.STRONG_BUY,
]


@dataclass(frozen=True)
class MACDValues:
    macd: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


@dataclass(frozen=True)
class StochasticValues:
    k: float = 50.0
    d: float = 50.0


@dataclass(frozen=True)
class BollingerValues:
    upper: float
    middle: float
    lower: float
    percent_b: float = 0.5


@dataclass(frozen=True)
class EMAValues:
    ema9: float
    ema21: float


@dataclass(frozen=True)
class TechnicalSignals:
    """Indicator snapshot for the last candle of a history."""

    rsi: float
    macd: MACDValues
    stochastic: StochasticValues
    adx: float
    atr: float
    bollinger: BollingerValues
    ema: EMAValues
    obv: float
    score: float
    active_signals: frozenset[str] = field(default_factory=frozenset)
    signal_strength: SignalStrength = SignalStrength.HOLD

    def to_dict(self) -> dict:
        return {
            "rsi": self.rsi,
            "macd": {
                "macd": self.macd.macd,
                "signal": self.macd.signal,
                "histogram": self.macd.histogram,
            },
            "stochastic": {"k": self.stochastic.k, "d": self.stochastic.d},
            "adx": self.adx,
            "atr": self.atr,
            "bollinger": {
                "upper": self.bollinger.upper,
                "middle": self.bollinger.middle,
                "lower": self.bollinger.lower,
                "percentB": self.bollinger.percent_b,
            },
            "ema": {"ema9": self.ema.ema9, "ema21": self.ema.ema21},
            "obv": self.obv,
            "score": self.score,
            "activeSignals": sorted(self.active_signals),
            "signalStrength": self.signal_strength.value,
        }
