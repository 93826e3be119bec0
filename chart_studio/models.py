#!/usr/bin/env python3
"""
Chart Data Types

Defines price bars, indicator configurations, indicator outputs and temporal
event records exchanged between the calculator, the aligner and the
compositor.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple

import pandas as pd

from .config import Config


class IndicatorType(Enum):
    """Supported technical indicators"""
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER = "bollinger"


class SeriesKind(Enum):
    """Visual series kinds understood by a rendering surface"""
    CANDLESTICK = "candlestick"
    HISTOGRAM = "histogram"
    LINE = "line"


@dataclass(frozen=True)
class PricePoint:
    """
    One OHLCV bar. `time` is epoch seconds.
    """
    time: int
    close: float
    high: float
    low: float
    volume: float = 0.0
    open: Optional[float] = None

    @property
    def open_price(self) -> float:
        """Open price, falling back to close when the backend omits it."""
        return self.close if self.open is None else self.open

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PricePoint':
        """Build a bar from a backend record."""
        return cls(
            time=int(data['time']),
            close=float(data['close']),
            high=float(data['high']),
            low=float(data['low']),
            volume=float(data['volume']) if pd.notna(data.get('volume')) else 0.0,
            open=float(data['open']) if pd.notna(data.get('open')) else None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'time': self.time,
            'open': self.open_price,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume
        }


@dataclass(frozen=True)
class TemporalEventMarker:
    """
    Discrete event attached to a ticker (news, filings, macro releases).
    Read-only; never transformed besides being styled as a chart marker.
    """
    id: int
    title: str
    timestamp: int
    event_type: str
    severity: float
    sentiment_score: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TemporalEventMarker':
        """Build an event from a backend record (camelCase or snake_case keys)."""
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            timestamp=int(data['timestamp']),
            event_type=data.get('eventType', data.get('event_type', '')),
            severity=float(data.get('severity', 0.0)),
            sentiment_score=float(data.get('sentimentScore', data.get('sentiment_score', 0.0)))
        )


@dataclass
class IndicatorConfig:
    """
    User-facing indicator overlay configuration.

    Two configs with the same `key` share one visual series; `visible` and
    `color` are display hints only.
    """
    type: IndicatorType
    period: Optional[int] = None
    color: Optional[str] = None
    visible: bool = True

    def __post_init__(self):
        if not isinstance(self.type, IndicatorType):
            self.type = IndicatorType(str(self.type).lower())
        if self.period is not None and (int(self.period) != self.period or int(self.period) < 1):
            raise ValueError(f"Period must be a positive integer, got {self.period}")
        if self.type == IndicatorType.MACD and self.resolved_period >= Config.INDICATORS['macd_slow']:
            raise ValueError(f"MACD fast period must be below {Config.INDICATORS['macd_slow']}, got {self.period}")

    @property
    def resolved_period(self) -> int:
        if self.period is None:
            return Config.default_period(self.type.value)
        return int(self.period)

    @property
    def key(self) -> Tuple[str, int]:
        """Series identity: (indicator type, period)."""
        return (self.type.value, self.resolved_period)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IndicatorConfig':
        return cls(
            type=IndicatorType(str(data['type']).lower()),
            period=data.get('period'),
            color=data.get('color'),
            visible=data.get('visible', True)
        )

    @classmethod
    def parse(cls, text: str) -> 'IndicatorConfig':
        """
        Parse a compact `type[:period]` string, e.g. 'sma:50' or 'rsi'.
        """
        name, _, period = text.partition(':')
        return cls(type=IndicatorType(name.strip().lower()),
                   period=int(period) if period else None)


@dataclass
class MACDResult:
    """Unaligned MACD arrays; each keeps its own warm-up length."""
    macd: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))
    signal: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))
    histogram: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))

    def is_empty(self) -> bool:
        return self.macd.empty


@dataclass
class BollingerBandsResult:
    """Unaligned Bollinger arrays of equal length."""
    upper: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))
    middle: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))
    lower: pd.Series = field(default_factory=lambda: pd.Series(dtype=float))

    def is_empty(self) -> bool:
        return self.middle.empty


@dataclass
class ChartMarker:
    """Rendering form of a temporal event on the price series."""
    id: str
    time: int
    position: str
    color: str
    shape: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'time': self.time,
            'position': self.position,
            'color': self.color,
            'shape': self.shape,
            'text': self.text
        }


def points_to_frame(points: List[PricePoint]) -> pd.DataFrame:
    """
    Convert bars to an OHLCV DataFrame indexed by epoch-second `time`.
    """
    if not points:
        return pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume'],
                            index=pd.Index([], name='time', dtype='int64'))
    frame = pd.DataFrame([p.to_dict() for p in points]).set_index('time')
    return frame[['open', 'high', 'low', 'close', 'volume']]
