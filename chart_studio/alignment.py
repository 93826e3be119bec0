#!/usr/bin/env python3
"""Series Aligner - Maps unaligned indicator output back onto bar timestamps."""

from typing import Dict, Sequence, Union

import pandas as pd

from .models import PricePoint, MACDResult, BollingerBandsResult


TimeSource = Union[pd.DataFrame, pd.Index, Sequence[PricePoint], Sequence[int]]


class SeriesAligner:
    """
    Assigns absolute times to indicator output using the warm-up offset.

    For an input of length n and an output of length m, element i receives
    time[n - m + i]. The same rule is used for every indicator; MACD arrays are
    aligned independently against the full price sequence.
    """

    @staticmethod
    def bar_times(source: TimeSource) -> pd.Index:
        """Ordered bar times of a price sequence."""
        if isinstance(source, pd.DataFrame):
            return pd.Index(source.index, name='time')
        if isinstance(source, pd.Index):
            return source.rename('time')
        return pd.Index([p.time if isinstance(p, PricePoint) else int(p) for p in source],
                        name='time', dtype='int64')

    @staticmethod
    def offset(input_length: int, output_length: int) -> int:
        """Alignment offset: input length minus output length."""
        if output_length > input_length:
            raise ValueError(f"Indicator output ({output_length}) is longer than its input ({input_length})")
        return input_length - output_length

    @classmethod
    def align(cls, source: TimeSource, values: pd.Series) -> pd.Series:
        """Return `values` indexed by the trailing bar times it belongs to."""
        times = cls.bar_times(source)
        start = cls.offset(len(times), len(values))
        return pd.Series(values.to_numpy(dtype=float), index=times[start:], name=values.name, dtype=float)

    @classmethod
    def align_bands(cls, source: TimeSource, bands: BollingerBandsResult) -> pd.DataFrame:
        """Bollinger output as a frame with upper/middle/lower columns."""
        return pd.DataFrame({
            'upper': cls.align(source, bands.upper),
            'middle': cls.align(source, bands.middle),
            'lower': cls.align(source, bands.lower),
        }, columns=['upper', 'middle', 'lower'])

    @classmethod
    def align_macd(cls, source: TimeSource, result: MACDResult) -> Dict[str, pd.Series]:
        """Each MACD array keeps its own offset against the full input."""
        return {
            'macd': cls.align(source, result.macd),
            'signal': cls.align(source, result.signal),
            'histogram': cls.align(source, result.histogram),
        }

    @staticmethod
    def to_points(series: pd.Series) -> list:
        """Time-keyed `{time, value}` records for a scalar series."""
        return [{'time': int(t), 'value': float(v)} for t, v in series.items()]
