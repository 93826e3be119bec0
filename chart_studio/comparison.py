#!/usr/bin/env python3
"""Comparison Normalizer - Rescales an auxiliary ticker to percent change from its first bar."""

import logging
from typing import Sequence

import pandas as pd

from .models import PricePoint

logger = logging.getLogger(__name__)


def normalize_comparison(points: Sequence[PricePoint], ticker: str = '') -> pd.Series:
    """
    Percent deviation of each close from the ticker's first close.

    Each comparison ticker is normalized on its own; the primary ticker's price
    plays no part. An empty sequence, or a first close of zero, yields an empty
    series so the overlay is simply absent.

    Args:
        points: Ordered bars for the comparison ticker
        ticker: Symbol, used as the series name and in log messages

    Returns:
        pd.Series of percent values indexed by bar time
    """
    if not points:
        logger.warning(f"No comparison data for {ticker or 'ticker'}; overlay skipped")
        return pd.Series(dtype=float, name=ticker, index=pd.Index([], name='time', dtype='int64'))

    base = float(points[0].close)
    if base == 0:
        logger.warning(f"First close for {ticker or 'ticker'} is zero; cannot normalize comparison")
        return pd.Series(dtype=float, name=ticker, index=pd.Index([], name='time', dtype='int64'))

    times = pd.Index([p.time for p in points], name='time', dtype='int64')
    closes = pd.Series([p.close for p in points], index=times, dtype=float)
    return ((closes - base) / base * 100).rename(ticker)
