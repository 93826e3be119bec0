#!/usr/bin/env python3
"""Chart Data Preparer - Normalizes fetched bars into the frames the surface draws."""

import logging
import pandas as pd
from typing import Sequence

from ..models import PricePoint, points_to_frame

logger = logging.getLogger(__name__)


class ChartDataPreparer:
    """Prepares and formats price data for chart display."""

    def __init__(self, chart_config):
        self.chart_config = chart_config

    def prepare_price_frame(self, points: Sequence[PricePoint]) -> pd.DataFrame:
        """
        Build the OHLCV frame indexed by bar time.

        Bars are sorted by time; duplicate timestamps keep the last bar.
        """
        frame = points_to_frame(list(points))
        if frame.empty:
            return frame

        if not frame.index.is_monotonic_increasing:
            logger.warning("Price bars arrived out of order; sorting by time")
            frame = frame.sort_index(kind='stable')

        if frame.index.has_duplicates:
            duplicates = int(frame.index.duplicated().sum())
            logger.warning(f"Dropping {duplicates} duplicate bar timestamp(s)")
            frame = frame[~frame.index.duplicated(keep='last')]

        return frame

    @staticmethod
    def candle_data(frame: pd.DataFrame) -> pd.DataFrame:
        """OHLC(V) columns for the candlestick series."""
        return frame[['open', 'high', 'low', 'close', 'volume']].copy()

    def volume_data(self, frame: pd.DataFrame) -> pd.DataFrame:
        """Volume bars colored by candle direction."""
        theme = self.chart_config.get_theme_colors()
        up = frame['close'] >= frame['open']
        return pd.DataFrame({
            'value': frame['volume'].astype(float),
            'color': up.map({True: theme['volume_up'], False: theme['volume_down']})
        }, index=frame.index)

    @staticmethod
    def clean_symbol_name(symbol: str) -> str:
        """Trim and upper-case a ticker symbol."""
        return (symbol or '').strip().upper()

    @staticmethod
    def validate_dataframe(df: pd.DataFrame) -> bool:
        """Validate DataFrame has required format for charting."""
        if df is None or df.empty:
            logger.error("DataFrame is None or empty")
            return False

        required_columns = {'open', 'high', 'low', 'close'}
        if not required_columns.issubset(df.columns):
            missing = required_columns - set(df.columns)
            logger.error(f"Missing columns: {missing}")
            return False

        if 'volume' in df.columns and (df['volume'] < 0).any():
            logger.error("Negative volume values")
            return False

        return True
