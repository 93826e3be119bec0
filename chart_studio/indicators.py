from typing import Sequence, Union

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from .models import PricePoint, MACDResult, BollingerBandsResult


PriceInput = Union[pd.DataFrame, Sequence[PricePoint]]


def _closes(data: PriceInput) -> np.ndarray:
    """Extract close prices as a read-only float array."""
    if isinstance(data, pd.DataFrame):
        if 'close' not in data.columns:
            raise ValueError("Column 'close' not found in DataFrame")
        closes = data['close'].to_numpy(dtype=float, copy=True)
    else:
        closes = np.array([p.close for p in data], dtype=float)
    closes.setflags(write=False)
    return closes


def _check_period(name: str, period: int):
    if int(period) != period or period < 1:
        raise ValueError(f"{name} must be a positive integer, got {period}")


def _ema_values(values: np.ndarray, period: int) -> np.ndarray:
    """EMA seeded with the simple mean of the first `period` values."""
    if len(values) < period:
        return np.empty(0, dtype=float)

    multiplier = 2.0 / (period + 1)
    ema = np.empty(len(values) - period + 1, dtype=float)
    ema[0] = values[:period].mean()
    for i in range(1, len(ema)):
        ema[i] = (values[period - 1 + i] - ema[i - 1]) * multiplier + ema[i - 1]
    return ema


class Indicators:
    """
    Technical indicators over an ordered OHLCV sequence.

    Every method returns values for complete windows only, so output length is
    `n - warm_up + 1` (empty when `n < warm_up`). Outputs are not time-indexed;
    map them back onto bar times with `SeriesAligner`.
    """

    @staticmethod
    def sma(data: PriceInput, period: int = 20) -> pd.Series:
        """Arithmetic mean of close over each trailing window of `period` bars."""
        _check_period('Period', period)
        closes = _closes(data)
        if len(closes) < period:
            return pd.Series(dtype=float)
        return pd.Series(sliding_window_view(closes, period).mean(axis=1))

    @staticmethod
    def ema(data: PriceInput, period: int = 20) -> pd.Series:
        """
        Exponential moving average.

        The first output is the simple mean of the first `period` closes; each
        following bar uses multiplier 2 / (period + 1).
        """
        _check_period('Period', period)
        return pd.Series(_ema_values(_closes(data), period))

    @staticmethod
    def rsi(data: PriceInput, period: int = 14) -> pd.Series:
        """
        Calculate RSI using Wilder's smoothing method.

        Average gain and loss are seeded with the mean over the first `period`
        close differences, then smoothed with
        new_avg = (prev_avg * (period - 1) + current_value) / period.
        RSI is 100 whenever the average loss is zero, flat windows included.

        Args:
            data: DataFrame with a 'close' column or a sequence of PricePoint
            period: RSI period (default: 14)

        Returns:
            pd.Series: RSI values (0-100), length n - period
        """
        _check_period('Period', period)
        closes = _closes(data)
        if len(closes) < period + 1:
            return pd.Series(dtype=float)

        delta = np.diff(closes)
        gains = np.where(delta > 0, delta, 0.0)
        losses = np.where(delta < 0, -delta, 0.0)

        avg_gain = gains[:period].mean()
        avg_loss = losses[:period].mean()

        def _value(gain: float, loss: float) -> float:
            if loss == 0:
                return 100.0
            return 100.0 - 100.0 / (1.0 + gain / loss)

        rsi = [_value(avg_gain, avg_loss)]
        for i in range(period, len(delta)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period
            rsi.append(_value(avg_gain, avg_loss))

        return pd.Series(rsi, dtype=float)

    @staticmethod
    def macd(data: PriceInput, fast_period: int = 12, slow_period: int = 26,
             signal_period: int = 9) -> MACDResult:
        """
        Moving Average Convergence Divergence.

        macd = EMA(fast) - EMA(slow), aligned on the shorter slow EMA.
        signal = EMA(macd, signal_period), seeded by the mean of the first
        `signal_period` MACD values. histogram = macd - signal, aligned on the
        signal line. All three arrays are empty when fewer than
        slow_period + signal_period bars are available.
        """
        _check_period('Fast period', fast_period)
        _check_period('Slow period', slow_period)
        _check_period('Signal period', signal_period)
        if fast_period >= slow_period:
            raise ValueError(f"Fast period ({fast_period}) must be shorter than slow period ({slow_period})")

        closes = _closes(data)
        if len(closes) < slow_period + signal_period:
            return MACDResult()

        fast_ema = _ema_values(closes, fast_period)
        slow_ema = _ema_values(closes, slow_period)

        offset = slow_period - fast_period
        macd_line = fast_ema[offset:offset + len(slow_ema)] - slow_ema

        signal_line = _ema_values(macd_line, signal_period)
        signal_offset = len(macd_line) - len(signal_line)
        histogram = macd_line[signal_offset:] - signal_line

        return MACDResult(
            macd=pd.Series(macd_line),
            signal=pd.Series(signal_line),
            histogram=pd.Series(histogram)
        )

    @staticmethod
    def bollinger_bands(data: PriceInput, period: int = 20, num_std: float = 2.0) -> BollingerBandsResult:
        """
        Bollinger Bands around the SMA using the population standard
        deviation of each window.
        """
        _check_period('Period', period)
        closes = _closes(data)
        if len(closes) < period:
            return BollingerBandsResult()

        windows = sliding_window_view(closes, period)
        middle = windows.mean(axis=1)
        sd = np.sqrt(((windows - middle[:, None]) ** 2).mean(axis=1))

        return BollingerBandsResult(
            upper=pd.Series(middle + num_std * sd),
            middle=pd.Series(middle),
            lower=pd.Series(middle - num_std * sd)
        )
