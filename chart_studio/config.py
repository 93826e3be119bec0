"""
Unified Chart Engine Configuration

This is the single source of truth for indicator defaults, timeframe
lookbacks, backend fetch settings and event marker thresholds.
"""

import os
from typing import Dict, Any, Optional


class Config:
    """
    Main configuration class containing all chart engine parameters.
    """

    # ===========================================
    # TECHNICAL INDICATORS
    # ===========================================

    INDICATORS = {
        'sma_period': 20,          # Simple moving average window
        'ema_period': 20,          # Exponential moving average window
        'rsi_period': 14,          # Wilder RSI period
        'macd_fast': 12,           # MACD fast EMA
        'macd_slow': 26,           # MACD slow EMA
        'macd_signal': 9,          # MACD signal EMA
        'bollinger_period': 20,    # Bollinger middle band window
        'bollinger_std': 2.0       # Bollinger band width in standard deviations
    }

    # ===========================================
    # TIMEFRAMES
    # ===========================================

    # Lookback window by timeframe (in days)
    TIMEFRAMES = {
        '1m': 0.5,
        '5m': 0.5,
        '15m': 1,
        '1h': 7,
        '1d': 30,
        'default': 0.5
    }

    # ===========================================
    # BACKEND FETCH
    # ===========================================

    FETCH = {
        'base_url': 'http://127.0.0.1:8787',   # Backend command endpoint
        'timeout_seconds': 10.0,               # Per-request timeout
        'show_events': True                    # Load temporal events by default
    }

    # ===========================================
    # EVENT MARKERS
    # ===========================================

    EVENTS = {
        'positive_sentiment': 0.2,     # Sentiment above this is positive
        'negative_sentiment': -0.2,    # Sentiment below this is negative
        'high_severity': 0.7           # Severity above this gets an arrow marker
    }

    # ===========================================
    # HELPER METHODS
    # ===========================================

    @classmethod
    def default_period(cls, indicator_type: str) -> int:
        """
        Default period for an indicator type.

        For MACD the period is the fast EMA length.
        """
        defaults = {
            'sma': cls.INDICATORS['sma_period'],
            'ema': cls.INDICATORS['ema_period'],
            'rsi': cls.INDICATORS['rsi_period'],
            'macd': cls.INDICATORS['macd_fast'],
            'bollinger': cls.INDICATORS['bollinger_period'],
        }
        if indicator_type not in defaults:
            raise ValueError(f"Unknown indicator type '{indicator_type}'. Must be one of: {sorted(defaults)}")
        return defaults[indicator_type]

    @classmethod
    def lookback_days(cls, timeframe: str) -> float:
        """Lookback window in days for a chart timeframe."""
        return cls.TIMEFRAMES.get(timeframe, cls.TIMEFRAMES['default'])

    @classmethod
    def lookback_seconds(cls, timeframe: str) -> int:
        """Lookback window in seconds for a chart timeframe."""
        return int(cls.lookback_days(timeframe) * 24 * 3600)

    @classmethod
    def get_fetch_config(cls) -> Dict[str, Any]:
        """Get backend fetch configuration."""
        return cls.FETCH.copy()

    @classmethod
    def get_event_config(cls) -> Dict[str, Any]:
        """Get event marker thresholds."""
        return cls.EVENTS.copy()

    @classmethod
    def load_from_env(cls, environ: Optional[Dict[str, str]] = None) -> None:
        """
        Apply environment overrides to the fetch section.

        Args:
            environ: Mapping to read from (defaults to os.environ)
        """
        env = os.environ if environ is None else environ

        base_url = env.get('CHART_BACKEND_URL')
        if base_url:
            cls.FETCH['base_url'] = base_url.rstrip('/')

        timeout = env.get('CHART_FETCH_TIMEOUT')
        if timeout:
            try:
                cls.FETCH['timeout_seconds'] = float(timeout)
            except ValueError:
                raise ValueError(f"CHART_FETCH_TIMEOUT must be a number, got '{timeout}'")

    @classmethod
    def update_config(cls, **kwargs) -> None:
        """
        Update configuration parameters dynamically.

        Args:
            **kwargs: Configuration parameters to update
        """
        for key, value in kwargs.items():
            if hasattr(cls, key.upper()):
                section = getattr(cls, key.upper())
                if isinstance(section, dict) and isinstance(value, dict):
                    section.update(value)
                else:
                    setattr(cls, key.upper(), value)

    @classmethod
    def get_all_config(cls) -> Dict[str, Any]:
        """Get all configuration as a single dictionary."""
        return {
            'indicators': cls.INDICATORS,
            'timeframes': cls.TIMEFRAMES,
            'fetch': cls.FETCH,
            'events': cls.EVENTS
        }


# Create a single instance for easy import
CONFIG = Config()
