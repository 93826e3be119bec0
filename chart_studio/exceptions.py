"""
Custom exception classes for the chart engine.

Only failures that must reach the UI boundary are exceptions. Insufficient
indicator history and single comparison-ticker failures are handled locally.
"""

from typing import Optional, Dict, Any


class ChartEngineError(Exception):
    """Base exception for chart engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class FetchError(ChartEngineError):
    """Raised by a market data source when a backend request fails or times out."""


class DataUnavailableError(ChartEngineError):
    """
    Primary price data could not be loaded.

    Raised when the price fetch fails, times out or returns no bars. The chart
    shows no candles while this error is the current state.
    """


class ExportError(ChartEngineError):
    """Raised when the rendering surface cannot produce an image."""
