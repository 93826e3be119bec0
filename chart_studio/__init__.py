"""
Chart Studio Engine - Core Components

This package contains the technical indicator calculations, series alignment
and chart composition used by the Chart Studio screen.
"""

from .config import Config
from .models import PricePoint, IndicatorConfig, IndicatorType, TemporalEventMarker
from .indicators import Indicators
from .alignment import SeriesAligner
from .comparison import normalize_comparison
from .pipeline import build_plan, compute_indicator, RenderPlan
from .controller import ChartController, LoadResult, Notice
from .exceptions import ChartEngineError, DataUnavailableError, ExportError, FetchError

__all__ = [
    'Config',
    'PricePoint',
    'IndicatorConfig',
    'IndicatorType',
    'TemporalEventMarker',
    'Indicators',
    'SeriesAligner',
    'normalize_comparison',
    'build_plan',
    'compute_indicator',
    'RenderPlan',
    'ChartController',
    'LoadResult',
    'Notice',
    'ChartEngineError',
    'DataUnavailableError',
    'ExportError',
    'FetchError',
]
