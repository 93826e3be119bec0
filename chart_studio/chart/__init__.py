"""
Chart Composition Components

This package contains the components that turn computed series into a chart:
- ChartDataPreparer: Price frame normalization and candle/volume data
- ChartCompositor: Series registry and render plan application
- RenderingSurface / MplfinanceSurface: Rendering surface interface and mplfinance implementation
- build_markers: Temporal event styling
"""

from .data_preparer import ChartDataPreparer
from .surface import RenderingSurface, MplfinanceSurface, SeriesHandle
from .compositor import ChartCompositor, SeriesRegistry, RegistryEntry
from .markers import build_markers

__all__ = [
    'ChartDataPreparer',
    'RenderingSurface',
    'MplfinanceSurface',
    'SeriesHandle',
    'ChartCompositor',
    'SeriesRegistry',
    'RegistryEntry',
    'build_markers',
]
