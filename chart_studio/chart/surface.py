#!/usr/bin/env python3
"""
Rendering Surface

Abstract interface for the chart widget plus an mplfinance implementation.
The surface only stores time-keyed series and markers; it knows nothing about
indicators. Exporting renders candlesticks, overlays and markers to PNG bytes.
"""

import io
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import mplfinance as mpf

from ..exceptions import ExportError
from ..models import ChartMarker, SeriesKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesHandle:
    """Opaque reference to a series owned by a surface."""
    id: int
    kind: SeriesKind


class RenderingSurface(ABC):
    """Abstract base class for chart rendering surfaces."""

    @abstractmethod
    def create_series(self, kind: SeriesKind, style: Optional[Dict[str, Any]] = None) -> SeriesHandle:
        """Create an empty series and return its handle."""
        pass

    @abstractmethod
    def set_series_data(self, handle: SeriesHandle, data: Any) -> None:
        """Replace the series data (DataFrame for candles, Series otherwise)."""
        pass

    @abstractmethod
    def apply_options(self, handle: SeriesHandle, style: Dict[str, Any]) -> None:
        """Merge style hints (color, visibility) into an existing series."""
        pass

    @abstractmethod
    def remove_series(self, handle: SeriesHandle) -> None:
        """Remove a series from the surface."""
        pass

    @abstractmethod
    def set_markers(self, handle: SeriesHandle, markers: List[ChartMarker]) -> None:
        """Replace the marker list attached to a series."""
        pass

    @abstractmethod
    def export_image(self) -> bytes:
        """Render the surface to PNG bytes."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Free the surface; it must not be used afterwards."""
        pass


@dataclass
class _SeriesState:
    kind: SeriesKind
    style: Dict[str, Any]
    data: Any = None
    markers: List[ChartMarker] = field(default_factory=list)


class MplfinanceSurface(RenderingSurface):
    """
    In-memory surface rendered with mplfinance on export.

    Style hints understood per series: 'color', 'pane' ('price', 'oscillator',
    'volume' or 'comparison'), 'linestyle', 'width', 'alpha' and 'visible'.
    """

    def __init__(self, chart_config, title: str = ''):
        """
        Args:
            chart_config: ChartConfig class (or subclass) with theme and size settings
            title: Chart title, usually "<TICKER> - <timeframe>"
        """
        self.chart_config = chart_config
        self.title = title
        self._series: Dict[int, _SeriesState] = {}
        self._ids = itertools.count(1)
        self._released = False

        theme = self.chart_config.get_theme_colors()
        size_config = self.chart_config.get_chart_size()

        self.chart_style = mpf.make_mpf_style(
            base_mpf_style='charles',
            marketcolors=mpf.make_marketcolors(
                up=theme['candle_up'],
                down=theme['candle_down'],
                edge=theme['candle_edge'],
                wick={'up': theme['candle_wick_up'], 'down': theme['candle_wick_down']},
                volume='inherit',
                alpha=theme['candle_alpha']
            ),
            gridstyle='--',
            gridcolor=theme['grid_color'],
            facecolor=theme['face_color'],
            edgecolor=theme['edge_color'],
            figcolor=theme['figure_color'],
            y_on_right=True,
            rc={
                'axes.labelcolor': theme['text_color'],
                'axes.edgecolor': theme['edge_color'],
                'xtick.color': theme['text_color'],
                'ytick.color': theme['text_color'],
                'text.color': theme['text_color']
            }
        )

        self.figure_size = size_config['figure_size']
        self.dpi = size_config['dpi']
        self.panel_ratios = size_config['panel_ratios']

        logger.debug(f"MplfinanceSurface initialized with {theme['mode']} theme")

    # ------------------------------------------------------------------
    # Series primitives
    # ------------------------------------------------------------------

    def _state(self, handle: SeriesHandle) -> _SeriesState:
        if self._released:
            raise RuntimeError("Rendering surface has been released")
        if handle.id not in self._series:
            raise KeyError(f"Unknown series handle {handle.id}")
        return self._series[handle.id]

    def create_series(self, kind: SeriesKind, style: Optional[Dict[str, Any]] = None) -> SeriesHandle:
        if self._released:
            raise RuntimeError("Rendering surface has been released")
        handle = SeriesHandle(next(self._ids), kind)
        self._series[handle.id] = _SeriesState(kind=kind, style=dict(style or {}))
        return handle

    def set_series_data(self, handle: SeriesHandle, data: Any) -> None:
        self._state(handle).data = data

    def apply_options(self, handle: SeriesHandle, style: Dict[str, Any]) -> None:
        self._state(handle).style.update(style)

    def remove_series(self, handle: SeriesHandle) -> None:
        self._state(handle)
        del self._series[handle.id]

    def set_markers(self, handle: SeriesHandle, markers: List[ChartMarker]) -> None:
        self._state(handle).markers = list(markers)

    def release(self) -> None:
        self._series.clear()
        self._released = True
        logger.debug("Rendering surface released")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def released(self) -> bool:
        return self._released

    @property
    def series_count(self) -> int:
        return len(self._series)

    def get_series_data(self, handle: SeriesHandle) -> Any:
        return self._state(handle).data

    def get_style(self, handle: SeriesHandle) -> Dict[str, Any]:
        return dict(self._state(handle).style)

    def get_markers(self, handle: SeriesHandle) -> List[ChartMarker]:
        return list(self._state(handle).markers)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def export_image(self) -> bytes:
        """
        Render complete chart and return as PNG bytes.

        Raises:
            ExportError: when there are no candles or mplfinance fails
        """
        if self._released:
            raise ExportError("Rendering surface has been released")

        candles = self._candle_state()
        if candles is None or candles.data is None or len(candles.data) == 0:
            raise ExportError("No price data to render")

        plot_data = candles.data.copy()
        plot_data.index = pd.to_datetime(plot_data.index, unit='s')

        try:
            panels = self._panel_layout()
            additional_plots = self._build_addplots(plot_data, candles, panels)

            plot_kwargs = {
                'data': plot_data,
                'type': 'candle',
                'style': self.chart_style,
                'figsize': self.figure_size,
                'returnfig': True,
                'volume': False,
                'tight_layout': True,
            }
            if self.title:
                theme = self.chart_config.get_theme_colors()
                plot_kwargs['title'] = dict(title=self.title, fontsize=14, color=theme['title_color'])
            if additional_plots:
                plot_kwargs['addplot'] = additional_plots
            if len(panels) > 1:
                plot_kwargs['panel_ratios'] = tuple(self.panel_ratios[name] for name in panels)

            fig, _ = mpf.plot(**plot_kwargs)
        except Exception as e:
            logger.error(f"Failed to render chart: {e}")
            raise ExportError(f"Failed to render chart: {e}") from e

        try:
            return self._save_to_buffer(fig)
        finally:
            plt.close(fig)

    def _candle_state(self) -> Optional[_SeriesState]:
        for state in self._series.values():
            if state.kind == SeriesKind.CANDLESTICK:
                return state
        return None

    def _drawable(self):
        """Non-candle series that are visible and hold at least one value."""
        for state in self._series.values():
            if state.kind == SeriesKind.CANDLESTICK or not state.style.get('visible', True):
                continue
            if state.data is None or len(state.data) == 0:
                continue
            yield state

    def _panel_layout(self) -> List[str]:
        """Pane names in panel order; mplfinance needs contiguous panel numbers."""
        panes = {state.style.get('pane', 'price') for state in self._drawable()}
        return ['price'] + [name for name in ('oscillator', 'volume') if name in panes]

    def _build_addplots(self, plot_data: pd.DataFrame, candles: _SeriesState, panels: List[str]) -> List:
        additional_plots = []
        theme = self.chart_config.get_theme_colors()

        for state in self._drawable():
            pane = state.style.get('pane', 'price')
            kwargs = {'alpha': state.style.get('alpha', 1.0)}
            if pane == 'comparison':
                kwargs['panel'] = 0
                kwargs['secondary_y'] = True
            else:
                kwargs['panel'] = panels.index(pane)
                kwargs['secondary_y'] = False

            if state.kind == SeriesKind.HISTOGRAM:
                kwargs['type'] = 'bar'
            else:
                kwargs['width'] = state.style.get('width', 1.2)
                kwargs['linestyle'] = state.style.get('linestyle', '-')

            for color, values in self._colored_values(state):
                values = self._to_plot_index(values, plot_data.index, fill=(pane == 'comparison'))
                if values.isna().all():
                    continue
                additional_plots.append(mpf.make_addplot(values, color=color, **kwargs))

            # Reference levels (RSI overbought/oversold)
            for level in state.style.get('levels', ()):
                additional_plots.append(mpf.make_addplot(
                    pd.Series(float(level), index=plot_data.index),
                    panel=kwargs['panel'], secondary_y=False, color=theme['text_color'],
                    linestyle='--', width=0.8, alpha=0.5
                ))

        additional_plots.extend(self._marker_addplots(plot_data, candles))
        return additional_plots

    @staticmethod
    def _colored_values(state: _SeriesState):
        """
        Split series data into (color, values) pairs.

        Histogram frames with a per-bar 'color' column become one bar series
        per color; everything else uses the style color.
        """
        data = state.data
        if isinstance(data, pd.DataFrame):
            if 'color' in data.columns:
                for color, group in data.groupby('color', sort=False):
                    yield color, group['value'].reindex(data.index)
                return
            data = data['value']
        yield state.style.get('color'), pd.Series(data, dtype=float)

    @staticmethod
    def _to_plot_index(values: pd.Series, index: pd.DatetimeIndex, fill: bool = False) -> pd.Series:
        """Re-key epoch-second data onto the candle index."""
        values = values.astype(float).copy()
        values.index = pd.to_datetime(values.index, unit='s')
        if fill:
            # Other tickers trade on their own timestamps; carry the last value forward
            return values.reindex(index, method='ffill')
        return values.reindex(index)

    def _marker_addplots(self, plot_data: pd.DataFrame, candles: _SeriesState) -> List:
        """Scatter plots for markers, grouped by (shape, color, position)."""
        if not candles.markers:
            return []

        first, last = plot_data.index[0], plot_data.index[-1]
        groups: Dict[tuple, pd.Series] = {}
        for marker in candles.markers:
            stamp = pd.to_datetime(marker.time, unit='s')
            if stamp < first or stamp > last:
                continue
            position = plot_data.index.get_indexer([stamp], method='nearest')[0]
            bar = plot_data.iloc[position]
            if marker.position == 'aboveBar':
                level = bar['high'] * 1.01
            else:
                level = bar['low'] * 0.99

            group_key = (marker.shape, marker.color, marker.position)
            if group_key not in groups:
                groups[group_key] = pd.Series(np.nan, index=plot_data.index)
            groups[group_key].iloc[position] = level

        plots = []
        for (shape, color, _), levels in groups.items():
            plots.append(mpf.make_addplot(
                levels, type='scatter', markersize=60,
                marker='^' if shape == 'arrowUp' else 'o', color=color
            ))
        return plots

    def _save_to_buffer(self, fig) -> bytes:
        """
        Save chart figure to bytes buffer

        Args:
            fig: Matplotlib figure

        Returns:
            PNG image as bytes
        """
        theme = self.chart_config.get_theme_colors()
        buffer = io.BytesIO()
        fig.savefig(
            buffer,
            format='png',
            dpi=self.dpi,
            bbox_inches='tight',
            facecolor=theme['figure_color'],
            edgecolor='none'
        )
        buffer.seek(0)
        return buffer.getvalue()
