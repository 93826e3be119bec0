#!/usr/bin/env python3
"""
Chart Compositor

Owns the rendering surface and the registry of visual series. Render plans
are applied here and only here: every series handle is created, updated and
removed through the registry, so the surface never holds an overlay the
registry does not know about.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Any, Hashable, List, Optional, Tuple

import pandas as pd

from ..chart_config import DEFAULT_CHART_CONFIG
from ..exceptions import ExportError
from ..models import ChartMarker, IndicatorType, SeriesKind
from ..pipeline import (
    RenderPlan, PlannedSeries, IndicatorSeries,
    INDICATOR_GROUP, COMPARISON_GROUP, price_fingerprint,
)
from .data_preparer import ChartDataPreparer
from .surface import RenderingSurface, SeriesHandle

logger = logging.getLogger(__name__)

SurfaceFactory = Callable[[str], RenderingSurface]


@dataclass
class RegistryEntry:
    """Handles and last output of one registered overlay."""
    key: Hashable
    handles: Dict[str, SeriesHandle]
    output: Any = None
    fingerprint: int = 0
    visible: bool = True
    color: Optional[str] = None


class SeriesRegistry:
    """Key -> owned handles. add/pop/clear are the only mutation paths."""

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[Hashable, RegistryEntry] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Optional[RegistryEntry]:
        return self._entries.get(key)

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def entries(self) -> List[RegistryEntry]:
        return list(self._entries.values())

    def add(self, entry: RegistryEntry) -> None:
        if entry.key in self._entries:
            raise KeyError(f"{self.name} series {entry.key} is already registered")
        self._entries[entry.key] = entry

    def pop(self, key: Hashable) -> RegistryEntry:
        return self._entries.pop(key)

    def clear(self) -> List[RegistryEntry]:
        entries = list(self._entries.values())
        self._entries.clear()
        return entries


def _empty_series() -> pd.Series:
    return pd.Series(dtype=float, index=pd.Index([], name='time', dtype='int64'))


class ChartCompositor:
    """
    Composes price, volume, indicator, comparison and marker layers on one
    surface.

    Lifecycle per overlay: absent -> created -> updated* -> removed. A new
    surface is built by `mount` for every ticker/timeframe pair; the previous
    one is torn down first.
    """

    def __init__(self, surface_factory: SurfaceFactory, chart_config=DEFAULT_CHART_CONFIG):
        """
        Args:
            surface_factory: Callable taking a chart title and returning a fresh surface
            chart_config: ChartConfig class with theme colors
        """
        self.surface_factory = surface_factory
        self.chart_config = chart_config
        self.preparer = ChartDataPreparer(chart_config)

        self.indicators = SeriesRegistry(INDICATOR_GROUP)
        self.comparisons = SeriesRegistry(COMPARISON_GROUP)

        self._surface: Optional[RenderingSurface] = None
        self._price_handle: Optional[SeriesHandle] = None
        self._volume_handle: Optional[SeriesHandle] = None
        self._fingerprint = 0
        self._markers: List[ChartMarker] = []
        self.mounted_for: Optional[Tuple[str, str]] = None

    # ------------------------------------------------------------------
    # Surface lifecycle
    # ------------------------------------------------------------------

    @property
    def surface(self) -> Optional[RenderingSurface]:
        return self._surface

    @property
    def price_handle(self) -> Optional[SeriesHandle]:
        return self._price_handle

    @property
    def volume_handle(self) -> Optional[SeriesHandle]:
        return self._volume_handle

    @property
    def markers(self) -> List[ChartMarker]:
        return list(self._markers)

    def is_mounted_for(self, ticker: str, timeframe: str) -> bool:
        return self._surface is not None and self.mounted_for == (ticker, timeframe)

    def mount(self, ticker: str, timeframe: str) -> RenderingSurface:
        """Tear down any existing surface and build a new one for ticker/timeframe."""
        if self._surface is not None:
            self.teardown()

        self._surface = self.surface_factory(f"{ticker} - {timeframe}")
        theme = self.chart_config.get_theme_colors()
        self._price_handle = self._surface.create_series(SeriesKind.CANDLESTICK, {'pane': 'price'})
        self._volume_handle = self._surface.create_series(
            SeriesKind.HISTOGRAM, {'pane': 'volume', 'color': theme['volume_up'], 'alpha': theme['volume_alpha']})
        self.mounted_for = (ticker, timeframe)
        logger.info(f"Chart mounted for {ticker} {timeframe}")
        return self._surface

    def teardown(self) -> None:
        """Remove every registered series and release the surface."""
        if self._surface is None:
            return

        for registry in (self.indicators, self.comparisons):
            for entry in registry.clear():
                for handle in entry.handles.values():
                    self._surface.remove_series(handle)

        for handle in (self._price_handle, self._volume_handle):
            if handle is not None:
                self._surface.remove_series(handle)

        self._surface.release()
        logger.info(f"Chart torn down for {self.mounted_for}")

        self._surface = None
        self._price_handle = None
        self._volume_handle = None
        self._fingerprint = 0
        self._markers = []
        self.mounted_for = None

    def _require_surface(self) -> RenderingSurface:
        if self._surface is None:
            raise RuntimeError("Chart compositor is not mounted")
        return self._surface

    # ------------------------------------------------------------------
    # Price, volume and markers
    # ------------------------------------------------------------------

    def load_prices(self, frame: pd.DataFrame) -> None:
        """Replace candle and volume data. An empty frame shows no candles."""
        surface = self._require_surface()
        if frame.empty:
            surface.set_series_data(self._price_handle, frame)
            surface.set_series_data(self._volume_handle, _empty_series())
            self._fingerprint = 0
            return

        surface.set_series_data(self._price_handle, self.preparer.candle_data(frame))
        surface.set_series_data(self._volume_handle, self.preparer.volume_data(frame))
        self._fingerprint = price_fingerprint(frame)
        logger.debug(f"Loaded {len(frame)} bars")

    def set_markers(self, markers: List[ChartMarker]) -> None:
        """Replace the full marker list on the price series."""
        surface = self._require_surface()
        self._markers = list(markers)
        surface.set_markers(self._price_handle, self._markers)
        logger.debug(f"Set {len(self._markers)} event markers")

    def show_no_data(self) -> None:
        """Data-unavailable state: no candles, no overlays, no markers."""
        self.load_prices(pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume']))
        for group, registry in ((INDICATOR_GROUP, self.indicators), (COMPARISON_GROUP, self.comparisons)):
            for key in registry.keys():
                self._remove(group, key)
        self.set_markers([])

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def registered_keys(self) -> Dict[str, List[Hashable]]:
        return {INDICATOR_GROUP: self.indicators.keys(), COMPARISON_GROUP: self.comparisons.keys()}

    def cached_outputs(self) -> Dict[Hashable, IndicatorSeries]:
        """Indicator outputs computed from the currently loaded prices."""
        return {entry.key: entry.output for entry in self.indicators.entries()
                if entry.output is not None and entry.fingerprint == self._fingerprint}

    def apply(self, plan: RenderPlan) -> None:
        """Apply removals, then creations, then in-place updates."""
        self._require_surface()

        for group, key in plan.remove:
            self._remove(group, key)
        for step in plan.create:
            self._create(step)
        for step in plan.update:
            self._update(step)

        logger.info(f"Applied render plan {plan.summary()}")

    def _registry(self, group: str) -> SeriesRegistry:
        return self.indicators if group == INDICATOR_GROUP else self.comparisons

    def _create(self, step: PlannedSeries) -> None:
        surface = self._require_surface()
        if step.group == INDICATOR_GROUP:
            styles = self._indicator_styles(step.output, step.color)
        else:
            styles = self._comparison_styles(len(self.comparisons))

        handles = {name: surface.create_series(kind, style) for name, (kind, style) in styles.items()}
        entry = RegistryEntry(key=step.key, handles=handles, color=step.color)
        self._registry(step.group).add(entry)
        logger.debug(f"Created {step.group} series {step.key}")
        self._push(entry, step)

    def _update(self, step: PlannedSeries) -> None:
        entry = self._registry(step.group).get(step.key)
        if entry is None:
            raise KeyError(f"{step.group} series {step.key} is not registered")

        if step.group == INDICATOR_GROUP and step.color != entry.color:
            surface = self._require_surface()
            for name, (_, style) in self._indicator_styles(step.output, step.color).items():
                surface.apply_options(entry.handles[name], {'color': style['color']})
            entry.color = step.color

        self._push(entry, step)
        logger.debug(f"Updated {step.group} series {step.key}")

    def _push(self, entry: RegistryEntry, step: PlannedSeries) -> None:
        """Write data into the entry's handles; hidden entries get empty data."""
        surface = self._require_surface()
        entry.output = step.output
        entry.fingerprint = self._fingerprint
        entry.visible = step.visible

        if step.group == INDICATOR_GROUP:
            components = step.output.components
        else:
            components = {'value': step.output}

        for name, handle in entry.handles.items():
            surface.apply_options(handle, {'visible': step.visible})
            data = components[name] if step.visible else _empty_series()
            surface.set_series_data(handle, data)

    def _remove(self, group: str, key: Hashable) -> None:
        surface = self._require_surface()
        entry = self._registry(group).pop(key)
        for handle in entry.handles.values():
            surface.remove_series(handle)
        logger.debug(f"Removed {group} series {key}")

    # ------------------------------------------------------------------
    # Styling
    # ------------------------------------------------------------------

    def _indicator_styles(self, output: IndicatorSeries, color: Optional[str]) -> Dict[str, Tuple[SeriesKind, Dict[str, Any]]]:
        theme = self.chart_config.get_theme_colors()
        indicator_type = output.indicator_type
        pane = output.pane

        if indicator_type == IndicatorType.BOLLINGER:
            band_color = color or theme['bb_bands']
            band = {'pane': pane, 'color': band_color, 'linestyle': theme['bb_linestyle'],
                    'width': theme['bb_linewidth'], 'alpha': theme['bb_alpha']}
            return {
                'upper': (SeriesKind.LINE, dict(band)),
                'middle': (SeriesKind.LINE, {'pane': pane, 'color': color or theme['bb_middle'],
                                             'width': theme['bb_linewidth']}),
                'lower': (SeriesKind.LINE, dict(band)),
            }

        if indicator_type == IndicatorType.MACD:
            return {
                'macd': (SeriesKind.LINE, {'pane': pane, 'color': color or theme['macd_line']}),
                'signal': (SeriesKind.LINE, {'pane': pane, 'color': theme['macd_signal']}),
                'histogram': (SeriesKind.HISTOGRAM, {'pane': pane, 'color': theme['macd_histogram'],
                                                     'alpha': 0.6}),
            }

        line_color = self.chart_config.get_indicator_color(indicator_type.value, color)
        style = {'pane': pane, 'color': line_color}
        if indicator_type == IndicatorType.RSI:
            rsi_config = self.chart_config.get_rsi_config()
            style['width'] = rsi_config['line_width']
            style['levels'] = (rsi_config['oversold'], rsi_config['overbought'])
        return {'value': (SeriesKind.LINE, style)}

    def _comparison_styles(self, index: int) -> Dict[str, Tuple[SeriesKind, Dict[str, Any]]]:
        return {'value': (SeriesKind.LINE, {'pane': 'comparison',
                                            'color': self.chart_config.get_comparison_color(index),
                                            'width': 1.5})}

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_image(self) -> bytes:
        """
        Render the current chart to PNG bytes.

        Raises:
            ExportError: when nothing is mounted or the surface fails;
                chart state is left untouched
        """
        if self._surface is None:
            raise ExportError("No chart is mounted")
        return self._surface.export_image()
