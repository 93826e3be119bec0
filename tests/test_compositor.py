#!/usr/bin/env python3
"""
Tests for the chart compositor and its series registry.
"""

import pandas as pd
import pytest

from chart_studio.chart import SeriesRegistry, RegistryEntry
from chart_studio.comparison import normalize_comparison
from chart_studio.models import IndicatorConfig, IndicatorType, SeriesKind, ChartMarker
from chart_studio.config import Config
from chart_studio.pipeline import build_plan, compute_indicator, INDICATOR_GROUP, COMPARISON_GROUP


def render(compositor, prices, configs, comparisons=None):
    plan = build_plan(prices, configs, comparisons or {},
                      registered=compositor.registered_keys(),
                      cache=compositor.cached_outputs())
    compositor.apply(plan)
    return plan


def mounted(compositor, make_points, n=60):
    compositor.mount('AAPL', '1d')
    prices = compositor.preparer.prepare_price_frame(make_points(n))
    compositor.load_prices(prices)
    return prices


def test_mount_creates_price_and_volume(compositor):
    surface = compositor.mount('AAPL', '1d')

    assert surface.title == 'AAPL - 1d'
    assert compositor.price_handle.kind == SeriesKind.CANDLESTICK
    assert compositor.volume_handle.kind == SeriesKind.HISTOGRAM
    assert surface.series_count == 2
    assert compositor.is_mounted_for('AAPL', '1d')
    assert not compositor.is_mounted_for('AAPL', '1h')


def test_load_prices_fills_candles_and_colored_volume(compositor, make_points):
    prices = mounted(compositor, make_points, 30)
    surface = compositor.surface

    candles = surface.get_series_data(compositor.price_handle)
    volume = surface.get_series_data(compositor.volume_handle)
    assert len(candles) == 30
    assert list(volume.columns) == ['value', 'color']
    assert list(volume.index) == list(prices.index)


def test_created_series_keeps_handle_on_update(compositor, make_points):
    prices = mounted(compositor, make_points)
    config = IndicatorConfig(IndicatorType.SMA, 20)

    render(compositor, prices, [config])
    handle = compositor.indicators.get(config.key).handles['value']

    plan = render(compositor, prices, [config])
    assert plan.create == []
    assert [step.key for step in plan.update] == [config.key]
    assert compositor.indicators.get(config.key).handles['value'] is handle
    assert len(compositor.surface.get_series_data(handle)) == 41


def test_removed_indicator_leaves_surface(compositor, make_points):
    prices = mounted(compositor, make_points)
    sma = IndicatorConfig(IndicatorType.SMA, 20)
    bands = IndicatorConfig(IndicatorType.BOLLINGER, 20)

    render(compositor, prices, [sma, bands])
    assert compositor.surface.series_count == 2 + 1 + 3

    render(compositor, prices, [sma])
    assert bands.key not in compositor.indicators
    assert compositor.surface.series_count == 2 + 1


def test_macd_series_kinds(compositor, make_points):
    prices = mounted(compositor, make_points)
    config = IndicatorConfig(IndicatorType.MACD)
    render(compositor, prices, [config])

    handles = compositor.indicators.get(config.key).handles
    assert handles['histogram'].kind == SeriesKind.HISTOGRAM
    assert handles['macd'].kind == SeriesKind.LINE
    assert compositor.surface.get_style(handles['signal'])['pane'] == 'oscillator'


def test_hidden_indicator_keeps_handle_with_empty_data(compositor, make_points):
    prices = mounted(compositor, make_points)
    shown = IndicatorConfig(IndicatorType.EMA, 10)
    hidden = IndicatorConfig(IndicatorType.EMA, 10, visible=False)

    render(compositor, prices, [shown])
    handle = compositor.indicators.get(shown.key).handles['value']

    render(compositor, prices, [hidden])
    assert compositor.indicators.get(shown.key).handles['value'] is handle
    assert compositor.surface.get_series_data(handle).empty
    assert compositor.surface.get_style(handle)['visible'] is False

    render(compositor, prices, [shown])
    assert len(compositor.surface.get_series_data(handle)) == 51
    assert compositor.surface.get_style(handle)['visible'] is True


def test_hidden_indicator_output_is_reused(compositor, make_points):
    prices = mounted(compositor, make_points)
    hidden = IndicatorConfig(IndicatorType.RSI, visible=False)
    render(compositor, prices, [hidden])

    cached = compositor.cached_outputs()
    assert hidden.key in cached

    compositor.load_prices(compositor.preparer.prepare_price_frame(make_points(60, seed=9)))
    assert compositor.cached_outputs() == {}


def test_color_change_updates_style_in_place(compositor, make_points):
    prices = mounted(compositor, make_points)
    render(compositor, prices, [IndicatorConfig(IndicatorType.SMA, 20)])
    render(compositor, prices, [IndicatorConfig(IndicatorType.SMA, 20, color='#123456')])

    handle = compositor.indicators.get(('sma', 20)).handles['value']
    assert compositor.surface.get_style(handle)['color'] == '#123456'


def test_insufficient_history_creates_no_series(compositor, make_points):
    prices = mounted(compositor, make_points, 10)
    render(compositor, prices, [IndicatorConfig(IndicatorType.SMA, 20)])

    assert len(compositor.indicators) == 0
    assert compositor.surface.series_count == 2


def test_comparison_lifecycle(compositor, make_points):
    prices = mounted(compositor, make_points)
    msft = normalize_comparison(make_points(60, seed=3), 'MSFT')

    render(compositor, prices, [], {'MSFT': msft})
    handle = compositor.comparisons.get('MSFT').handles['value']
    assert compositor.surface.get_style(handle)['pane'] == 'comparison'

    render(compositor, prices, [], {'MSFT': msft})
    assert compositor.comparisons.get('MSFT').handles['value'] is handle

    render(compositor, prices, [], {})
    assert 'MSFT' not in compositor.comparisons
    assert compositor.surface.series_count == 2


def test_markers_replace_previous_set(compositor, make_points):
    mounted(compositor, make_points)
    first = [ChartMarker('event-1', 1, 'aboveBar', '#fff', 'circle', 'a'),
             ChartMarker('event-2', 2, 'belowBar', '#fff', 'circle', 'b')]
    second = [ChartMarker('event-3', 3, 'aboveBar', '#fff', 'arrowUp', 'c')]

    compositor.set_markers(first)
    compositor.set_markers(second)

    assert [m.id for m in compositor.surface.get_markers(compositor.price_handle)] == ['event-3']


def test_show_no_data_clears_everything(compositor, make_points):
    prices = mounted(compositor, make_points)
    render(compositor, prices, [IndicatorConfig(IndicatorType.SMA, 20)],
           {'MSFT': normalize_comparison(make_points(60, seed=4), 'MSFT')})
    compositor.set_markers([ChartMarker('event-1', 1, 'aboveBar', '#fff', 'circle', 'a')])

    compositor.show_no_data()

    assert compositor.surface.get_series_data(compositor.price_handle).empty
    assert compositor.registered_keys() == {INDICATOR_GROUP: [], COMPARISON_GROUP: []}
    assert compositor.markers == []
    assert compositor.surface.series_count == 2


def test_remount_tears_down_previous_surface(compositor, make_points):
    prices = mounted(compositor, make_points)
    render(compositor, prices, [IndicatorConfig(IndicatorType.SMA, 20)])
    old = compositor.surface

    compositor.mount('MSFT', '1h')

    assert old.released
    assert old.series_count == 0
    assert len(compositor.indicators) == 0
    assert compositor.surface is not old
    assert compositor.surface.series_count == 2


def test_released_surface_rejects_use(compositor):
    surface = compositor.mount('AAPL', '1d')
    handle = compositor.price_handle
    compositor.teardown()

    with pytest.raises(RuntimeError):
        surface.set_series_data(handle, pd.DataFrame())
    with pytest.raises(RuntimeError):
        compositor.load_prices(pd.DataFrame())


def test_registry_rejects_duplicate_keys():
    registry = SeriesRegistry('indicator')
    registry.add(RegistryEntry(key=('sma', 20), handles={}))

    with pytest.raises(KeyError):
        registry.add(RegistryEntry(key=('sma', 20), handles={}))
    assert len(registry) == 1
    assert registry.pop(('sma', 20)).key == ('sma', 20)
    assert ('sma', 20) not in registry


def test_rsi_carries_reference_levels(compositor, make_points):
    prices = mounted(compositor, make_points)
    render(compositor, prices, [IndicatorConfig(IndicatorType.RSI)])

    style = compositor.surface.get_style(compositor.indicators.get(('rsi', 14)).handles['value'])
    assert style['pane'] == 'oscillator'
    assert style['levels'] == (30, 70)


def test_changed_band_width_invalidates_cached_output(compositor, make_points):
    prices = mounted(compositor, make_points)
    config = IndicatorConfig(IndicatorType.BOLLINGER, 20)
    render(compositor, prices, [config])
    before = compositor.indicators.get(config.key).output.components['upper'].iloc[-1]

    Config.update_config(indicators={'bollinger_std': 3.0})
    render(compositor, prices, [config])

    output = compositor.indicators.get(config.key).output
    fresh = compute_indicator(config, prices)
    assert output.params == (20, 3.0)
    assert output.components['upper'].iloc[-1] == pytest.approx(fresh.components['upper'].iloc[-1])
    assert output.components['upper'].iloc[-1] != pytest.approx(before)
