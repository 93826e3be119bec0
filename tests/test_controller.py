#!/usr/bin/env python3
"""
Tests for the chart controller: fetch orchestration, staleness and failure
handling.
"""

import asyncio

import pytest

from chart_studio.controller import ChartController
from chart_studio.data_source import MarketDataSource
from chart_studio.exceptions import DataUnavailableError, FetchError
from chart_studio.models import IndicatorConfig, IndicatorType, PricePoint, TemporalEventMarker
from chart_studio.pipeline import INDICATOR_GROUP, COMPARISON_GROUP

from conftest import create_sample_points, DAY, START

NOW = START + 59 * DAY


class FakeSource(MarketDataSource):
    """In-memory source; tickers listed in `gates` wait for their event first."""

    def __init__(self, prices=None, events=None, failures=(), gates=None):
        self.prices = prices or {}
        self.events = events or []
        self.failures = set(failures)
        self.gates = gates or {}
        self.calls = []

    async def fetch_price_history(self, ticker, from_time, to_time, interval):
        self.calls.append(('prices', ticker, from_time, to_time, interval))
        if ticker in self.gates:
            await self.gates[ticker].wait()
        if ticker in self.failures:
            raise FetchError(f"backend down for {ticker}")
        return self.prices.get(ticker, [])

    async def fetch_events(self, ticker, from_time, to_time):
        self.calls.append(('events', ticker, from_time, to_time))
        if 'events' in self.failures:
            raise FetchError("events backend down")
        return list(self.events)


def make_controller(compositor, source, timeout=1.0):
    return ChartController(source, compositor, timeout=timeout, clock=lambda: NOW)


def default_prices():
    return {
        'AAPL': create_sample_points(60, seed=1),
        'MSFT': create_sample_points(60, seed=2),
        'QQQ': create_sample_points(60, seed=3),
    }


def test_load_renders_prices_indicators_and_comparisons(compositor):
    source = FakeSource(prices=default_prices())
    controller = make_controller(compositor, source)
    indicators = [IndicatorConfig(IndicatorType.SMA, 20), IndicatorConfig(IndicatorType.MACD)]

    result = asyncio.run(controller.load('aapl', '1d', indicators=indicators,
                                         comparison_tickers=['msft'], show_events=False))

    assert result.applied
    assert result.ticker == 'AAPL'
    assert result.bars == 60
    assert result.notices == []
    assert compositor.mounted_for == ('AAPL', '1d')
    assert sorted(compositor.registered_keys()[INDICATOR_GROUP]) == [('macd', 12), ('sma', 20)]
    assert compositor.registered_keys()[COMPARISON_GROUP] == ['MSFT']


def test_fetch_window_follows_timeframe(compositor):
    source = FakeSource(prices=default_prices())
    controller = make_controller(compositor, source)

    asyncio.run(controller.load('AAPL', '1h', show_events=False))

    _, ticker, from_time, to_time, interval = source.calls[0]
    assert (ticker, interval) == ('AAPL', '1h')
    assert to_time == NOW
    assert to_time - from_time == 7 * DAY


def test_events_become_markers(compositor):
    events = [TemporalEventMarker(1, 'Earnings', START + 10 * DAY, 'earnings', 0.9, 0.6),
              TemporalEventMarker(2, 'Downgrade', START + 5 * DAY, 'news', 0.3, -0.4)]
    controller = make_controller(compositor, FakeSource(prices=default_prices(), events=events))

    asyncio.run(controller.load('AAPL', '1d', show_events=True))

    assert [m.id for m in compositor.markers] == ['event-2', 'event-1']


def test_events_failure_is_a_notice(compositor):
    source = FakeSource(prices=default_prices(), failures=['events'])
    controller = make_controller(compositor, source)

    result = asyncio.run(controller.load('AAPL', '1d', show_events=True))

    assert result.applied
    assert [n.ticker for n in result.notices] == ['AAPL']
    assert compositor.markers == []


def test_comparison_failure_is_isolated(compositor):
    source = FakeSource(prices=default_prices(), failures=['QQQ'])
    controller = make_controller(compositor, source)

    result = asyncio.run(controller.load('AAPL', '1d', indicators=[IndicatorConfig(IndicatorType.RSI)],
                                         comparison_tickers=['MSFT', 'QQQ'], show_events=False))

    assert result.applied
    assert [n.ticker for n in result.notices] == ['QQQ']
    assert compositor.registered_keys()[COMPARISON_GROUP] == ['MSFT']
    assert compositor.registered_keys()[INDICATOR_GROUP] == [('rsi', 14)]


def test_empty_comparison_is_a_notice(compositor):
    prices = default_prices()
    prices['FLAT'] = []
    controller = make_controller(compositor, FakeSource(prices=prices))

    result = asyncio.run(controller.load('AAPL', '1d', comparison_tickers=['FLAT'], show_events=False))

    assert [n.ticker for n in result.notices] == ['FLAT']
    assert compositor.registered_keys()[COMPARISON_GROUP] == []


def test_price_failure_raises_and_shows_no_data(compositor):
    source = FakeSource(prices=default_prices(), failures=['AAPL'])
    controller = make_controller(compositor, source)

    with pytest.raises(DataUnavailableError):
        asyncio.run(controller.load('AAPL', '1d', indicators=[IndicatorConfig(IndicatorType.SMA, 20)],
                                    show_events=False))

    assert compositor.surface.get_series_data(compositor.price_handle).empty
    assert compositor.registered_keys()[INDICATOR_GROUP] == []


def test_failed_reload_clears_previous_chart(compositor):
    source = FakeSource(prices=default_prices())
    controller = make_controller(compositor, source)
    asyncio.run(controller.load('AAPL', '1d', indicators=[IndicatorConfig(IndicatorType.SMA, 20)],
                                show_events=False))

    source.failures.add('AAPL')
    with pytest.raises(DataUnavailableError):
        asyncio.run(controller.load('AAPL', '1d', show_events=False))

    assert compositor.surface.get_series_data(compositor.price_handle).empty
    assert len(compositor.indicators) == 0


def test_empty_price_history_raises(compositor):
    controller = make_controller(compositor, FakeSource(prices={'AAPL': []}))

    with pytest.raises(DataUnavailableError):
        asyncio.run(controller.load('AAPL', '1d', show_events=False))


def test_price_timeout_raises(compositor):
    source = FakeSource(prices=default_prices(), gates={'AAPL': asyncio.Event()})
    controller = make_controller(compositor, source, timeout=0.05)

    with pytest.raises(DataUnavailableError) as excinfo:
        asyncio.run(controller.load('AAPL', '1d', show_events=False))

    assert isinstance(excinfo.value.__cause__, FetchError)


def test_stale_fetch_is_discarded(compositor):
    """A slow fetch for the previous ticker must not overwrite the newer chart."""
    async def scenario():
        gate = asyncio.Event()
        source = FakeSource(prices=default_prices(), gates={'AAPL': gate})
        controller = make_controller(compositor, source)

        slow = asyncio.create_task(controller.load('AAPL', '1d', show_events=False))
        await asyncio.sleep(0)

        fast = await controller.load('MSFT', '1d', show_events=False)
        gate.set()
        stale = await slow
        return controller, fast, stale

    controller, fast, stale = asyncio.run(scenario())

    assert fast.applied
    assert not stale.applied
    assert stale.generation < fast.generation == controller.generation
    assert compositor.mounted_for == ('MSFT', '1d')
    assert len(compositor.created_surfaces) == 1


def test_ticker_change_tears_down_previous_surface(compositor):
    controller = make_controller(compositor, FakeSource(prices=default_prices()))

    asyncio.run(controller.load('AAPL', '1d', indicators=[IndicatorConfig(IndicatorType.EMA, 10)],
                                show_events=False))
    asyncio.run(controller.load('MSFT', '1d', show_events=False))

    first, second = compositor.created_surfaces
    assert first.released
    assert not second.released
    assert len(compositor.indicators) == 0


def test_same_ticker_reload_keeps_surface(compositor):
    controller = make_controller(compositor, FakeSource(prices=default_prices()))
    config = IndicatorConfig(IndicatorType.SMA, 20)

    asyncio.run(controller.load('AAPL', '1d', indicators=[config], show_events=False))
    handle = compositor.indicators.get(config.key).handles['value']
    result = asyncio.run(controller.load('AAPL', '1d', indicators=[config], show_events=False))

    assert len(compositor.created_surfaces) == 1
    assert [step.key for step in result.plan.update] == [config.key]
    assert compositor.indicators.get(config.key).handles['value'] is handle


def test_reconfigure_uses_loaded_prices(compositor):
    source = FakeSource(prices=default_prices())
    controller = make_controller(compositor, source)
    asyncio.run(controller.load('AAPL', '1d', indicators=[IndicatorConfig(IndicatorType.SMA, 20)],
                                show_events=False))
    fetches = len(source.calls)

    result = controller.reconfigure([IndicatorConfig(IndicatorType.BOLLINGER)])

    assert result.applied
    assert len(source.calls) == fetches
    assert [step.key for step in result.plan.create] == [('bollinger', 20)]
    assert result.plan.remove == [(INDICATOR_GROUP, ('sma', 20))]


def test_reconfigure_before_load_is_deferred(compositor):
    controller = make_controller(compositor, FakeSource(prices=default_prices()))

    assert not controller.reconfigure([IndicatorConfig(IndicatorType.SMA, 20)]).applied
    assert compositor.surface is None


def test_invalid_request_is_rejected(compositor):
    controller = make_controller(compositor, FakeSource())

    with pytest.raises(ValueError):
        asyncio.run(controller.load('AAPL', '2w'))
    with pytest.raises(ValueError):
        asyncio.run(controller.load('  '))


def test_close_tears_down_and_invalidates(compositor):
    controller = make_controller(compositor, FakeSource(prices=default_prices()))
    result = asyncio.run(controller.load('AAPL', '1d', show_events=False))

    controller.close()

    assert compositor.surface is None
    assert compositor.created_surfaces[0].released
    assert controller.generation > result.generation


def test_invalid_bars_raise(compositor):
    bad = [PricePoint(time=START + i * DAY, close=10.0, high=11.0, low=9.0, volume=-5.0)
           for i in range(5)]
    controller = make_controller(compositor, FakeSource(prices={'AAPL': bad}))

    with pytest.raises(DataUnavailableError):
        asyncio.run(controller.load('AAPL', '1d', show_events=False))
    assert compositor.surface.get_series_data(compositor.price_handle).empty
