#!/usr/bin/env python3
"""
Recompute Pipeline

Turns the current price frame, indicator configurations and normalized
comparison series into a RenderPlan: which visual series to create, which to
update in place and which to remove. The function is pure; the compositor
applies the plan.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Iterable, Mapping, Tuple, Hashable

import pandas as pd

from .config import Config
from .models import IndicatorConfig, IndicatorType
from .indicators import Indicators
from .alignment import SeriesAligner

logger = logging.getLogger(__name__)

INDICATOR_GROUP = 'indicator'
COMPARISON_GROUP = 'comparison'

# Indicators drawn in their own pane instead of over the candles
OSCILLATOR_TYPES = {IndicatorType.RSI, IndicatorType.MACD}


@dataclass
class IndicatorSeries:
    """
    Aligned output of one indicator configuration.

    `components` maps a component name to a time-indexed series: 'value' for
    scalar indicators, 'upper'/'middle'/'lower' for Bollinger Bands and
    'macd'/'signal'/'histogram' for MACD.
    """
    key: Tuple[str, int]
    indicator_type: IndicatorType
    components: Dict[str, pd.Series] = field(default_factory=dict)
    params: Tuple = ()

    @property
    def pane(self) -> str:
        return 'oscillator' if self.indicator_type in OSCILLATOR_TYPES else 'price'

    def is_empty(self) -> bool:
        return all(series.empty for series in self.components.values())


@dataclass
class PlannedSeries:
    """One create or update step of a RenderPlan."""
    group: str
    key: Hashable
    output: Any
    visible: bool = True
    color: Optional[str] = None


@dataclass
class RenderPlan:
    create: List[PlannedSeries] = field(default_factory=list)
    update: List[PlannedSeries] = field(default_factory=list)
    remove: List[Tuple[str, Hashable]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.create or self.update or self.remove)

    def summary(self) -> Dict[str, int]:
        return {'create': len(self.create), 'update': len(self.update), 'remove': len(self.remove)}


def indicator_params(config: IndicatorConfig) -> Tuple:
    """Every parameter the calculation reads, including Config.INDICATORS values."""
    settings = Config.INDICATORS
    if config.type == IndicatorType.MACD:
        return (config.resolved_period, settings['macd_slow'], settings['macd_signal'])
    if config.type == IndicatorType.BOLLINGER:
        return (config.resolved_period, settings['bollinger_std'])
    return (config.resolved_period,)


def compute_indicator(config: IndicatorConfig, prices: pd.DataFrame) -> IndicatorSeries:
    """
    Calculate one indicator and align its output onto bar times.

    Insufficient history gives an IndicatorSeries whose components are empty.
    """
    period = config.resolved_period
    settings = Config.INDICATORS
    indicator_type = config.type

    if indicator_type == IndicatorType.SMA:
        components = {'value': SeriesAligner.align(prices, Indicators.sma(prices, period))}
    elif indicator_type == IndicatorType.EMA:
        components = {'value': SeriesAligner.align(prices, Indicators.ema(prices, period))}
    elif indicator_type == IndicatorType.RSI:
        components = {'value': SeriesAligner.align(prices, Indicators.rsi(prices, period))}
    elif indicator_type == IndicatorType.MACD:
        result = Indicators.macd(prices, fast_period=period,
                                 slow_period=settings['macd_slow'],
                                 signal_period=settings['macd_signal'])
        components = SeriesAligner.align_macd(prices, result)
    elif indicator_type == IndicatorType.BOLLINGER:
        bands = SeriesAligner.align_bands(
            prices, Indicators.bollinger_bands(prices, period, settings['bollinger_std']))
        components = {name: bands[name] for name in ('upper', 'middle', 'lower')}
    else:
        raise ValueError(f"Unsupported indicator type: {indicator_type}")

    output = IndicatorSeries(key=config.key, indicator_type=indicator_type, components=components,
                             params=indicator_params(config))
    if output.is_empty():
        logger.debug(f"{config.key}: insufficient history ({len(prices)} bars)")
    return output


def price_fingerprint(prices: pd.DataFrame) -> int:
    """Stable hash of a price frame, used to reuse cached indicator output."""
    if prices.empty:
        return 0
    return int(pd.util.hash_pandas_object(prices, index=True).sum())


def build_plan(prices: pd.DataFrame,
               indicators: Iterable[IndicatorConfig],
               comparisons: Mapping[str, pd.Series],
               registered: Optional[Mapping[str, Iterable[Hashable]]] = None,
               cache: Optional[Mapping[Hashable, IndicatorSeries]] = None) -> RenderPlan:
    """
    Diff the desired overlay set against the registered one.

    Args:
        prices: OHLCV frame indexed by bar time
        indicators: Active indicator configurations; later duplicates of the
            same (type, period) identity win
        comparisons: Normalized comparison series by ticker; empty series are
            treated as absent
        registered: Keys currently registered per group
        cache: Previously computed outputs for these same prices, by key

    Returns:
        RenderPlan with create / update / remove steps
    """
    registered = registered or {}
    cache = cache or {}
    current_indicators = set(registered.get(INDICATOR_GROUP, ()))
    current_comparisons = set(registered.get(COMPARISON_GROUP, ()))

    desired: Dict[Tuple[str, int], IndicatorConfig] = {}
    for config in indicators:
        desired[config.key] = config

    plan = RenderPlan()

    for key, config in desired.items():
        output = cache.get(key)
        if output is not None and output.params != indicator_params(config):
            logger.debug(f"{key}: parameters changed, discarding cached output")
            output = None
        if output is None:
            output = compute_indicator(config, prices)
        else:
            logger.debug(f"{key}: reusing cached output")

        if output.is_empty():
            if key in current_indicators:
                plan.remove.append((INDICATOR_GROUP, key))
            continue

        step = PlannedSeries(INDICATOR_GROUP, key, output, visible=config.visible, color=config.color)
        if key in current_indicators:
            plan.update.append(step)
        else:
            plan.create.append(step)

    for key in current_indicators:
        if key not in desired:
            plan.remove.append((INDICATOR_GROUP, key))

    wanted_comparisons = {ticker: series for ticker, series in comparisons.items()
                          if series is not None and not series.empty}
    for ticker, series in wanted_comparisons.items():
        step = PlannedSeries(COMPARISON_GROUP, ticker, series)
        if ticker in current_comparisons:
            plan.update.append(step)
        else:
            plan.create.append(step)

    for ticker in current_comparisons:
        if ticker not in wanted_comparisons:
            plan.remove.append((COMPARISON_GROUP, ticker))

    logger.debug(f"Render plan: {plan.summary()}")
    return plan
