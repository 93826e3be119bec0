#!/usr/bin/env python3
"""
Chart Controller

Runs the fetch -> compute -> compose cycle for the active ticker. Fetches are
asynchronous; indicator math and plan application are synchronous and only
run against the price data of the current request. A request that resolves
after a newer one has started is discarded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd

from .chart.compositor import ChartCompositor
from .chart.markers import build_markers
from .comparison import normalize_comparison
from .config import Config
from .data_source import MarketDataSource
from .exceptions import DataUnavailableError, FetchError
from .models import IndicatorConfig
from .pipeline import RenderPlan, build_plan

logger = logging.getLogger(__name__)

TIMEFRAMES = ('1m', '5m', '15m', '1h', '1d')


@dataclass
class Notice:
    """Non-blocking message for the user (soft failures)."""
    level: str
    message: str
    ticker: Optional[str] = None


@dataclass
class LoadResult:
    """Outcome of one load or reconfigure pass."""
    generation: int
    ticker: str
    timeframe: str
    applied: bool
    bars: int = 0
    plan: Optional[RenderPlan] = None
    notices: List[Notice] = field(default_factory=list)


class ChartController:
    """
    Owns the current chart request and drives the compositor.

    Every `load` takes a new generation number. Results are applied only if
    their generation is still current when the fetches resolve.
    """

    def __init__(self, source: MarketDataSource, compositor: ChartCompositor,
                 timeout: Optional[float] = None, clock: Callable[[], float] = time.time):
        """
        Args:
            source: Market data collaborator
            compositor: Compositor that exclusively owns the rendering surface
            timeout: Per-fetch timeout in seconds (defaults to Config.FETCH)
            clock: Returns the current epoch time in seconds
        """
        self.source = source
        self.compositor = compositor
        self.timeout = timeout if timeout is not None else Config.get_fetch_config()['timeout_seconds']
        self.clock = clock

        self._generation = 0
        self._indicators: List[IndicatorConfig] = []
        self._prices: Optional[pd.DataFrame] = None
        self._comparisons: Dict[str, pd.Series] = {}
        self.ticker: Optional[str] = None
        self.timeframe: Optional[str] = None

    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _fetch(self, coro, what: str):
        """Await a fetch with the configured timeout; timeouts become FetchError."""
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(f"{what} timed out after {self.timeout}s") from e

    def time_range(self, timeframe: str) -> tuple:
        """(from_time, to_time) lookback window ending now."""
        now = int(self.clock())
        return now - Config.lookback_seconds(timeframe), now

    async def load(self, ticker: str, timeframe: str = '1d',
                   indicators: Iterable[IndicatorConfig] = (),
                   comparison_tickers: Iterable[str] = (),
                   show_events: Optional[bool] = None) -> LoadResult:
        """
        Fetch and render a ticker/timeframe with its overlays.

        Raises:
            DataUnavailableError: primary price data failed, timed out or was
                empty, and this request is still the current one
        """
        ticker = self.compositor.preparer.clean_symbol_name(ticker)
        if not ticker:
            raise ValueError("Ticker symbol is required")
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Invalid timeframe '{timeframe}'. Must be one of: {TIMEFRAMES}")
        if show_events is None:
            show_events = Config.get_fetch_config()['show_events']

        self._generation += 1
        generation = self._generation
        self._indicators = list(indicators)
        comparison_tickers = [self.compositor.preparer.clean_symbol_name(t) for t in comparison_tickers]
        comparison_tickers = list(dict.fromkeys(t for t in comparison_tickers if t))

        from_time, to_time = self.time_range(timeframe)
        logger.info(f"Loading {ticker} {timeframe} (generation {generation})")

        tasks = [self._fetch(self.source.fetch_price_history(ticker, from_time, to_time, timeframe),
                             f"Price history for {ticker}")]
        if show_events:
            tasks.append(self._fetch(self.source.fetch_events(ticker, from_time, to_time),
                                     f"Events for {ticker}"))
        for other in comparison_tickers:
            tasks.append(self._fetch(self.source.fetch_price_history(other, from_time, to_time, timeframe),
                                     f"Price history for {other}"))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        if not self._is_current(generation):
            logger.info(f"Discarding stale result for {ticker} {timeframe} (generation {generation})")
            return LoadResult(generation, ticker, timeframe, applied=False)

        price_result = results[0]
        event_result = results[1] if show_events else []
        comparison_results = results[2:] if show_events else results[1:]

        if not self.compositor.is_mounted_for(ticker, timeframe):
            self.compositor.mount(ticker, timeframe)
        self.ticker, self.timeframe = ticker, timeframe

        if isinstance(price_result, BaseException) or not price_result:
            self._prices = None
            self._comparisons = {}
            self.compositor.show_no_data()
            if isinstance(price_result, BaseException):
                logger.error(f"Failed to load chart data for {ticker}: {price_result}")
                raise DataUnavailableError(f"Failed to load chart data for {ticker}",
                                           {'timeframe': timeframe}) from price_result
            logger.error(f"No chart data for {ticker} {timeframe}")
            raise DataUnavailableError(f"No chart data for {ticker}", {'timeframe': timeframe})

        prices = self.compositor.preparer.prepare_price_frame(price_result)
        if not self.compositor.preparer.validate_dataframe(prices):
            self._prices = None
            self._comparisons = {}
            self.compositor.show_no_data()
            raise DataUnavailableError(f"Invalid chart data for {ticker}", {'timeframe': timeframe})

        notices: List[Notice] = []

        comparisons: Dict[str, pd.Series] = {}
        for other, result in zip(comparison_tickers, comparison_results):
            if isinstance(result, BaseException):
                logger.warning(f"Comparison {other} failed: {result}")
                notices.append(Notice('warning', f"Could not load comparison data for {other}", other))
                continue
            series = normalize_comparison(result, other)
            if series.empty:
                notices.append(Notice('warning', f"No comparison data for {other}", other))
                continue
            comparisons[other] = series

        self._prices = prices
        self._comparisons = comparisons
        self.compositor.load_prices(prices)
        plan = self._recompute()

        if isinstance(event_result, BaseException):
            logger.warning(f"Events for {ticker} failed: {event_result}")
            notices.append(Notice('warning', f"Could not load events for {ticker}", ticker))
            event_result = []
        self.compositor.set_markers(build_markers(event_result, self.compositor.chart_config))

        logger.info(f"Rendered {ticker} {timeframe}: {len(prices)} bars, "
                    f"{len(self._indicators)} indicator(s), {len(comparisons)} comparison(s)")
        return LoadResult(generation, ticker, timeframe, applied=True, bars=len(prices),
                          plan=plan, notices=notices)

    def reconfigure(self, indicators: Iterable[IndicatorConfig]) -> LoadResult:
        """
        Apply a new indicator set to the already loaded prices.

        A load still in flight picks up this indicator set when it resolves.
        """
        self._indicators = list(indicators)
        if self._prices is None:
            return LoadResult(self._generation, self.ticker or '', self.timeframe or '', applied=False)

        plan = self._recompute()
        return LoadResult(self._generation, self.ticker, self.timeframe, applied=True,
                          bars=len(self._prices), plan=plan)

    def _recompute(self) -> RenderPlan:
        plan = build_plan(
            self._prices,
            self._indicators,
            self._comparisons,
            registered=self.compositor.registered_keys(),
            cache=self.compositor.cached_outputs(),
        )
        self.compositor.apply(plan)
        return plan

    def export_image(self) -> bytes:
        """PNG bytes of the current chart; raises ExportError on failure."""
        return self.compositor.export_image()

    def close(self) -> None:
        """Dispose of the chart; in-flight loads become stale."""
        self._generation += 1
        self._prices = None
        self._comparisons = {}
        self.compositor.teardown()
