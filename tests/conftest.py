"""
Shared fixtures for chart engine tests.
"""

import numpy as np
import pytest

from chart_studio.chart import ChartCompositor, MplfinanceSurface
from chart_studio.chart_config import ChartConfig
from chart_studio.config import Config
from chart_studio.models import PricePoint

DAY = 86400
START = 1_700_006_400  # 2023-11-15 00:00 UTC


def create_sample_points(n_points=60, start=START, step=DAY, closes=None, seed=42):
    """Create daily OHLCV bars with a random walk (or the given closes)."""
    if closes is None:
        rng = np.random.default_rng(seed)
        returns = rng.normal(0, 0.01, n_points)
        closes = 100.0 * np.cumprod(1 + returns)

    points = []
    previous = float(closes[0])
    for i, close in enumerate(closes):
        close = float(close)
        high = max(previous, close) * 1.005
        low = min(previous, close) * 0.995
        points.append(PricePoint(time=start + i * step, open=previous, close=close,
                                 high=high, low=low, volume=1000.0 + i))
        previous = close
    return points


@pytest.fixture
def make_points():
    return create_sample_points


@pytest.fixture
def compositor():
    surfaces = []

    def factory(title):
        surface = MplfinanceSurface(ChartConfig, title=title)
        surfaces.append(surface)
        return surface

    chart = ChartCompositor(factory, ChartConfig)
    chart.created_surfaces = surfaces
    yield chart
    chart.teardown()


@pytest.fixture(autouse=True)
def restore_config():
    """Config sections are class-level dicts; undo any test changes."""
    saved = {name: dict(section) for name, section in Config.get_all_config().items()}
    yield
    for name, section in saved.items():
        current = getattr(Config, name.upper())
        current.clear()
        current.update(section)
