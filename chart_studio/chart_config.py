"""
Chart Configuration Module

This module contains all configurable settings for chart rendering including:
- Color themes (dark/light)
- Indicator and comparison overlay palettes
- Event marker colors
- Chart size and resolution settings
"""

from typing import Dict, Any, Optional


class ChartConfig:
    """
    Configuration class for chart visualization settings.
    Provides the dark theme color palette and overlay styling rules.
    """

    # Color Theme - Dark Mode
    THEME = {
        'mode': 'dark',

        # Background colors
        'background': '#0a0a0a',       # Near-black background
        'face_color': '#0a0a0a',       # Chart face color
        'figure_color': '#0a0a0a',     # Figure background
        'grid_color': '#1c1c1c',       # Subtle grid lines
        'edge_color': '#2a2a2a',       # Border color

        # Text colors
        'text_color': '#9ca3af',       # Muted gray for axis text
        'title_color': '#e5e7eb',      # Light gray for title

        # Candlestick colors
        'candle_up': '#22d3ee',        # Cyan for up candles
        'candle_down': '#f87171',      # Red for down candles
        'candle_edge': 'inherit',      # Use body color for edges
        'candle_wick_up': '#22d3ee',
        'candle_wick_down': '#f87171',
        'candle_alpha': 0.9,

        # Volume histogram colors
        'volume_up': '#22d3ee',
        'volume_down': '#f87171',
        'volume_alpha': 0.3,

        # Bollinger Bands
        'bb_bands': '#64b5f6',         # Light blue for upper/lower bands
        'bb_middle': '#90caf9',        # Lighter blue for the middle band
        'bb_linestyle': '--',
        'bb_linewidth': 1.2,
        'bb_alpha': 0.7,

        # MACD
        'macd_line': '#4fc3f7',
        'macd_signal': '#ffb74d',
        'macd_histogram': '#757575',

        # Event markers
        'marker_positive': '#22d3ee',
        'marker_negative': '#f87171',
        'marker_neutral': '#fbbf24',
    }

    # Default line color per indicator type (overridden by IndicatorConfig.color)
    INDICATOR_COLORS = {
        'sma': '#fbbf24',              # Amber
        'ema': '#a78bfa',              # Violet
        'rsi': '#4fc3f7',              # Cyan
        'macd': '#4fc3f7',
        'bollinger': '#64b5f6',
    }

    # Comparison overlay palette, assigned in ticker order
    COMPARISON_COLORS = [
        '#f472b6',   # Pink
        '#34d399',   # Emerald
        '#facc15',   # Yellow
        '#fb923c',   # Orange
        '#c084fc',   # Purple
    ]

    # RSI panel reference levels
    RSI_CONFIG = {
        'overbought': 70,
        'oversold': 30,
        'line_width': 1.5,
    }

    # Chart Size and Resolution
    CHART_SIZE = {
        'figure_size': (12, 8),        # Size in inches (width, height)
        'dpi': 100,                     # Resolution (dots per inch)
        'panel_ratios': {               # Relative height of each pane
            'price': 4,
            'oscillator': 1.5,
            'volume': 1,
        }
    }

    @classmethod
    def get_theme_colors(cls) -> Dict[str, Any]:
        """
        Get current theme colors.

        Returns:
            Dictionary containing all theme color settings
        """
        return cls.THEME.copy()

    @classmethod
    def get_indicator_color(cls, indicator_type: str, override: Optional[str] = None) -> str:
        """Line color for an indicator overlay; an explicit config color wins."""
        if override:
            return override
        return cls.INDICATOR_COLORS.get(indicator_type, cls.THEME['text_color'])

    @classmethod
    def get_comparison_color(cls, index: int) -> str:
        """Palette color for the n-th comparison ticker."""
        return cls.COMPARISON_COLORS[index % len(cls.COMPARISON_COLORS)]

    @classmethod
    def get_chart_size(cls) -> Dict[str, Any]:
        """
        Get chart size configuration.

        Returns:
            Dictionary with figure_size, dpi, and panel_ratios
        """
        return cls.CHART_SIZE.copy()

    @classmethod
    def get_rsi_config(cls) -> Dict[str, Any]:
        """Get RSI panel reference levels."""
        return cls.RSI_CONFIG.copy()


class LightChartTheme(ChartConfig):
    """
    Light theme color palette.
    Can be used as alternative by passing to the rendering surface.
    """

    THEME = {
        **ChartConfig.THEME,
        'mode': 'light',

        'background': '#ffffff',
        'face_color': '#ffffff',
        'figure_color': '#ffffff',
        'grid_color': '#e0e0e0',
        'edge_color': '#000000',

        'text_color': '#000000',
        'title_color': '#000000',

        'candle_up': '#26a69a',
        'candle_down': '#ef5350',
        'candle_wick_up': '#26a69a',
        'candle_wick_down': '#ef5350',

        'volume_up': '#26a69a',
        'volume_down': '#ef5350',

        'bb_bands': '#808080',
        'bb_middle': '#a0a0a0',

        'marker_positive': '#26a69a',
        'marker_negative': '#ef5350',
        'marker_neutral': '#f59e0b',
    }


# Default configuration to use (dark theme)
DEFAULT_CHART_CONFIG = ChartConfig
